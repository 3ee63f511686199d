"""Remote state coordinates derived from the run context."""

from __future__ import annotations

from dataclasses import dataclass

from twinops.core.context import RunContext

STATE_KEY_NAME = "terraform.tfstate"


@dataclass(frozen=True)
class StateBackendConfig:
    bucket: str
    key: str
    region: str
    lock_table: str
    workspace_key_prefix: str
    encrypt: bool = True

    def backend_config_args(self) -> list[str]:
        pairs = (
            ("bucket", self.bucket),
            ("key", self.key),
            ("workspace_key_prefix", self.workspace_key_prefix),
            ("region", self.region),
            ("dynamodb_table", self.lock_table),
            ("encrypt", "true" if self.encrypt else "false"),
        )
        return [f"-backend-config={name}={value}" for name, value in pairs]


def default_state_bucket(project_name: str, account_id: str) -> str:
    return f"{project_name}-terraform-state-{account_id}"


def default_lock_table(project_name: str) -> str:
    return f"{project_name}-terraform-locks"


def resolve_state_backend(context: RunContext) -> StateBackendConfig:
    """Pure function of the context: same input, same coordinates.

    The key is shared by every environment; terraform stores each workspace under
    ``<workspace_key_prefix>/<workspace>/<key>``, so the environment workspace
    keeps states apart.
    """
    bucket = context.state_bucket or default_state_bucket(context.project_name, context.account_id)
    return StateBackendConfig(
        bucket=bucket,
        key=STATE_KEY_NAME,
        region=context.region,
        lock_table=context.state_table or default_lock_table(context.project_name),
        workspace_key_prefix=context.project_name,
    )
