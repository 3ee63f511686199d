"""Provisioning driver: terraform init/plan/apply/destroy and output reads.

The driver tracks its progress through a small state machine::

    Uninitialized -> BackendConfigured -> WorkspaceSelected
        deploy:  -> Planned -> Applied
        destroy: -> OutputsRead -> Purged -> Destroyed

Any failing transition moves the driver to ``Failed``, which is terminal.
There is no rollback and no automatic retry: a held state lock or a transient
API error surfaces as ``ProvisioningError`` and the operator re-runs.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence

from twinops.core.errors import ProvisioningError
from twinops.core.models import OutputSet
from twinops.core.runner import CommandRunner, RunnerError
from twinops.core.state_backend import StateBackendConfig
from twinops.core.workspace import TERRAFORM_BIN, ensure_workspace

PLAN_FILE = "tfplan"
PROD_VAR_FILE = "prod.tfvars"

# terraform plan -detailed-exitcode
_PLAN_NO_CHANGES = 0
_PLAN_HAS_CHANGES = 2


class ProvisioningState(str, Enum):
    UNINITIALIZED = "uninitialized"
    BACKEND_CONFIGURED = "backend_configured"
    WORKSPACE_SELECTED = "workspace_selected"
    PLANNED = "planned"
    APPLIED = "applied"
    OUTPUTS_READ = "outputs_read"
    PURGED = "purged"
    DESTROYED = "destroyed"
    FAILED = "failed"


_TRANSITIONS: dict[ProvisioningState, tuple[ProvisioningState, ...]] = {
    ProvisioningState.UNINITIALIZED: (ProvisioningState.BACKEND_CONFIGURED,),
    ProvisioningState.BACKEND_CONFIGURED: (ProvisioningState.WORKSPACE_SELECTED,),
    ProvisioningState.WORKSPACE_SELECTED: (
        ProvisioningState.PLANNED,
        ProvisioningState.OUTPUTS_READ,
    ),
    ProvisioningState.PLANNED: (ProvisioningState.APPLIED,),
    ProvisioningState.OUTPUTS_READ: (ProvisioningState.PURGED,),
    ProvisioningState.PURGED: (ProvisioningState.DESTROYED,),
}


class ProvisioningDriver:
    def __init__(
        self,
        runner: CommandRunner,
        terraform_dir: Path,
        *,
        project_name: str,
        environment: str,
        use_prod_var_file: bool = False,
    ) -> None:
        self.runner = runner
        self.terraform_dir = Path(terraform_dir)
        self.project_name = project_name
        self.environment = environment
        self.use_prod_var_file = use_prod_var_file
        self.state = ProvisioningState.UNINITIALIZED
        self.plan_has_changes: bool | None = None

    # -- state machine -------------------------------------------------------

    def _expect(self, target: ProvisioningState) -> None:
        """Reject an illegal transition before any side effect runs."""
        if target not in _TRANSITIONS.get(self.state, ()):
            raise self._fail(
                f"illegal provisioning transition {self.state.value} -> {target.value}"
            )

    def _fail(self, message: str) -> ProvisioningError:
        self.state = ProvisioningState.FAILED
        return ProvisioningError(message)

    def _terraform(self, *args: str) -> None:
        try:
            self.runner.run(
                [TERRAFORM_BIN, *args],
                cwd=self.terraform_dir,
                stream_output=True,
            )
        except RunnerError as exc:
            raise self._fail(f"terraform {args[0]} failed: {exc}") from exc

    def variable_args(self) -> list[str]:
        args: list[str] = []
        if self.use_prod_var_file and (self.terraform_dir / PROD_VAR_FILE).is_file():
            args.append(f"-var-file={PROD_VAR_FILE}")
        args.extend(
            [
                f"-var=project_name={self.project_name}",
                f"-var=environment={self.environment}",
            ]
        )
        return args

    # -- shared path ---------------------------------------------------------

    def init(self, backend: StateBackendConfig) -> None:
        """Bind the backend; -reconfigure lets one checkout switch state locations."""
        self._expect(ProvisioningState.BACKEND_CONFIGURED)
        if not self.runner.dry_run and not self.terraform_dir.is_dir():
            raise self._fail(f"terraform directory not found: {self.terraform_dir}")
        self._terraform("init", "-input=false", "-reconfigure", *backend.backend_config_args())
        self.state = ProvisioningState.BACKEND_CONFIGURED

    def select_workspace(self, *, create_missing: bool = True) -> bool:
        self._expect(ProvisioningState.WORKSPACE_SELECTED)
        try:
            created = ensure_workspace(
                self.runner,
                self.terraform_dir,
                self.environment,
                create_missing=create_missing,
            )
        except ProvisioningError as exc:
            raise self._fail(str(exc)) from exc
        self.state = ProvisioningState.WORKSPACE_SELECTED
        return created

    def output(self, name: str) -> str | None:
        """Best-effort read of one output; absence yields None, never an error."""
        result = self.runner.run(
            [TERRAFORM_BIN, "output", "-raw", name],
            cwd=self.terraform_dir,
            capture_output=True,
            check=False,
        )
        if not result.ok:
            return None
        value = result.stdout.strip()
        return value or None

    def read_outputs(self, names: Iterable[str]) -> OutputSet:
        return OutputSet({name: self.output(name) for name in names})

    # -- deploy path ---------------------------------------------------------

    def plan(self) -> bool:
        """Write a plan file and return True when it contains changes."""
        self._expect(ProvisioningState.PLANNED)
        cmd: Sequence[str] = [
            "plan",
            "-input=false",
            "-detailed-exitcode",
            f"-out={PLAN_FILE}",
            *self.variable_args(),
        ]
        try:
            result = self.runner.run(
                [TERRAFORM_BIN, *cmd],
                cwd=self.terraform_dir,
                stream_output=True,
                check=False,
            )
        except RunnerError as exc:
            raise self._fail(f"terraform plan failed: {exc}") from exc
        if result.returncode not in (_PLAN_NO_CHANGES, _PLAN_HAS_CHANGES):
            raise self._fail(f"terraform plan failed with exit code {result.returncode}")
        self.plan_has_changes = result.returncode == _PLAN_HAS_CHANGES
        self.state = ProvisioningState.PLANNED
        return self.plan_has_changes

    def apply(self) -> None:
        self._expect(ProvisioningState.APPLIED)
        self._terraform("apply", "-input=false", "-auto-approve", PLAN_FILE)
        self.state = ProvisioningState.APPLIED

    # -- destroy path --------------------------------------------------------

    def read_pre_destroy_outputs(self, names: Iterable[str]) -> OutputSet:
        self._expect(ProvisioningState.OUTPUTS_READ)
        outputs = self.read_outputs(names)
        self.state = ProvisioningState.OUTPUTS_READ
        return outputs

    def mark_purged(self) -> None:
        self._expect(ProvisioningState.PURGED)
        self.state = ProvisioningState.PURGED

    def destroy(self) -> None:
        if self.state is not ProvisioningState.PURGED:
            raise self._fail("refusing to destroy before bucket outputs have been purged")
        self._terraform("destroy", "-input=false", *self.variable_args(), "-auto-approve")
        self.state = ProvisioningState.DESTROYED
