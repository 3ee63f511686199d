# Where: twinops/core/context.py
# What: Pre-flight configuration resolution for deploy/destroy runs.
# Why: Missing configuration must abort before any external call is attempted.
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from twinops.core.errors import ConfigError
from twinops.core.layout import ProjectLayout, load_layout
from twinops.core.models import Environment

DEFAULT_PROJECT_NAME = "twin"

ACTION_DEPLOY = "deploy"
ACTION_DESTROY = "destroy"

REQUIRED_ENV = {
    ACTION_DEPLOY: ("AWS_ACCOUNT_ID", "DEFAULT_AWS_REGION"),
    ACTION_DESTROY: ("AWS_ACCOUNT_ID", "DEFAULT_AWS_REGION", "TF_STATE_BUCKET", "TF_STATE_TABLE"),
}


@dataclass(frozen=True)
class RunContext:
    action: str
    environment: Environment
    project_name: str
    account_id: str
    region: str
    layout: ProjectLayout
    aws_profile: str | None = None
    state_bucket: str | None = None
    state_table: str | None = None

    @property
    def project_root(self) -> Path:
        return self.layout.root

    @property
    def is_prod(self) -> bool:
        return self.environment is Environment.PROD


def load_env_file(project_root: Path) -> None:
    env_file = Path(project_root) / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)


def missing_required(action: str, env: Mapping[str, str]) -> list[str]:
    return [key for key in REQUIRED_ENV[action] if env.get(key, "").strip() == ""]


def load_run_context(
    action: str,
    environment: Environment | str,
    *,
    project_name: str | None = None,
    project_root: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> RunContext:
    """Build the immutable run context, failing fast on missing configuration."""
    if action not in REQUIRED_ENV:
        raise ConfigError(f"unknown action: {action}")
    try:
        target = (
            environment if isinstance(environment, Environment) else Environment.parse(environment)
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    root = Path(project_root or Path.cwd()).expanduser().resolve()
    if env is None:
        load_env_file(root)
        env = os.environ

    missing = missing_required(action, env)
    if missing:
        raise ConfigError(f"required environment variable(s) not set: {', '.join(missing)}")

    name = (
        (project_name or "").strip()
        or env.get("PROJECT_NAME", "").strip()
        or DEFAULT_PROJECT_NAME
    )

    return RunContext(
        action=action,
        environment=target,
        project_name=name,
        account_id=env["AWS_ACCOUNT_ID"].strip(),
        region=env["DEFAULT_AWS_REGION"].strip(),
        layout=load_layout(root),
        aws_profile=env.get("AWS_PROFILE", "").strip() or None,
        state_bucket=env.get("TF_STATE_BUCKET", "").strip() or None,
        state_table=env.get("TF_STATE_TABLE", "").strip() or None,
    )
