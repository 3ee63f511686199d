"""Per-environment workspace selection."""

from __future__ import annotations

from pathlib import Path

from twinops.core.errors import ProvisioningError
from twinops.core.runner import CommandRunner

TERRAFORM_BIN = "terraform"


def list_workspaces(runner: CommandRunner, terraform_dir: Path) -> list[str]:
    result = runner.run(
        [TERRAFORM_BIN, "workspace", "list"],
        cwd=terraform_dir,
        capture_output=True,
        check=False,
    )
    if not result.ok:
        detail = (result.stderr or result.stdout).strip()
        raise ProvisioningError(f"terraform workspace list failed: {detail}")
    names = []
    for line in result.stdout.splitlines():
        name = line.strip().lstrip("*").strip()
        if name:
            names.append(name)
    return names


def _select(runner: CommandRunner, terraform_dir: Path, name: str) -> bool:
    result = runner.run(
        [TERRAFORM_BIN, "workspace", "select", name],
        cwd=terraform_dir,
        capture_output=True,
        check=False,
    )
    return result.ok


def ensure_workspace(
    runner: CommandRunner,
    terraform_dir: Path,
    name: str,
    *,
    create_missing: bool = True,
) -> bool:
    """Select workspace ``name``, creating it first when it does not exist.

    Returns True when a workspace was created. Selecting an existing workspace
    never attempts creation.
    """
    if _select(runner, terraform_dir, name):
        runner.emit(f"Using workspace '{name}'")
        return False

    existing = list_workspaces(runner, terraform_dir)
    if name in existing:
        raise ProvisioningError(f"failed to select existing workspace '{name}'")
    if not create_missing:
        known = ", ".join(existing) or "(none)"
        raise ProvisioningError(f"workspace '{name}' does not exist (known workspaces: {known})")

    runner.emit(f"Creating workspace '{name}'")
    created = runner.run(
        [TERRAFORM_BIN, "workspace", "new", name],
        cwd=terraform_dir,
        capture_output=True,
        check=False,
    )
    if not created.ok:
        detail = (created.stderr or created.stdout).strip()
        raise ProvisioningError(f"failed to create workspace '{name}': {detail}")
    if not _select(runner, terraform_dir, name):
        raise ProvisioningError(f"failed to select workspace '{name}' after creating it")
    return True
