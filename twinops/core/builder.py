"""Backend Lambda packaging."""

from __future__ import annotations

import shutil
import sys
import zipfile
from pathlib import Path

from twinops.core.errors import BuildError, ProvisioningError
from twinops.core.layout import ProjectLayout
from twinops.core.models import DeploymentArchive
from twinops.core.runner import CommandRunner, RunnerError

REQUIREMENTS_FILE = "requirements.txt"
PLACEHOLDER_ENTRY = "dummy"

_SOURCE_IGNORE = (
    "__pycache__",
    "*.pyc",
    ".venv",
    "venv",
    ".env",
    ".pytest_cache",
    "tests",
    "*.zip",
    REQUIREMENTS_FILE,
)


def install_dependencies(
    runner: CommandRunner,
    requirements: Path,
    target: Path,
    *,
    python_version: str,
    platform: str,
) -> None:
    runner.run(
        [
            sys.executable,
            "-m",
            "pip",
            "install",
            "--requirement",
            str(requirements),
            "--target",
            str(target),
            "--platform",
            platform,
            "--implementation",
            "cp",
            "--python-version",
            python_version,
            "--only-binary=:all:",
            "--upgrade",
        ],
        stream_output=True,
    )


def write_archive(source_dir: Path, archive_path: Path) -> int:
    """Zip ``source_dir`` contents into ``archive_path`` with stable entry order."""
    if archive_path.exists():
        archive_path.unlink()
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(source_dir.rglob("*")):
            if path.is_file():
                archive.write(path, path.relative_to(source_dir).as_posix())
    return archive_path.stat().st_size


def build_lambda_archive(runner: CommandRunner, layout: ProjectLayout) -> DeploymentArchive:
    """Rebuild the deployment archive from scratch.

    A failed build leaves the staging directory in place for inspection.
    """
    backend_dir = layout.backend_dir
    staging = layout.staging_dir
    requirements = backend_dir / REQUIREMENTS_FILE

    if runner.dry_run:
        runner.emit(f"[dry-run] rebuild {staging} and package {layout.archive_path}")
        if requirements.is_file():
            runner.emit(f"[dry-run] install dependencies from {requirements}")
        return DeploymentArchive(layout.archive_path, 0)

    if not backend_dir.is_dir():
        raise BuildError(f"backend directory not found: {backend_dir}")

    try:
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)

        if requirements.is_file():
            runner.emit(f"Installing dependencies from {requirements.name}...")
            install_dependencies(
                runner,
                requirements,
                staging,
                python_version=layout.python_version,
                platform=layout.lambda_platform,
            )
        else:
            runner.emit(f"No {REQUIREMENTS_FILE} in {backend_dir}; skipping dependency install")

        runner.emit("Copying backend sources...")
        shutil.copytree(
            backend_dir,
            staging,
            ignore=shutil.ignore_patterns(*_SOURCE_IGNORE, staging.name),
            dirs_exist_ok=True,
        )

        size = write_archive(staging, layout.archive_path)
    except RunnerError as exc:
        raise BuildError(f"dependency install failed: {exc}") from exc
    except OSError as exc:
        raise BuildError(f"packaging failed: {exc}") from exc

    return DeploymentArchive(layout.archive_path, size)


def ensure_placeholder_archive(runner: CommandRunner, archive_path: Path) -> bool:
    """Make sure an archive exists at ``archive_path``; terraform reads it even on destroy."""
    if archive_path.is_file():
        return False
    runner.emit(f"Creating placeholder package for destroy: {archive_path}")
    if runner.dry_run:
        return True
    try:
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path, "w") as archive:
            archive.writestr(PLACEHOLDER_ENTRY, "dummy\n")
    except OSError as exc:
        raise ProvisioningError(f"failed to create placeholder package: {exc}") from exc
    return True