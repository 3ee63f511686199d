"""Project layout file (twinops.yml) parsing."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from twinops.core.errors import ConfigError

LAYOUT_FILE_NAME = "twinops.yml"

DEFAULT_OUTPUT_NAMES = {
    "frontend_bucket": "s3_frontend_bucket",
    "api_url": "api_gateway_url",
    "cdn_url": "cloudfront_url",
    "memory_bucket": "memory_bucket",
}

_PATH_KEYS = ("backend_dir", "terraform_dir", "frontend_dir")
_STRING_KEYS = ("frontend_build_dir", "archive_name", "python_version", "lambda_platform")


@dataclass(frozen=True)
class ProjectLayout:
    root: Path
    backend_dir: Path
    terraform_dir: Path
    frontend_dir: Path
    frontend_build_dir: str = "out"
    archive_name: str = "lambda-deployment.zip"
    python_version: str = "3.12"
    lambda_platform: str = "manylinux2014_x86_64"
    outputs: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_OUTPUT_NAMES))

    @property
    def archive_path(self) -> Path:
        return self.backend_dir / self.archive_name

    @property
    def staging_dir(self) -> Path:
        return self.backend_dir / "lambda-package"

    @property
    def frontend_output_dir(self) -> Path:
        return self.frontend_dir / self.frontend_build_dir

    def output_name(self, logical: str) -> str:
        return self.outputs[logical]


def default_layout(root: Path) -> ProjectLayout:
    root = Path(root).resolve()
    return ProjectLayout(
        root=root,
        backend_dir=root / "backend",
        terraform_dir=root / "terraform",
        frontend_dir=root / "frontend",
    )


def load_layout(root: Path) -> ProjectLayout:
    """Return the layout for ``root``, applying twinops.yml overrides when present."""
    layout = default_layout(root)
    layout_path = layout.root / LAYOUT_FILE_NAME
    if not layout_path.is_file():
        return layout

    try:
        payload = yaml.safe_load(layout_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {layout_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"layout file must be a mapping: {layout_path}")

    overrides: dict[str, Any] = {}
    for key in _PATH_KEYS:
        value = _optional_string(payload, key, layout_path)
        if value is not None:
            path = Path(value).expanduser()
            overrides[key] = path if path.is_absolute() else (layout.root / path).resolve()
    for key in _STRING_KEYS:
        value = _optional_string(payload, key, layout_path)
        if value is not None:
            overrides[key] = value

    outputs_raw = payload.get("outputs")
    if outputs_raw is not None:
        if not isinstance(outputs_raw, dict):
            raise ConfigError(f"outputs must be a mapping: {layout_path}")
        outputs = dict(DEFAULT_OUTPUT_NAMES)
        for logical, name in outputs_raw.items():
            if logical not in DEFAULT_OUTPUT_NAMES:
                known = ", ".join(sorted(DEFAULT_OUTPUT_NAMES))
                raise ConfigError(
                    f"unknown output key {logical!r} in {layout_path} (known: {known})"
                )
            if not isinstance(name, str) or name.strip() == "":
                raise ConfigError(f"outputs.{logical} must be a non-empty string: {layout_path}")
            outputs[logical] = name.strip()
        overrides["outputs"] = outputs

    return replace(layout, **overrides)


def _optional_string(payload: dict[str, Any], key: str, path: Path) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or value.strip() == "":
        raise ConfigError(f"{key} must be a non-empty string: {path}")
    return value.strip()
