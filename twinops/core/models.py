# Where: twinops/core/models.py
# What: Value types passed between pipeline stages.
# Why: Stages report outcomes explicitly so the orchestrator can short-circuit.
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, Mapping

NULL_OUTPUT = "null"


class Environment(str, Enum):
    DEV = "dev"
    TEST = "test"
    PROD = "prod"

    @classmethod
    def names(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value: str) -> Environment:
        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        expected = ", ".join(cls.names())
        raise ValueError(f"unknown environment {value!r} (expected one of {expected})")

    def __str__(self) -> str:
        return self.value


class StageStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StageResult:
    name: str
    status: StageStatus
    outputs: Mapping[str, str] = field(default_factory=dict)
    error: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def failed(self) -> bool:
        return self.status is StageStatus.FAILED

    @classmethod
    def success(
        cls, name: str, outputs: Mapping[str, str] | None = None, warnings=()
    ) -> StageResult:
        return cls(name, StageStatus.SUCCESS, dict(outputs or {}), None, tuple(warnings))

    @classmethod
    def skipped(cls, name: str, reason: str) -> StageResult:
        return cls(name, StageStatus.SKIPPED, {}, reason)

    @classmethod
    def failure(cls, name: str, error: str) -> StageResult:
        return cls(name, StageStatus.FAILED, {}, error)


def is_present(value: str | None) -> bool:
    """True when a provisioning output carries a usable value."""
    if value is None:
        return False
    normalized = value.strip()
    return normalized != "" and normalized != NULL_OUTPUT


class OutputSet(Mapping[str, str]):
    """Read-only view over provisioning outputs.

    Only present values are stored; a missing key means the feature is not
    provisioned in this environment, which is not an error.
    """

    def __init__(self, values: Mapping[str, str | None] | None = None) -> None:
        self._values = {
            key: value.strip() for key, value in (values or {}).items() if is_present(value)
        }

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"OutputSet({self._values!r})"


@dataclass(frozen=True)
class DeploymentArchive:
    path: Path
    size_bytes: int

    @property
    def size_label(self) -> str:
        if self.size_bytes < 1024:
            return f"{self.size_bytes} B"
        kilobytes = self.size_bytes / 1024
        if kilobytes < 1024:
            return f"{kilobytes:.1f} KB"
        return f"{kilobytes / 1024:.1f} MB"


@dataclass
class RunSummary:
    action: str
    environment: Environment
    project_name: str
    stages: list[StageResult] = field(default_factory=list)
    outputs: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(stage.failed for stage in self.stages)

    @property
    def failed_stage(self) -> StageResult | None:
        for stage in self.stages:
            if stage.failed:
                return stage
        return None

    def record(self, result: StageResult) -> StageResult:
        self.stages.append(result)
        self.warnings.extend(result.warnings)
        return result

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1
