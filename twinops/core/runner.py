"""Subprocess execution for every external tool the orchestrator drives."""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from twinops.core import logging
from twinops.core.errors import DeployError


@dataclass(frozen=True)
class CompletedCommand:
    """Normalized command execution result."""

    cmd: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class RunnerError(DeployError):
    """Raised when a checked command exits non-zero or cannot be started."""

    def __init__(self, message: str, *, cmd: Sequence[str] = (), returncode: int | None = None):
        super().__init__(message)
        self.cmd = tuple(str(token) for token in cmd)
        self.returncode = returncode


class CommandRunner:
    """Blocking subprocess wrapper with dry-run support.

    Commands never change the process working directory; callers pass ``cwd``
    explicitly so that every exit path leaves the caller where it started.
    """

    def __init__(
        self,
        *,
        dry_run: bool = False,
        printer: Callable[[str], None] | None = None,
    ) -> None:
        self.dry_run = dry_run
        self._printer = printer or logging.plain

    def format_cmd(self, cmd: Sequence[str]) -> str:
        return "$ " + " ".join(shlex.quote(str(token)) for token in cmd)

    def emit(self, message: str) -> None:
        self._printer(message)

    def which(self, command: str) -> str | None:
        resolved = shutil.which(command)
        if resolved is None:
            return None
        return str(Path(resolved).resolve())

    def require_command(self, command: str) -> str:
        if self.dry_run:
            return command
        resolved = self.which(command)
        if resolved is None:
            raise RunnerError(f"required command not found: {command}")
        return resolved

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        capture_output: bool = False,
        check: bool = True,
        stream_output: bool = False,
    ) -> CompletedCommand:
        tokens = tuple(str(token) for token in cmd)
        rendered = self.format_cmd(tokens)
        if self.dry_run:
            self.emit(f"[dry-run] {rendered}")
            return CompletedCommand(tokens, 0, "", "")

        run_env = os.environ.copy()
        if env:
            run_env.update({str(key): str(value) for key, value in env.items()})

        if stream_output:
            self.emit(rendered)
            try:
                proc = subprocess.Popen(
                    list(tokens),
                    cwd=str(cwd) if cwd else None,
                    env=run_env,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    bufsize=1,
                    errors="replace",
                )
            except OSError as exc:
                raise RunnerError(
                    f"failed to start command: {rendered}: {exc}", cmd=tokens
                ) from exc
            assert proc.stdout is not None
            captured: list[str] = []
            for raw_line in proc.stdout:
                line = raw_line.rstrip("\n")
                captured.append(line)
                self.emit(line)
            rc = proc.wait()
            stdout = "\n".join(captured)
            if check and rc != 0:
                raise RunnerError(
                    f"command failed with exit code {rc}: {rendered}", cmd=tokens, returncode=rc
                )
            return CompletedCommand(tokens, rc, stdout, "")

        try:
            completed = subprocess.run(
                list(tokens),
                cwd=str(cwd) if cwd else None,
                env=run_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture_output else None,
                stderr=subprocess.PIPE if capture_output else None,
                text=True,
                check=False,
                errors="replace",
            )
        except OSError as exc:
            raise RunnerError(f"failed to start command: {rendered}: {exc}", cmd=tokens) from exc

        if check and completed.returncode != 0:
            detail = (completed.stderr or "").strip() or (completed.stdout or "").strip()
            message = f"command failed with exit code {completed.returncode}: {rendered}"
            if detail:
                message = f"{message}\n{detail}"
            raise RunnerError(message, cmd=tokens, returncode=completed.returncode)

        return CompletedCommand(
            tokens,
            completed.returncode,
            completed.stdout or "",
            completed.stderr or "",
        )
