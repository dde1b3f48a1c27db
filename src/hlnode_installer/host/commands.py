"""Injectable host command execution used by every system-mutating step."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from hlnode_installer.errors import CommandFailedError, ProvisioningError

if TYPE_CHECKING:
    from collections.abc import Sequence

_LOGGER = logging.getLogger(__name__)

# Exit status reported when the executable itself cannot be found, as a shell would.
COMMAND_NOT_FOUND = 127


@dataclass(frozen=True, slots=True)
class CommandExecutionResult:
    """Normalized subprocess execution result."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, in that order."""

        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr


class CommandRunner(Protocol):
    """Injectable command runner used for deterministic/offline testing."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout_seconds: float | None = None,
    ) -> CommandExecutionResult: ...


class SubprocessCommandRunner:
    """Default command runner backed by ``subprocess.run``."""

    def __init__(self, *, default_timeout_seconds: float | None = 1800.0) -> None:
        self._default_timeout = default_timeout_seconds

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout_seconds: float | None = None,
    ) -> CommandExecutionResult:
        timeout = self._default_timeout if timeout_seconds is None else timeout_seconds
        _LOGGER.debug("running command", extra={"command": list(command)})
        try:
            completed = subprocess.run(
                list(command),
                cwd=cwd,
                check=False,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProvisioningError(
                f"command timed out after {timeout} seconds: {' '.join(command)}"
            ) from exc
        except FileNotFoundError as exc:
            return CommandExecutionResult(
                command=tuple(command),
                returncode=COMMAND_NOT_FOUND,
                stdout="",
                stderr=f"{exc.filename or command[0]}: command not found",
            )

        return CommandExecutionResult(
            command=tuple(command),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


def run_checked(
    runner: CommandRunner,
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    timeout_seconds: float | None = None,
) -> CommandExecutionResult:
    """Run ``command`` and raise :class:`CommandFailedError` on non-zero exit."""

    result = runner.run(command, cwd=cwd, timeout_seconds=timeout_seconds)
    if not result.ok:
        raise CommandFailedError(
            command=result.command,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    return result


__all__ = [
    "COMMAND_NOT_FOUND",
    "CommandExecutionResult",
    "CommandRunner",
    "SubprocessCommandRunner",
    "run_checked",
]
