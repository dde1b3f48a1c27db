"""Exception taxonomy for provisioning failures."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hlnode_installer.host.compliance import ComplianceResult


class ProvisioningError(RuntimeError):
    """Base error for fatal provisioning failures."""


class CommandFailedError(ProvisioningError):
    """Raised when a host command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip()
        message = f"command failed ({returncode}): {' '.join(command)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProvisioningStepError(ProvisioningError):
    """Fatal failure attributed to a named pipeline step."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        self.detail = message
        super().__init__(f"{step}: {message}")


class PrivilegeError(ProvisioningError):
    """Raised when the installer is not running with root privileges."""


class ComplianceAbort(ProvisioningError):
    """Raised by the pipeline when the compliance gate decided to abort."""

    def __init__(self, result: ComplianceResult) -> None:
        self.result = result
        reasons = "; ".join(result.describe())
        super().__init__(f"hardware requirements not met: {reasons}")


__all__ = [
    "CommandFailedError",
    "ComplianceAbort",
    "PrivilegeError",
    "ProvisioningError",
    "ProvisioningStepError",
]
