"""Systemd unit that owns the compose project's lifecycle after installation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from hlnode_installer.constants import DOCKER_BINARY, SYSTEMD_UNIT_DIR, UNIT_NAME
from hlnode_installer.errors import ProvisioningError, ProvisioningStepError
from hlnode_installer.host.commands import CommandRunner, run_checked
from hlnode_installer.utils.fs import WriteResult, write_if_changed

_LOGGER = logging.getLogger(__name__)

RUNTIME_UNIT = "docker.service"


@dataclass(frozen=True, slots=True)
class SupervisorUnit:
    """One systemd service unit.

    ``restart_policy`` maps to ``Restart=``. The compose project restarts the
    container itself (``unless-stopped``), so the oneshot wrapper keeps ``no``.
    """

    name: str
    description: str
    working_dir: Path
    start_command: tuple[str, ...]
    stop_command: tuple[str, ...]
    restart_policy: str = "no"
    requires: tuple[str, ...] = (RUNTIME_UNIT,)
    wanted_by: str = "multi-user.target"

    @property
    def filename(self) -> str:
        return self.name if self.name.endswith(".service") else f"{self.name}.service"


def build_supervisor_unit(install_dir: Path, *, name: str = UNIT_NAME) -> SupervisorUnit:
    return SupervisorUnit(
        name=name,
        description="Hyperliquid Node",
        working_dir=Path(install_dir),
        start_command=(DOCKER_BINARY, "compose", "up", "-d"),
        stop_command=(DOCKER_BINARY, "compose", "down"),
    )


def render_unit(unit: SupervisorUnit) -> str:
    dependencies = " ".join(unit.requires)
    lines = [
        "[Unit]",
        f"Description={unit.description}",
        f"Requires={dependencies}",
        f"After={dependencies}",
        "",
        "[Service]",
        "Type=oneshot",
        "RemainAfterExit=yes",
        f"WorkingDirectory={unit.working_dir}",
        f"ExecStart={' '.join(unit.start_command)}",
        f"ExecStop={' '.join(unit.stop_command)}",
        "TimeoutStartSec=0",
    ]
    if unit.restart_policy != "no":
        lines.append(f"Restart={unit.restart_policy}")
    lines.extend(["", "[Install]", f"WantedBy={unit.wanted_by}"])
    return "\n".join(lines) + "\n"


class SupervisorRegistrar:
    """Install, reload, and enable the supervisor unit."""

    def __init__(self, *, runner: CommandRunner, unit_dir: Path = SYSTEMD_UNIT_DIR) -> None:
        self._runner = runner
        self._unit_dir = unit_dir

    def unit_path(self, unit: SupervisorUnit) -> Path:
        return self._unit_dir / unit.filename

    def register(self, unit: SupervisorUnit) -> WriteResult:
        _LOGGER.info("Creating systemd service...")
        try:
            written = write_if_changed(self.unit_path(unit), render_unit(unit), mode=0o644)
            run_checked(self._runner, ["systemctl", "daemon-reload"])
            run_checked(self._runner, ["systemctl", "enable", unit.filename])
        except (ProvisioningError, OSError) as exc:
            raise ProvisioningStepError("supervisor_registrar", str(exc)) from exc
        return written


__all__ = [
    "RUNTIME_UNIT",
    "SupervisorRegistrar",
    "SupervisorUnit",
    "build_supervisor_unit",
    "render_unit",
]
