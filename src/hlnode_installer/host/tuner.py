"""Kernel parameters, resource-limit defaults, and firewall rules as target state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from hlnode_installer.constants import LIMITS_CONF_PATH, SYSCTL_CONF_PATH
from hlnode_installer.errors import ProvisioningError, ProvisioningStepError
from hlnode_installer.host.commands import CommandRunner, run_checked
from hlnode_installer.host.firewall import UfwFirewall, manual_instructions, node_rules
from hlnode_installer.utils.fs import write_if_changed

_LOGGER = logging.getLogger(__name__)

KERNEL_PARAMETERS: Final[tuple[tuple[str, str], ...]] = (
    ("net.ipv6.conf.all.disable_ipv6", "1"),
    ("net.ipv6.conf.default.disable_ipv6", "1"),
    ("net.ipv6.conf.lo.disable_ipv6", "1"),
    ("fs.file-max", "2097152"),
    ("net.core.somaxconn", "65535"),
    ("net.ipv4.tcp_max_syn_backlog", "8192"),
)


@dataclass(frozen=True, slots=True)
class LimitEntry:
    """One ``limits.conf`` line: ``<domain> <type> <item> <value>``."""

    domain: str
    kind: str
    item: str
    value: int


RESOURCE_LIMITS: Final[tuple[LimitEntry, ...]] = (
    LimitEntry("*", "soft", "nofile", 1048576),
    LimitEntry("*", "hard", "nofile", 1048576),
    LimitEntry("*", "soft", "nproc", 65535),
    LimitEntry("*", "hard", "nproc", 65535),
)


def render_sysctl_conf(parameters: tuple[tuple[str, str], ...] = KERNEL_PARAMETERS) -> str:
    return "".join(f"{key} = {value}\n" for key, value in parameters)


def render_limits_conf(entries: tuple[LimitEntry, ...] = RESOURCE_LIMITS) -> str:
    return "".join(
        f"{entry.domain} {entry.kind} {entry.item} {entry.value}\n" for entry in entries
    )


@dataclass(frozen=True, slots=True)
class TuningReport:
    """Summary of what the tuner converged and what it had to tolerate."""

    kernel_applied: bool
    limits_applied: bool
    firewall_configured: bool
    warnings: tuple[str, ...] = ()


class SystemTuner:
    """Bring kernel, limits, and firewall state to the node's requirements.

    Kernel and limits failures are fatal only when ``kernel_failures_fatal`` is
    set (the strict profile). Firewall failures are always tolerated with a
    manual-remediation warning, because the node still runs without them.
    """

    def __init__(
        self,
        *,
        runner: CommandRunner,
        firewall: UfwFirewall | None = None,
        rpc_external: bool = False,
        kernel_failures_fatal: bool = False,
        firewall_enabled: bool = True,
        sysctl_path: Path = SYSCTL_CONF_PATH,
        limits_path: Path = LIMITS_CONF_PATH,
    ) -> None:
        self._runner = runner
        self._firewall = firewall or UfwFirewall(runner=runner)
        self._rpc_external = rpc_external
        self._kernel_failures_fatal = kernel_failures_fatal
        self._firewall_enabled = firewall_enabled
        self._sysctl_path = sysctl_path
        self._limits_path = limits_path

    def apply(self) -> TuningReport:
        _LOGGER.info("Configuring system...")
        warnings: list[str] = []
        kernel_applied = self.ensure_kernel_parameters(warnings)
        limits_applied = self.ensure_resource_limits(warnings)
        firewall_configured = self.ensure_firewall(warnings)
        return TuningReport(
            kernel_applied=kernel_applied,
            limits_applied=limits_applied,
            firewall_configured=firewall_configured,
            warnings=tuple(warnings),
        )

    def ensure_kernel_parameters(self, warnings: list[str]) -> bool:
        _LOGGER.info("Disabling IPv6 and raising network/file limits (hl-node requirement)")
        try:
            write_if_changed(self._sysctl_path, render_sysctl_conf())
            run_checked(self._runner, ["sysctl", "-p", str(self._sysctl_path)])
        except (ProvisioningError, OSError) as exc:
            self._tolerate_or_raise("system_tuner.kernel_parameters", exc, warnings)
            return False
        return True

    def ensure_resource_limits(self, warnings: list[str]) -> bool:
        _LOGGER.info("Setting ulimits")
        try:
            write_if_changed(self._limits_path, render_limits_conf())
        except OSError as exc:
            self._tolerate_or_raise("system_tuner.resource_limits", exc, warnings)
            return False
        return True

    def ensure_firewall(self, warnings: list[str]) -> bool:
        rules = node_rules(rpc_external=self._rpc_external)
        if not self._firewall_enabled:
            _LOGGER.info("Firewall management disabled by config; configure manually:")
            for line in manual_instructions(rules):
                _LOGGER.info(line)
            return False

        _LOGGER.info("Configuring firewall")
        if self._rpc_external:
            _LOGGER.warning("Opening RPC port to external connections")
        try:
            self._firewall.ensure_installed()
            self._firewall.ensure_enabled()
            for rule in rules:
                self._firewall.ensure_rule(rule)
        except (ProvisioningError, OSError) as exc:
            message = f"firewall configuration failed: {exc}"
            _LOGGER.warning(message)
            _LOGGER.warning("Configure firewall manually:")
            for line in manual_instructions(rules):
                _LOGGER.warning(line)
            warnings.append(message)
            return False
        return True

    def _tolerate_or_raise(self, step: str, exc: Exception, warnings: list[str]) -> None:
        if self._kernel_failures_fatal:
            raise ProvisioningStepError(step, str(exc)) from exc
        message = f"{step} failed: {exc}"
        _LOGGER.warning(message)
        warnings.append(message)


__all__ = [
    "KERNEL_PARAMETERS",
    "LimitEntry",
    "RESOURCE_LIMITS",
    "SystemTuner",
    "TuningReport",
    "render_limits_conf",
    "render_sysctl_conf",
]
