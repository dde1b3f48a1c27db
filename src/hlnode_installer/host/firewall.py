"""Convergent ``ufw`` management: installed, enabled, and holding the node's rules."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from hlnode_installer.constants import P2P_PORT_FIRST, P2P_PORT_LAST, RPC_PORT, SSH_PORT
from hlnode_installer.errors import CommandFailedError
from hlnode_installer.host.commands import CommandRunner, run_checked

Which = Callable[[str], str | None]

_LOGGER = logging.getLogger(__name__)
_EXISTING_RULE_MARKERS: tuple[str, ...] = ("skipping adding existing rule", "rule already exists")


class RuleOutcome(str, Enum):
    ADDED = "added"
    EXISTING = "existing"


@dataclass(frozen=True, slots=True)
class FirewallRule:
    """One ``ufw allow`` rule."""

    ports: str
    protocol: str = "tcp"
    comment: str = ""

    @property
    def spec(self) -> str:
        return f"{self.ports}/{self.protocol}"

    def allow_command(self) -> list[str]:
        command = ["ufw", "allow", self.spec]
        if self.comment:
            command.extend(["comment", self.comment])
        return command


SSH_RULE = FirewallRule(ports=str(SSH_PORT), comment="SSH")
P2P_RULE = FirewallRule(ports=f"{P2P_PORT_FIRST}:{P2P_PORT_LAST}", comment="Hyperliquid P2P")
RPC_RULE = FirewallRule(ports=str(RPC_PORT), comment="Hyperliquid RPC")


def node_rules(*, rpc_external: bool) -> tuple[FirewallRule, ...]:
    """Rules the node needs: P2P always, RPC only when exposure was requested."""

    if rpc_external:
        return (P2P_RULE, RPC_RULE)
    return (P2P_RULE,)


class UfwFirewall:
    """Drive ``ufw`` through the injected command runner."""

    def __init__(self, *, runner: CommandRunner, which: Which = shutil.which) -> None:
        self._runner = runner
        self._which = which

    def ensure_installed(self) -> bool:
        """Install ufw when missing; return ``True`` when an install happened."""

        if self._which("ufw") is not None:
            return False
        _LOGGER.info("ufw not found, installing")
        run_checked(self._runner, ["apt-get", "install", "-y", "ufw"])
        return True

    def is_active(self) -> bool:
        result = run_checked(self._runner, ["ufw", "status"])
        return "status: active" in result.stdout.lower()

    def ensure_enabled(self) -> bool:
        """Enable ufw, keeping SSH reachable first; return ``True`` when it was enabled now."""

        if self.is_active():
            return False
        self.ensure_rule(SSH_RULE)
        run_checked(self._runner, ["ufw", "--force", "enable"])
        _LOGGER.info("ufw enabled")
        return True

    def ensure_rule(self, rule: FirewallRule) -> RuleOutcome:
        result = self._runner.run(rule.allow_command())
        existing = any(marker in result.output.lower() for marker in _EXISTING_RULE_MARKERS)
        if existing:
            _LOGGER.debug("firewall rule already present", extra={"rule": rule.spec})
            return RuleOutcome.EXISTING
        if not result.ok:
            raise CommandFailedError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        _LOGGER.info("Firewall rule added: %s (%s)", rule.spec, rule.comment)
        return RuleOutcome.ADDED


def manual_instructions(rules: tuple[FirewallRule, ...]) -> tuple[str, ...]:
    """Operator-facing remediation when the firewall could not be configured."""

    return tuple(f"  - Allow port {rule.spec} ({rule.comment})" for rule in rules)


__all__ = [
    "FirewallRule",
    "P2P_RULE",
    "RPC_RULE",
    "RuleOutcome",
    "SSH_RULE",
    "UfwFirewall",
    "manual_instructions",
    "node_rules",
]
