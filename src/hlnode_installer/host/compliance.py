"""Hardware compliance gate: proceed, confirm-or-abort, or abort."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from hlnode_installer.host.probe import HardwareProfile

Prompt = Callable[[str], str]

_LOGGER = logging.getLogger(__name__)
_AFFIRMATIVE: frozenset[str] = frozenset({"y", "yes"})


class Deficiency(str, Enum):
    """Hardware dimension that fell below the requirement policy."""

    CPU = "cpu"
    RAM = "ram"
    DISK = "disk"


class GateDecision(str, Enum):
    """Explicit gate outcome consumed by the pipeline driver."""

    PROCEED = "proceed"
    ABORT = "abort"


@dataclass(frozen=True, slots=True)
class RequirementPolicy:
    """Minimum host capacity for a mainnet non-validator node."""

    min_cpu_cores: int = 16
    min_ram_gb: int = 64
    min_disk_gb: int = 500

    def __post_init__(self) -> None:
        for field_name in ("min_cpu_cores", "min_ram_gb", "min_disk_gb"):
            if getattr(self, field_name) < 0:
                raise ValueError(f"{field_name} must be >= 0")

    def deficiencies(self, profile: HardwareProfile) -> frozenset[Deficiency]:
        found: set[Deficiency] = set()
        if profile.cpu_cores < self.min_cpu_cores:
            found.add(Deficiency.CPU)
        if profile.ram_gb < self.min_ram_gb:
            found.add(Deficiency.RAM)
        if profile.free_disk_gb < self.min_disk_gb:
            found.add(Deficiency.DISK)
        return frozenset(found)

    def describe(self, deficiency: Deficiency, profile: HardwareProfile) -> str:
        if deficiency is Deficiency.CPU:
            return f"Need {self.min_cpu_cores}+ vCPUs (have {profile.cpu_cores})"
        if deficiency is Deficiency.RAM:
            return f"Need {self.min_ram_gb}GB+ RAM (have {profile.ram_gb}GB)"
        return f"Need {self.min_disk_gb}GB+ free disk (have {profile.free_disk_gb}GB)"


@dataclass(frozen=True, slots=True)
class ComplianceResult:
    """Gate verdict for one hardware profile."""

    profile: HardwareProfile
    policy: RequirementPolicy
    deficiencies: frozenset[Deficiency] = field(default_factory=frozenset)
    accepted: bool = True

    @property
    def decision(self) -> GateDecision:
        return GateDecision.PROCEED if self.accepted else GateDecision.ABORT

    @property
    def compliant(self) -> bool:
        return not self.deficiencies

    def describe(self) -> tuple[str, ...]:
        ordered = sorted(self.deficiencies, key=_DEFICIENCY_ORDER.index)
        return tuple(self.policy.describe(item, self.profile) for item in ordered)


_DEFICIENCY_ORDER: tuple[Deficiency, ...] = (Deficiency.CPU, Deficiency.RAM, Deficiency.DISK)


class ComplianceGate:
    """Compare a hardware profile with the policy and decide whether to continue.

    The gate never mutates host state and never exits the process; the
    pipeline driver turns an ``ABORT`` decision into a fatal error.

    Parameters
    ----------
    policy:
        Requirement thresholds; constant for the run.
    interactive:
        When ``True`` a shortfall prompts the operator. Non-interactive runs
        abort on any shortfall.
    strict:
        Treat any shortfall as fatal with no operator override.
    assume_yes:
        Pre-confirmed override for interactive runs (``--yes``).
    prompt:
        Callable used to ask the operator; defaults to :func:`input`.
    """

    def __init__(
        self,
        policy: RequirementPolicy | None = None,
        *,
        interactive: bool = True,
        strict: bool = False,
        assume_yes: bool = False,
        prompt: Prompt | None = None,
    ) -> None:
        self._policy = policy or RequirementPolicy()
        self._interactive = interactive
        self._strict = strict
        self._assume_yes = assume_yes
        self._prompt = prompt or input

    @property
    def policy(self) -> RequirementPolicy:
        return self._policy

    def evaluate(self, profile: HardwareProfile) -> ComplianceResult:
        deficiencies = self._policy.deficiencies(profile)
        if not deficiencies:
            _LOGGER.info("Hardware requirements met")
            return ComplianceResult(profile=profile, policy=self._policy)

        pending = ComplianceResult(
            profile=profile,
            policy=self._policy,
            deficiencies=deficiencies,
            accepted=False,
        )
        for reason in pending.describe():
            _LOGGER.warning(reason)

        if self._strict:
            _LOGGER.error("strict mode: hardware shortfall is fatal")
            return pending
        if not self._interactive:
            _LOGGER.error("non-interactive run: hardware shortfall is fatal")
            return pending

        accepted = self._assume_yes or self._confirm()
        if accepted:
            _LOGGER.warning("Continuing below hardware requirements at operator request")
        else:
            _LOGGER.error("Operator declined to continue below hardware requirements")
        return ComplianceResult(
            profile=profile,
            policy=self._policy,
            deficiencies=deficiencies,
            accepted=accepted,
        )

    def _confirm(self) -> bool:
        try:
            answer = self._prompt("Hardware is below requirements. Continue anyway? [y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in _AFFIRMATIVE


__all__ = [
    "ComplianceGate",
    "ComplianceResult",
    "Deficiency",
    "GateDecision",
    "Prompt",
    "RequirementPolicy",
]
