"""Host-level steps: probing, compliance, runtime install, and tuning."""

from hlnode_installer.host.commands import (
    CommandExecutionResult,
    CommandRunner,
    SubprocessCommandRunner,
    run_checked,
)
from hlnode_installer.host.compliance import (
    ComplianceGate,
    ComplianceResult,
    Deficiency,
    GateDecision,
    RequirementPolicy,
)
from hlnode_installer.host.firewall import FirewallRule, RuleOutcome, UfwFirewall
from hlnode_installer.host.probe import HardwareProbe, HardwareProfile, SystemHardwareProbe
from hlnode_installer.host.runtime_installer import InstallOutcome, RuntimeInstaller
from hlnode_installer.host.tuner import SystemTuner, TuningReport

__all__ = [
    "CommandExecutionResult",
    "CommandRunner",
    "ComplianceGate",
    "ComplianceResult",
    "Deficiency",
    "FirewallRule",
    "GateDecision",
    "HardwareProbe",
    "HardwareProfile",
    "InstallOutcome",
    "RequirementPolicy",
    "RuleOutcome",
    "RuntimeInstaller",
    "SubprocessCommandRunner",
    "SystemHardwareProbe",
    "SystemTuner",
    "TuningReport",
    "UfwFirewall",
    "run_checked",
]
