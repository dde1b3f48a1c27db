"""
hlnode-installer — unit tests for the hardware compliance gate

Purpose
- Validate the proceed/prompt/abort decision table for hardware shortfalls.

What this test file should cover
- Compliant hosts proceed without prompting.
- Strict and non-interactive runs abort on any shortfall without prompting.
- Interactive runs honor the operator's answer and ``--yes``.
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from hlnode_installer.host.compliance import (
    ComplianceGate,
    Deficiency,
    GateDecision,
    RequirementPolicy,
)
from hlnode_installer.host.probe import HardwareProfile

pytestmark = pytest.mark.unit

_PROFILES = st.builds(
    HardwareProfile,
    cpu_cores=st.integers(min_value=0, max_value=256),
    ram_gb=st.integers(min_value=0, max_value=2048),
    free_disk_gb=st.integers(min_value=0, max_value=20_000),
)


class _PromptRecorder:
    def __init__(self, answer: str = "n") -> None:
        self.answer = answer
        self.questions: list[str] = []

    def __call__(self, question: str) -> str:
        self.questions.append(question)
        return self.answer


def test_compliant_profile_proceeds_without_prompt() -> None:
    prompt = _PromptRecorder()
    gate = ComplianceGate(prompt=prompt)

    result = gate.evaluate(HardwareProfile(cpu_cores=32, ram_gb=128, free_disk_gb=900))

    assert result.decision is GateDecision.PROCEED
    assert result.compliant
    assert result.deficiencies == frozenset()
    assert prompt.questions == []


def test_thresholds_are_inclusive() -> None:
    gate = ComplianceGate(interactive=False)

    result = gate.evaluate(HardwareProfile(cpu_cores=16, ram_gb=64, free_disk_gb=500))

    assert result.decision is GateDecision.PROCEED


def test_describe_lists_every_shortfall_in_stable_order() -> None:
    gate = ComplianceGate(interactive=False)

    result = gate.evaluate(HardwareProfile(cpu_cores=8, ram_gb=32, free_disk_gb=100))

    assert result.deficiencies == frozenset({Deficiency.CPU, Deficiency.RAM, Deficiency.DISK})
    assert result.describe() == (
        "Need 16+ vCPUs (have 8)",
        "Need 64GB+ RAM (have 32)",
        "Need 500GB+ free disk (have 100)",
    )


def test_non_interactive_shortfall_aborts_without_prompt() -> None:
    prompt = _PromptRecorder(answer="y")
    gate = ComplianceGate(interactive=False, prompt=prompt)

    result = gate.evaluate(HardwareProfile(cpu_cores=32, ram_gb=32, free_disk_gb=900))

    assert result.decision is GateDecision.ABORT
    assert result.deficiencies == frozenset({Deficiency.RAM})
    assert prompt.questions == []


@pytest.mark.parametrize(
    ("answer", "decision"),
    [("y", "proceed"), ("YES ", "proceed"), ("", "abort"), ("n", "abort")],
)
def test_interactive_shortfall_follows_operator_answer(answer: str, decision: str) -> None:
    prompt = _PromptRecorder(answer=answer)
    gate = ComplianceGate(prompt=prompt)

    result = gate.evaluate(HardwareProfile(cpu_cores=8, ram_gb=128, free_disk_gb=900))

    assert result.decision is GateDecision(decision)
    assert prompt.questions == ["Hardware is below requirements. Continue anyway? [y/N] "]


def test_end_of_input_counts_as_decline() -> None:
    def _closed_stdin(_: str) -> str:
        raise EOFError

    gate = ComplianceGate(prompt=_closed_stdin)

    result = gate.evaluate(HardwareProfile(cpu_cores=8, ram_gb=128, free_disk_gb=900))

    assert result.decision is GateDecision.ABORT


def test_assume_yes_overrides_shortfall_without_prompt() -> None:
    prompt = _PromptRecorder(answer="n")
    gate = ComplianceGate(assume_yes=True, prompt=prompt)

    result = gate.evaluate(HardwareProfile(cpu_cores=8, ram_gb=32, free_disk_gb=100))

    assert result.decision is GateDecision.PROCEED
    assert not result.compliant
    assert prompt.questions == []


def test_custom_policy_thresholds() -> None:
    gate = ComplianceGate(
        RequirementPolicy(min_cpu_cores=4, min_ram_gb=8, min_disk_gb=60),
        interactive=False,
    )

    result = gate.evaluate(HardwareProfile(cpu_cores=4, ram_gb=8, free_disk_gb=59))

    assert result.deficiencies == frozenset({Deficiency.DISK})


def test_negative_policy_threshold_is_rejected() -> None:
    with pytest.raises(ValueError, match="min_ram_gb"):
        RequirementPolicy(min_ram_gb=-1)


@given(profile=_PROFILES, interactive=st.booleans(), assume_yes=st.booleans())
def test_strict_gate_aborts_exactly_when_any_threshold_is_missed(
    profile: HardwareProfile, interactive: bool, assume_yes: bool
) -> None:
    prompt = _PromptRecorder(answer="y")
    gate = ComplianceGate(
        interactive=interactive,
        strict=True,
        assume_yes=assume_yes,
        prompt=prompt,
    )

    result = gate.evaluate(profile)

    below = profile.cpu_cores < 16 or profile.ram_gb < 64 or profile.free_disk_gb < 500
    expected = GateDecision.ABORT if below else GateDecision.PROCEED
    assert result.decision is expected
    assert prompt.questions == []
