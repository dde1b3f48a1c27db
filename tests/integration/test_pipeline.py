"""
hlnode-installer — provisioning pipeline integration tests

Purpose
- Drive the full step sequence against scripted collaborators and assert the
  observable host effects: commands issued, files written, and outcomes.

What this test file should cover
- Happy path on a compliant host, including readiness timing.
- Strict and declined gates abort before any host command.
- A runtime install failure stops the run before service files exist.
- Re-running on a provisioned host converges without changes or warnings.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest
from conftest import (
    FakeKeyFetcher,
    FakeLogSource,
    FakeProbe,
    FakeSleeper,
    FakeWhich,
    RecordingCommandRunner,
    StubIpResolver,
    logs_by_iteration,
)

from hlnode_installer.errors import ComplianceAbort, PrivilegeError, ProvisioningStepError
from hlnode_installer.host.compliance import GateDecision
from hlnode_installer.host.probe import HardwareProfile
from hlnode_installer.pipeline import (
    HostPaths,
    PipelineSettings,
    PipelineStep,
    ProvisioningPipeline,
)
from hlnode_installer.service.readiness import ReadinessSignal

pytestmark = pytest.mark.integration

COMPLIANT = HardwareProfile(cpu_cores=32, ram_gb=128, free_disk_gb=900)
UNDERSIZED = HardwareProfile(cpu_cores=8, ram_gb=32, free_disk_gb=100)


class _Harness:
    def __init__(self, tmp_path: Path, host_paths: HostPaths) -> None:
        self.settings = PipelineSettings(
            install_dir=tmp_path / "hyperliquid",
            image="ghcr.io/buckshotcapital/hyperliquid-node:mainnet",
            paths=host_paths,
        )
        self.runner = RecordingCommandRunner()
        self.runner.respond("dpkg", "--print-architecture", stdout="amd64\n")
        self.runner.respond("ufw", "status", stdout="Status: active\n")
        self.which = FakeWhich({"ufw"})
        self.sleeper = FakeSleeper()
        self.logs = FakeLogSource(logs_by_iteration({3: "applied block 100"}, attempts=30))
        self.probe = FakeProbe(COMPLIANT)
        self.prompts: list[str] = []
        self.answer = "n"
        self.euid = 0

    def _prompt(self, question: str) -> str:
        self.prompts.append(question)
        return self.answer

    def pipeline(self, **overrides: object) -> ProvisioningPipeline:
        settings = replace(self.settings, **overrides)  # type: ignore[arg-type]
        return ProvisioningPipeline(
            settings,
            runner=self.runner,
            probe=self.probe,
            prompt=self._prompt,
            sleeper=self.sleeper,
            key_fetcher=FakeKeyFetcher(),
            which=self.which,
            ip_resolver=StubIpResolver("203.0.113.10"),  # type: ignore[arg-type]
            log_source=self.logs,
            euid=lambda: self.euid,
        )


@pytest.fixture
def harness(tmp_path: Path, host_paths: HostPaths) -> _Harness:
    return _Harness(tmp_path, host_paths)


def test_compliant_host_is_provisioned_and_confirmed(harness: _Harness) -> None:
    outcome = harness.pipeline().run()

    assert outcome.completed_steps == tuple(PipelineStep)
    assert outcome.compliance.decision is GateDecision.PROCEED
    assert not outcome.runtime.already_present
    assert outcome.readiness.signal is ReadinessSignal.CONFIRMED
    assert outcome.readiness.iterations == 3
    assert outcome.readiness.slept_seconds == 16.0
    assert harness.sleeper.total == 16.0
    assert outcome.report.public_ip == "203.0.113.10"
    assert outcome.report.external_endpoints == ()
    assert outcome.warnings == ()

    compose_text = outcome.compose.path.read_text(encoding="utf-8")
    assert "127.0.0.1:3001:3001" in compose_text
    assert outcome.unit.path.read_text(encoding="utf-8").startswith("[Unit]\n")

    runner = harness.runner
    assert runner.index_of("systemctl", "enable", "--now", "docker") < runner.index_of("sysctl")
    assert runner.index_of("sysctl") < runner.index_of("systemctl", "daemon-reload")
    assert runner.index_of("systemctl", "enable", "hyperliquid-node.service") < runner.index_of(
        "/usr/bin/docker", "compose", "-f", str(outcome.compose.path), "pull"
    )
    assert runner.calls[-1] == ("systemctl", "start", "hyperliquid-node.service")


def test_external_rpc_opens_port_and_reports_public_endpoints(harness: _Harness) -> None:
    outcome = harness.pipeline(rpc_external=True).run()

    assert "0.0.0.0:3001:3001" in outcome.compose.path.read_text(encoding="utf-8")
    assert harness.runner.called("ufw", "allow", "3001/tcp")
    assert [item.url for item in outcome.report.external_endpoints] == [
        "http://203.0.113.10:3001/evm",
        "http://203.0.113.10:3001/info",
    ]


def test_strict_gate_aborts_before_any_host_command(
    harness: _Harness, host_paths: HostPaths
) -> None:
    harness.probe.profile = UNDERSIZED
    harness.answer = "y"

    with pytest.raises(ComplianceAbort) as excinfo:
        harness.pipeline(strict=True).run()

    assert excinfo.value.result.decision is GateDecision.ABORT
    assert harness.runner.calls == []
    assert harness.prompts == []
    assert not host_paths.sysctl_path.exists()
    assert not harness.settings.install_dir.exists()


def test_declined_prompt_aborts_before_any_host_command(harness: _Harness) -> None:
    harness.probe.profile = UNDERSIZED

    with pytest.raises(ComplianceAbort):
        harness.pipeline().run()

    assert len(harness.prompts) == 1
    assert harness.runner.calls == []


def test_accepted_prompt_continues_below_requirements(harness: _Harness) -> None:
    harness.probe.profile = UNDERSIZED
    harness.answer = "y"

    outcome = harness.pipeline().run()

    assert not outcome.compliance.compliant
    assert outcome.compliance.decision is GateDecision.PROCEED
    assert outcome.readiness.confirmed


def test_non_root_run_fails_before_probing(harness: _Harness) -> None:
    harness.euid = 1000

    with pytest.raises(PrivilegeError, match="Run as root"):
        harness.pipeline().run()

    assert harness.probe.calls == 0
    assert harness.runner.calls == []


def test_runtime_failure_leaves_no_service_files(
    harness: _Harness, host_paths: HostPaths
) -> None:
    harness.runner.respond("apt-get", "install", "-y", "docker-ce", returncode=100, stderr="E: x")

    with pytest.raises(ProvisioningStepError) as excinfo:
        harness.pipeline().run()

    assert excinfo.value.step == "runtime_installer.install_runtime_packages"
    assert not (harness.settings.install_dir / "docker-compose.yml").exists()
    assert not (host_paths.unit_dir / "hyperliquid-node.service").exists()
    assert not harness.runner.called("systemctl", "daemon-reload")


def test_kernel_failure_is_fatal_only_when_configured(harness: _Harness) -> None:
    harness.runner.respond("sysctl", returncode=255, stderr="permission denied")

    tolerated = harness.pipeline().run()
    assert len(tolerated.warnings) == 1

    with pytest.raises(ProvisioningStepError) as excinfo:
        harness.pipeline(kernel_failures_fatal=True).run()
    assert excinfo.value.step == "system_tuner.kernel_parameters"


def test_readiness_timeout_is_degraded_success(harness: _Harness) -> None:
    harness.logs = FakeLogSource(["still bootstrapping"])

    outcome = harness.pipeline().run()

    assert outcome.readiness.signal is ReadinessSignal.TIMED_OUT
    assert outcome.readiness.slept_seconds == 70.0
    assert outcome.readiness.follow_command.endswith("logs -f node")
    assert PipelineStep.REPORT_EMITTER in outcome.completed_steps


def test_image_pull_failure_is_fatal(harness: _Harness) -> None:
    harness.runner.respond("/usr/bin/docker", "compose", returncode=1, stderr="manifest unknown")

    with pytest.raises(ProvisioningStepError) as excinfo:
        harness.pipeline().run()

    assert excinfo.value.step == "readiness_detector.pull"


def test_rerun_on_provisioned_host_converges(harness: _Harness) -> None:
    harness.pipeline().run()
    harness.which.installed.add("docker")
    harness.runner.respond("ufw", "allow", stdout="Skipping adding existing rule\n")
    harness.runner.calls.clear()

    second = harness.pipeline().run()

    assert second.runtime.already_present
    assert not second.compose.changed
    assert not second.unit.changed
    assert second.warnings == ()
    assert not harness.runner.called("apt-get")
    assert not harness.runner.called("ufw", "--force", "enable")
    assert harness.runner.calls[-1] == ("systemctl", "start", "hyperliquid-node.service")


def test_rerun_with_changed_exposure_restarts_the_workload(harness: _Harness) -> None:
    harness.pipeline().run()
    harness.which.installed.add("docker")
    harness.runner.calls.clear()

    second = harness.pipeline(rpc_external=True).run()

    assert second.compose.changed and not second.compose.created
    assert "0.0.0.0:3001:3001" in second.compose.path.read_text(encoding="utf-8")
    assert harness.runner.calls[-1] == ("systemctl", "restart", "hyperliquid-node.service")
    assert not harness.runner.called("systemctl", "start")


class _BrokenLogSource:
    def read(self) -> str:
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


def test_unexpected_error_is_attributed_to_its_step(harness: _Harness) -> None:
    harness.logs = _BrokenLogSource()  # type: ignore[assignment]

    with pytest.raises(ProvisioningStepError) as excinfo:
        harness.pipeline().run()

    assert excinfo.value.step == "readiness_detector"
    assert "UnicodeDecodeError" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, UnicodeDecodeError)
