"""
hlnode-installer — CLI integration tests

Purpose
- Exercise ``hlnode-install`` commands end to end through ``run_cli`` and
  ``cli_entrypoint`` with an injected pipeline factory.
- Verify exit codes, stdout payloads, and stderr diagnostics.
"""

from __future__ import annotations

import json
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
)

from hlnode_installer.host.probe import HardwareProfile
from hlnode_installer.main import ExitCode, cli_entrypoint
from hlnode_installer.pipeline import HostPaths, PipelineSettings, ProvisioningPipeline
from hlnode_installer.ui import cli as cli_module
from hlnode_installer.ui.cli import run_cli

pytestmark = pytest.mark.integration

COMPLIANT = HardwareProfile(cpu_cores=32, ram_gb=128, free_disk_gb=900)
UNDERSIZED = HardwareProfile(cpu_cores=8, ram_gb=32, free_disk_gb=100)


class _Factory:
    """Build pipelines wired to fakes while keeping the CLI-resolved settings."""

    def __init__(
        self,
        host_paths: HostPaths,
        *,
        profile: HardwareProfile = COMPLIANT,
        euid: int = 0,
        log_source: object | None = None,
    ) -> None:
        self.host_paths = host_paths
        self.log_source = log_source or FakeLogSource(["", "applied block 1"])
        self.profile = profile
        self.euid = euid
        self.runner = RecordingCommandRunner()
        self.runner.respond("dpkg", "--print-architecture", stdout="amd64\n")
        self.runner.respond("ufw", "status", stdout="Status: active\n")
        self.settings: list[PipelineSettings] = []

    def __call__(self, settings: PipelineSettings) -> ProvisioningPipeline:
        self.settings.append(settings)
        return ProvisioningPipeline(
            replace(settings, paths=self.host_paths),
            runner=self.runner,
            probe=FakeProbe(self.profile),
            prompt=lambda question: "n",
            sleeper=FakeSleeper(),
            key_fetcher=FakeKeyFetcher(),
            which=FakeWhich({"ufw"}),
            ip_resolver=StubIpResolver("203.0.113.10"),  # type: ignore[arg-type]
            log_source=self.log_source,  # type: ignore[arg-type]
            euid=lambda: self.euid,
        )


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RPC_EXTERNAL", raising=False)
    monkeypatch.delenv("HLNODE_PROFILE", raising=False)
    monkeypatch.setenv("NO_COLOR", "1")


def test_install_is_default_command_and_prints_report(
    tmp_path: Path,
    host_paths: HostPaths,
    capsys: pytest.CaptureFixture[str],
) -> None:
    factory = _Factory(host_paths)
    install_dir = tmp_path / "hl"

    exit_code = run_cli(
        ["--install-dir", str(install_dir), "--non-interactive"],
        pipeline_factory=factory,
    )

    captured = capsys.readouterr()
    assert exit_code == 0
    assert "Hyperliquid Node Installation Complete" in captured.out
    assert captured.out.rstrip().endswith("Done!")
    assert "[INFO] Hyperliquid Node Installer for Mainnet" in captured.err
    assert factory.settings[0].install_dir == install_dir.resolve()
    assert factory.settings[0].interactive is False
    log_path = install_dir.resolve() / "logs" / "install.jsonl"
    events = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert any(event.get("step") == "readiness_detector" for event in events)


def test_rpc_external_flag_reaches_pipeline_and_report(
    tmp_path: Path,
    host_paths: HostPaths,
    capsys: pytest.CaptureFixture[str],
) -> None:
    factory = _Factory(host_paths)

    exit_code = run_cli(
        ["install", "--install-dir", str(tmp_path / "hl"), "--rpc-external", "--yes"],
        pipeline_factory=factory,
    )

    out = capsys.readouterr().out
    assert exit_code == 0
    assert factory.settings[0].rpc_external is True
    assert factory.settings[0].assume_yes is True
    assert "http://203.0.113.10:3001/evm" in out
    assert "WARNING: RPC exposed publicly!" in out


def test_non_root_install_exits_one(
    tmp_path: Path,
    host_paths: HostPaths,
    capsys: pytest.CaptureFixture[str],
) -> None:
    factory = _Factory(host_paths, euid=1000)

    exit_code = run_cli(
        ["install", "--install-dir", str(tmp_path / "hl")], pipeline_factory=factory
    )

    captured = capsys.readouterr()
    assert exit_code == 1
    assert "[ERROR] Run as root: sudo hlnode-install" in captured.err
    assert captured.out == ""
    assert factory.runner.calls == []


def test_strict_profile_aborts_undersized_host(
    tmp_path: Path,
    host_paths: HostPaths,
    capsys: pytest.CaptureFixture[str],
) -> None:
    factory = _Factory(host_paths, profile=UNDERSIZED)

    exit_code = run_cli(
        ["install", "--profile", "strict", "--yes", "--install-dir", str(tmp_path / "hl")],
        pipeline_factory=factory,
    )

    err = capsys.readouterr().err
    assert exit_code == 1
    assert "hardware requirements not met" in err
    assert factory.runner.calls == []


def test_runtime_install_failure_exits_one_without_service_files(
    tmp_path: Path,
    host_paths: HostPaths,
    capsys: pytest.CaptureFixture[str],
) -> None:
    factory = _Factory(host_paths)
    factory.runner.respond("apt-get", "install", "-y", "docker-ce", returncode=100, stderr="E: x")
    install_dir = tmp_path / "hl"

    exit_code = run_cli(
        ["install", "--install-dir", str(install_dir), "--non-interactive"],
        pipeline_factory=factory,
    )

    captured = capsys.readouterr()
    assert exit_code == 1
    assert "runtime_installer.install_runtime_packages" in captured.err
    assert captured.out == ""
    assert not (install_dir / "docker-compose.yml").exists()
    assert not (host_paths.unit_dir / "hyperliquid-node.service").exists()


class _UndecodableLogSource:
    def read(self) -> str:
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


def test_unexpected_step_error_is_logged_with_its_step(
    tmp_path: Path,
    host_paths: HostPaths,
    capsys: pytest.CaptureFixture[str],
) -> None:
    factory = _Factory(host_paths, log_source=_UndecodableLogSource())
    install_dir = tmp_path / "hl"

    exit_code = run_cli(
        ["install", "--install-dir", str(install_dir), "--non-interactive"],
        pipeline_factory=factory,
    )

    err = capsys.readouterr().err
    assert exit_code == 1
    assert "[ERROR] readiness_detector: unexpected UnicodeDecodeError" in err
    assert "Traceback" not in err
    log_path = install_dir.resolve() / "logs" / "install.jsonl"
    events = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    failures = [event for event in events if event["level"] == "ERROR"]
    assert failures[0]["fields"]["failed_step"] == "readiness_detector"
    assert any("exception" in event for event in events if event["level"] == "DEBUG")


def test_check_json_reports_deficiencies(
    host_paths: HostPaths, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(
        ["check", "--json"],
        pipeline_factory=_Factory(host_paths, profile=UNDERSIZED),
    )

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert payload["decision"] == "abort"
    assert payload["deficiencies"] == ["cpu", "disk", "ram"]
    assert payload["requirements"] == {"min_cpu_cores": 16, "min_disk_gb": 500, "min_ram_gb": 64}


def test_check_text_passes_on_compliant_host(
    host_paths: HostPaths, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["check"], pipeline_factory=_Factory(host_paths))

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "CPU: 32 vCPUs (need 16+)" in out
    assert "OK  hardware requirements met" in out


def test_render_prints_compose_and_unit(
    tmp_path: Path, host_paths: HostPaths, capsys: pytest.CaptureFixture[str]
) -> None:
    install_dir = tmp_path / "hl"

    exit_code = run_cli(
        ["render", "--install-dir", str(install_dir), "--rpc-external"],
        pipeline_factory=_Factory(host_paths),
    )

    out = capsys.readouterr().out
    assert exit_code == 0
    assert f"# {install_dir.resolve() / 'docker-compose.yml'}" in out
    assert "0.0.0.0:3001:3001" in out
    assert "ExecStart=/usr/bin/docker compose up -d" in out
    assert not install_dir.exists()


def test_config_json_reports_profile_and_file_values(
    tmp_path: Path, host_paths: HostPaths, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "hlnode.toml").write_text("[readiness]\nattempts = 5\n", encoding="utf-8")

    exit_code = run_cli(["config", "--json", "--profile", "strict"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["active_profile"] == "strict"
    assert payload["config"]["readiness"]["attempts"] == 5
    assert payload["config"]["requirements"]["strict"] is True


def test_missing_config_file_is_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = run_cli(["config", "--config", str(tmp_path / "absent.toml")])

    assert exit_code == 2
    assert "error: config file not found" in capsys.readouterr().err


def test_entrypoint_maps_usage_errors_and_version(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["install", "--bogus-flag"]) == ExitCode.USAGE_ERROR
    assert cli_entrypoint(["--version"]) == ExitCode.SUCCESS
    assert "hlnode-install" in capsys.readouterr().out


def test_entrypoint_maps_keyboard_interrupt(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def _interrupted(settings: PipelineSettings) -> ProvisioningPipeline:
        raise KeyboardInterrupt

    monkeypatch.setattr(cli_module, "ProvisioningPipeline", _interrupted)

    exit_code = cli_entrypoint(["check"])

    assert exit_code == ExitCode.INTERRUPTED
    assert "interrupted" in capsys.readouterr().err
