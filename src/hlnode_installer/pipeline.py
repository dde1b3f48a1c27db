"""
hlnode-installer: provisioning pipeline

Purpose
- Drive the ordered provisioning steps from a bare host to a supervised,
  running node, and stop at the first fatal failure.

Functional requirements
- Order: privilege check, probe, compliance gate, runtime install, system
  tuning, service definition, supervisor registration, startup readiness,
  report.
- A gate ``ABORT`` raises :class:`ComplianceAbort` before any host command runs.
- Each fatal failure, expected or not, surfaces as a :class:`ProvisioningStepError`
  naming the step.
- Every step is safe to re-run on a partially provisioned host.
- Rewriting an existing compose file or unit restarts the workload.

Non-functional requirements
- Single-threaded and sequential; collaborators are injected so the whole
  pipeline runs against fakes in tests.
- Concurrent runs on one host are unsupported and not guarded.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from hlnode_installer.constants import (
    APT_KEYRING_PATH,
    APT_SOURCES_PATH,
    LIMITS_CONF_PATH,
    OS_RELEASE_PATH,
    SYSCTL_CONF_PATH,
    SYSTEMD_UNIT_DIR,
    UNIT_NAME,
)
from hlnode_installer.errors import (
    ComplianceAbort,
    PrivilegeError,
    ProvisioningError,
    ProvisioningStepError,
)
from hlnode_installer.host.commands import CommandRunner, SubprocessCommandRunner
from hlnode_installer.host.compliance import (
    ComplianceGate,
    ComplianceResult,
    GateDecision,
    Prompt,
    RequirementPolicy,
)
from hlnode_installer.host.firewall import UfwFirewall
from hlnode_installer.host.probe import HardwareProbe, HardwareProfile, SystemHardwareProbe
from hlnode_installer.host.runtime_installer import InstallOutcome, KeyFetcher, RuntimeInstaller
from hlnode_installer.host.tuner import SystemTuner, TuningReport
from hlnode_installer.observability.logging import step_scope
from hlnode_installer.report import InstallReport, PublicIpResolver, build_report
from hlnode_installer.service.compose import WorkloadSpec, build_workload_spec, write_compose
from hlnode_installer.service.readiness import (
    ComposeLogSource,
    ComposeWorkloadLauncher,
    LogSource,
    ReadinessDetector,
    ReadinessResult,
    Sleeper,
    compose_command,
    marker_predicates,
)
from hlnode_installer.service.supervisor import SupervisorRegistrar, build_supervisor_unit
from hlnode_installer.utils.fs import WriteResult

Which = Callable[[str], str | None]

_LOGGER = logging.getLogger(__name__)


class PipelineStep(str, Enum):
    PRIVILEGE_CHECK = "privilege_check"
    ENVIRONMENT_PROBE = "environment_probe"
    COMPLIANCE_GATE = "compliance_gate"
    RUNTIME_INSTALLER = "runtime_installer"
    SYSTEM_TUNER = "system_tuner"
    SERVICE_DEFINITION = "service_definition"
    SUPERVISOR_REGISTRAR = "supervisor_registrar"
    READINESS_DETECTOR = "readiness_detector"
    REPORT_EMITTER = "report_emitter"


@dataclass(frozen=True, slots=True)
class HostPaths:
    """System file locations the pipeline writes; overridable for tests."""

    sysctl_path: Path = SYSCTL_CONF_PATH
    limits_path: Path = LIMITS_CONF_PATH
    unit_dir: Path = SYSTEMD_UNIT_DIR
    keyring_path: Path = APT_KEYRING_PATH
    sources_path: Path = APT_SOURCES_PATH
    os_release_path: Path = OS_RELEASE_PATH


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Resolved inputs for one provisioning run."""

    install_dir: Path
    image: str
    rpc_external: bool = False
    compose_project: str = "hyperliquid"
    policy: RequirementPolicy = field(default_factory=RequirementPolicy)
    strict: bool = False
    interactive: bool = True
    assume_yes: bool = False
    docker_gpg_url: str = "https://download.docker.com/linux/ubuntu/gpg"
    docker_repo_url: str = "https://download.docker.com/linux/ubuntu"
    kernel_failures_fatal: bool = False
    firewall_enabled: bool = True
    warmup_seconds: float = 10.0
    attempts: int = 30
    interval_seconds: float = 2.0
    markers: tuple[str, ...] = ("applied block", "starting metrics server", "peer latency")
    public_ip_url: str = "https://ifconfig.me/ip"
    public_ip_timeout_seconds: float = 5.0
    unit_name: str = UNIT_NAME
    paths: HostPaths = field(default_factory=HostPaths)


def settings_from_config(
    config: Mapping[str, Any],
    *,
    interactive: bool = True,
    assume_yes: bool = False,
    paths: HostPaths | None = None,
) -> PipelineSettings:
    """Project a validated config mapping onto :class:`PipelineSettings`."""

    node = config["node"]
    requirements = config["requirements"]
    runtime = config["runtime"]
    tuning = config["tuning"]
    readiness = config["readiness"]
    report = config["report"]
    return PipelineSettings(
        install_dir=Path(node["install_dir"]),
        image=node["image"],
        rpc_external=bool(node["rpc_external"]),
        compose_project=node["compose_project"],
        policy=RequirementPolicy(
            min_cpu_cores=requirements["min_cpu_cores"],
            min_ram_gb=requirements["min_ram_gb"],
            min_disk_gb=requirements["min_disk_gb"],
        ),
        strict=bool(requirements["strict"]),
        interactive=interactive,
        assume_yes=assume_yes,
        docker_gpg_url=runtime["docker_gpg_url"],
        docker_repo_url=runtime["docker_repo_url"],
        kernel_failures_fatal=bool(tuning["kernel_failures_fatal"]),
        firewall_enabled=bool(tuning["firewall_enabled"]),
        warmup_seconds=float(readiness["warmup_seconds"]),
        attempts=int(readiness["attempts"]),
        interval_seconds=float(readiness["interval_seconds"]),
        markers=tuple(readiness["markers"]),
        public_ip_url=report["public_ip_url"],
        public_ip_timeout_seconds=float(report["public_ip_timeout_seconds"]),
        paths=paths or HostPaths(),
    )


def log_dir_from_config(config: Mapping[str, Any]) -> Path:
    """Install-log directory; relative ``log_dir`` values live under the install dir."""

    raw = Path(config["observability"]["log_dir"]).expanduser()
    if raw.is_absolute():
        return raw
    return Path(config["node"]["install_dir"]) / raw


@dataclass(frozen=True, slots=True)
class ProvisioningOutcome:
    """Artifacts of a completed run, in step order."""

    profile: HardwareProfile
    compliance: ComplianceResult
    runtime: InstallOutcome
    tuning: TuningReport
    workload: WorkloadSpec
    compose: WriteResult
    unit: WriteResult
    readiness: ReadinessResult
    report: InstallReport
    completed_steps: tuple[PipelineStep, ...]

    @property
    def warnings(self) -> tuple[str, ...]:
        return self.tuning.warnings


class ProvisioningPipeline:
    """Run the provisioning steps in order against injected collaborators."""

    def __init__(
        self,
        settings: PipelineSettings,
        *,
        runner: CommandRunner | None = None,
        probe: HardwareProbe | None = None,
        prompt: Prompt | None = None,
        sleeper: Sleeper | None = None,
        key_fetcher: KeyFetcher | None = None,
        which: Which = shutil.which,
        ip_resolver: PublicIpResolver | None = None,
        log_source: LogSource | None = None,
        euid: Callable[[], int] = os.geteuid,
    ) -> None:
        self._settings = settings
        self._runner = runner or SubprocessCommandRunner()
        self._probe = probe or SystemHardwareProbe(disk_path=settings.install_dir)
        self._prompt = prompt
        self._sleeper = sleeper
        self._key_fetcher = key_fetcher
        self._which = which
        self._ip_resolver = ip_resolver or PublicIpResolver(
            url=settings.public_ip_url,
            timeout_seconds=settings.public_ip_timeout_seconds,
        )
        self._log_source = log_source
        self._euid = euid
        self._completed: list[PipelineStep] = []

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    def run(self) -> ProvisioningOutcome:
        settings = self._settings
        self._completed = []

        with self._step(PipelineStep.PRIVILEGE_CHECK):
            self.check_privileges()

        with self._step(PipelineStep.ENVIRONMENT_PROBE):
            profile = self.probe_host()

        with self._step(PipelineStep.COMPLIANCE_GATE):
            compliance = self.evaluate(profile)
            if compliance.decision is GateDecision.ABORT:
                raise ComplianceAbort(compliance)

        with self._step(PipelineStep.RUNTIME_INSTALLER):
            runtime = RuntimeInstaller(
                runner=self._runner,
                key_fetcher=self._key_fetcher,
                which=self._which,
                gpg_url=settings.docker_gpg_url,
                repo_url=settings.docker_repo_url,
                keyring_path=settings.paths.keyring_path,
                sources_path=settings.paths.sources_path,
                os_release_path=settings.paths.os_release_path,
            ).ensure_installed()

        with self._step(PipelineStep.SYSTEM_TUNER):
            tuning = SystemTuner(
                runner=self._runner,
                firewall=UfwFirewall(runner=self._runner, which=self._which),
                rpc_external=settings.rpc_external,
                kernel_failures_fatal=settings.kernel_failures_fatal,
                firewall_enabled=settings.firewall_enabled,
                sysctl_path=settings.paths.sysctl_path,
                limits_path=settings.paths.limits_path,
            ).apply()

        with self._step(PipelineStep.SERVICE_DEFINITION):
            _LOGGER.info("Creating docker-compose configuration...")
            workload = self.workload_spec()
            compose = write_compose(workload)
            _LOGGER.info(
                "Compose file %s: %s",
                "written" if compose.changed else "unchanged",
                compose.path,
            )

        unit = build_supervisor_unit(settings.install_dir, name=settings.unit_name)
        with self._step(PipelineStep.SUPERVISOR_REGISTRAR):
            registered = SupervisorRegistrar(
                runner=self._runner,
                unit_dir=settings.paths.unit_dir,
            ).register(unit)

        with self._step(PipelineStep.READINESS_DETECTOR):
            readiness = self._detector(workload).run(
                ComposeWorkloadLauncher(
                    runner=self._runner,
                    install_dir=settings.install_dir,
                    unit_name=unit.filename,
                    redeploy=_redefined(compose, registered),
                )
            )

        with self._step(PipelineStep.REPORT_EMITTER):
            report = build_report(
                install_dir=settings.install_dir,
                public_ip=self._ip_resolver.resolve(),
                rpc_external=settings.rpc_external,
                readiness=readiness,
                unit_name=unit.filename,
            )

        return ProvisioningOutcome(
            profile=profile,
            compliance=compliance,
            runtime=runtime,
            tuning=tuning,
            workload=workload,
            compose=compose,
            unit=registered,
            readiness=readiness,
            report=report,
            completed_steps=tuple(self._completed),
        )

    def probe_host(self) -> HardwareProfile:
        return self._probe.probe()

    def check_privileges(self) -> None:
        if self._euid() != 0:
            raise PrivilegeError("Run as root: sudo hlnode-install")

    def evaluate(self, profile: HardwareProfile) -> ComplianceResult:
        """Apply the compliance gate to ``profile`` without touching the host."""

        gate = ComplianceGate(
            self._settings.policy,
            interactive=self._settings.interactive,
            strict=self._settings.strict,
            assume_yes=self._settings.assume_yes,
            prompt=self._prompt,
        )
        return gate.evaluate(profile)

    def workload_spec(self) -> WorkloadSpec:
        return build_workload_spec(
            self._settings.install_dir,
            self._settings.image,
            external_rpc_exposed=self._settings.rpc_external,
            project_name=self._settings.compose_project,
        )

    def _detector(self, workload: WorkloadSpec) -> ReadinessDetector:
        settings = self._settings
        log_source = self._log_source or ComposeLogSource(
            runner=self._runner,
            install_dir=settings.install_dir,
            service=workload.service_name,
        )
        follow = " ".join(
            compose_command(workload.compose_path, "logs", "-f", workload.service_name)
        )
        return ReadinessDetector(
            log_source=log_source,
            predicates=marker_predicates(settings.markers),
            sleeper=self._sleeper,
            warmup_seconds=settings.warmup_seconds,
            attempts=settings.attempts,
            interval_seconds=settings.interval_seconds,
            follow_command=follow,
        )

    @contextmanager
    def _step(self, step: PipelineStep) -> Iterator[None]:
        with step_scope(step.value):
            _LOGGER.debug("step started")
            try:
                yield
            except (ProvisioningStepError, ComplianceAbort, PrivilegeError):
                raise
            except (ProvisioningError, OSError) as exc:
                raise ProvisioningStepError(step.value, str(exc)) from exc
            except Exception as exc:
                _LOGGER.debug("unexpected failure", exc_info=True)
                raise ProvisioningStepError(
                    step.value, f"unexpected {type(exc).__name__}: {exc}"
                ) from exc
            self._completed.append(step)
            _LOGGER.debug("step completed")


def _redefined(*writes: WriteResult) -> bool:
    """True when an already materialized workload file was rewritten."""

    return any(write.changed and not write.created for write in writes)


__all__ = [
    "HostPaths",
    "PipelineSettings",
    "PipelineStep",
    "ProvisioningOutcome",
    "ProvisioningPipeline",
    "log_dir_from_config",
    "settings_from_config",
]
