"""
hlnode-installer: startup readiness detector

Purpose
- Start the workload and decide, by bounded log polling, whether it reached a
  live state.

Functional requirements
- Pull the image and start the supervisor unit; either failure is fatal.
- A redefined workload restarts the unit so the running container matches
  the current definition.
- Sleep a warm-up period, then poll up to ``attempts`` times. Every iteration
  waits one ``interval`` and then reads the log buffer.
- The first iteration whose logs satisfy any predicate confirms readiness.
- Exhausting the attempts is a degraded success (``TIMED_OUT``), never an error.

Non-functional requirements
- Log sources, predicates, and the sleeper are injectable so the loop runs
  without Docker or wall-clock time.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from hlnode_installer.constants import COMPOSE_FILENAME, COMPOSE_SERVICE, DOCKER_BINARY
from hlnode_installer.errors import ProvisioningError, ProvisioningStepError
from hlnode_installer.host.commands import CommandRunner, run_checked

Sleeper = Callable[[float], None]

_LOGGER = logging.getLogger(__name__)

DEFAULT_READINESS_MARKERS: tuple[str, ...] = (
    "applied block",
    "starting metrics server",
    "peer latency",
)
DEFAULT_WARMUP_SECONDS = 10.0
DEFAULT_ATTEMPTS = 30
DEFAULT_INTERVAL_SECONDS = 2.0


class ReadinessSignal(str, Enum):
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


class DetectorState(str, Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    POLLING = "polling"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


class LogSource(Protocol):
    """Returns the workload's current log buffer as text."""

    def read(self) -> str: ...


class ReadinessPredicate(Protocol):
    name: str

    def matches(self, logs: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class SubstringPredicate:
    """Case-sensitive substring marker."""

    name: str

    def matches(self, logs: str) -> bool:
        return self.name in logs


def marker_predicates(markers: Iterable[str]) -> tuple[SubstringPredicate, ...]:
    return tuple(SubstringPredicate(marker) for marker in markers if marker)


class WorkloadLauncher(Protocol):
    """Brings the workload up before polling begins."""

    def launch(self) -> None: ...


def compose_command(compose_file: Path, *args: str) -> list[str]:
    return [DOCKER_BINARY, "compose", "-f", str(compose_file), *args]


class ComposeLogSource:
    """Read ``docker compose logs <service>``; an unreadable buffer counts as empty."""

    def __init__(
        self,
        *,
        runner: CommandRunner,
        install_dir: Path,
        service: str = COMPOSE_SERVICE,
    ) -> None:
        self._runner = runner
        self._compose_file = install_dir / COMPOSE_FILENAME
        self._install_dir = install_dir
        self._service = service

    def read(self) -> str:
        try:
            result = self._runner.run(
                compose_command(self._compose_file, "logs", self._service),
                cwd=self._install_dir,
                timeout_seconds=60.0,
            )
        except ProvisioningError as exc:
            _LOGGER.debug("log read failed: %s", exc)
            return ""
        if not result.ok:
            return ""
        return result.output


class ComposeWorkloadLauncher:
    """``docker compose pull`` followed by ``systemctl start <unit>``.

    With ``redeploy`` set the unit is restarted instead: an active oneshot unit
    ignores ``start`` and would keep the previous container running.
    """

    def __init__(
        self,
        *,
        runner: CommandRunner,
        install_dir: Path,
        unit_name: str,
        redeploy: bool = False,
    ) -> None:
        self._runner = runner
        self._install_dir = install_dir
        self._unit_name = unit_name
        self._redeploy = redeploy

    def launch(self) -> None:
        _LOGGER.info("Starting Hyperliquid node...")
        compose_file = self._install_dir / COMPOSE_FILENAME
        try:
            run_checked(
                self._runner,
                compose_command(compose_file, "pull"),
                cwd=self._install_dir,
            )
        except ProvisioningError as exc:
            raise ProvisioningStepError("readiness_detector.pull", str(exc)) from exc
        action = "restart" if self._redeploy else "start"
        if self._redeploy:
            _LOGGER.info("Workload definition changed, restarting %s", self._unit_name)
        try:
            run_checked(self._runner, ["systemctl", action, self._unit_name])
        except ProvisioningError as exc:
            raise ProvisioningStepError("readiness_detector.start", str(exc)) from exc


@dataclass(frozen=True, slots=True)
class ReadinessResult:
    signal: ReadinessSignal
    iterations: int
    slept_seconds: float
    matched_marker: str | None = None
    follow_command: str = ""

    @property
    def confirmed(self) -> bool:
        return self.signal is ReadinessSignal.CONFIRMED


class ReadinessDetector:
    """Bounded readiness poll over a workload's logs.

    Parameters
    ----------
    log_source:
        Provides the current log buffer on each iteration.
    predicates:
        Any match confirms readiness; evaluated in order.
    sleeper:
        Blocking sleep; defaults to :func:`time.sleep`.
    follow_command:
        Command shown to the operator when polling times out.
    """

    def __init__(
        self,
        *,
        log_source: LogSource,
        predicates: Sequence[ReadinessPredicate] | None = None,
        sleeper: Sleeper | None = None,
        warmup_seconds: float = DEFAULT_WARMUP_SECONDS,
        attempts: int = DEFAULT_ATTEMPTS,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        follow_command: str = "",
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        if warmup_seconds < 0 or interval_seconds < 0:
            raise ValueError("warmup_seconds and interval_seconds must be >= 0")
        self._log_source = log_source
        self._predicates = tuple(
            predicates if predicates is not None else marker_predicates(DEFAULT_READINESS_MARKERS)
        )
        self._sleeper = sleeper or time.sleep
        self._warmup = float(warmup_seconds)
        self._attempts = attempts
        self._interval = float(interval_seconds)
        self._follow_command = follow_command
        self._state = DetectorState.NOT_STARTED

    @property
    def state(self) -> DetectorState:
        return self._state

    def run(self, launcher: WorkloadLauncher) -> ReadinessResult:
        launcher.launch()
        self._state = DetectorState.STARTED
        return self.wait()

    def wait(self) -> ReadinessResult:
        _LOGGER.info("Waiting for node to initialize...")
        slept = self._sleep(self._warmup)
        self._state = DetectorState.POLLING

        for iteration in range(1, self._attempts + 1):
            slept += self._sleep(self._interval)
            logs = self._log_source.read()
            matched = self._first_match(logs)
            if matched is not None:
                self._state = DetectorState.CONFIRMED
                _LOGGER.info("Node is syncing!")
                return ReadinessResult(
                    signal=ReadinessSignal.CONFIRMED,
                    iterations=iteration,
                    slept_seconds=slept,
                    matched_marker=matched,
                )
            _LOGGER.debug("readiness poll %d/%d: no marker yet", iteration, self._attempts)

        self._state = DetectorState.TIMED_OUT
        _LOGGER.warning("Node still starting (this can take several minutes)")
        if self._follow_command:
            _LOGGER.info("Check logs: %s", self._follow_command)
        return ReadinessResult(
            signal=ReadinessSignal.TIMED_OUT,
            iterations=self._attempts,
            slept_seconds=slept,
            follow_command=self._follow_command,
        )

    def _sleep(self, seconds: float) -> float:
        if seconds > 0:
            self._sleeper(seconds)
        return seconds

    def _first_match(self, logs: str) -> str | None:
        if not logs:
            return None
        for predicate in self._predicates:
            if predicate.matches(logs):
                return predicate.name
        return None


__all__ = [
    "ComposeLogSource",
    "ComposeWorkloadLauncher",
    "DEFAULT_ATTEMPTS",
    "DEFAULT_INTERVAL_SECONDS",
    "DEFAULT_READINESS_MARKERS",
    "DEFAULT_WARMUP_SECONDS",
    "DetectorState",
    "LogSource",
    "ReadinessDetector",
    "ReadinessPredicate",
    "ReadinessResult",
    "ReadinessSignal",
    "Sleeper",
    "SubstringPredicate",
    "WorkloadLauncher",
    "compose_command",
    "marker_predicates",
]
