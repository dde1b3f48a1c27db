"""
hlnode-installer — shared test doubles

Purpose
- Provide scripted collaborators so provisioning steps run without root,
  Docker, systemd, apt, or network access.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

import pytest

from hlnode_installer.host.commands import CommandExecutionResult
from hlnode_installer.host.probe import HardwareProfile
from hlnode_installer.pipeline import HostPaths

DEFAULT_OS_RELEASE = 'NAME="Ubuntu"\nVERSION_ID="24.04"\nVERSION_CODENAME=noble\nID=ubuntu\n'


class ScriptedResponse:
    """Canned result for every command starting with ``prefix``."""

    def __init__(
        self,
        prefix: Sequence[str],
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.prefix = tuple(prefix)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class RecordingCommandRunner:
    """Command runner that records every call and answers from a script.

    The most specific (longest) matching prefix wins; unmatched commands
    succeed with empty output.
    """

    def __init__(self, responses: Iterable[ScriptedResponse] = ()) -> None:
        self.calls: list[tuple[str, ...]] = []
        self._responses = list(responses)

    def respond(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self._responses.append(
            ScriptedResponse(prefix, returncode=returncode, stdout=stdout, stderr=stderr)
        )

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout_seconds: float | None = None,
    ) -> CommandExecutionResult:
        recorded = tuple(command)
        self.calls.append(recorded)
        matched = self._match(recorded)
        if matched is None:
            return CommandExecutionResult(command=recorded, returncode=0, stdout="", stderr="")
        return CommandExecutionResult(
            command=recorded,
            returncode=matched.returncode,
            stdout=matched.stdout,
            stderr=matched.stderr,
        )

    def called(self, *prefix: str) -> bool:
        return any(call[: len(prefix)] == prefix for call in self.calls)

    def index_of(self, *prefix: str) -> int:
        for index, call in enumerate(self.calls):
            if call[: len(prefix)] == prefix:
                return index
        raise AssertionError(f"command {prefix!r} was never run; calls: {self.calls!r}")

    def _match(self, command: tuple[str, ...]) -> ScriptedResponse | None:
        best: ScriptedResponse | None = None
        for response in self._responses:
            if command[: len(response.prefix)] != response.prefix:
                continue
            if best is None or len(response.prefix) >= len(best.prefix):
                best = response
        return best


class FakeProbe:
    def __init__(self, profile: HardwareProfile) -> None:
        self.profile = profile
        self.calls = 0

    def probe(self) -> HardwareProfile:
        self.calls += 1
        return self.profile


class FakeSleeper:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FakeLogSource:
    """Returns one scripted buffer per read; the last buffer repeats."""

    def __init__(self, buffers: Sequence[str]) -> None:
        self._buffers = list(buffers) or [""]
        self.reads = 0

    def read(self) -> str:
        index = min(self.reads, len(self._buffers) - 1)
        self.reads += 1
        return self._buffers[index]


class FakeKeyFetcher:
    def __init__(self, payload: bytes = b"-----BEGIN PGP PUBLIC KEY BLOCK-----\n") -> None:
        self.payload = payload
        self.urls: list[str] = []

    def fetch(self, url: str) -> bytes:
        self.urls.append(url)
        return self.payload


class FakeWhich:
    """``shutil.which`` replacement backed by a set of installed binaries."""

    def __init__(self, installed: Iterable[str] = ()) -> None:
        self.installed = set(installed)

    def __call__(self, name: str) -> str | None:
        if name in self.installed:
            return f"/usr/bin/{name}"
        return None


class StubIpResolver:
    def __init__(self, address: str = "203.0.113.10") -> None:
        self.address = address
        self.calls = 0

    def resolve(self) -> str:
        self.calls += 1
        return self.address


def logs_by_iteration(buffers: Mapping[int, str], *, attempts: int) -> list[str]:
    """Buffers indexed by 1-based poll iteration; missing iterations read empty."""

    return [buffers.get(index, "") for index in range(1, attempts + 1)]


@pytest.fixture
def host_paths(tmp_path: Path) -> HostPaths:
    etc = tmp_path / "etc"
    os_release = etc / "os-release"
    os_release.parent.mkdir(parents=True, exist_ok=True)
    os_release.write_text(DEFAULT_OS_RELEASE, encoding="utf-8")
    return HostPaths(
        sysctl_path=etc / "sysctl.d" / "99-hyperliquid.conf",
        limits_path=etc / "security" / "limits.d" / "hyperliquid.conf",
        unit_dir=etc / "systemd" / "system",
        keyring_path=etc / "apt" / "keyrings" / "docker.asc",
        sources_path=etc / "apt" / "sources.list.d" / "docker.list",
        os_release_path=os_release,
    )


@pytest.fixture
def runner() -> RecordingCommandRunner:
    return RecordingCommandRunner()


@pytest.fixture
def sleeper() -> FakeSleeper:
    return FakeSleeper()
