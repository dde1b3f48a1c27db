"""Ensure Docker Engine and the compose plugin are installed and running."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TypeVar

import httpx

from hlnode_installer.constants import APT_KEYRING_PATH, APT_SOURCES_PATH, OS_RELEASE_PATH
from hlnode_installer.errors import ProvisioningError, ProvisioningStepError
from hlnode_installer.host.commands import CommandRunner, run_checked
from hlnode_installer.utils.fs import write_if_changed

Which = Callable[[str], str | None]
_T = TypeVar("_T")

_LOGGER = logging.getLogger(__name__)

DEFAULT_DOCKER_GPG_URL = "https://download.docker.com/linux/ubuntu/gpg"
DEFAULT_DOCKER_REPO_URL = "https://download.docker.com/linux/ubuntu"
PREREQUISITE_PACKAGES: tuple[str, ...] = ("ca-certificates", "curl")
RUNTIME_PACKAGES: tuple[str, ...] = (
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-compose-plugin",
)

_KEY_FETCH_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)


@dataclass(frozen=True, slots=True)
class InstallOutcome:
    """What the runtime installer did on this run."""

    already_present: bool
    steps: tuple[str, ...] = ()


class KeyFetcher(Protocol):
    """Downloads the vendor's package signing key."""

    def fetch(self, url: str) -> bytes: ...


class HttpKeyFetcher:
    """Fetch signing keys with ``httpx``."""

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._client = client

    def fetch(self, url: str) -> bytes:
        if self._client is not None:
            return _get_bytes(self._client, url)
        with httpx.Client(timeout=_KEY_FETCH_TIMEOUT, follow_redirects=True) as client:
            return _get_bytes(client, url)


def _get_bytes(client: httpx.Client, url: str) -> bytes:
    response = client.get(url)
    response.raise_for_status()
    return response.content


class RuntimeInstaller:
    """Install Docker from the vendor apt repository unless it is already on ``PATH``.

    Each sub-step is fatal on failure and reported as ``runtime_installer.<step>``.
    """

    def __init__(
        self,
        *,
        runner: CommandRunner,
        key_fetcher: KeyFetcher | None = None,
        which: Which = shutil.which,
        gpg_url: str = DEFAULT_DOCKER_GPG_URL,
        repo_url: str = DEFAULT_DOCKER_REPO_URL,
        keyring_path: Path = APT_KEYRING_PATH,
        sources_path: Path = APT_SOURCES_PATH,
        os_release_path: Path = OS_RELEASE_PATH,
    ) -> None:
        self._runner = runner
        self._key_fetcher = key_fetcher or HttpKeyFetcher()
        self._which = which
        self._gpg_url = gpg_url
        self._repo_url = repo_url.rstrip("/")
        self._keyring_path = keyring_path
        self._sources_path = sources_path
        self._os_release_path = os_release_path

    def is_installed(self) -> bool:
        return self._which("docker") is not None

    def ensure_installed(self) -> InstallOutcome:
        if self.is_installed():
            _LOGGER.info("Docker already installed")
            return InstallOutcome(already_present=True)

        _LOGGER.info("Installing Docker...")
        steps: list[str] = []

        def step(name: str, action: Callable[[], _T]) -> _T:
            result = self._step(name, action)
            steps.append(name)
            return result

        step("refresh_index", self._refresh_index)
        step("install_prerequisites", lambda: self._apt_install(PREREQUISITE_PACKAGES))
        step("create_keyring_dir", self._create_keyring_dir)
        step("fetch_signing_key", self._fetch_signing_key)
        architecture = step("detect_architecture", self._detect_architecture)
        codename = step("detect_codename", self._detect_codename)
        step("register_repository", lambda: self._register_repository(architecture, codename))
        step("refresh_index_with_repository", self._refresh_index)
        step("install_runtime_packages", lambda: self._apt_install(RUNTIME_PACKAGES))
        step("enable_runtime_service", self._enable_service)

        _LOGGER.info("Docker installed")
        return InstallOutcome(already_present=False, steps=tuple(steps))

    def _step(self, name: str, action: Callable[[], _T]) -> _T:
        try:
            return action()
        except (ProvisioningError, OSError, httpx.HTTPError) as exc:
            raise ProvisioningStepError(f"runtime_installer.{name}", str(exc)) from exc

    def _refresh_index(self) -> None:
        run_checked(self._runner, ["apt-get", "update", "-qq"])

    def _apt_install(self, packages: tuple[str, ...]) -> None:
        run_checked(self._runner, ["apt-get", "install", "-y", *packages])

    def _create_keyring_dir(self) -> None:
        directory = self._keyring_path.parent
        directory.mkdir(mode=0o755, parents=True, exist_ok=True)
        directory.chmod(0o755)

    def _fetch_signing_key(self) -> None:
        payload = self._key_fetcher.fetch(self._gpg_url)
        if not payload.strip():
            raise ProvisioningError(f"empty signing key downloaded from {self._gpg_url}")
        write_if_changed(self._keyring_path, payload, mode=0o644)

    def _detect_architecture(self) -> str:
        result = run_checked(self._runner, ["dpkg", "--print-architecture"])
        architecture = result.stdout.strip()
        if not architecture:
            raise ProvisioningError("dpkg reported an empty architecture")
        return architecture

    def _detect_codename(self) -> str:
        fields = parse_os_release(self._os_release_path.read_text(encoding="utf-8"))
        codename = fields.get("VERSION_CODENAME", "").strip()
        if not codename:
            raise ProvisioningError(f"VERSION_CODENAME missing from {self._os_release_path}")
        return codename

    def _register_repository(self, architecture: str, codename: str) -> None:
        line = (
            f"deb [arch={architecture} signed-by={self._keyring_path}] "
            f"{self._repo_url} {codename} stable\n"
        )
        write_if_changed(self._sources_path, line, mode=0o644)

    def _enable_service(self) -> None:
        run_checked(self._runner, ["systemctl", "enable", "--now", "docker"])


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``/etc/os-release`` ``KEY=value`` lines, stripping optional quotes."""

    fields: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        fields[key.strip()] = value
    return fields


__all__ = [
    "DEFAULT_DOCKER_GPG_URL",
    "DEFAULT_DOCKER_REPO_URL",
    "HttpKeyFetcher",
    "InstallOutcome",
    "KeyFetcher",
    "PREREQUISITE_PACKAGES",
    "RUNTIME_PACKAGES",
    "RuntimeInstaller",
    "parse_os_release",
]
