"""Hardware probing for the compliance gate."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import psutil

_BYTES_PER_GIB = 1024 * 1024 * 1024
_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HardwareProfile:
    """Point-in-time host capacity, in whole units."""

    cpu_cores: int
    ram_gb: int
    free_disk_gb: int

    def __post_init__(self) -> None:
        for field_name in ("cpu_cores", "ram_gb", "free_disk_gb"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{field_name} must be an integer")
            if value < 0:
                raise ValueError(f"{field_name} must be >= 0")


class HardwareProbe(Protocol):
    """Source of hardware profiles (injectable for tests)."""

    def probe(self) -> HardwareProfile: ...


class SystemHardwareProbe:
    """Read CPU, RAM, and free disk from the running host via ``psutil``.

    Every metric degrades to ``0`` when it cannot be read, so the gate always
    receives a well-formed (if pessimistic) profile.
    """

    def __init__(self, *, disk_path: Path | str = "/") -> None:
        self._disk_path = Path(disk_path)

    @property
    def disk_path(self) -> Path:
        return self._disk_path

    def probe(self) -> HardwareProfile:
        profile = HardwareProfile(
            cpu_cores=_read_metric("cpu_cores", _cpu_cores),
            ram_gb=_read_metric("ram_gb", _ram_gb),
            free_disk_gb=_read_metric("free_disk_gb", lambda: _free_disk_gb(self._disk_path)),
        )
        _LOGGER.info(
            "Detected: %s vCPUs, %sGB RAM, %sGB free disk",
            profile.cpu_cores,
            profile.ram_gb,
            profile.free_disk_gb,
            extra={"disk_path": self._disk_path},
        )
        return profile


def _read_metric(name: str, reader: Callable[[], int]) -> int:
    try:
        value = int(reader())
    except Exception as exc:  # noqa: BLE001 - probe must never fail.
        _LOGGER.warning("unable to read %s, assuming 0: %s", name, exc)
        return 0
    return max(0, value)


def _cpu_cores() -> int:
    count = psutil.cpu_count(logical=True)
    return count or 0


def _ram_gb() -> int:
    return int(psutil.virtual_memory().total) // _BYTES_PER_GIB


def _free_disk_gb(path: Path) -> int:
    target = _existing_ancestor(path)
    return int(psutil.disk_usage(str(target)).free) // _BYTES_PER_GIB


def _existing_ancestor(path: Path) -> Path:
    """Nearest existing directory at or above ``path`` (the install dir may not exist yet)."""

    candidate = path
    while not candidate.exists():
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return candidate


__all__ = [
    "HardwareProbe",
    "HardwareProfile",
    "SystemHardwareProbe",
]
