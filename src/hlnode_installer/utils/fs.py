"""
hlnode-installer: filesystem utilities

Purpose
- Atomic, convergent writes for every file the installer materializes.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- ``write_if_changed`` leaves byte-identical targets untouched and reports whether it wrote
  and whether the target is new.

Non-functional requirements
- Standard library only.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "WriteResult",
    "atomic_write",
    "write_if_changed",
]


@dataclass(frozen=True, slots=True)
class WriteResult:
    """Outcome of a convergent file write."""

    path: Path
    changed: bool
    created: bool = False


def atomic_write(
    path: PathLike,
    data: bytes | str,
    *,
    mode: int = 0o644,
    encoding: str = "utf-8",
) -> None:
    """
    Atomically write ``data`` to ``path`` with permission bits ``mode``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. chmod, then replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        if isinstance(data, bytes):
            with os.fdopen(fd, "wb") as file_handle:
                file_handle.write(data)
                file_handle.flush()
                os.fsync(file_handle.fileno())
        else:
            with os.fdopen(fd, "w", encoding=encoding) as file_handle:
                file_handle.write(data)
                file_handle.flush()
                os.fsync(file_handle.fileno())

        os.chmod(temp_path, mode)
        os.replace(temp_path, target)
        _fsync_directory(target_parent)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def write_if_changed(
    path: PathLike,
    data: bytes | str,
    *,
    mode: int = 0o644,
    encoding: str = "utf-8",
) -> WriteResult:
    """Create parent directories and write ``data`` unless the target already matches."""

    target = Path(path)
    payload = data.encode(encoding) if isinstance(data, str) else data
    target.parent.mkdir(parents=True, exist_ok=True)

    try:
        existing = target.read_bytes()
    except FileNotFoundError:
        existing = None

    if existing == payload:
        if (target.stat().st_mode & 0o777) != mode:
            os.chmod(target, mode)
        return WriteResult(path=target, changed=False)

    atomic_write(target, payload, mode=mode)
    return WriteResult(path=target, changed=True, created=existing is None)


def _fsync_directory(path: Path) -> None:
    """
    Best-effort directory fsync for metadata durability after ``os.replace``.

    Some filesystems do not support fsync on directories.
    """

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
