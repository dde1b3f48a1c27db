"""Executable CLI entrypoint for ``hlnode_installer``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from hlnode_installer.config import ConfigLoadError, ConfigValidationError
from hlnode_installer.errors import ProvisioningError

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    FAILURE = 1
    USAGE_ERROR = 2
    INTERRUPTED = 130


_KNOWN_CODES: frozenset[int] = frozenset(int(code) for code in ExitCode)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m hlnode_installer`` and the script shim."""

    try:
        from hlnode_installer.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in _KNOWN_CODES:
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.FAILURE)


def _route_exception(exc: BaseException) -> ExitCode:
    for item in _iter_exception_chain(exc):
        if isinstance(item, KeyboardInterrupt):
            return ExitCode.INTERRUPTED
        if isinstance(item, (ConfigLoadError, ConfigValidationError)):
            return ExitCode.USAGE_ERROR
        if isinstance(item, ProvisioningError):
            return ExitCode.FAILURE
    return ExitCode.FAILURE


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None:
        marker = id(current)
        if marker in seen:
            break
        seen.add(marker)
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
            continue
        if current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
            continue
        break
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERRUPTED:
        _write_stderr("interrupted")
        return
    if isinstance(exc, (ConfigLoadError, ConfigValidationError, ProvisioningError)):
        _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")
        return
    traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
