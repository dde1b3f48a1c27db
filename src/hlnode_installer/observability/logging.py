"""Structured logging setup: JSON-lines install log plus a human console stream."""

from __future__ import annotations

import contextvars
import json
import logging
import math
import sys
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, TextIO

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_DEFAULT_LOGGER_NAME: Final[str] = "hlnode_installer"

_CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "step")

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)

_LEVEL_COLORS: Final[Mapping[int, str]] = {
    logging.DEBUG: "\033[0;36m",
    logging.INFO: "\033[0;32m",
    logging.WARNING: "\033[1;33m",
    logging.ERROR: "\033[0;31m",
    logging.CRITICAL: "\033[0;31m",
}
_RESET: Final[str] = "\033[0m"

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "hlnode_observability_correlation", default=()
)

_ACTIVE_HANDLE: StructuredLoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for one installer run's logging."""

    run_id: str
    log_dir: Path | str | None = None
    log_filename: str = "install.jsonl"
    logger_name: str = _DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    console_format: str = "text"
    console_stream: TextIO | None = None
    color: bool | None = None


class JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def __init__(self, *, base_context: Mapping[str, str]) -> None:
        super().__init__()
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation = dict(self._base_context)
        correlation.update(get_correlation_context())
        for key, value in sorted(correlation.items()):
            event[key] = value

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = _normalize_json_value(extras)

        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``[LEVEL] message`` lines, colored when writing to a terminal."""

    def __init__(self, *, color: bool) -> None:
        super().__init__()
        self._color = color

    def format(self, record: logging.LogRecord) -> str:
        label = "WARN" if record.levelno == logging.WARNING else record.levelname
        message = record.getMessage()
        if record.exc_info is not None and record.levelno >= logging.ERROR:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if not self._color:
            return f"[{label}] {message}"
        color = _LEVEL_COLORS.get(record.levelno, "")
        return f"{color}[{label}]{_RESET} {message}"


class StructuredLoggingHandle:
    """Runtime handle for an active logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path | None,
        handlers: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._handlers = handlers
        self._is_shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def shutdown(self) -> None:
        if self._is_shutdown:
            return
        for handler in self._handlers:
            handler.flush()
            self.logger.removeHandler(handler)
            handler.close()
        self._is_shutdown = True


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Attach console and (when possible) JSON-lines file handlers to the package logger.

    The install log records everything at DEBUG; the console honors ``level``.
    A log directory that cannot be created downgrades to console-only logging
    with a warning, so read-only commands still work without root.
    """

    shutdown_logging()

    level = _parse_log_level(config.level)
    logger = logging.getLogger(config.logger_name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    stream = config.console_stream if config.console_stream is not None else sys.stderr
    color = config.color if config.color is not None else _isatty(stream)
    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(level)
    if config.console_format == "json":
        console_handler.setFormatter(JsonLineFormatter(base_context={"run_id": config.run_id}))
    else:
        console_handler.setFormatter(ConsoleFormatter(color=color))
    handlers: list[logging.Handler] = [console_handler]

    log_path: Path | None = None
    file_error: OSError | None = None
    if config.log_dir is not None:
        candidate = Path(config.log_dir) / config.log_filename
        try:
            candidate.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(candidate, encoding="utf-8")
        except OSError as exc:
            file_error = exc
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(JsonLineFormatter(base_context={"run_id": config.run_id}))
            handlers.append(file_handler)
            log_path = candidate

    for handler in handlers:
        logger.addHandler(handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=config.run_id,
        log_path=log_path,
        handlers=tuple(handlers),
    )
    global _ACTIVE_HANDLE
    _ACTIVE_HANDLE = handle

    if file_error is not None:
        logger.warning("install log unavailable, logging to console only: %s", file_error)
    return handle


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Flush and detach handlers of ``handle`` (or the active handle)."""

    global _ACTIVE_HANDLE
    resolved = handle if handle is not None else _ACTIVE_HANDLE
    if resolved is None:
        return
    resolved.shutdown()
    if _ACTIVE_HANDLE is resolved:
        _ACTIVE_HANDLE = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    return _ACTIVE_HANDLE


def get_correlation_context() -> dict[str, str]:
    """Return the current correlation context as a plain dictionary."""
    return dict(_CORRELATION_CONTEXT.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields for log records in scope."""
    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        else:
            state[key] = value
    token = _CORRELATION_CONTEXT.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION_CONTEXT.reset(token)


@contextmanager
def step_scope(step: str) -> Iterator[None]:
    """Tag every record emitted inside the block with the pipeline ``step``."""
    with correlation_scope(step=step):
        yield


def _isatty(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty()) if callable(isatty) else False


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, object]:
    fields: dict[str, object] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS or key in _CORRELATION_KEYS:
            continue
        if key.startswith("_"):
            continue
        fields[key] = value
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize_json_value(item) for item in value), key=repr)
    return repr(value)


__all__ = [
    "ConsoleFormatter",
    "JSONScalar",
    "JSONValue",
    "JsonLineFormatter",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "new_run_id",
    "setup_structured_logging",
    "shutdown_logging",
    "step_scope",
]
