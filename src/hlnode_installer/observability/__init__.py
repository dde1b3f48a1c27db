"""Logging setup and per-step correlation for installer runs."""

from hlnode_installer.observability.logging import (
    ConsoleFormatter,
    JsonLineFormatter,
    LoggingConfig,
    StructuredLoggingHandle,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    new_run_id,
    setup_structured_logging,
    shutdown_logging,
    step_scope,
)

__all__ = [
    "ConsoleFormatter",
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
