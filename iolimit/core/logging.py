"""Logging utilities with JSON formatting and I/O correlation.

This module centralizes logging configuration, including:
- Context-aware correlation_id propagation via contextvars, so the I/O
  dispatch layer can tie throttle events to the request it is serving
- JSON formatter for machine-friendly logs
- Configurable stdout/file handlers with rotation support
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from iolimit.core.config import LogSettings, settings

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Logging fields we intentionally exclude from extra payload capture
_EXCLUDED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "stack",
    "correlation_id",
}


def set_correlation_id(correlation_id: str | None) -> None:
    """Store the current correlation id in a context variable.

    Args:
        correlation_id: Identifier of the I/O request being admitted.
    """

    _correlation_id_var.set(correlation_id)


def get_correlation_id() -> str | None:
    """Fetch the current correlation id from context."""

    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    """Clear any stored correlation id from context."""

    _correlation_id_var.set(None)


def _extract_extras(record: LogRecord) -> dict[str, Any]:
    """Collect the ``extra=`` fields attached to a record."""

    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _EXCLUDED_ATTRS and not key.startswith("_")
    }


def _default_timestamp() -> str:
    """Generate an ISO-8601 UTC timestamp string."""

    return datetime.now(timezone.utc).isoformat()


class CorrelationIdFilter(logging.Filter):
    """Attach correlation_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "correlation_id", None) is None:
            correlation_id = get_correlation_id()
            if correlation_id:
                record.correlation_id = correlation_id
        return True


class JsonFormatter(logging.Formatter):
    """Format LogRecord as a single JSON object per line."""

    def __init__(
        self,
        *,
        correlation_id_field: str = "correlation_id",
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.correlation_id_field = correlation_id_field
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        record_data: dict[str, Any] = {
            "timestamp": _default_timestamp(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None) or get_correlation_id()
        if correlation_id:
            record_data[self.correlation_id_field] = correlation_id

        record_data.update(_extract_extras(record))

        if record.exc_info:
            record_data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(record_data, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    """Construct the logging handler based on configuration.

    Args:
        log_settings: Resolved logging settings from environment.

    Returns:
        Configured logging handler (stdout or rotating file).
    """

    if log_settings.output.lower() == "file":
        file_path = Path(log_settings.file_path or "logs/iolimit.log")
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if log_settings.max_bytes:
            return RotatingFileHandler(
                file_path,
                maxBytes=log_settings.max_bytes,
                backupCount=log_settings.backup_count,
                encoding="utf-8",
            )
        return logging.FileHandler(file_path, encoding="utf-8")

    return logging.StreamHandler(sys.stdout)


def configure_logging(log_settings: LogSettings | None = None) -> logging.Handler:
    """Configure the root logger with JSON (or plain) formatting.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.

    Returns:
        The handler installed on the root logger.
    """

    cfg = log_settings or settings.log

    level = getattr(logging, cfg.level.upper(), logging.INFO)
    handler = _build_handler(cfg)
    handler.addFilter(CorrelationIdFilter())

    if cfg.format.lower() == "plain":
        formatter: logging.Formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
    else:
        formatter = JsonFormatter(correlation_id_field=cfg.correlation_id_field)

    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    return handler
