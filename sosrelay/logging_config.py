"""Structured logging configuration.

JSON (or plain text) log lines carrying the request correlation ID and,
inside an escalation sweep, the sweep ID.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Set per HTTP request by CorrelationIdMiddleware
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Set for the duration of one escalation sweep
sweep_id_ctx: ContextVar[str | None] = ContextVar("sweep_id", default=None)


def _context_fields() -> dict[str, str]:
    fields = {}
    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        fields["correlation_id"] = correlation_id
    sweep_id = sweep_id_ctx.get()
    if sweep_id:
        fields["sweep_id"] = sweep_id
    return fields


class JsonFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per log record.

    Keys: timestamp, level, service, message, logger, any context IDs,
    the record's extra fields, exception text and, for errors, the
    source location.
    """

    def __init__(self, service_name: str = "sosrelay-api"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
            "logger": record.name,
        }
        log_data.update(_context_fields())

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.ERROR:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development.

    Format: timestamp - service - level - [correlation_id] - message key=value...
    """

    def __init__(self, service_name: str = "sosrelay-api"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
        context = _context_fields()
        correlation_id = context.pop("correlation_id", "-")

        base_msg = (
            f"{timestamp} - {self.service_name} - {record.levelname} - "
            f"[{correlation_id}] - {record.getMessage()}"
        )

        fields = {**context, **getattr(record, "extra_fields", {})}
        if fields:
            base_msg += " " + " ".join(f"{k}={v}" for k, v in fields.items())

        if record.exc_info:
            base_msg += f"\n{self.formatException(record.exc_info)}"

        return base_msg


def setup_logging(
    log_format: str = "json",
    log_level: str = "INFO",
    service_name: str = "sosrelay-api",
) -> None:
    """Configure the root logger.

    Args:
        log_format: 'json' for structured logging, 'text' for human-readable
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Service name to include in logs
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if log_format.lower() == "json":
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(TextFormatter(service_name=service_name))
    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


class StructuredLogger:
    """Logger wrapper that accepts structured extra fields as keywords.

    ``bind()`` returns a child logger that adds the given fields to every
    record, e.g. ``logger.bind(request_id=...)`` while escalating one record.
    """

    def __init__(self, name: str, bound: dict[str, Any] | None = None):
        self._logger = logging.getLogger(name)
        self._bound = bound or {}

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **fields: Any) -> "StructuredLogger":
        return StructuredLogger(self._logger.name, {**self._bound, **fields})

    def _extra(self, fields: dict[str, Any]) -> dict[str, Any]:
        merged = {**self._bound, **fields}
        return {"extra_fields": merged} if merged else {}

    def debug(self, msg: str, **extra_fields: Any) -> None:
        self._logger.debug(msg, extra=self._extra(extra_fields))

    def info(self, msg: str, **extra_fields: Any) -> None:
        self._logger.info(msg, extra=self._extra(extra_fields))

    def warning(self, msg: str, exc_info: bool = False, **extra_fields: Any) -> None:
        self._logger.warning(msg, exc_info=exc_info, extra=self._extra(extra_fields))

    def error(self, msg: str, **extra_fields: Any) -> None:
        self._logger.error(msg, extra=self._extra(extra_fields))

    def exception(self, msg: str, **extra_fields: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._logger.exception(msg, extra=self._extra(extra_fields))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
