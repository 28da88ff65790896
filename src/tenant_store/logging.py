"""
Structured logging for tenant-store.

This module provides:
- Structured JSON or text logging with consistent fields
- Query/schema operation records with tenant and namespace correlation
- Timing helpers for backend calls
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Log Record Types
# =============================================================================


@dataclass
class LogContext:
    """Context information attached to log records."""

    trace_id: str | None = None
    tenant: str | None = None
    namespace: str | None = None
    table: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            trace_id=kwargs.get("trace_id", self.trace_id),
            tenant=kwargs.get("tenant", self.tenant),
            namespace=kwargs.get("namespace", self.namespace),
            table=kwargs.get("table", self.table),
            operation=kwargs.get("operation", self.operation),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


@dataclass
class QueryLog:
    """Log record for one facade query."""

    table: str
    namespace: str
    method: str
    backend: str

    timestamp: str = field(default_factory=_utcnow)
    duration_ms: float | None = None

    success: bool = True
    row_count: int = 0
    healed: bool = False
    fallback_reason: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class SchemaLog:
    """Log record for a schema-management operation."""

    operation: str
    namespace: str
    target: str

    timestamp: str = field(default_factory=_utcnow)
    success: bool = True
    is_fallback: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("tenant_store")

        with logger.trace_context(tenant="42", table="books"):
            logger.log_query(QueryLog(...))
        ```
    """

    def __init__(
        self,
        name: str = "tenant_store",
        level: str = "INFO",
        json_output: bool = False,
        log_queries: bool = True,
        log_fallbacks: bool = True,
    ):
        self.name = name
        self.json_output = json_output
        self.log_queries = log_queries
        self.log_fallbacks = log_fallbacks

        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper()))
        self._context: LogContext = LogContext()

        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
            self._logger.addHandler(handler)

    @property
    def context(self) -> LogContext:
        return self._context

    def set_context(self, **kwargs) -> None:
        """Update the current log context."""
        self._context = self._context.with_update(**kwargs)

    @contextmanager
    def trace_context(self, trace_id: str | None = None, **kwargs) -> Iterator[str]:
        """
        Context manager for trace correlation.

        Args:
            trace_id: Trace ID (auto-generated if not provided)
            **kwargs: Additional context fields

        Yields:
            The trace ID
        """
        trace_id = trace_id or generate_trace_id()
        old_context = self._context

        try:
            self._context = old_context.with_update(trace_id=trace_id, **kwargs)
            yield trace_id
        finally:
            self._context = old_context

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        record_data = {
            "message": message,
            **self._context.to_dict(),
        }
        if event_type:
            record_data["event_type"] = event_type
        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data, default=str))
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}".rstrip())

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, data=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, data=kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, data=kwargs)

    # Typed logging methods

    def log_query(self, query: QueryLog) -> None:
        """Log a facade query."""
        if not self.log_queries:
            return
        level = logging.DEBUG if query.backend == "remote" else logging.INFO
        if not query.success:
            level = logging.WARNING
        message = f"{query.method} {query.namespace}.{query.table} via {query.backend}"
        if query.duration_ms is not None:
            message += f" ({query.duration_ms:.0f}ms)"
        self._log(level, message, event_type="query", data=query.to_dict())

    def log_fallback(self, table: str, namespace: str, method: str, reason: str) -> None:
        """Log a switch from the remote backend to the fallback store."""
        if not self.log_fallbacks:
            return
        self._log(
            logging.WARNING,
            f"Falling back to in-memory store for {method} {namespace}.{table}",
            event_type="fallback",
            data={"table": table, "namespace": namespace, "method": method, "reason": reason},
        )

    def log_heal(self, table: str, method: str, repair: str) -> None:
        """Log a healing retry."""
        self._log(
            logging.INFO,
            f"Healing {method} on {table}: {repair}",
            event_type="heal",
            data={"table": table, "method": method, "repair": repair},
        )

    def log_schema(self, schema: SchemaLog) -> None:
        """Log a schema-management operation."""
        level = logging.INFO if schema.success and not schema.is_fallback else logging.WARNING
        message = f"{schema.operation} {schema.namespace}.{schema.target}"
        if schema.is_fallback:
            message += " (in memory)"
        self._log(level, message, event_type="schema", data=schema.to_dict())

    def log_error(self, error: Exception, message: str | None = None, **kwargs) -> None:
        """Log an error with context."""
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            **kwargs,
        }

        if hasattr(error, "code"):
            error_data["error_code"] = str(error.code.value)
        if hasattr(error, "retryable"):
            error_data["retryable"] = error.retryable
        if hasattr(error, "context") and error.context:
            error_data["error_context"] = error.context.to_dict()

        self._log(
            logging.ERROR,
            message or f"Error: {error}",
            event_type="error",
            data=error_data,
        )


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": _utcnow(),
            "level": record.levelname,
            "logger": record.name,
        }

        try:
            message_data = json.loads(record.getMessage())
            if isinstance(message_data, dict):
                log_data.update(message_data)
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        color = self.LEVEL_COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        return f"{timestamp} {color}{record.levelname:8}{reset} {record.getMessage()}"


# =============================================================================
# Utilities
# =============================================================================


def generate_trace_id() -> str:
    """Generate a unique trace ID."""
    return f"trace_{uuid.uuid4().hex[:16]}"


def redact_api_key(key: str | None) -> str:
    """Redact an API key for safe logging."""
    if not key:
        return "<not set>"
    if len(key) <= 8:
        return "***"
    return f"{key[:4]}...{key[-4:]}"


def truncate_for_log(text: str, max_length: int = 200) -> str:
    """Truncate text for logging."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"... ({len(text)} chars total)"


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


# =============================================================================
# Global Logger
# =============================================================================

_default_logger: StructuredLogger | None = None


def get_logger(name: str = "tenant_store") -> StructuredLogger:
    """Get or create a structured logger."""
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        _default_logger = StructuredLogger(name)
    return _default_logger


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    **kwargs: Any,
) -> StructuredLogger:
    """Configure the default logger."""
    global _default_logger
    _default_logger = StructuredLogger(level=level, json_output=json_output, **kwargs)
    return _default_logger


__all__ = [
    # Context
    "LogContext",
    # Log records
    "QueryLog",
    "SchemaLog",
    # Logger
    "StructuredLogger",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Timing
    "Timer",
    "timed",
    # Utilities
    "generate_trace_id",
    "redact_api_key",
    "truncate_for_log",
    # Global
    "get_logger",
    "configure_logging",
]
