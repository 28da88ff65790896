"""
Error taxonomy for tenant-store.

This module provides a hierarchical exception system with:
- Error codes for programmatic handling
- Retryable and healable classification
- Structured context for debugging
- Mapping of remote (PostgREST/PostgreSQL) failures to the taxonomy
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import aiohttp


class ErrorCode(str, Enum):
    """Standardized error codes for the data-access layer."""

    # Remote backend errors
    BACKEND_ERROR = "backend-error"
    UNKNOWN_COLUMN = "unknown-column"
    TYPE_MISMATCH = "type-mismatch"
    NOT_FOUND = "not-found"
    ALREADY_EXISTS = "already-exists"
    TRANSIENT = "transient"
    BACKEND_UNAVAILABLE = "backend-unavailable"

    # Caller errors
    UNSUPPORTED_METHOD = "unsupported-method"
    VALIDATION_ERROR = "validation-error"

    # Configuration errors
    CONFIG_ERROR = "config-error"
    INVALID_CONFIG = "invalid-config"

    # Internal errors
    INTERNAL_ERROR = "internal-error"


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    namespace: str | None = None
    table: str | None = None
    method: str | None = None
    tenant: str | None = None
    attempt: int = 1
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "table": self.table,
            "method": self.method,
            "tenant": self.tenant,
            "attempt": self.attempt,
            "operation": self.operation,
            **self.extra,
        }


class TenantStoreError(Exception):
    """
    Base exception for all tenant-store errors.

    Attributes:
        code: Standardized error code for programmatic handling
        message: Human-readable error message
        retryable: Whether the failure is transient
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.table:
            where = f"{self.context.namespace}.{self.context.table}" if self.context.namespace else self.context.table
            parts.append(f"(table={where})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# Remote Backend Errors
# =============================================================================


class RemoteBackendError(TenantStoreError):
    """Base class for failures reported by the remote backend."""

    code = ErrorCode.BACKEND_ERROR
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        backend_code: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.http_status = http_status
        self.backend_code = backend_code


class TransientBackendError(RemoteBackendError):
    """Network failure, timeout or overloaded backend. Triggers fallback."""

    code = ErrorCode.TRANSIENT
    retryable = True

    def __init__(self, message: str = "Remote backend is temporarily unreachable", **kwargs):
        super().__init__(message, **kwargs)


class SchemaDriftError(RemoteBackendError):
    """The payload references a column the remote table does not have."""

    code = ErrorCode.UNKNOWN_COLUMN

    def __init__(self, message: str = "Unknown column", *, column: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.column = column


class TypeMismatchError(RemoteBackendError):
    """A value's literal form is incompatible with the column's declared type."""

    code = ErrorCode.TYPE_MISMATCH

    def __init__(
        self,
        message: str = "Type mismatch",
        *,
        value: str | None = None,
        expected_type: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.value = value
        self.expected_type = expected_type


class NotFoundError(RemoteBackendError):
    """Table or namespace does not exist in the remote backend."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, message: str = "Not found", **kwargs):
        super().__init__(message, **kwargs)


class RecordNotFoundError(NotFoundError):
    """No record matches the requested identifier."""

    def __init__(self, table: str, record_id: Any, **kwargs):
        super().__init__(f"{table} with ID {record_id} not found", **kwargs)
        self.table = table
        self.record_id = record_id


class AlreadyExistsError(RemoteBackendError):
    """A namespace, table, column or constraint already exists."""

    code = ErrorCode.ALREADY_EXISTS

    def __init__(self, message: str = "Object already exists", **kwargs):
        super().__init__(message, **kwargs)


class BackendUnavailableError(RemoteBackendError):
    """The remote client is not configured. Fallback is used immediately."""

    code = ErrorCode.BACKEND_UNAVAILABLE

    def __init__(self, message: str = "Remote backend is not configured", **kwargs):
        super().__init__(message, **kwargs)


# =============================================================================
# Caller Errors
# =============================================================================


class UnsupportedOperationError(TenantStoreError):
    """Invalid query method or relationship kind. Always raised to the caller."""

    code = ErrorCode.UNSUPPORTED_METHOD
    retryable = False

    def __init__(self, message: str = "Unsupported operation", *, operation: str | None = None, **kwargs):
        if operation is not None and message == "Unsupported operation":
            message = f"Unsupported query method: {operation}"
        super().__init__(message, **kwargs)
        self.operation = operation


class RecordValidationError(TenantStoreError):
    """A record payload failed validation against its table definition."""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, *, field_name: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field_name = field_name


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(TenantStoreError):
    """Base class for configuration errors."""

    code = ErrorCode.CONFIG_ERROR
    retryable = False


class InvalidConfigError(ConfigError):
    """Invalid configuration value."""

    code = ErrorCode.INVALID_CONFIG

    def __init__(self, message: str, *, field_name: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field_name = field_name


# =============================================================================
# Utility Functions
# =============================================================================

_UNKNOWN_COLUMN_PATTERNS = (
    re.compile(r"Could not find the '(?P<column>[^']+)' column"),
    re.compile(r'column "(?P<column>[^"]+)"(?: of relation "[^"]+")? does not exist'),
)
_INVALID_SYNTAX_PATTERN = re.compile(r'invalid input syntax for type (?P<type>[\w ]+): "(?P<value>.*)"')

_UNKNOWN_COLUMN_CODES = {"PGRST204", "42703"}
_TYPE_MISMATCH_CODES = {"22P02"}
_NOT_FOUND_CODES = {"42P01", "PGRST205", "PGRST106", "3F000"}
_ALREADY_EXISTS_CODES = {"42P06", "42P07", "42710", "42701"}
_TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}


def parse_unknown_column(message: str) -> str | None:
    """Extract the offending column name from an unknown-column message."""
    for pattern in _UNKNOWN_COLUMN_PATTERNS:
        match = pattern.search(message or "")
        if match:
            return match.group("column")
    return None


def error_from_response(
    status: int | None,
    body: Any,
    *,
    context: ErrorContext | None = None,
) -> RemoteBackendError:
    """
    Create an appropriate RemoteBackendError from a backend response.

    Args:
        status: HTTP status code (None for RPC payload failures)
        body: Decoded response body; PostgREST errors carry
            ``code``/``message``/``details``/``hint`` and the DDL RPC
            returns ``{"success": false, "error": ...}``
        context: Additional error context

    Returns:
        Appropriate RemoteBackendError subclass
    """
    ctx = context or ErrorContext()
    backend_code: str | None = None
    if isinstance(body, dict):
        backend_code = body.get("code")
        message = str(body.get("message") or body.get("error") or body.get("details") or "")
    else:
        message = str(body or "")
    if not message:
        message = f"Remote backend returned HTTP {status}"

    kwargs: dict[str, Any] = {"http_status": status, "backend_code": backend_code, "context": ctx}

    if backend_code in _UNKNOWN_COLUMN_CODES or parse_unknown_column(message):
        return SchemaDriftError(message, column=parse_unknown_column(message), **kwargs)

    syntax = _INVALID_SYNTAX_PATTERN.search(message)
    if backend_code in _TYPE_MISMATCH_CODES or syntax:
        return TypeMismatchError(
            message,
            value=syntax.group("value") if syntax else None,
            expected_type=syntax.group("type") if syntax else None,
            **kwargs,
        )

    if backend_code in _ALREADY_EXISTS_CODES or "already exists" in message.lower():
        return AlreadyExistsError(message, **kwargs)

    if backend_code in _NOT_FOUND_CODES or status == 404:
        return NotFoundError(message, **kwargs)

    if status in _TRANSIENT_STATUSES:
        return TransientBackendError(message, **kwargs)

    return RemoteBackendError(message, **kwargs)


def error_from_exception(exc: Exception, *, context: ErrorContext | None = None) -> TenantStoreError:
    """Wrap a client-side exception raised while talking to the backend."""
    if isinstance(exc, TenantStoreError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, aiohttp.ClientError, ConnectionError)):
        return TransientBackendError(
            f"Remote backend request failed: {type(exc).__name__}: {exc}",
            context=context,
            cause=exc,
        )
    return RemoteBackendError(f"Remote backend request failed: {exc}", context=context, cause=exc)


def is_healable(error: Exception | None) -> bool:
    """Check if an error is one the healing policy knows how to repair."""
    return isinstance(error, (SchemaDriftError, TypeMismatchError))


def is_retryable(error: Exception | None) -> bool:
    """
    Check if an error is transient.

    Args:
        error: Exception to check

    Returns:
        True if the error is retryable
    """
    if isinstance(error, TenantStoreError):
        return error.retryable

    retryable_types = (
        asyncio.TimeoutError,
        ConnectionError,
        TimeoutError,
        aiohttp.ClientConnectionError,
    )
    return isinstance(error, retryable_types)


__all__ = [
    # Base
    "ErrorCode",
    "ErrorContext",
    "TenantStoreError",
    # Remote backend errors
    "RemoteBackendError",
    "TransientBackendError",
    "SchemaDriftError",
    "TypeMismatchError",
    "NotFoundError",
    "RecordNotFoundError",
    "AlreadyExistsError",
    "BackendUnavailableError",
    # Caller errors
    "UnsupportedOperationError",
    "RecordValidationError",
    # Config errors
    "ConfigError",
    "InvalidConfigError",
    # Utilities
    "parse_unknown_column",
    "error_from_response",
    "error_from_exception",
    "is_healable",
    "is_retryable",
]
