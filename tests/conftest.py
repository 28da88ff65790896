"""
Shared test fixtures and fakes for tenant-store tests.

This module provides:
- A scriptable fake remote executor backed by an in-memory store
- A fake aiohttp session recording outgoing requests
- Ready-wired stores (remote + fallback, and fallback only)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from tenant_store.config import RemoteConfig, ResilienceConfig
from tenant_store.errors import ErrorContext, SchemaDriftError, TenantStoreError, TypeMismatchError
from tenant_store.logging import StructuredLogger
from tenant_store.memory import FallbackStore
from tenant_store.resilience import CircuitBreaker
from tenant_store.routing import TenantRouter
from tenant_store.store import TenantStore
from tenant_store.types import Method, Placement, QueryOptions, QueryResult

# =============================================================================
# Fake Remote Executor
# =============================================================================


class FakeRemoteExecutor:
    """
    Stand-in for ``RemoteExecutor`` that keeps its "remote" rows in a private
    ``FallbackStore``.

    Scripting:
        - ``fail_next(*errors)`` returns the given errors for the next table calls
        - ``known_columns[table]`` rejects writes with other columns (PGRST204)
        - ``integer_ids`` rejects non-numeric ids in payloads and filters (22P02)
        - ``statement_failures`` are returned by the next DDL statements
        - ``raise_next(*exceptions)`` raises from the next remote calls of either kind
    """

    def __init__(self, *, configured: bool = True) -> None:
        self.configured = configured
        self.backing = FallbackStore()
        self.calls: list[tuple[str, str, QueryOptions]] = []
        self.statements: list[str] = []
        self.failures: list[TenantStoreError] = []
        self.statement_failures: list[TenantStoreError] = []
        self.exceptions: list[Exception] = []
        self.known_columns: dict[str, set[str]] = {}
        self.integer_ids = False
        self.closed = False

    def fail_next(self, *errors: TenantStoreError) -> None:
        self.failures.extend(errors)

    def raise_next(self, *exceptions: Exception) -> None:
        self.exceptions.extend(exceptions)

    def _schema_check(self, table: str, options: QueryOptions) -> TenantStoreError | None:
        known = self.known_columns.get(table)
        if known is None or options.method not in (Method.INSERT, Method.UPDATE):
            return None
        for row in options.rows:
            for column in row:
                if column not in known:
                    return SchemaDriftError(
                        f"Could not find the '{column}' column of '{table}' in the schema cache",
                        column=column,
                        http_status=400,
                        backend_code="PGRST204",
                    )
        return None

    def _id_check(self, options: QueryOptions) -> TenantStoreError | None:
        if not self.integer_ids:
            return None
        values = [row.get("id") for row in options.rows]
        values += [value for column, value in options.where if column == "id"]
        for value in values:
            if isinstance(value, str) and not value.isdigit():
                return TypeMismatchError(
                    f'invalid input syntax for type integer: "{value}"',
                    value=value,
                    expected_type="integer",
                    http_status=400,
                    backend_code="22P02",
                )
        return None

    async def execute(self, placement: Placement, table: str, options: QueryOptions) -> QueryResult:
        self.calls.append((placement.namespace, table, options))
        if self.exceptions:
            raise self.exceptions.pop(0)
        if self.failures:
            return QueryResult.failure(self.failures.pop(0))
        error = self._schema_check(table, options) or self._id_check(options)
        if error is not None:
            error.context = ErrorContext(namespace=placement.namespace, table=table, method=options.method.value)
            return QueryResult.failure(error)
        return QueryResult(rows=self.backing.execute(placement, table, options).rows)

    async def execute_statement(self, sql: str, *, context: ErrorContext | None = None) -> QueryResult:
        self.statements.append(sql)
        if self.exceptions:
            raise self.exceptions.pop(0)
        if self.statement_failures:
            return QueryResult.failure(self.statement_failures.pop(0))
        return QueryResult()

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Fake aiohttp Session
# =============================================================================


@dataclass
class FakeResponse:
    status: int = 200
    body: Any = None

    async def text(self) -> str:
        if self.body is None:
            return ""
        if isinstance(self.body, str):
            return self.body
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return json.dumps(self.body)

    async def __aenter__(self) -> FakeResponse:
        return self

    async def __aexit__(self, *exc) -> bool:
        return False


@dataclass
class RecordedRequest:
    method: str
    url: str
    params: list[tuple[str, str]]
    payload: Any
    headers: dict[str, str]


@dataclass
class FakeSession:
    """Records requests and replays queued responses (``200 []`` when empty)."""

    responses: list[FakeResponse] = field(default_factory=list)
    requests: list[RecordedRequest] = field(default_factory=list)
    error: Exception | None = None
    closed: bool = False

    def queue(self, status: int = 200, body: Any = None) -> None:
        self.responses.append(FakeResponse(status, body))

    def request(self, method, url, *, params=None, data=None, headers=None):
        self.requests.append(
            RecordedRequest(
                method=method,
                url=url,
                params=list(params or []),
                payload=json.loads(data) if data else None,
                headers=dict(headers or {}),
            )
        )
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return FakeResponse(200, [])

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def remote_config() -> RemoteConfig:
    return RemoteConfig(url="https://db.example.test", api_key="service-role-key-123456")


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_remote() -> FakeRemoteExecutor:
    return FakeRemoteExecutor()


@pytest.fixture
def make_fake_remote():
    """Fixture providing a factory for fake remote executors."""
    return FakeRemoteExecutor


@pytest.fixture
def fallback() -> FallbackStore:
    return FallbackStore()


@pytest.fixture
def quiet_logger() -> StructuredLogger:
    return StructuredLogger("tenant_store.tests", level="WARNING", log_queries=False)


@pytest.fixture
def breaker() -> CircuitBreaker:
    return CircuitBreaker(ResilienceConfig(failure_threshold=2, recovery_timeout=60.0))


@pytest.fixture
def store(fake_remote, fallback, breaker, quiet_logger) -> TenantStore:
    """A store whose remote backend is the scriptable fake."""
    return TenantStore(
        fake_remote,
        fallback,
        router=TenantRouter(fake_remote),
        breaker=breaker,
        logger=quiet_logger,
    )


@pytest.fixture
def offline_store(fallback, quiet_logger) -> TenantStore:
    """A store without a remote backend."""
    return TenantStore(None, fallback, logger=quiet_logger)
