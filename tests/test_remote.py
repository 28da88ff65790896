"""
Tests for the PostgREST remote executor, using a fake aiohttp session.
"""
from datetime import datetime, timezone
from decimal import Decimal

import aiohttp
import pytest

from tenant_store.config import RemoteConfig
from tenant_store.errors import (
    AlreadyExistsError,
    BackendUnavailableError,
    NotFoundError,
    RemoteBackendError,
    SchemaDriftError,
    TransientBackendError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from tenant_store.remote import RemoteExecutor, dumps, filter_value
from tenant_store.types import Method, OrderBy, Placement, QueryOptions

TENANT = Placement("tenant_1", False)
GLOBAL = Placement("public", True)


@pytest.fixture
def executor(remote_config, fake_session) -> RemoteExecutor:
    return RemoteExecutor(remote_config, session=fake_session)


class TestEncoding:
    def test_filter_values(self):
        assert filter_value(None) == "is.null"
        assert filter_value(True) == "eq.true"
        assert filter_value(False) == "eq.false"
        assert filter_value(5) == "eq.5"
        assert filter_value("x") == "eq.x"

    def test_dumps_non_json_values(self):
        encoded = dumps({"at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc), "price": Decimal("9.50")})
        assert encoded == '{"at": "2024-01-02T03:04:05+00:00", "price": "9.50"}'


class TestSelect:
    async def test_builds_postgrest_query(self, executor, fake_session):
        fake_session.queue(200, [{"id": 1, "title": "Dune"}])
        result = await executor.select(
            TENANT,
            "books",
            QueryOptions(where=[("title", "Dune"), ("archived", False)], order_by=OrderBy("id", True), limit=5),
        )

        assert result.ok
        assert result.rows == [{"id": 1, "title": "Dune"}]
        request = fake_session.requests[0]
        assert request.method == "GET"
        assert request.url == "https://db.example.test/rest/v1/books"
        assert request.params == [
            ("select", "*"),
            ("title", "eq.Dune"),
            ("archived", "eq.false"),
            ("order", "id.desc"),
            ("limit", "5"),
        ]
        assert request.headers["Accept-Profile"] == "tenant_1"
        assert "Content-Profile" not in request.headers
        assert request.headers["apikey"] == "service-role-key-123456"
        assert request.headers["Authorization"] == "Bearer service-role-key-123456"

    async def test_offset_uses_default_page_size(self, executor, fake_session):
        await executor.select(TENANT, "books", QueryOptions(offset=20))
        params = dict(fake_session.requests[0].params)
        assert params["offset"] == "20"
        assert params["limit"] == "10"

    async def test_offset_with_limit(self, executor, fake_session):
        await executor.select(TENANT, "books", QueryOptions(offset=4, limit=2))
        params = dict(fake_session.requests[0].params)
        assert (params["offset"], params["limit"]) == ("4", "2")


class TestWrites:
    async def test_insert(self, executor, fake_session):
        fake_session.queue(201, [{"id": 7, "title": "Dune"}])
        result = await executor.insert(TENANT, "books", QueryOptions(Method.INSERT, data={"title": "Dune"}))

        assert result.rows == [{"id": 7, "title": "Dune"}]
        request = fake_session.requests[0]
        assert request.method == "POST"
        assert request.payload == {"title": "Dune"}
        assert request.headers["Prefer"] == "return=representation"
        assert request.headers["Content-Profile"] == "tenant_1"

    async def test_bulk_insert(self, executor, fake_session):
        fake_session.queue(201, [{"id": 1}, {"id": 2}])
        result = await executor.insert(TENANT, "books", QueryOptions(Method.INSERT, data=[{"a": 1}, {"a": 2}]))
        assert fake_session.requests[0].payload == [{"a": 1}, {"a": 2}]
        assert len(result.rows) == 2

    async def test_update(self, executor, fake_session):
        fake_session.queue(200, [])
        result = await executor.update(
            TENANT, "books", QueryOptions(Method.UPDATE, where=[("id", 3)], data={"title": "New"})
        )

        assert result.ok
        assert result.rows == []
        request = fake_session.requests[0]
        assert request.method == "PATCH"
        assert ("id", "eq.3") in request.params
        assert request.payload == {"title": "New"}

    async def test_delete_returns_rows(self, executor, fake_session):
        fake_session.queue(200, [{"id": 3}])
        result = await executor.delete(TENANT, "books", QueryOptions(Method.DELETE, where=[("id", 3)]))
        assert result.rows == [{"id": 3}]
        assert fake_session.requests[0].method == "DELETE"

    async def test_delete_without_filter_sends_nothing(self, executor, fake_session):
        result = await executor.delete(TENANT, "books", QueryOptions(Method.DELETE))
        assert result.ok
        assert result.rows == []
        assert fake_session.requests == []

    async def test_insert_without_data_sends_nothing(self, executor, fake_session):
        result = await executor.insert(TENANT, "books", QueryOptions(Method.INSERT))
        assert result.ok
        assert result.rows == []
        assert fake_session.requests == []

    async def test_single_object_body(self, executor, fake_session):
        fake_session.queue(201, {"id": 1})
        result = await executor.insert(GLOBAL, "projects", QueryOptions(Method.INSERT, data={"name": "x"}))
        assert result.rows == [{"id": 1}]

    async def test_execute_dispatch(self, executor, fake_session):
        await executor.execute(GLOBAL, "projects", QueryOptions(Method.SELECT))
        assert fake_session.requests[0].method == "GET"

    async def test_execute_rejects_unknown_method(self, executor):
        with pytest.raises(UnsupportedOperationError):
            await executor.execute(GLOBAL, "projects", QueryOptions(method="merge"))


class TestFailures:
    async def test_unknown_column(self, executor, fake_session):
        fake_session.queue(
            400, {"code": "PGRST204", "message": "Could not find the 'color' column of 'books' in the schema cache"}
        )
        result = await executor.insert(TENANT, "books", QueryOptions(Method.INSERT, data={"color": "red"}))

        assert isinstance(result.error, SchemaDriftError)
        assert result.error.column == "color"
        assert result.error.context.table == "books"
        assert result.error.context.namespace == "tenant_1"

    async def test_type_mismatch(self, executor, fake_session):
        fake_session.queue(400, {"code": "22P02", "message": 'invalid input syntax for type integer: "project_1"'})
        result = await executor.insert(TENANT, "books", QueryOptions(Method.INSERT, data={"id": "project_1"}))
        assert isinstance(result.error, TypeMismatchError)

    async def test_missing_table(self, executor, fake_session):
        fake_session.queue(404, {"code": "42P01", "message": 'relation "tenant_1.books" does not exist'})
        result = await executor.select(TENANT, "books", QueryOptions())
        assert isinstance(result.error, NotFoundError)

    async def test_server_error_is_transient(self, executor, fake_session):
        fake_session.queue(503, "Service Unavailable")
        result = await executor.select(TENANT, "books", QueryOptions())
        assert isinstance(result.error, TransientBackendError)

    async def test_network_error_is_transient(self, executor, fake_session):
        fake_session.error = aiohttp.ClientConnectionError("connection refused")
        result = await executor.select(TENANT, "books", QueryOptions())
        assert isinstance(result.error, TransientBackendError)
        assert isinstance(result.error.cause, aiohttp.ClientConnectionError)

    async def test_timeout_is_transient(self, executor, fake_session):
        fake_session.error = TimeoutError()
        result = await executor.select(TENANT, "books", QueryOptions())
        assert isinstance(result.error, TransientBackendError)

    async def test_undecodable_error_body_keeps_status(self, executor, fake_session):
        fake_session.queue(502, b"\xff\xfe<html>bad gateway")
        result = await executor.select(TENANT, "books", QueryOptions())
        assert isinstance(result.error, TransientBackendError)
        assert result.error.http_status == 502

    async def test_undecodable_success_body(self, executor, fake_session):
        fake_session.queue(200, b"\xff\xfe")
        result = await executor.select(TENANT, "books", QueryOptions())
        assert isinstance(result.error, RemoteBackendError)
        assert not result.error.retryable
        assert isinstance(result.error.cause, UnicodeDecodeError)

    async def test_unserializable_payload(self, executor, fake_session):
        result = await executor.insert(TENANT, "books", QueryOptions(Method.INSERT, data={"blob": object()}))
        assert isinstance(result.error, RemoteBackendError)
        assert isinstance(result.error.cause, TypeError)
        assert fake_session.requests == []

    async def test_unconfigured(self, fake_session):
        executor = RemoteExecutor(RemoteConfig(url=None, api_key=None), session=fake_session)
        assert not executor.configured
        result = await executor.select(TENANT, "books", QueryOptions())
        assert isinstance(result.error, BackendUnavailableError)
        assert fake_session.requests == []


class TestStatements:
    async def test_rpc_call(self, executor, fake_session):
        fake_session.queue(200, {"success": True})
        result = await executor.execute_statement("CREATE SCHEMA IF NOT EXISTS tenant_1")

        assert result.ok
        request = fake_session.requests[0]
        assert request.method == "POST"
        assert request.url == "https://db.example.test/rest/v1/rpc/execute_sql"
        assert request.payload == {"sql": "CREATE SCHEMA IF NOT EXISTS tenant_1"}
        assert "Accept-Profile" not in request.headers

    async def test_void_rpc_is_success(self, executor, fake_session):
        fake_session.queue(204, None)
        assert (await executor.execute_statement("SELECT 1")).ok

    async def test_in_band_failure(self, executor, fake_session):
        fake_session.queue(200, {"success": False, "error": 'relation "books" already exists'})
        result = await executor.execute_statement("CREATE TABLE books ()")
        assert isinstance(result.error, AlreadyExistsError)

    async def test_in_band_failure_without_detail(self, executor, fake_session):
        fake_session.queue(200, {"success": False})
        result = await executor.execute_statement("DROP TABLE x")
        assert result.error.message == "SQL execution failed"

    async def test_custom_rpc_function(self, fake_session):
        config = RemoteConfig(url="https://db.example.test/", api_key="k" * 20, rpc_function="run_ddl")
        executor = RemoteExecutor(config, session=fake_session)
        await executor.execute_statement("SELECT 1")
        assert fake_session.requests[0].url == "https://db.example.test/rest/v1/rpc/run_ddl"


class TestLifecycle:
    async def test_injected_session_is_not_closed(self, executor, fake_session):
        await executor.close()
        assert not fake_session.closed
