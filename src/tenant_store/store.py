"""
Query facade: one uniform contract over the remote backend and the
in-process fallback store.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from .ddl import add_column_sql, bookkeeping_column_statements, create_table_sql, relationship_sql
from .errors import (
    AlreadyExistsError,
    BackendUnavailableError,
    ErrorContext,
    TenantStoreError,
    error_from_exception,
    is_retryable,
)
from .healing import HealingPolicy
from .identifiers import IdentifierPolicy
from .logging import QueryLog, SchemaLog, StructuredLogger, get_logger, timed
from .memory import FallbackStore
from .remote import RemoteExecutor
from .resilience import CircuitBreaker
from .routing import TenantRouter
from .types import (
    Column,
    Placement,
    QueryOptions,
    QueryResult,
    Record,
    Relationship,
    RelationshipKind,
    SchemaResult,
    TableDefinition,
)

ColumnSpec = Column | Mapping[str, Any]


class TenantStore:
    """
    Resilient multi-tenant data access.

    Every query is tried against the remote backend first. Schema drift and
    identifier type mismatches on writes are healed with a single retry; any
    other remote failure re-runs the same logical operation on the fallback
    store. Callers only see an exception for an unsupported method, or when
    both backends fail.

    Example:
        ```python
        async with build_store() as store:
            await store.create_table("books", [{"name": "title", "type": "text"}], tenant=42)
            await store.query("books", {"method": "insert", "data": {"title": "Dune"}}, tenant=42)
            rows = await store.query("books", {"where": {"title": "Dune"}}, tenant=42)
        ```
    """

    def __init__(
        self,
        remote: RemoteExecutor | None = None,
        fallback: FallbackStore | None = None,
        *,
        router: TenantRouter | None = None,
        healing: HealingPolicy | None = None,
        breaker: CircuitBreaker | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.remote = remote
        self.fallback = fallback or FallbackStore()
        self.router = router or TenantRouter(remote)
        self.healing = healing or HealingPolicy()
        self.breaker = breaker or CircuitBreaker()
        self.logger = logger or get_logger()

    @property
    def identifiers(self) -> IdentifierPolicy:
        return self.healing.identifiers

    async def __aenter__(self) -> TenantStore:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query(
        self,
        table: str,
        options: QueryOptions | Mapping[str, Any] | None = None,
        tenant: Any = None,
    ) -> list[Record]:
        """
        Run one select/insert/update/delete and return the affected rows.

        Raises:
            UnsupportedOperationError: the method is not select/insert/update/delete
            TenantStoreError: the remote failed and the fallback store failed too
        """
        opts = QueryOptions.coerce(options)
        opts = opts.with_where(self.identifiers.normalize_filter(opts.where))
        placement = self.router.resolve(table, tenant)

        with self.logger.trace_context(tenant=None if tenant is None else str(tenant), table=table):
            with timed() as timer:
                result = await self._run_remote(placement, table, opts)
                fallback_reason: str | None = None
                if not result.ok:
                    fallback_reason = str(result.error)
                    result = self._run_fallback(placement, table, opts, result)

            self.logger.log_query(
                QueryLog(
                    table=table,
                    namespace=placement.namespace,
                    method=opts.method.value,
                    backend=result.backend,
                    duration_ms=timer.elapsed_ms,
                    row_count=len(result.rows),
                    healed=result.healed,
                    fallback_reason=fallback_reason,
                )
            )
        return result.rows

    async def _remote_ready(self, context: ErrorContext) -> QueryResult:
        """Check availability and the breaker before a remote call."""
        if self.remote is None or not self.remote.configured:
            return QueryResult.failure(BackendUnavailableError(context=context))
        if not await self.breaker.allow():
            return QueryResult.failure(
                BackendUnavailableError("Circuit breaker is open for the remote backend", context=context)
            )
        return QueryResult()

    async def _guarded(
        self,
        placement: Placement,
        context: ErrorContext,
        call: Callable[[], Awaitable[QueryResult]] | None = None,
    ) -> QueryResult:
        """
        Ensure the namespace, then run ``call`` against the remote backend.

        Unexpected exceptions become failed results, and the breaker always
        hears about the outcome once it has admitted the call.
        """
        ready = await self._remote_ready(context)
        if not ready.ok:
            return ready

        result: QueryResult | None = None
        try:
            result = await self.router.ensure_namespace(placement)
            if result.ok and call is not None:
                result = await call()
        except Exception as e:
            result = QueryResult.failure(error_from_exception(e, context=context))
        finally:
            await self._record_outcome(result)
        return result

    async def _record_outcome(self, result: QueryResult | None) -> None:
        # Non-transient errors still prove the backend is reachable.
        if result is not None and (result.ok or not is_retryable(result.error)):
            await self.breaker.on_success()
        else:
            await self.breaker.on_failure()

    async def _execute_healed(self, placement: Placement, table: str, opts: QueryOptions) -> QueryResult:
        result = await self.remote.execute(placement, table, opts)
        if not result.ok:
            repair = self.healing.heal(result.error, opts)
            if repair is not None:
                self.logger.log_heal(table, opts.method.value, repair.description)
                result = await self.remote.execute(placement, table, repair.options)
                result.healed = True
        return result

    async def _run_remote(self, placement: Placement, table: str, opts: QueryOptions) -> QueryResult:
        context = ErrorContext(namespace=placement.namespace, table=table, method=opts.method.value)
        return await self._guarded(placement, context, lambda: self._execute_healed(placement, table, opts))

    def _run_fallback(
        self,
        placement: Placement,
        table: str,
        opts: QueryOptions,
        failed: QueryResult,
    ) -> QueryResult:
        self.logger.log_fallback(table, placement.namespace, opts.method.value, str(failed.error))
        try:
            return self.fallback.execute(placement, table, opts)
        except Exception as e:
            self.logger.log_error(e, f"Fallback store failed for {opts.method.value} {table}")
            raise failed.error from e

    # ------------------------------------------------------------------
    # Schema management
    # ------------------------------------------------------------------

    async def _run_statement(self, placement: Placement, sql: str, context: ErrorContext) -> QueryResult:
        result = await self._guarded(placement, context, lambda: self.remote.execute_statement(sql, context=context))
        if isinstance(result.error, AlreadyExistsError):
            # Re-running the same DDL leaves the remote schema as requested.
            return QueryResult()
        return result

    def _schema_result(
        self,
        operation: str,
        placement: Placement,
        target: str,
        result: QueryResult,
        message: str,
    ) -> SchemaResult:
        error: TenantStoreError | None = result.error
        schema = SchemaResult(
            success=True,
            namespace=placement.namespace,
            message=message if result.ok else f"{message} in memory (remote operation failed)",
            is_fallback=not result.ok,
            error=None if error is None else str(error),
        )
        self.logger.log_schema(
            SchemaLog(
                operation=operation,
                namespace=placement.namespace,
                target=target,
                is_fallback=schema.is_fallback,
                error=schema.error,
            )
        )
        return schema

    async def create_namespace(self, tenant: Any) -> SchemaResult:
        """Create the tenant's namespace remotely. Never raises."""
        placement = Placement(self.router.namespace_for(tenant), False)
        context = ErrorContext(namespace=placement.namespace, operation="create_namespace")
        result = await self._guarded(placement, context)

        success = result.ok
        schema = SchemaResult(
            success=success,
            namespace=placement.namespace,
            message=(
                f"Namespace {placement.namespace} created"
                if success
                else f"Failed to create namespace {placement.namespace}: {result.error}"
            ),
            error=None if success else str(result.error),
        )
        self.logger.log_schema(
            SchemaLog(
                operation="create_namespace",
                namespace=placement.namespace,
                target=placement.namespace,
                success=success,
                error=schema.error,
            )
        )
        return schema

    async def create_table(
        self,
        table: str,
        columns: Iterable[ColumnSpec],
        tenant: Any = None,
    ) -> SchemaResult:
        """
        Create a table in the tenant namespace.

        The definition is always registered in the fallback catalog; when the
        remote DDL fails the result is still a success with ``is_fallback``.

        Raises:
            ValueError: a table, column or type name is not a valid identifier
        """
        placement = self.router.resolve(table, tenant)
        definition = TableDefinition(table, [Column.from_dict(c) for c in columns])
        sql = create_table_sql(placement.namespace, table, definition.columns)

        result = await self._run_statement(
            placement, sql, ErrorContext(namespace=placement.namespace, table=table, operation="create_table")
        )
        self.fallback.create_table(placement.namespace, definition)
        return self._schema_result("create_table", placement, table, result, f"Table {table} created")

    async def add_column(self, table: str, column: ColumnSpec, tenant: Any = None) -> SchemaResult:
        """Additively add a column. Same degraded-success semantics as ``create_table``."""
        placement = self.router.resolve(table, tenant)
        col = Column.from_dict(column)
        sql = add_column_sql(placement.namespace, table, col)

        result = await self._run_statement(
            placement, sql, ErrorContext(namespace=placement.namespace, table=table, operation="add_column")
        )
        self.fallback.create_table(placement.namespace, TableDefinition(table, [col]))
        return self._schema_result(
            "add_column", placement, f"{table}.{col.name}", result, f"Column {col.name} added to {table}"
        )

    async def create_relationship(
        self,
        source_table: str,
        target_table: str,
        kind: RelationshipKind | str,
        source_column: str = "id",
        target_column: str = "id",
        tenant: Any = None,
    ) -> SchemaResult:
        """
        Add a foreign-key relationship (or junction table for many-to-many).

        Raises:
            UnsupportedOperationError: ``kind`` is not a known relationship kind
        """
        relationship = Relationship(
            source_table=source_table,
            source_column=source_column,
            target_table=target_table,
            target_column=target_column,
            kind=RelationshipKind.parse(kind),
        )
        placement = self.router.resolve(source_table, tenant)
        sql = relationship_sql(placement.namespace, relationship)

        result = await self._run_statement(
            placement,
            sql,
            ErrorContext(namespace=placement.namespace, table=source_table, operation="create_relationship"),
        )
        self.fallback.add_relationship(placement.namespace, relationship)
        return self._schema_result(
            "create_relationship",
            placement,
            f"{source_table}->{target_table}",
            result,
            f"{relationship.kind.value} relationship from {source_table} to {target_table} created",
        )

    async def create_tables(
        self,
        definitions: Iterable[TableDefinition | Mapping[str, Any]],
        tenant: Any = None,
    ) -> list[SchemaResult]:
        """Create several tables, then their relationships, in order."""
        parsed = [d if isinstance(d, TableDefinition) else TableDefinition.from_dict(d) for d in definitions]
        results = [await self.create_table(d.name, d.columns, tenant) for d in parsed]
        for definition in parsed:
            for rel in definition.relationships:
                results.append(
                    await self.create_relationship(
                        rel.source_table,
                        rel.target_table,
                        rel.kind,
                        rel.source_column,
                        rel.target_column,
                        tenant,
                    )
                )
        return results

    async def ensure_bookkeeping_columns(self) -> list[SchemaResult]:
        """Add the optional columns of ``projects`` and ``deployments`` if missing."""
        placement = Placement(self.router.global_namespace, True)
        results: list[SchemaResult] = []
        for sql in bookkeeping_column_statements(placement.namespace):
            result = await self._run_statement(
                placement, sql, ErrorContext(namespace=placement.namespace, operation="ensure_bookkeeping_columns")
            )
            results.append(
                SchemaResult(
                    success=result.ok,
                    namespace=placement.namespace,
                    message=sql,
                    error=None if result.ok else str(result.error),
                )
            )
        return results

    def describe(self, table: str, tenant: Any = None) -> TableDefinition | None:
        """The locally known definition of ``table`` (registered through this store)."""
        return self.fallback.describe(self.router.resolve(table, tenant).namespace, table)


__all__ = ["TenantStore"]
