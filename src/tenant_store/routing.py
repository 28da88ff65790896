"""
Tenant routing: maps (table, tenant) to a namespace shared by both backends.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Any

from blake3 import blake3

from .ddl import MAX_IDENTIFIER_LENGTH, create_namespace_sql
from .errors import AlreadyExistsError, BackendUnavailableError, ErrorContext
from .types import GLOBAL_TABLES, Placement, QueryResult

if TYPE_CHECKING:
    from .remote import RemoteExecutor

logger = logging.getLogger(__name__)

_SAFE_TENANT = re.compile(r"[A-Za-z0-9_]+")


class TenantRouter:
    """
    Resolve placements and make sure tenant namespaces exist remotely.

    ``projects`` and ``deployments`` (and any table queried without a
    tenant) live in the global namespace; every other table lives in
    ``<prefix><tenant>``.
    """

    def __init__(
        self,
        remote: RemoteExecutor | None = None,
        *,
        prefix: str = "tenant_",
        global_namespace: str = "public",
        global_tables: frozenset[str] = GLOBAL_TABLES,
    ) -> None:
        self.remote = remote
        self.prefix = prefix
        self.global_namespace = global_namespace
        self.global_tables = global_tables
        self._ensured_namespaces: set[str] = set()
        self._ensure_lock = asyncio.Lock()

    def namespace_for(self, tenant: Any) -> str:
        tenant_str = str(tenant)
        candidate = f"{self.prefix}{tenant_str}"
        if _SAFE_TENANT.fullmatch(tenant_str) and len(candidate) <= MAX_IDENTIFIER_LENGTH:
            return candidate
        digest = blake3(tenant_str.encode("utf-8")).hexdigest()[:16]
        return f"{self.prefix}{digest}"

    def resolve(self, table: str, tenant: Any = None) -> Placement:
        if tenant is None or tenant == "" or table in self.global_tables:
            return Placement(self.global_namespace, True)
        return Placement(self.namespace_for(tenant), False)

    def is_ensured(self, namespace: str) -> bool:
        return namespace in self._ensured_namespaces

    def forget(self, namespace: str | None = None) -> None:
        if namespace is None:
            self._ensured_namespaces.clear()
        else:
            self._ensured_namespaces.discard(namespace)

    async def ensure_namespace(self, placement: Placement) -> QueryResult:
        """
        Idempotently create the placement's namespace in the remote backend.

        "Already exists" counts as success. Failures are returned, not
        raised, and are not memoised so the next call tries again.
        """
        if placement.is_global or placement.namespace in self._ensured_namespaces:
            return QueryResult()
        if self.remote is None or not self.remote.configured:
            return QueryResult.failure(
                BackendUnavailableError(context=ErrorContext(namespace=placement.namespace))
            )

        async with self._ensure_lock:
            if placement.namespace in self._ensured_namespaces:
                return QueryResult()
            result = await self.remote.execute_statement(
                create_namespace_sql(placement.namespace),
                context=ErrorContext(namespace=placement.namespace, operation="create_namespace"),
            )
            if result.ok or isinstance(result.error, AlreadyExistsError):
                self._ensured_namespaces.add(placement.namespace)
                return QueryResult()
            logger.warning("Could not ensure namespace %s: %s", placement.namespace, result.error)
            return result


__all__ = ["TenantRouter"]
