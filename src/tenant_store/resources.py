"""
CRUD over one generated resource table, as the generated HTTP handlers use it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .bookkeeping import utcnow_iso
from .errors import ErrorContext, RecordNotFoundError, RecordValidationError
from .types import Record, TableDefinition

if TYPE_CHECKING:
    from .store import TenantStore


class ResourceService:
    """
    Record-level operations on ``table`` inside one tenant's namespace.

    Required columns are taken from ``definition`` when given, otherwise
    from the table definition registered through the store.
    """

    def __init__(
        self,
        store: TenantStore,
        table: str,
        tenant: Any,
        definition: TableDefinition | None = None,
    ) -> None:
        self.store = store
        self.table = table
        self.tenant = tenant
        self._definition = definition

    @property
    def definition(self) -> TableDefinition | None:
        return self._definition or self.store.describe(self.table, self.tenant)

    def _id_where(self, record_id: Any) -> dict[str, Any]:
        ids = self.store.identifiers
        return {ids.id_column: ids.coerce(record_id)}

    def _not_found(self, record_id: Any) -> RecordNotFoundError:
        return RecordNotFoundError(
            self.table,
            record_id,
            context=ErrorContext(table=self.table, tenant=str(self.tenant)),
        )

    def validate(self, payload: Mapping[str, Any]) -> None:
        """
        Raises:
            RecordValidationError: a required column (other than the id) is missing
        """
        definition = self.definition
        if definition is None:
            return
        id_column = self.store.identifiers.id_column
        for column in definition.columns:
            if column.required and column.name != id_column and column.name not in payload:
                raise RecordValidationError(
                    f"Missing required field: {column.name}",
                    field_name=column.name,
                    context=ErrorContext(table=self.table, tenant=str(self.tenant), operation="create"),
                )

    async def list(self, **options: Any) -> list[Record]:
        return await self.store.query(self.table, options or None, self.tenant)

    async def get(self, record_id: Any) -> Record:
        rows = await self.store.query(self.table, {"where": self._id_where(record_id), "limit": 1}, self.tenant)
        if not rows:
            raise self._not_found(record_id)
        return rows[0]

    async def create(self, payload: Mapping[str, Any]) -> Record:
        self.validate(payload)
        rows = await self.store.query(self.table, {"method": "insert", "data": dict(payload)}, self.tenant)
        return rows[0] if rows else dict(payload)

    async def update(self, record_id: Any, payload: Mapping[str, Any]) -> Record:
        await self.get(record_id)
        data = {**payload, "updated_at": utcnow_iso()}
        rows = await self.store.query(
            self.table,
            {"method": "update", "where": self._id_where(record_id), "data": data},
            self.tenant,
        )
        if not rows:
            raise self._not_found(record_id)
        return rows[0]

    async def delete(self, record_id: Any) -> Record:
        """Delete one record and return it."""
        existing = await self.get(record_id)
        await self.store.query(self.table, {"method": "delete", "where": self._id_where(record_id)}, self.tenant)
        return existing


__all__ = ["ResourceService"]
