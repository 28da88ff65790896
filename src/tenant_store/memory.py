"""
In-process fallback store.

Records are kept per (namespace, table) partition in insertion order. The
semantics mirror the remote executor so the facade can substitute one for
the other without the caller noticing.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .ddl import junction_table_definition
from .types import (
    Column,
    Filter,
    Method,
    OrderBy,
    Placement,
    QueryOptions,
    QueryResult,
    Record,
    Relationship,
    TableDefinition,
)

DEFAULT_PAGE_SIZE = 10


def _as_number(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float, Decimal)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None
    if isinstance(value, str) and value.strip():
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def loosely_equal(left: Any, right: Any) -> bool:
    """
    Coercive equality used for ``where`` matching.

    ``1 == "1"``, ``True == 1`` and ``"2.0" == 2`` hold; ``None`` only
    matches ``None``; temporal values compare by ISO form.
    """
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) and isinstance(right, bool):
        return left is right
    if left == right and type(left) is type(right):
        return True
    if isinstance(left, (datetime, date)):
        left = left.isoformat()
    if isinstance(right, (datetime, date)):
        right = right.isoformat()
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    left_number, right_number = _as_number(left), _as_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    if isinstance(left, str) or isinstance(right, str):
        return str(left) == str(right)
    return left == right


def matches(record: Record, where: Filter) -> bool:
    return all(loosely_equal(record.get(column), value) for column, value in where)


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float, Decimal)):
        return (0, value)
    if isinstance(value, (datetime, date)):
        return (1, value.isoformat())
    if isinstance(value, str):
        return (1, value)
    return (2, json.dumps(value, sort_keys=True, default=str))


def order_rows(rows: list[Record], order_by: OrderBy | None) -> list[Record]:
    """Stable sort; ties keep insertion order, NULLs last ascending and first descending."""
    if order_by is None:
        return rows
    present = [r for r in rows if r.get(order_by.column) is not None]
    missing = [r for r in rows if r.get(order_by.column) is None]
    present.sort(key=lambda r: _sort_key(r[order_by.column]), reverse=order_by.descending)
    return missing + present if order_by.descending else present + missing


def page_rows(
    rows: list[Record],
    limit: int | None,
    offset: int | None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> list[Record]:
    if offset:
        return rows[offset : offset + (limit or default_page_size)]
    if limit:
        return rows[:limit]
    return rows


def _numeric_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


@dataclass
class Partition:
    """Records and schema of one table in one namespace."""

    definition: TableDefinition
    records: list[Record] = field(default_factory=list)
    next_id: int = 1

    def allocate_id(self) -> int:
        existing = [i for i in (_numeric_id(r.get("id")) for r in self.records) if i is not None]
        candidate = max(self.next_id, max(existing, default=0) + 1)
        self.next_id = candidate + 1
        return candidate

    def observe_id(self, value: Any) -> None:
        numeric = _numeric_id(value)
        if numeric is not None and numeric >= self.next_id:
            self.next_id = numeric + 1


class FallbackStore:
    """
    Ordered in-memory record store keyed by (namespace, table).

    Every operation is synchronous and total: reads, updates and deletes
    against a missing partition return ``[]``; inserts create it lazily.
    A single re-entrant lock guards all state so the store can be shared
    across worker threads as well as coroutines.
    """

    def __init__(self, *, default_page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.default_page_size = default_page_size
        self._namespaces: dict[str, dict[str, Partition]] = {}
        self._relationships: dict[str, list[Relationship]] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Partition management
    # ------------------------------------------------------------------

    def _partition(self, namespace: str, table: str) -> Partition | None:
        return self._namespaces.get(namespace, {}).get(table)

    def _ensure_partition(self, namespace: str, table: str) -> Partition:
        tables = self._namespaces.setdefault(namespace, {})
        partition = tables.get(table)
        if partition is None:
            partition = tables[table] = Partition(TableDefinition(table))
        return partition

    def namespaces(self) -> list[str]:
        with self._lock:
            return list(self._namespaces)

    def tables(self, namespace: str) -> list[str]:
        with self._lock:
            return list(self._namespaces.get(namespace, {}))

    def describe(self, namespace: str, table: str) -> TableDefinition | None:
        with self._lock:
            partition = self._partition(namespace, table)
            if partition is None:
                return None
            definition = partition.definition
            return TableDefinition(definition.name, list(definition.columns), list(definition.relationships))

    def relationships(self, namespace: str) -> list[Relationship]:
        with self._lock:
            return list(self._relationships.get(namespace, []))

    def create_table(self, namespace: str, definition: TableDefinition) -> None:
        """Register a table definition; existing records are kept and new columns merged in."""
        with self._lock:
            partition = self._ensure_partition(namespace, definition.name)
            for column in definition.columns:
                partition.definition.add_column(column)
            for relationship in definition.relationships:
                if relationship not in partition.definition.relationships:
                    partition.definition.relationships.append(relationship)

    def add_column(self, namespace: str, table: str, column: Column) -> bool:
        with self._lock:
            partition = self._partition(namespace, table)
            if partition is None:
                return False
            return partition.definition.add_column(column)

    def add_relationship(self, namespace: str, relationship: Relationship) -> None:
        with self._lock:
            known = self._relationships.setdefault(namespace, [])
            if relationship not in known:
                known.append(relationship)
            source = self._ensure_partition(namespace, relationship.source_table)
            if relationship not in source.definition.relationships:
                source.definition.relationships.append(relationship)
            if relationship.kind.value == "many-to-many":
                self.create_table(namespace, junction_table_definition(relationship))

    def clear(self) -> None:
        with self._lock:
            self._namespaces.clear()
            self._relationships.clear()

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    def select(
        self,
        namespace: str,
        table: str,
        where: Filter | None = None,
        *,
        order_by: OrderBy | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]:
        with self._lock:
            partition = self._partition(namespace, table)
            if partition is None:
                return []
            rows = [dict(r) for r in partition.records if matches(r, where or [])]
        rows = order_rows(rows, order_by)
        return page_rows(rows, limit, offset, self.default_page_size)

    def insert(self, namespace: str, table: str, data: Record | Iterable[Record]) -> list[Record]:
        payload = [data] if isinstance(data, dict) else list(data)
        inserted: list[Record] = []
        with self._lock:
            partition = self._ensure_partition(namespace, table)
            for row in payload:
                record = dict(row)
                if record.get("id") is None or record.get("id") == "":
                    record["id"] = partition.allocate_id()
                else:
                    partition.observe_id(record["id"])
                partition.records.append(record)
                inserted.append(dict(record))
        return inserted

    def update(self, namespace: str, table: str, where: Filter | None, data: Record) -> list[Record]:
        updated: list[Record] = []
        with self._lock:
            partition = self._partition(namespace, table)
            if partition is None:
                return []
            for index, record in enumerate(partition.records):
                if matches(record, where or []):
                    merged = {**record, **data}
                    partition.records[index] = merged
                    partition.observe_id(merged.get("id"))
                    updated.append(dict(merged))
        return updated

    def delete(self, namespace: str, table: str, where: Filter | None) -> list[Record]:
        """Remove matching records. An empty filter deletes nothing."""
        if not where:
            return []
        with self._lock:
            partition = self._partition(namespace, table)
            if partition is None:
                return []
            kept: list[Record] = []
            deleted: list[Record] = []
            for record in partition.records:
                (deleted if matches(record, where) else kept).append(record)
            partition.records = kept
        return [dict(r) for r in deleted]

    def execute(self, placement: Placement, table: str, options: QueryOptions) -> QueryResult:
        """Run one logical operation, mirroring ``RemoteExecutor.execute``."""
        namespace = placement.namespace
        method = options.method
        if method is Method.SELECT:
            rows = self.select(
                namespace,
                table,
                options.where,
                order_by=options.order_by,
                limit=options.limit,
                offset=options.offset,
            )
        elif method is Method.INSERT:
            rows = self.insert(namespace, table, options.rows)
        elif method is Method.UPDATE:
            payload: Record = {}
            for row in options.rows:
                payload.update(row)
            rows = self.update(namespace, table, options.where, payload)
        else:
            rows = self.delete(namespace, table, options.where)
        return QueryResult(rows=rows, backend="fallback")


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "loosely_equal",
    "matches",
    "order_rows",
    "page_rows",
    "Partition",
    "FallbackStore",
]
