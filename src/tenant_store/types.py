"""
Value types shared by the router, executors and facade.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Literal

from .errors import TenantStoreError, UnsupportedOperationError

Record = dict[str, Any]
Filter = list[tuple[str, Any]]

BackendName = Literal["remote", "fallback"]

GLOBAL_TABLES = frozenset({"projects", "deployments"})


class Method(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: Method | str | None) -> Method:
        if value is None:
            return cls.SELECT
        if isinstance(value, Method):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnsupportedOperationError(operation=str(value)) from None


@dataclass(frozen=True)
class OrderBy:
    column: str
    descending: bool = False

    @classmethod
    def parse(cls, value: OrderBy | Mapping[str, str] | str | None) -> OrderBy | None:
        """Accept ``{"created_at": "desc"}``, ``"created_at"`` or an instance."""
        if value is None or isinstance(value, OrderBy):
            return value
        if isinstance(value, str):
            return cls(value)
        if not value:
            return None
        column, direction = next(iter(value.items()))
        return cls(column, str(direction).lower() == "desc")

    @property
    def direction(self) -> str:
        return "desc" if self.descending else "asc"


def build_filter(where: Mapping[str, Any] | Iterable[tuple[str, Any]] | None) -> Filter:
    if not where:
        return []
    if isinstance(where, Mapping):
        return list(where.items())
    return [(column, value) for column, value in where]


@dataclass
class QueryOptions:
    """A single logical operation against one table."""

    method: Method = Method.SELECT
    where: Filter = field(default_factory=list)
    data: Record | list[Record] | None = None
    order_by: OrderBy | None = None
    limit: int | None = None
    offset: int | None = None

    @classmethod
    def coerce(cls, options: QueryOptions | Mapping[str, Any] | None) -> QueryOptions:
        """
        Build options from an instance or the collaborator's plain dict.

        Raises:
            UnsupportedOperationError: the method is not select/insert/update/delete
        """
        if options is None:
            return cls()
        if isinstance(options, QueryOptions):
            return replace(options, method=Method.parse(options.method), where=build_filter(options.where))

        data = options.get("data")
        if isinstance(data, Mapping):
            data = dict(data)
        elif isinstance(data, list):
            data = [dict(row) for row in data]
        return cls(
            method=Method.parse(options.get("method")),
            where=build_filter(options.get("where")),
            data=data,
            order_by=OrderBy.parse(options.get("order_by", options.get("orderBy"))),
            limit=options.get("limit") or None,
            offset=options.get("offset") or None,
        )

    @property
    def where_dict(self) -> Record:
        return dict(self.where)

    @property
    def rows(self) -> list[Record]:
        """The insert/update payload as a list of rows."""
        if self.data is None:
            return []
        if isinstance(self.data, list):
            return self.data
        return [self.data]

    def with_data(self, data: Record | list[Record] | None) -> QueryOptions:
        return replace(self, data=data)

    def with_where(self, where: Filter) -> QueryOptions:
        return replace(self, where=list(where))


@dataclass(frozen=True)
class Placement:
    """Physical location of a table: remote schema and fallback partition."""

    namespace: str
    is_global: bool


@dataclass
class QueryResult:
    """Outcome of one operation on one backend."""

    rows: list[Record] = field(default_factory=list)
    error: TenantStoreError | None = None
    backend: BackendName = "remote"
    healed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: TenantStoreError, backend: BackendName = "remote") -> QueryResult:
        return cls(rows=[], error=error, backend=backend)


# =============================================================================
# Schema definitions
# =============================================================================


class ColumnConstraint(str, Enum):
    PRIMARY = "primary"
    UNIQUE = "unique"
    REQUIRED = "required"

    @classmethod
    def parse(cls, value: ColumnConstraint | str) -> ColumnConstraint:
        if isinstance(value, ColumnConstraint):
            return value
        normalized = str(value).strip().lower().replace("_", " ")
        aliases = {
            "primary": cls.PRIMARY,
            "primary key": cls.PRIMARY,
            "pk": cls.PRIMARY,
            "unique": cls.UNIQUE,
            "required": cls.REQUIRED,
            "not null": cls.REQUIRED,
            "notnull": cls.REQUIRED,
        }
        if normalized not in aliases:
            raise ValueError(f"Unknown column constraint: {value!r}")
        return aliases[normalized]


@dataclass
class Column:
    name: str
    type: str = "text"
    constraints: frozenset[ColumnConstraint] = frozenset()

    def __post_init__(self):
        self.constraints = frozenset(ColumnConstraint.parse(c) for c in self.constraints)

    @classmethod
    def from_dict(cls, data: Column | Mapping[str, Any]) -> Column:
        if isinstance(data, Column):
            return data
        constraints = data.get("constraints") or ()
        if isinstance(constraints, str):
            constraints = [constraints]
        return cls(
            name=data["name"],
            type=data.get("type") or "text",
            constraints=frozenset(constraints),
        )

    @property
    def primary(self) -> bool:
        return ColumnConstraint.PRIMARY in self.constraints

    @property
    def unique(self) -> bool:
        return ColumnConstraint.UNIQUE in self.constraints

    @property
    def required(self) -> bool:
        return ColumnConstraint.REQUIRED in self.constraints

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "constraints": sorted(c.value for c in self.constraints),
        }


class RelationshipKind(str, Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"

    @classmethod
    def parse(cls, value: RelationshipKind | str) -> RelationshipKind:
        if isinstance(value, RelationshipKind):
            return value
        cleaned = "".join(ch for ch in str(value).lower() if ch.isalnum() or ch in "-_ ").strip()
        cleaned = cleaned.replace("_", "-").replace(" ", "-")
        try:
            return cls(cleaned)
        except ValueError:
            raise UnsupportedOperationError(
                f"Unsupported relationship type: {value}", operation="create_relationship"
            ) from None


@dataclass(frozen=True)
class Relationship:
    source_table: str
    source_column: str
    target_table: str
    target_column: str
    kind: RelationshipKind

    @classmethod
    def from_dict(cls, source_table: str, data: Mapping[str, Any]) -> Relationship:
        return cls(
            source_table=source_table,
            source_column=data.get("sourceColumn") or data.get("source_column") or "id",
            target_table=data.get("targetTable") or data["target_table"],
            target_column=data.get("targetColumn") or data.get("target_column") or "id",
            kind=RelationshipKind.parse(data.get("type") or data["kind"]),
        )


@dataclass
class TableDefinition:
    name: str
    columns: list[Column] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TableDefinition:
        name = data["name"]
        return cls(
            name=name,
            columns=[Column.from_dict(c) for c in data.get("columns") or []],
            relationships=[Relationship.from_dict(name, r) for r in data.get("relationships") or []],
        )

    def column(self, name: str) -> Column | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def add_column(self, column: Column) -> bool:
        """Append ``column`` unless a column of that name exists. Returns True if added."""
        if self.column(column.name) is not None:
            return False
        self.columns.append(column)
        return True


@dataclass
class SchemaResult:
    """Non-throwing outcome of a schema-management operation."""

    success: bool
    namespace: str
    message: str = ""
    is_fallback: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "namespace": self.namespace,
            "isFallback": self.is_fallback,
            "inMemory": self.is_fallback,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


__all__ = [
    "Record",
    "Filter",
    "BackendName",
    "GLOBAL_TABLES",
    "Method",
    "OrderBy",
    "build_filter",
    "QueryOptions",
    "Placement",
    "QueryResult",
    "ColumnConstraint",
    "Column",
    "RelationshipKind",
    "Relationship",
    "TableDefinition",
    "SchemaResult",
]
