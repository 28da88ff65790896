"""
SQL builders for namespace, table, column and constraint DDL.

Every identifier is validated before it is interpolated; the remote
``execute_sql`` endpoint receives plain statements.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .types import Column, Relationship, RelationshipKind, TableDefinition

MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_SQL_TYPE = re.compile(r"[A-Za-z][A-Za-z0-9_ ]*(\(\s*\d+\s*(,\s*\d+\s*)?\))?(\[\])?")

TYPE_ALIASES = {
    "string": "TEXT",
    "str": "TEXT",
    "text": "TEXT",
    "number": "NUMERIC",
    "float": "DOUBLE PRECISION",
    "decimal": "NUMERIC",
    "int": "INTEGER",
    "integer": "INTEGER",
    "bigint": "BIGINT",
    "serial": "SERIAL",
    "bool": "BOOLEAN",
    "boolean": "BOOLEAN",
    "date": "DATE",
    "datetime": "TIMESTAMPTZ",
    "timestamp": "TIMESTAMPTZ",
    "json": "JSONB",
    "object": "JSONB",
    "array": "JSONB",
    "uuid": "UUID",
}

# Additive columns the two global bookkeeping tables are expected to carry.
BOOKKEEPING_COLUMNS: tuple[tuple[str, str], ...] = (
    ("deployments", "local_url TEXT"),
    ("deployments", "platform TEXT DEFAULT 'netlify'"),
    ("deployments", "project_path TEXT"),
    ("deployments", "message TEXT"),
    ("projects", "deployment_platform TEXT DEFAULT 'netlify'"),
    ("projects", "prompt TEXT DEFAULT 'No prompt provided' NOT NULL"),
    ("projects", "name TEXT"),
)


def validate_identifier(name: str, kind: str = "identifier") -> str:
    if not isinstance(name, str) or not name:
        raise ValueError(f"{kind} cannot be empty")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(f"Invalid {kind}: {name!r} exceeds {MAX_IDENTIFIER_LENGTH} characters")
    if not _IDENTIFIER.fullmatch(name):
        raise ValueError(f"Invalid {kind}: {name!r}")
    return name


def sql_type(type_name: str) -> str:
    """Map a semantic type to a PostgreSQL type, passing well-formed SQL types through."""
    normalized = (type_name or "text").strip()
    alias = TYPE_ALIASES.get(normalized.lower())
    if alias:
        return alias
    if not _SQL_TYPE.fullmatch(normalized):
        raise ValueError(f"Invalid column type: {type_name!r}")
    return normalized.upper()


def qualified(namespace: str, table: str) -> str:
    return f"{validate_identifier(namespace, 'namespace')}.{validate_identifier(table, 'table name')}"


def column_sql(column: Column) -> str:
    sql = f"{validate_identifier(column.name, 'column name')} {sql_type(column.type)}"
    if column.primary:
        sql += " PRIMARY KEY"
    if column.unique:
        sql += " UNIQUE"
    if column.required:
        sql += " NOT NULL"
    return sql


def create_namespace_sql(namespace: str) -> str:
    return f"CREATE SCHEMA IF NOT EXISTS {validate_identifier(namespace, 'namespace')}"


def create_table_sql(namespace: str, table: str, columns: Iterable[Column]) -> str:
    definitions = ", ".join(column_sql(c) for c in columns)
    return f"CREATE TABLE IF NOT EXISTS {qualified(namespace, table)} ({definitions});"


def add_column_sql(namespace: str, table: str, column: Column) -> str:
    return f"ALTER TABLE {qualified(namespace, table)} ADD COLUMN IF NOT EXISTS {column_sql(column)};"


def bookkeeping_column_statements(namespace: str = "public") -> list[str]:
    return [
        f"ALTER TABLE {qualified(namespace, table)} ADD COLUMN IF NOT EXISTS {definition}"
        for table, definition in BOOKKEEPING_COLUMNS
    ]


def _constraint_name(namespace: str, source: str, target: str) -> str:
    return f"fk_{namespace}_{source}_{target}"[:MAX_IDENTIFIER_LENGTH]


def junction_table_name(source_table: str, target_table: str) -> str:
    return validate_identifier(f"{source_table}_{target_table}", "junction table name")


def junction_table_definition(relationship: Relationship) -> TableDefinition:
    """The auxiliary table materialising a many-to-many relationship."""
    source_key = f"{relationship.source_table}_id"
    target_key = f"{relationship.target_table}_id"
    return TableDefinition(
        name=junction_table_name(relationship.source_table, relationship.target_table),
        columns=[
            Column(source_key, "integer", frozenset({"required"})),
            Column(target_key, "integer", frozenset({"required"})),
        ],
    )


def relationship_sql(namespace: str, relationship: Relationship) -> str:
    source = qualified(namespace, relationship.source_table)
    target = qualified(namespace, relationship.target_table)
    source_column = validate_identifier(relationship.source_column, "column name")
    target_column = validate_identifier(relationship.target_column, "column name")
    constraint = _constraint_name(namespace, relationship.source_table, relationship.target_table)
    kind = relationship.kind

    if kind is RelationshipKind.MANY_TO_ONE:
        return (
            f"ALTER TABLE {source} ADD CONSTRAINT {constraint} "
            f"FOREIGN KEY ({source_column}) REFERENCES {target}({target_column});"
        )
    if kind is RelationshipKind.ONE_TO_ONE:
        unique = f"uq_{namespace}_{relationship.source_table}_{source_column}"[:MAX_IDENTIFIER_LENGTH]
        return (
            f"ALTER TABLE {source} ADD CONSTRAINT {constraint} "
            f"FOREIGN KEY ({source_column}) REFERENCES {target}({target_column}); "
            f"ALTER TABLE {source} ADD CONSTRAINT {unique} UNIQUE ({source_column});"
        )
    if kind is RelationshipKind.ONE_TO_MANY:
        reverse = _constraint_name(namespace, relationship.target_table, relationship.source_table)
        return (
            f"ALTER TABLE {target} ADD CONSTRAINT {reverse} "
            f"FOREIGN KEY ({target_column}) REFERENCES {source}({source_column});"
        )

    junction = junction_table_definition(relationship)
    source_key, target_key = (c.name for c in junction.columns)
    return (
        f"CREATE TABLE IF NOT EXISTS {qualified(namespace, junction.name)} ("
        f"{source_key} INTEGER NOT NULL REFERENCES {source}({source_column}), "
        f"{target_key} INTEGER NOT NULL REFERENCES {target}({target_column}), "
        f"PRIMARY KEY ({source_key}, {target_key}));"
    )


__all__ = [
    "MAX_IDENTIFIER_LENGTH",
    "TYPE_ALIASES",
    "BOOKKEEPING_COLUMNS",
    "validate_identifier",
    "sql_type",
    "qualified",
    "column_sql",
    "create_namespace_sql",
    "create_table_sql",
    "add_column_sql",
    "bookkeeping_column_statements",
    "junction_table_name",
    "junction_table_definition",
    "relationship_sql",
]
