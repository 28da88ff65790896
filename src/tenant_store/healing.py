"""
Self-healing retry policy for remote writes.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import SchemaDriftError, TenantStoreError, TypeMismatchError
from .identifiers import IdentifierPolicy
from .types import Method, QueryOptions, Record

HEALABLE_METHODS = frozenset({Method.INSERT, Method.UPDATE})


@dataclass(frozen=True)
class Repair:
    """A rewritten operation plus a short description for the logs."""

    options: QueryOptions
    description: str


class HealingPolicy:
    """
    Turn a failed insert/update into at most one repaired retry.

    - unknown column: the column is stripped from every payload row
    - type mismatch on the id: slug ids move to the name column (inserts get
      a generated numeric id) and slug id filters match on name instead

    ``heal`` returns None whenever it has nothing to change, so a retry is
    never an exact replay of the failed request.
    """

    def __init__(self, identifiers: IdentifierPolicy | None = None) -> None:
        self.identifiers = identifiers or IdentifierPolicy()

    def heal(self, error: TenantStoreError | None, options: QueryOptions) -> Repair | None:
        if options.method not in HEALABLE_METHODS:
            return None
        if isinstance(error, SchemaDriftError):
            return self._strip_column(error, options)
        if isinstance(error, TypeMismatchError):
            return self._relocate_identifier(options)
        return None

    def _strip_column(self, error: SchemaDriftError, options: QueryOptions) -> Repair | None:
        column = error.column
        if not column or not any(column in row for row in options.rows):
            return None
        rows: list[Record] = [{k: v for k, v in row.items() if k != column} for row in options.rows]
        data = rows if isinstance(options.data, list) else rows[0]
        return Repair(options.with_data(data), f"dropped unknown column '{column}'")

    def _relocate_identifier(self, options: QueryOptions) -> Repair | None:
        ids = self.identifiers
        repaired = options
        changes: list[str] = []

        assign_id = options.method is Method.INSERT
        relocated_rows = [ids.relocate_row(row, assign_id=assign_id) for row in options.rows]
        if any(row is not None for row in relocated_rows):
            rows = [new if new is not None else old for new, old in zip(relocated_rows, options.rows)]
            repaired = repaired.with_data(rows if isinstance(options.data, list) else rows[0])
            changes.append(f"moved '{ids.id_column}' into '{ids.name_column}'")

        if options.method is Method.UPDATE:
            where = ids.relocate_filter(options.where)
            if where is not None:
                repaired = repaired.with_where(where)
                changes.append(f"matched on '{ids.name_column}' instead of '{ids.id_column}'")

        if not changes:
            return None
        return Repair(repaired, "; ".join(changes))


__all__ = ["HEALABLE_METHODS", "Repair", "HealingPolicy"]
