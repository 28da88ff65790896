"""
Identifier normalization policy.

Collaborators address records either by the numeric primary key or by a
human-readable slug such as ``project_1741392173495``. The policy below
is the single place that decides how the two map onto the ``id`` and
``name`` columns.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

from .config import IdentifierConfig
from .types import Filter, Record


class IdentifierPolicy:
    """
    Rules:
        - an ``int`` or an all-digit string is a numeric id; in filters the
          string form is coerced to ``int``
        - any other string in the id position is a slug and belongs in the
          name column
        - generated ids are millisecond timestamps, strictly increasing
          within the process
    """

    def __init__(
        self,
        config: IdentifierConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or IdentifierConfig()
        self._clock = clock
        self._last_id = 0
        self._lock = threading.Lock()

    @property
    def id_column(self) -> str:
        return self.config.id_column

    @property
    def name_column(self) -> str:
        return self.config.name_column

    @staticmethod
    def is_numeric(value: Any) -> bool:
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return True
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("-"):
                stripped = stripped[1:]
            return stripped.isdigit()
        return False

    def is_slug(self, value: Any) -> bool:
        return isinstance(value, str) and value != "" and not self.is_numeric(value)

    def coerce(self, value: Any) -> Any:
        if isinstance(value, str) and self.is_numeric(value):
            return int(value.strip())
        return value

    def next_id(self) -> int:
        with self._lock:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last_id:
                candidate = self._last_id + 1
            self._last_id = candidate
            return candidate

    def normalize_filter(self, where: Filter) -> Filter:
        """Coerce numeric-string ids in a filter to ``int``."""
        return [
            (column, self.coerce(value) if column == self.id_column else value)
            for column, value in where
        ]

    def relocate_filter(self, where: Filter) -> Filter | None:
        """
        Rewrite an id condition holding a slug into a name condition.

        Returns None when the filter has no slug id to relocate.
        """
        if not any(column == self.id_column and self.is_slug(value) for column, value in where):
            return None
        relocated: Filter = []
        for column, value in where:
            if column == self.id_column and self.is_slug(value):
                column = self.name_column
            if (column, value) not in relocated:
                relocated.append((column, value))
        return relocated

    def relocate_row(self, row: Record, *, assign_id: bool = True) -> Record | None:
        """
        Move a slug id into the name column.

        The name column keeps any value it already has. With ``assign_id``
        a fresh numeric id replaces the slug, otherwise the id is dropped.
        Returns None when the row has no slug id.
        """
        value = row.get(self.id_column)
        if not self.is_slug(value):
            return None
        relocated = dict(row)
        if not relocated.get(self.name_column):
            relocated[self.name_column] = value
        if assign_id:
            relocated[self.id_column] = self.next_id()
        else:
            relocated.pop(self.id_column, None)
        return relocated


__all__ = ["IdentifierPolicy"]
