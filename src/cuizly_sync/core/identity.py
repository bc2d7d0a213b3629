# src/cuizly_sync/core/identity.py
from __future__ import annotations

"""
identity.py

Purpose:
    Typed descriptors for "what" a cache slot holds and "which rows" a read
    or a realtime channel targets.

      - ResourceIdentity: (resource type, owner, optional sub-filter)
      - RowFilter: column / operator / value, validated at construction,
        rendered for PostgREST queries and realtime channel filters
      - Order: column + direction for select()
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from cuizly_sync.errors import InvalidFilterError

OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in")

_COLUMN_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


@dataclass(frozen=True)
class ResourceIdentity:
    resource_type: str               # e.g. "favorites", "notifications"
    owner_id: Optional[str]          # session user id; None while signed out
    sub_filter: Optional[str] = None  # e.g. restaurant id for ratings

    @property
    def key(self) -> str:
        parts = [self.resource_type, self.owner_id or "anonymous"]
        if self.sub_filter:
            parts.append(self.sub_filter)
        return ":".join(parts)


@dataclass(frozen=True)
class RowFilter:
    column: str
    operator: str
    value: Any

    def __post_init__(self) -> None:
        if not isinstance(self.column, str) or not _COLUMN_RE.match(self.column):
            raise InvalidFilterError(f"Invalid filter column: {self.column!r}")
        if self.operator not in OPERATORS:
            raise InvalidFilterError(
                f"Unsupported filter operator {self.operator!r}; expected one of {OPERATORS}"
            )
        if self.operator == "in":
            if isinstance(self.value, (str, bytes)) or not isinstance(self.value, Sequence):
                raise InvalidFilterError("'in' filters need a sequence of values")
            if not self.value:
                raise InvalidFilterError("'in' filters need at least one value")
            # freeze so the descriptor stays hashable
            object.__setattr__(self, "value", tuple(self.value))
        elif self.value is None or isinstance(self.value, (list, tuple, set, dict)):
            raise InvalidFilterError(
                f"Filter {self.column}.{self.operator} needs a scalar value, got {self.value!r}"
            )

    # Convenience constructors
    @classmethod
    def eq(cls, column: str, value: Any) -> "RowFilter":
        return cls(column, "eq", value)

    @classmethod
    def in_(cls, column: str, values: Sequence[Any]) -> "RowFilter":
        return cls(column, "in", values)

    def to_realtime(self) -> str:
        """Render as a realtime channel filter, e.g. ``user_id=eq.42``."""
        if self.operator == "in":
            return f"{self.column}=in.({','.join(str(v) for v in self.value)})"
        return f"{self.column}={self.operator}.{self.value}"

    def matches(self, row: Mapping[str, Any]) -> bool:
        """Evaluate the filter against a row client-side."""
        if self.column not in row:
            return False
        actual = row[self.column]
        if self.operator == "in":
            return actual in self.value or str(actual) in {str(v) for v in self.value}
        if self.operator == "eq":
            return actual == self.value or str(actual) == str(self.value)
        if self.operator == "neq":
            return not (actual == self.value or str(actual) == str(self.value))
        if actual is None:
            return False
        try:
            if self.operator == "gt":
                return actual > self.value
            if self.operator == "gte":
                return actual >= self.value
            if self.operator == "lt":
                return actual < self.value
            return actual <= self.value
        except TypeError:
            return False


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False

    def __post_init__(self) -> None:
        if not _COLUMN_RE.match(self.column):
            raise InvalidFilterError(f"Invalid order column: {self.column!r}")


def matches_all(filters: Sequence[RowFilter], row: Mapping[str, Any]) -> bool:
    return all(f.matches(row) for f in filters)
