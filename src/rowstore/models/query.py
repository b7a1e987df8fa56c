"""Query models for rowstore.

Row and JSONValue describe the schema-less data stored in a table.
Filter and OrderBy describe a read or a mutation's row selection.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

JSONValue = Union[str, int, float, bool, None, list["JSONValue"], dict[str, "JSONValue"]]
Row = dict[str, JSONValue]

# Accepted wherever a filter or ordering is taken as input.
FilterLike = Union["Filter", Mapping[str, Any]]
OrderByLike = Union["OrderBy", Mapping[str, Any]]


class _Missing(enum.Enum):
    """Marker for a column absent from a row (distinct from an explicit null)."""

    MISSING = "missing"

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing.MISSING


class FilterOp(str, enum.Enum):
    """Supported filter operators."""

    EQ = "eq"
    NEQ = "neq"
    LT = "lt"


def normalize_op(op: object) -> str:
    """Lower-cased operator name; accepts FilterOp members and plain strings."""
    if isinstance(op, FilterOp):
        return op.value
    return str(op or "").strip().lower()


@dataclass(frozen=True)
class Filter:
    """A single column predicate. A list of filters is ANDed.

    ``op`` is kept as a plain string so that unknown operators reach the
    comparison layer (where they never match) instead of failing here.

    Example::

        Filter("views", "lt", 100)
    """

    column: str
    op: str
    value: JSONValue = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "column", str(self.column or "").strip())
        object.__setattr__(self, "op", normalize_op(self.op))

    @property
    def is_active(self) -> bool:
        """False when op or column is empty; inactive filters match everything."""
        return bool(self.op) and bool(self.column)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Filter:
        """Create a Filter from a ``{"column", "op", "value"}`` mapping."""
        return cls(
            column=d.get("column") or "",
            op=d.get("op") or "",
            value=d.get("value"),
        )

    @classmethod
    def coerce(cls, value: FilterLike) -> Filter:
        if isinstance(value, Filter):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        raise TypeError(f"Expected Filter or mapping, got {type(value).__name__}")

    def to_dict(self) -> dict[str, JSONValue]:
        return {"column": self.column, "op": self.op, "value": self.value}


@dataclass(frozen=True)
class OrderBy:
    """Sort specification for list_rows."""

    column: str
    ascending: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "column", str(self.column or "").strip())
        object.__setattr__(self, "ascending", bool(self.ascending))

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> OrderBy:
        return cls(column=d.get("column") or "", ascending=d.get("ascending", True))

    @classmethod
    def coerce(cls, value: OrderByLike | None) -> OrderBy | None:
        if value is None or isinstance(value, OrderBy):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        raise TypeError(f"Expected OrderBy or mapping, got {type(value).__name__}")


def coerce_filters(filters: Iterable[FilterLike] | None) -> list[Filter]:
    """Normalize a filter list; None means no filters."""
    if not filters:
        return []
    return [Filter.coerce(f) for f in filters]
