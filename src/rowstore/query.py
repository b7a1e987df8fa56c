"""Row query semantics shared by every backend.

Both the JSON-file and SQL backends evaluate filters, ordering and column
projection here, in application memory, so a query returns the same rows in
the same order whichever engine stores the table.

Comparison rules:

* ``eq`` / ``neq`` use strict equality: no coercion between strings,
  numbers, booleans and null.  A column missing from a row is only equal to
  another missing column.
* ``lt`` compares numerically when both sides are numbers, chronologically
  when both sides parse as dates, and otherwise compares the stringified
  values lexicographically.
* Ordering applies the same three tiers as a general comparator.
"""

from __future__ import annotations

import functools
import json
import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from rowstore.models.query import (
    MISSING,
    Filter,
    FilterLike,
    FilterOp,
    JSONValue,
    OrderByLike,
    OrderBy,
    Row,
    coerce_filters,
    normalize_op,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_COLUMNS = "id"

_NUMERIC_TEXT = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


# ------------------------------------------------------------------
# Value helpers
# ------------------------------------------------------------------


def is_number(value: object) -> bool:
    """True for ints and floats; booleans are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_text(value: object) -> str:
    """Stringify a value for lexicographic comparison.

    Empty-ish values (missing, null, false, zero, empty string) become ``""``.
    """
    if value is MISSING or value is None or value is False:
        return ""
    if value is True:
        return "true"
    if is_number(value):
        if value == 0 or value != value:
            return ""
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def parse_date(value: object) -> datetime | None:
    """Parse a value as an ISO-8601 or RFC 2822 timestamp.

    Returns a timezone-aware datetime (naive input is taken as UTC), or None
    when the value is not a date.  Bare numbers are never dates.
    """
    text = to_text(value).strip()
    if not text or _NUMERIC_TEXT.fullmatch(text):
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def strict_equal(left: object, right: object) -> bool:
    """Equality without type coercion.

    ``1 == 1.0`` holds (both numbers) but ``1 == True`` and ``"1" == 1`` do
    not.  Lists and objects compare structurally.
    """
    if left is MISSING or right is MISSING:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and is_number(right):
        return left == right
    if left is None or right is None:
        return left is right
    if isinstance(left, str) or isinstance(right, str):
        return isinstance(left, str) and isinstance(right, str) and left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if left.keys() != right.keys():
            return False
        return all(strict_equal(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(strict_equal(a, b) for a, b in zip(left, right))
    return False


def _sign(delta: float) -> int:
    if delta < 0:
        return -1
    if delta > 0:
        return 1
    return 0


# ------------------------------------------------------------------
# Comparison
# ------------------------------------------------------------------


def compare_value(left: object, op: str, right: object) -> bool:
    """Evaluate ``left <op> right``.  Unknown operators never match."""
    op = normalize_op(op)
    if op == FilterOp.EQ:
        return strict_equal(left, right)
    if op == FilterOp.NEQ:
        return not strict_equal(left, right)
    if op == FilterOp.LT:
        if is_number(left) and is_number(right):
            return left < right
        left_date, right_date = parse_date(left), parse_date(right)
        if left_date is not None and right_date is not None:
            return left_date < right_date
        return to_text(left) < to_text(right)
    return False


def compare_for_order(left: object, right: object) -> int:
    """Three-way comparator used by apply_order (ascending sense)."""
    if strict_equal(left, right):
        return 0
    if is_number(left) and is_number(right):
        return _sign(left - right)
    left_date, right_date = parse_date(left), parse_date(right)
    if left_date is not None and right_date is not None:
        return _sign((left_date - right_date).total_seconds())
    left_text, right_text = to_text(left), to_text(right)
    left_key = (left_text.casefold(), left_text)
    right_key = (right_text.casefold(), right_text)
    if left_key < right_key:
        return -1
    if left_key > right_key:
        return 1
    return 0


# ------------------------------------------------------------------
# Filters, ordering, projection
# ------------------------------------------------------------------


def row_matches(row: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    """True when every active filter holds for ``row``."""
    for f in filters:
        if not f.is_active:
            continue
        if not compare_value(row.get(f.column, MISSING), f.op, f.value):
            return False
    return True


def apply_filters(rows: Iterable[Row], filters: Iterable[FilterLike] | None) -> list[Row]:
    """Keep the rows matching every filter.  Empty filters match everything."""
    normalized = coerce_filters(filters)
    return [row for row in rows if row_matches(row, normalized)]


def apply_order(rows: Iterable[Row], order_by: OrderByLike | None) -> list[Row]:
    """Return a new, stably sorted list.  The input is never mutated."""
    order = OrderBy.coerce(order_by)
    rows = list(rows)
    if order is None or not order.column:
        return rows
    column = order.column
    direction = 1 if order.ascending else -1
    # Ties compare as 0 in both directions and keep input order, so descending
    # is the exact reverse of ascending only when keys are distinct.

    def comparator(a: Row, b: Row) -> int:
        return direction * compare_for_order(a.get(column, MISSING), b.get(column, MISSING))

    return sorted(rows, key=functools.cmp_to_key(comparator))


def parse_columns(columns: str | Sequence[str] | None) -> list[str] | None:
    """Parse a projection spec.  ``None`` means "all columns"."""
    if columns is None:
        return None
    if isinstance(columns, str):
        value = columns.strip()
        if not value or value == "*":
            return None
        names = [c.strip() for c in value.split(",")]
    else:
        names = [str(c).strip() for c in columns]
    names = [c for c in names if c]
    return names or None


def pick_columns(row: Row, columns: str | Sequence[str] | None) -> Row:
    """Project ``row`` onto exactly ``columns``; absent keys become None."""
    selected = parse_columns(columns)
    if selected is None:
        return row
    return {column: row.get(column) for column in selected}


def select_rows(
    rows: Iterable[Row],
    *,
    filters: Iterable[FilterLike] | None = None,
    order_by: OrderByLike | None = None,
    columns: str | Sequence[str] | None = "*",
) -> list[Row]:
    """Filter, then order, then project."""
    filtered = apply_filters(rows, filters)
    ordered = apply_order(filtered, order_by)
    selected = parse_columns(columns)
    if selected is None:
        return ordered
    return [{column: row.get(column) for column in selected} for row in ordered]


# ------------------------------------------------------------------
# Mutation helpers
# ------------------------------------------------------------------


def normalize_rows(values: Any) -> list[Row]:
    """Accept one row or an iterable of rows; drop anything not a mapping."""
    if values is None:
        return []
    if isinstance(values, Mapping):
        return [dict(values)]
    if isinstance(values, (str, bytes)):
        return []
    try:
        entries = list(values)
    except TypeError:
        return []
    rows = [dict(entry) for entry in entries if isinstance(entry, Mapping)]
    if len(rows) != len(entries):
        logger.debug("Dropped %d non-object row(s)", len(entries) - len(rows))
    return rows


def normalize_patch(patch: Any) -> Row:
    return dict(patch) if isinstance(patch, Mapping) else {}


def parse_conflict_columns(on_conflict: str | Sequence[str] | None) -> list[str]:
    if on_conflict is None:
        return []
    if isinstance(on_conflict, str):
        parts = on_conflict.split(",")
    else:
        parts = [str(c) for c in on_conflict]
    return [p.strip() for p in parts if p.strip()]


def rows_conflict(existing: Mapping[str, Any], incoming: Mapping[str, Any], columns: Sequence[str]) -> bool:
    """True when every conflict column is present on both rows and equal."""
    return all(
        column in existing and column in incoming and strict_equal(existing[column], incoming[column])
        for column in columns
    )


def find_conflict(rows: Sequence[Mapping[str, Any]], incoming: Mapping[str, Any], columns: Sequence[str]) -> int:
    """Index of the first row that conflicts with ``incoming``, or -1.

    No conflict columns means nothing ever conflicts.
    """
    if not columns:
        return -1
    for index, existing in enumerate(rows):
        if rows_conflict(existing, incoming, columns):
            return index
    return -1


def merge_row(existing: Mapping[str, Any], patch: Mapping[str, Any]) -> Row:
    """Shallow merge; ``patch`` wins field by field."""
    return {**existing, **patch}


def first_or_none(rows: Sequence[Row]) -> Row | None:
    return rows[0] if rows else None


def encode_row(row: Row) -> str:
    """Serialize a row for storage in a single text column."""
    return json.dumps(row, ensure_ascii=False, separators=(",", ":"))


def decode_row(raw: str | bytes | None) -> Row:
    """Deserialize a stored row; anything that is not a JSON object becomes {}."""
    try:
        parsed: JSONValue = json.loads(raw or "{}")
    except (TypeError, ValueError):
        logger.warning("Undecodable row_json, treating as empty row")
        return {}
    if not isinstance(parsed, dict):
        logger.warning("row_json is not an object (%s), treating as empty row", type(parsed).__name__)
        return {}
    return parsed
