"""JSON-file implementation of the table repository.

Each logical table is one pretty-printed document ``table-<name>.json``
holding ``{"rows": [...]}``.  Mutations hold the table's entry in a
:class:`LockRegistry` for their whole read-modify-write; reads take no lock.

The lock is process-local: two processes sharing one data directory can
still race.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from rowstore.exceptions import InvalidTableNameError, TableFileError
from rowstore.models.query import FilterLike, OrderByLike, Row, coerce_filters
from rowstore.query import (
    find_conflict,
    first_or_none,
    merge_row,
    normalize_patch,
    normalize_rows,
    parse_conflict_columns,
    row_matches,
    select_rows,
)
from rowstore.storage.locks import LockRegistry
from rowstore.storage.repositories import TableRepository

logger = logging.getLogger(__name__)

TABLE_FILE_PREFIX = "table-"
TABLE_FILE_SUFFIX = ".json"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]")

# Shared by every repository that is not given its own registry.
_DEFAULT_LOCKS = LockRegistry()


def safe_table_name(table: object) -> str:
    """Trim and lower-case a table name, which must then be ``[a-z0-9_-]+``.

    Raises:
        InvalidTableNameError: If the name is empty or has other characters.
    """
    name = str(table or "").strip().lower()
    if not name or _UNSAFE_CHARS.search(name):
        raise InvalidTableNameError(table)
    return name


def load_table_file(path: str | os.PathLike[str]) -> list[Row]:
    """Load the rows of a table file, rejecting malformed content.

    A missing file is an empty table.

    Raises:
        TableFileError: If the file is not JSON or has no ``rows`` list.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    try:
        parsed = json.loads(raw.lstrip("\ufeff"))
    except ValueError as e:
        raise TableFileError(path, f"invalid JSON ({e})") from e
    rows = parsed.get("rows") if isinstance(parsed, dict) else None
    if not isinstance(rows, list):
        raise TableFileError(path, "no rows list")
    return [row for row in rows if isinstance(row, dict)]


def read_table_file(path: str | os.PathLike[str]) -> list[Row]:
    """Load the rows of a table file for the backend's own reads.

    Malformed content is treated as an empty table (logged); other I/O
    errors propagate.
    """
    try:
        return load_table_file(path)
    except TableFileError as e:
        logger.warning("%s, reading as empty", e)
        return []


def write_table_file(path: str | os.PathLike[str], rows: list[Row]) -> None:
    """Persist rows atomically: write a sibling temp file, then replace."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps({"rows": rows}, indent=2, ensure_ascii=False)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _table_file_is_valid(path: Path) -> bool:
    try:
        parsed = json.loads(path.read_text(encoding="utf-8").lstrip("\ufeff"))
    except FileNotFoundError:
        return False
    except ValueError:
        return False
    return isinstance(parsed, dict)


class JsonTableRepository(TableRepository):
    """Table storage on the local filesystem, no database server required.

    Args:
        data_dir: Directory holding the table files.  Created on first write.
        locks: Lock registry to serialize mutations.  Defaults to the
            process-wide registry, so every repository in the process
            queues writes to the same file behind one lock.
    """

    name = "json"

    def __init__(self, data_dir: str | os.PathLike[str] = "data", *, locks: LockRegistry | None = None) -> None:
        self._data_dir = Path(data_dir)
        self._locks = locks if locks is not None else _DEFAULT_LOCKS

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def locks(self) -> LockRegistry:
        return self._locks

    def table_path(self, table: str) -> Path:
        """Resolve a logical table name to its file path."""
        return self._resolve(table)[1]

    def _resolve(self, table: str) -> tuple[str, Path]:
        """Return the lock key (absolute file path) and the path of *table*."""
        name = safe_table_name(table)
        path = self._data_dir / f"{TABLE_FILE_PREFIX}{name}{TABLE_FILE_SUFFIX}"
        return str(path.absolute()), path

    def storage_name(self, table: str) -> str:
        return safe_table_name(table)

    def list_tables(self) -> list[str]:
        """Names of the tables that currently have a file, sorted."""
        if not self._data_dir.is_dir():
            return []
        names = []
        for entry in self._data_dir.glob(f"{TABLE_FILE_PREFIX}*{TABLE_FILE_SUFFIX}"):
            name = entry.name[len(TABLE_FILE_PREFIX):-len(TABLE_FILE_SUFFIX)]
            if name and not _UNSAFE_CHARS.search(name):
                names.append(name)
        return sorted(names)

    # ------------------------------------------------------------------
    # Unlocked I/O
    # ------------------------------------------------------------------

    async def _read_rows(self, path: Path) -> list[Row]:
        return await asyncio.to_thread(read_table_file, path)

    async def _write_rows(self, path: Path, rows: list[Row]) -> None:
        await asyncio.to_thread(write_table_file, path, rows)

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def list_rows(
        self,
        table: str,
        *,
        filters: Iterable[FilterLike] | None = None,
        order_by: OrderByLike | None = None,
        columns: str | Sequence[str] | None = "*",
        single: bool = False,
    ) -> list[Row] | Row | None:
        path = self.table_path(table)
        rows = await self._read_rows(path)
        selected = select_rows(rows, filters=filters, order_by=order_by, columns=columns)
        if single:
            return first_or_none(selected)
        return selected

    async def insert_rows(self, table: str, values: Any) -> list[Row]:
        key, path = self._resolve(table)
        inserts = normalize_rows(values)
        async with self._locks.acquire(key):
            rows = await self._read_rows(path)
            await self._write_rows(path, rows + inserts)
        logger.debug("Inserted %d row(s) into %s", len(inserts), path.name)
        return inserts

    async def upsert_rows(
        self, table: str, values: Any, on_conflict: str | Sequence[str] | None = "id"
    ) -> list[Row]:
        key, path = self._resolve(table)
        incoming_rows = normalize_rows(values)
        conflict_columns = parse_conflict_columns(on_conflict)
        changed: list[Row] = []
        async with self._locks.acquire(key):
            rows = await self._read_rows(path)
            for incoming in incoming_rows:
                index = find_conflict(rows, incoming, conflict_columns)
                if index >= 0:
                    rows[index] = merge_row(rows[index], incoming)
                    changed.append(rows[index])
                else:
                    rows.append(incoming)
                    changed.append(incoming)
            await self._write_rows(path, rows)
        logger.debug("Upserted %d row(s) into %s", len(changed), path.name)
        return changed

    async def update_rows(
        self, table: str, patch: Any, filters: Iterable[FilterLike] | None = None
    ) -> list[Row]:
        key, path = self._resolve(table)
        normalized_patch = normalize_patch(patch)
        normalized_filters = coerce_filters(filters)
        updated: list[Row] = []
        async with self._locks.acquire(key):
            rows = await self._read_rows(path)
            for index, row in enumerate(rows):
                if row_matches(row, normalized_filters):
                    rows[index] = merge_row(row, normalized_patch)
                    updated.append(rows[index])
            await self._write_rows(path, rows)
        logger.debug("Updated %d row(s) in %s", len(updated), path.name)
        return updated

    async def delete_rows(self, table: str, filters: Iterable[FilterLike] | None = None) -> list[Row]:
        key, path = self._resolve(table)
        normalized_filters = coerce_filters(filters)
        async with self._locks.acquire(key):
            rows = await self._read_rows(path)
            removed: list[Row] = []
            remaining: list[Row] = []
            for row in rows:
                (removed if row_matches(row, normalized_filters) else remaining).append(row)
            await self._write_rows(path, remaining)
        logger.debug("Deleted %d row(s) from %s", len(removed), path.name)
        return removed

    async def ensure_table(self, table: str) -> bool:
        """Create an empty table file if missing or malformed."""
        key, path = self._resolve(table)
        async with self._locks.acquire(key):
            if await asyncio.to_thread(_table_file_is_valid, path):
                return False
            await self._write_rows(path, [])
        logger.info("Created table file %s", path)
        return True

    def __repr__(self) -> str:
        return f"JsonTableRepository(data_dir='{self._data_dir}')"
