"""Maintenance operations: table initialization and JSON-to-SQL migration.

These run outside request handling (deploy scripts, the CLI).  Migration
reads every source file strictly before touching the database, then loads
every table into the SQL backend inside a single transaction, so a
malformed file or a failed insert leaves the database unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from rowstore.models.query import Row
from rowstore.storage.json_files import JsonTableRepository, load_table_file
from rowstore.storage.repositories import TableRepository
from rowstore.storage.sql import IMPORT_BATCH_SIZE, SqlTableRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InitResult:
    """Outcome of :func:`init_tables`."""

    created: list[str] = field(default_factory=list)
    existing: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MigrationResult:
    """Outcome of :func:`migrate_json_to_sql`.

    Attributes:
        source_dir: Directory the table files were read from.
        row_counts: Logical table name -> rows written, in migration order.
        truncated: Whether existing rows were deleted first.
    """

    source_dir: Path
    row_counts: dict[str, int]
    truncated: bool

    @property
    def total_rows(self) -> int:
        return sum(self.row_counts.values())


async def init_tables(repository: TableRepository, tables: Iterable[str]) -> InitResult:
    """Ensure each table exists on *repository*.

    Names are validated up front so that no table is touched when any name
    is invalid.
    """
    names = list(tables)
    for name in names:
        repository.storage_name(name)

    created: list[str] = []
    existing: list[str] = []
    for name in names:
        if await repository.ensure_table(name):
            created.append(name)
        else:
            existing.append(name)
    logger.info("Tables ready: %d created, %d existing", len(created), len(existing))
    return InitResult(created=created, existing=existing)


def discover_tables(source_dir: str | os.PathLike[str]) -> list[str]:
    """Logical names of the table files in *source_dir*."""
    return JsonTableRepository(source_dir).list_tables()


async def migrate_json_to_sql(
    source_dir: str | os.PathLike[str],
    target: SqlTableRepository,
    tables: Sequence[str] | None = None,
    *,
    truncate: bool = True,
    batch_size: int = IMPORT_BATCH_SIZE,
) -> MigrationResult:
    """Copy JSON table files into the SQL backend.

    Args:
        source_dir: Directory with ``table-<name>.json`` files.
        target: SQL repository to load into.
        tables: Logical tables to migrate.  Defaults to every table file
            found in *source_dir*.  Missing files migrate as empty tables.
        truncate: Delete existing rows in each target table first.
        batch_size: Rows per multi-row INSERT.

    Returns:
        MigrationResult with per-table row counts.

    Raises:
        TableFileError: If a source file exists but is malformed.  Nothing
            is written in that case.
    """
    source = JsonTableRepository(source_dir)
    names = list(tables) if tables else source.list_tables()
    if not names:
        logger.warning("No table files found in %s", source.data_dir)

    payload: dict[str, list[Row]] = {}
    for name in names:
        target.storage_name(name)
        payload[name] = await asyncio.to_thread(load_table_file, source.table_path(name))

    counts = await target.import_rows(payload, truncate=truncate, batch_size=batch_size)
    for name, count in counts.items():
        logger.info("Migrated %s: %d row(s)", name, count)
    return MigrationResult(source_dir=source.data_dir, row_counts=counts, truncated=truncate)
