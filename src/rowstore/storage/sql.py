"""SQL implementation of the table repository.

Uses SQLAlchemy 2.0 asyncio Core statements against one physical table per
logical table (see schema.py).  Reads fetch the whole table ordered by
primary key and apply :mod:`rowstore.query` in memory, so results match the
JSON-file backend exactly.  Mutations lock the table's rows with
``SELECT ... FOR UPDATE`` inside a transaction, which makes them safe across
processes; any error rolls the transaction back and propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import MetaData, Table, delete, insert, inspect, select, update
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.schema import CreateTable

from rowstore.exceptions import StoreClosedError
from rowstore.models.query import FilterLike, OrderByLike, Row, coerce_filters
from rowstore.query import (
    decode_row,
    encode_row,
    find_conflict,
    first_or_none,
    merge_row,
    normalize_patch,
    normalize_rows,
    parse_conflict_columns,
    row_matches,
    select_rows,
)
from rowstore.storage.engine import DEFAULT_POOL_SIZE, WRITE_OPTION, create_store_engine
from rowstore.storage.locks import SingleFlight
from rowstore.storage.repositories import TableRepository
from rowstore.storage.schema import (
    DEFAULT_TABLE_PREFIX,
    physical_table_name,
    row_table,
    sanitize_identifier,
)

logger = logging.getLogger(__name__)

IMPORT_BATCH_SIZE = 200


@dataclass
class StoredRow:
    """A decoded row paired with its primary key."""

    pk: int
    row: Row


class SqlTableRepository(TableRepository):
    """Table storage on a relational server.

    Args:
        engine: Async engine.  See :func:`create_store_engine`.
        table_prefix: Prefix for physical table names.
        owns_engine: Dispose the engine on :meth:`close`.
    """

    name = "sql"

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        table_prefix: str = DEFAULT_TABLE_PREFIX,
        owns_engine: bool = True,
    ) -> None:
        self._engine = engine
        self._write_engine = engine.execution_options(**{WRITE_OPTION: True})
        self._prefix = sanitize_identifier(table_prefix, DEFAULT_TABLE_PREFIX)
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}
        self._ready: SingleFlight[str, bool] = SingleFlight()
        self._owns_engine = owns_engine
        self._closed = False

    @classmethod
    def open(
        cls,
        db_path: str | None = None,
        *,
        url: str | URL | None = None,
        table_prefix: str = DEFAULT_TABLE_PREFIX,
        pool_size: int = DEFAULT_POOL_SIZE,
    ) -> SqlTableRepository:
        """Create a repository with its own engine."""
        engine = create_store_engine(db_path, url=url, pool_size=pool_size)
        return cls(engine, table_prefix=table_prefix, owns_engine=True)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def table_prefix(self) -> str:
        return self._prefix

    def physical_name(self, table: str) -> str:
        """Physical table name for a logical table."""
        return physical_table_name(table, self._prefix)

    def storage_name(self, table: str) -> str:
        return self.physical_name(table)

    # ------------------------------------------------------------------
    # Table readiness
    # ------------------------------------------------------------------

    def _table(self, table: str) -> Table:
        if self._closed:
            raise StoreClosedError()
        name = self.physical_name(table)
        table_obj = self._tables.get(name)
        if table_obj is None:
            table_obj = self._tables[name] = row_table(name, self._metadata)
        return table_obj

    async def _create_table(self, table_obj: Table) -> bool:
        async with self._write_engine.begin() as conn:
            exists = await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(table_obj.name))
            await conn.execute(CreateTable(table_obj, if_not_exists=True))
        if not exists:
            logger.info("Created table %s", table_obj.name)
        else:
            logger.debug("Table %s ready", table_obj.name)
        return not exists

    async def _ready_table(self, table: str) -> Table:
        """Resolve *table* and run CREATE TABLE IF NOT EXISTS once per name."""
        table_obj = self._table(table)
        await self._ready.run(table_obj.name, lambda: self._create_table(table_obj))
        return table_obj

    async def ensure_table(self, table: str) -> bool:
        table_obj = self._table(table)
        already_ready = table_obj.name in self._ready
        created = await self._ready.run(table_obj.name, lambda: self._create_table(table_obj))
        return created and not already_ready

    async def _fetch(self, conn: AsyncConnection, table_obj: Table, *, for_update: bool = False) -> list[StoredRow]:
        stmt = select(table_obj.c.pk, table_obj.c.row_json).order_by(table_obj.c.pk.asc())
        if for_update:
            stmt = stmt.with_for_update()
        result = await conn.execute(stmt)
        return [StoredRow(pk=int(pk), row=decode_row(raw)) for pk, raw in result.all()]

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
        table_obj = await self._ready_table(table)
        async with self._engine.connect() as conn:
            stored = await self._fetch(conn, table_obj)
        selected = select_rows(
            (entry.row for entry in stored),
            filters=filters,
            order_by=order_by,
            columns=columns,
        )
        if single:
            return first_or_none(selected)
        return selected

    async def insert_rows(self, table: str, values: Any) -> list[Row]:
        table_obj = await self._ready_table(table)
        rows = normalize_rows(values)
        if not rows:
            return []
        async with self._write_engine.begin() as conn:
            await conn.execute(insert(table_obj).values([{"row_json": encode_row(row)} for row in rows]))
        logger.debug("Inserted %d row(s) into %s", len(rows), table_obj.name)
        return rows

    async def upsert_rows(
        self, table: str, values: Any, on_conflict: str | Sequence[str] | None = "id"
    ) -> list[Row]:
        table_obj = await self._ready_table(table)
        incoming_rows = normalize_rows(values)
        if not incoming_rows:
            return []
        conflict_columns = parse_conflict_columns(on_conflict)
        changed: list[Row] = []

        async with self._write_engine.begin() as conn:
            stored = await self._fetch(conn, table_obj, for_update=True)
            pks = [entry.pk for entry in stored]
            rows = [entry.row for entry in stored]
            for incoming in incoming_rows:
                index = find_conflict(rows, incoming, conflict_columns)
                if index >= 0:
                    merged = merge_row(rows[index], incoming)
                    rows[index] = merged
                    await conn.execute(
                        update(table_obj)
                        .where(table_obj.c.pk == pks[index])
                        .values(row_json=encode_row(merged))
                    )
                    changed.append(merged)
                else:
                    result = await conn.execute(insert(table_obj).values(row_json=encode_row(incoming)))
                    pks.append(int(result.inserted_primary_key[0]))
                    rows.append(incoming)
                    changed.append(incoming)

        logger.debug("Upserted %d row(s) into %s", len(changed), table_obj.name)
        return changed

    async def update_rows(
        self, table: str, patch: Any, filters: Iterable[FilterLike] | None = None
    ) -> list[Row]:
        table_obj = await self._ready_table(table)
        normalized_patch = normalize_patch(patch)
        normalized_filters = coerce_filters(filters)
        updated: list[Row] = []

        async with self._write_engine.begin() as conn:
            stored = await self._fetch(conn, table_obj, for_update=True)
            for entry in stored:
                if not row_matches(entry.row, normalized_filters):
                    continue
                merged = merge_row(entry.row, normalized_patch)
                await conn.execute(
                    update(table_obj)
                    .where(table_obj.c.pk == entry.pk)
                    .values(row_json=encode_row(merged))
                )
                updated.append(merged)

        logger.debug("Updated %d row(s) in %s", len(updated), table_obj.name)
        return updated

    async def delete_rows(self, table: str, filters: Iterable[FilterLike] | None = None) -> list[Row]:
        table_obj = await self._ready_table(table)
        normalized_filters = coerce_filters(filters)

        async with self._write_engine.begin() as conn:
            stored = await self._fetch(conn, table_obj, for_update=True)
            matches = [entry for entry in stored if row_matches(entry.row, normalized_filters)]
            if matches:
                await conn.execute(
                    delete(table_obj).where(table_obj.c.pk.in_([entry.pk for entry in matches]))
                )

        logger.debug("Deleted %d row(s) from %s", len(matches), table_obj.name)
        return [entry.row for entry in matches]

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    async def import_rows(
        self,
        tables: Mapping[str, Sequence[Row]],
        *,
        truncate: bool = True,
        batch_size: int = IMPORT_BATCH_SIZE,
    ) -> dict[str, int]:
        """Load rows for several tables in one transaction.

        Args:
            tables: Logical table name -> rows to insert, in order.
            truncate: Delete existing rows of each table first.
            batch_size: Rows per multi-row INSERT.

        Returns:
            Logical table name -> number of rows inserted.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        targets = [(name, await self._ready_table(name), normalize_rows(rows)) for name, rows in tables.items()]
        counts: dict[str, int] = {}

        async with self._write_engine.begin() as conn:
            for name, table_obj, rows in targets:
                if truncate:
                    await conn.execute(delete(table_obj))
                for start in range(0, len(rows), batch_size):
                    chunk = rows[start:start + batch_size]
                    await conn.execute(
                        insert(table_obj).values([{"row_json": encode_row(row)} for row in chunk])
                    )
                counts[name] = len(rows)

        return counts

    async def close(self) -> None:
        """Dispose the engine (if owned).  Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._ready.clear()
        if self._owns_engine:
            await self._engine.dispose()

    def __repr__(self) -> str:
        return f"SqlTableRepository(url='{self._engine.url.render_as_string(hide_password=True)}', prefix='{self._prefix}')"
