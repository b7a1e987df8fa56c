"""RowStore facade: the five-operation table contract over a configured backend.

The rest of the application talks to storage only through
:meth:`RowStore.list_rows`, :meth:`~RowStore.insert_rows`,
:meth:`~RowStore.upsert_rows`, :meth:`~RowStore.update_rows` and
:meth:`~RowStore.delete_rows`.  Calls are forwarded unchanged to the
backend and backend errors propagate unchanged.

A store built from invalid configuration does not fall back to a default
backend: every call raises the configuration error.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any, cast

from rowstore.exceptions import StoreClosedError, StoreConfigError
from rowstore.models.config import StoreConfig
from rowstore.models.query import FilterLike, OrderByLike, Row
from rowstore.query import DEFAULT_CONFLICT_COLUMNS
from rowstore.storage.json_files import JsonTableRepository
from rowstore.storage.locks import LockRegistry
from rowstore.storage.repositories import TableRepository
from rowstore.storage.sql import SqlTableRepository

logger = logging.getLogger(__name__)


def create_repository(config: StoreConfig, *, locks: LockRegistry | None = None) -> TableRepository:
    """Instantiate the backend named by *config*."""
    if config.backend == "sql":
        return SqlTableRepository.open(
            url=config.database_url,
            table_prefix=config.table_prefix,
            pool_size=config.pool_size,
        )
    return JsonTableRepository(config.data_dir, locks=locks)


class RowStore:
    """Backend-agnostic table store.

    Use :meth:`open` / :meth:`from_config` / :meth:`from_env` rather than
    calling the constructor with a config error directly.

    Example::

        async with RowStore.open(data_dir="data") as store:
            await store.insert_rows("stories", {"id": "1", "title": "A"})
            row = await store.list_rows(
                "stories",
                filters=[{"column": "id", "op": "eq", "value": "1"}],
                single=True,
            )
    """

    def __init__(
        self,
        repository: TableRepository | None,
        *,
        config: StoreConfig | None = None,
        config_error: StoreConfigError | None = None,
    ) -> None:
        if repository is None and config_error is None:
            raise ValueError("RowStore needs a repository or a config error")
        self._repository = repository
        self._config = config
        self._config_error = config_error
        self._closed = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, config: StoreConfig, *, locks: LockRegistry | None = None) -> RowStore:
        return cls(create_repository(config, locks=locks), config=config)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> RowStore:
        """Validate environment configuration once.

        Invalid configuration yields a store whose every call raises the
        configuration error.
        """
        try:
            config = StoreConfig.from_env(environ)
        except StoreConfigError as e:
            logger.error("Store configuration error: %s", e)
            return cls(None, config_error=e)
        return cls.from_config(config)

    @classmethod
    def open(
        cls,
        *,
        backend: str = "json",
        data_dir: str = "data",
        database_url: str | None = None,
        table_prefix: str | None = None,
        pool_size: int | None = None,
    ) -> RowStore:
        """Open a store from explicit settings.

        Raises:
            StoreConfigError: If the settings are invalid.
        """
        settings: dict[str, Any] = {"backend": backend, "data_dir": data_dir, "database_url": database_url}
        if table_prefix is not None:
            settings["table_prefix"] = table_prefix
        if pool_size is not None:
            settings["pool_size"] = pool_size
        return cls.from_config(StoreConfig.create(**settings))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def backend_name(self) -> str | None:
        """Backend identifier ("json" or "sql"); None when configuration failed."""
        return self._repository.name if self._repository is not None else None

    @property
    def config(self) -> StoreConfig | None:
        return self._config

    @property
    def config_error(self) -> StoreConfigError | None:
        return self._config_error

    @property
    def repository(self) -> TableRepository:
        return self._active()

    def _active(self) -> TableRepository:
        if self._config_error is not None:
            raise self._config_error
        if self._closed:
            raise StoreClosedError()
        return cast(TableRepository, self._repository)

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
        return await self._active().list_rows(
            table, filters=filters, order_by=order_by, columns=columns, single=single
        )

    async def insert_rows(self, table: str, values: Any) -> list[Row]:
        return await self._active().insert_rows(table, values)

    async def upsert_rows(
        self, table: str, values: Any, on_conflict: str | Sequence[str] | None = DEFAULT_CONFLICT_COLUMNS
    ) -> list[Row]:
        return await self._active().upsert_rows(table, values, on_conflict)

    async def update_rows(self, table: str, patch: Any, filters: Iterable[FilterLike] | None = None) -> list[Row]:
        return await self._active().update_rows(table, patch, filters)

    async def delete_rows(self, table: str, filters: Iterable[FilterLike] | None = None) -> list[Row]:
        return await self._active().delete_rows(table, filters)

    async def ensure_table(self, table: str) -> bool:
        return await self._active().ensure_table(table)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Release backend resources.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._repository is not None:
            await self._repository.close()

    async def __aenter__(self) -> RowStore:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        if self._config_error is not None:
            return f"RowStore(error='{self._config_error}')"
        if self._closed:
            return f"RowStore(backend='{self.backend_name}', closed=True)"
        return f"RowStore(backend='{self.backend_name}')"


# ------------------------------------------------------------------
# Process-wide default store
# ------------------------------------------------------------------

_store: RowStore | None = None


def get_store() -> RowStore:
    """Get the process-wide store.

    Lazy-loads from the environment on first call.
    """
    global _store

    if _store is None:
        _store = RowStore.from_env()

    return _store


async def reset_store() -> None:
    """Close and forget the process-wide store (next get_store() reloads)."""
    global _store
    store, _store = _store, None
    if store is not None:
        await store.close()


async def list_rows(
    table: str,
    *,
    filters: Iterable[FilterLike] | None = None,
    order_by: OrderByLike | None = None,
    columns: str | Sequence[str] | None = "*",
    single: bool = False,
) -> list[Row] | Row | None:
    return await get_store().list_rows(table, filters=filters, order_by=order_by, columns=columns, single=single)


async def insert_rows(table: str, values: Any) -> list[Row]:
    return await get_store().insert_rows(table, values)


async def upsert_rows(
    table: str, values: Any, on_conflict: str | Sequence[str] | None = DEFAULT_CONFLICT_COLUMNS
) -> list[Row]:
    return await get_store().upsert_rows(table, values, on_conflict)


async def update_rows(table: str, patch: Any, filters: Iterable[FilterLike] | None = None) -> list[Row]:
    return await get_store().update_rows(table, patch, filters)


async def delete_rows(table: str, filters: Iterable[FilterLike] | None = None) -> list[Row]:
    return await get_store().delete_rows(table, filters)
