"""Abstract repository interface for rowstore backends.

Defines the five-operation contract every backend implements. No storage
imports here -- pure abstract contract.

Concrete implementations are in json_files.py and sql.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rowstore.models.query import FilterLike, OrderByLike, Row


class TableRepository(ABC):
    """Schema-less table storage.

    Every backend must produce identical results for identical calls; the
    shared semantics live in :mod:`rowstore.query`.
    """

    #: Short backend identifier ("json" or "sql").
    name: str = ""

    @abstractmethod
    async def list_rows(
        self,
        table: str,
        *,
        filters: Iterable[FilterLike] | None = None,
        order_by: OrderByLike | None = None,
        columns: str | Sequence[str] | None = "*",
        single: bool = False,
    ) -> list[Row] | Row | None:
        """Read rows: filter, then order, then project.

        Returns the first matching row (or None) when *single* is true,
        otherwise the full list.
        """
        ...

    @abstractmethod
    async def insert_rows(self, table: str, values: Any) -> list[Row]:
        """Append one row or a list of rows. Returns the rows inserted."""
        ...

    @abstractmethod
    async def upsert_rows(
        self, table: str, values: Any, on_conflict: str | Sequence[str] | None = "id"
    ) -> list[Row]:
        """Merge rows into matching rows by conflict columns, else append.

        Returns the changed rows (merged or appended) in input order.
        """
        ...

    @abstractmethod
    async def update_rows(
        self, table: str, patch: Any, filters: Iterable[FilterLike] | None = None
    ) -> list[Row]:
        """Shallow-merge *patch* onto every matching row. Returns the updated rows."""
        ...

    @abstractmethod
    async def delete_rows(self, table: str, filters: Iterable[FilterLike] | None = None) -> list[Row]:
        """Remove matching rows. Returns the removed rows."""
        ...

    @abstractmethod
    def storage_name(self, table: str) -> str:
        """Validate *table* and return the name it is stored under.

        Raises:
            InvalidTableNameError: If the name is empty after sanitization.
        """
        ...

    @abstractmethod
    async def ensure_table(self, table: str) -> bool:
        """Make sure *table* exists. Returns True if this call created it."""
        ...

    async def close(self) -> None:
        """Release backend resources. Idempotent."""
        return None
