"""rowstore: schema-less table storage with one contract over JSON files or SQL.

The application reads and writes rows through five async operations
(list, insert, upsert, update, delete) and gets identical filter, ordering
and conflict semantics whichever backend the deployment is configured with.
"""

from rowstore._version import __version__

# Facade
from rowstore.store import (
    RowStore,
    delete_rows,
    get_store,
    insert_rows,
    list_rows,
    reset_store,
    update_rows,
    upsert_rows,
)

# Models
from rowstore.models.config import StoreConfig
from rowstore.models.query import MISSING, Filter, FilterOp, JSONValue, OrderBy, Row

# Backends
from rowstore.storage.json_files import JsonTableRepository
from rowstore.storage.locks import LockRegistry, SingleFlight
from rowstore.storage.repositories import TableRepository
from rowstore.storage.sql import SqlTableRepository

# Exceptions
from rowstore.exceptions import (
    InvalidIdentifierError,
    InvalidTableNameError,
    RowStoreError,
    StoreClosedError,
    StoreConfigError,
    TableFileError,
)

__all__ = [
    "__version__",
    "RowStore",
    "get_store",
    "reset_store",
    "list_rows",
    "insert_rows",
    "upsert_rows",
    "update_rows",
    "delete_rows",
    "StoreConfig",
    "Filter",
    "FilterOp",
    "OrderBy",
    "Row",
    "JSONValue",
    "MISSING",
    "TableRepository",
    "JsonTableRepository",
    "SqlTableRepository",
    "LockRegistry",
    "SingleFlight",
    "RowStoreError",
    "InvalidTableNameError",
    "InvalidIdentifierError",
    "StoreConfigError",
    "StoreClosedError",
    "TableFileError",
]
