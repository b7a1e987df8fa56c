"""Rowstore exception hierarchy.

All rowstore-specific exceptions inherit from RowStoreError.
"""


class RowStoreError(Exception):
    """Base exception for all rowstore errors."""


class InvalidTableNameError(RowStoreError):
    """Raised when a table name is empty after sanitization."""

    def __init__(self, name: object) -> None:
        self.name = name
        super().__init__(f"Invalid table name: {name!r}")


class InvalidIdentifierError(RowStoreError):
    """Raised when a physical SQL identifier fails validation.

    Identifiers are interpolated into DDL/DML text, never bound as
    parameters, so anything outside ``[a-z0-9_]`` is rejected.
    """

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Invalid SQL identifier: {identifier!r}")


class StoreConfigError(RowStoreError):
    """Raised when the store configuration is invalid or incomplete."""


class StoreClosedError(RowStoreError):
    """Raised when an operation is attempted on a closed store."""

    def __init__(self) -> None:
        super().__init__("Store is closed.")


class TableFileError(RowStoreError):
    """Raised when a table file exists but does not hold a table document."""

    def __init__(self, path: object, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed table file {path}: {reason}")
