"""SQLAlchemy schema for the SQL backend.

Every logical table maps to one physical table ``<prefix>_<name>``:

    pk          BIGINT auto-increment primary key
    row_json    TEXT (LONGTEXT on MySQL), the serialized row
    created_at  TIMESTAMP, set on insert
    updated_at  TIMESTAMP, refreshed on update

Physical tables are built at runtime (one per logical table), so this
module uses Core ``Table`` objects rather than declarative models.
"""

from __future__ import annotations

import re

from sqlalchemy import TIMESTAMP, BigInteger, Column, Integer, MetaData, Table, Text, func
from sqlalchemy.dialects import mysql

from rowstore.exceptions import InvalidIdentifierError, InvalidTableNameError

DEFAULT_TABLE_PREFIX = "app_table"

IDENTIFIER_PATTERN = re.compile(r"^[a-z0-9_]+$", re.IGNORECASE)

_UNSAFE_CHAR = re.compile(r"[^a-z0-9_]")
_UNDERSCORE_RUN = re.compile(r"_+")

# BIGINT on servers; INTEGER on SQLite so the column aliases rowid.
PK_TYPE = (
    BigInteger()
    .with_variant(mysql.BIGINT(unsigned=True), "mysql", "mariadb")
    .with_variant(Integer(), "sqlite")
)
ROW_JSON_TYPE = Text().with_variant(
    mysql.LONGTEXT(charset="utf8mb4", collation="utf8mb4_bin"), "mysql", "mariadb"
)


def sanitize_identifier(value: object, fallback: str = "") -> str:
    """Lower-case, map other characters to ``_``, collapse and trim underscores."""
    normalized = _UNSAFE_CHAR.sub("_", str(value or "").strip().lower())
    normalized = _UNDERSCORE_RUN.sub("_", normalized).strip("_")
    return normalized or fallback


def validate_identifier(identifier: str) -> str:
    """Return *identifier* unchanged if it is safe to interpolate into SQL."""
    if not IDENTIFIER_PATTERN.match(identifier or ""):
        raise InvalidIdentifierError(identifier)
    return identifier


def physical_table_name(logical_table: object, prefix: str = DEFAULT_TABLE_PREFIX) -> str:
    """Map a logical table name to its physical table name.

    Raises:
        InvalidTableNameError: If the logical name is empty after sanitization.
        InvalidIdentifierError: If the resulting identifier is unsafe.
    """
    safe_name = sanitize_identifier(logical_table)
    if not safe_name:
        raise InvalidTableNameError(logical_table)
    safe_prefix = sanitize_identifier(prefix, DEFAULT_TABLE_PREFIX)
    return validate_identifier(f"{safe_prefix}_{safe_name}")


def row_table(name: str, metadata: MetaData) -> Table:
    """Define the physical row table *name* on *metadata*."""
    validate_identifier(name)
    return Table(
        name,
        metadata,
        Column("pk", PK_TYPE, primary_key=True, autoincrement=True),
        Column("row_json", ROW_JSON_TYPE, nullable=False),
        Column("created_at", TIMESTAMP(), nullable=False, server_default=func.now()),
        Column(
            "updated_at",
            TIMESTAMP(),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        ),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
        mysql_collate="utf8mb4_unicode_ci",
    )
