"""Configuration models for rowstore.

StoreConfig selects the backend and holds its connection settings.
It is normally built once at startup from the environment.

Environment Variables:
- DB_BACKEND (or CPANEL_DB_BACKEND, APP_DB_BACKEND): 'json' or 'sql'
  ('mysql' is accepted as 'sql').  Unset: 'sql' when a database is
  configured, else 'json'.
- DATABASE_URL: async SQLAlchemy URL, e.g. 'mysql+aiomysql://u:p@host/db'
- MYSQL_HOST / MYSQL_PORT / MYSQL_USER / MYSQL_PASSWORD / MYSQL_DATABASE
  (aliases DB_* and CPANEL_DB_*): used when DATABASE_URL is not set
- MYSQL_TABLE_PREFIX (aliases DB_TABLE_PREFIX, CPANEL_DB_TABLE_PREFIX)
- MYSQL_CONN_LIMIT: connection pool size (default 8)
- ROWSTORE_DATA_DIR: directory for the JSON backend (default 'data')
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Literal, Optional

from pydantic import BaseModel, ValidationError, field_validator, model_validator
from sqlalchemy.engine import URL, make_url

from rowstore.exceptions import StoreConfigError
from rowstore.storage.engine import DEFAULT_POOL_SIZE
from rowstore.storage.schema import DEFAULT_TABLE_PREFIX, sanitize_identifier

logger = logging.getLogger(__name__)

BackendName = Literal["json", "sql"]

_BACKEND_ALIASES: dict[str, str] = {
    "json": "json",
    "file": "json",
    "sql": "sql",
    "mysql": "sql",
}

_BACKEND_KEYS = ("DB_BACKEND", "CPANEL_DB_BACKEND", "APP_DB_BACKEND")
_HOST_KEYS = ("MYSQL_HOST", "DB_HOST", "CPANEL_DB_HOST")
_PORT_KEYS = ("MYSQL_PORT", "DB_PORT", "CPANEL_DB_PORT")
_USER_KEYS = ("MYSQL_USER", "DB_USER", "CPANEL_DB_USER")
_PASSWORD_KEYS = ("MYSQL_PASSWORD", "DB_PASSWORD", "CPANEL_DB_PASSWORD")
_DATABASE_KEYS = ("MYSQL_DATABASE", "DB_NAME", "CPANEL_DB_NAME")
_PREFIX_KEYS = ("MYSQL_TABLE_PREFIX", "DB_TABLE_PREFIX", "CPANEL_DB_TABLE_PREFIX")

DEFAULT_MYSQL_PORT = 3306


def _first_env(environ: Mapping[str, str], *keys: str) -> str:
    for key in keys:
        value = environ.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _positive_int(value: str, fallback: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


class StoreConfig(BaseModel):
    """Backend selection and connection settings."""

    model_config = {"frozen": True}

    backend: BackendName = "json"
    data_dir: str = "data"
    database_url: Optional[str] = None
    table_prefix: str = DEFAULT_TABLE_PREFIX
    pool_size: int = DEFAULT_POOL_SIZE

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: object) -> object:
        if isinstance(value, str):
            key = value.strip().lower()
            if key in _BACKEND_ALIASES:
                return _BACKEND_ALIASES[key]
        return value

    @field_validator("table_prefix", mode="before")
    @classmethod
    def _normalize_prefix(cls, value: object) -> str:
        return sanitize_identifier(value, DEFAULT_TABLE_PREFIX)

    @field_validator("pool_size")
    @classmethod
    def _check_pool_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("pool_size must be positive")
        return value

    @model_validator(mode="after")
    def _check_sql_url(self) -> StoreConfig:
        if self.backend == "sql" and not self.database_url:
            raise ValueError("the sql backend requires database_url")
        return self

    @classmethod
    def create(cls, **kwargs: object) -> StoreConfig:
        """Build a config, reporting invalid settings as StoreConfigError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise StoreConfigError(f"Invalid store configuration: {messages}") from e

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StoreConfig:
        """Load configuration from environment variables.

        Raises:
            StoreConfigError: If an unknown backend is requested, or the sql
                backend is requested without connection settings.
        """
        env = os.environ if environ is None else environ

        requested = _first_env(env, *_BACKEND_KEYS).lower()
        if requested and requested not in _BACKEND_ALIASES:
            raise StoreConfigError(
                f"Unknown DB_BACKEND '{requested}'. Valid values: 'json', 'sql', 'mysql'"
            )
        requested = _BACKEND_ALIASES.get(requested, "")

        database_url = _first_env(env, "DATABASE_URL") or None
        if database_url is None:
            required = {
                "MYSQL_HOST": _first_env(env, *_HOST_KEYS),
                "MYSQL_USER": _first_env(env, *_USER_KEYS),
                "MYSQL_DATABASE": _first_env(env, *_DATABASE_KEYS),
            }
            missing = [key for key, value in required.items() if not value]
            if not missing:
                database_url = URL.create(
                    "mysql+aiomysql",
                    username=required["MYSQL_USER"],
                    password=_first_env(env, *_PASSWORD_KEYS) or None,
                    host=required["MYSQL_HOST"],
                    port=_positive_int(_first_env(env, *_PORT_KEYS), DEFAULT_MYSQL_PORT),
                    database=required["MYSQL_DATABASE"],
                    query={"charset": "utf8mb4"},
                ).render_as_string(hide_password=False)
            elif requested == "sql":
                raise StoreConfigError(
                    f"DB_BACKEND=sql but missing env: {', '.join(missing)} (or set DATABASE_URL)"
                )

        if requested:
            backend = requested
        else:
            backend = "sql" if database_url else "json"

        config = cls.create(
            backend=backend,
            data_dir=_first_env(env, "ROWSTORE_DATA_DIR") or "data",
            database_url=database_url,
            table_prefix=_first_env(env, *_PREFIX_KEYS),
            pool_size=_positive_int(_first_env(env, "MYSQL_CONN_LIMIT"), DEFAULT_POOL_SIZE),
        )
        logger.info("Store backend: %s", config.backend)
        return config

    def describe(self) -> str:
        """Human-readable location of the active backend (passwords hidden)."""
        if self.backend == "json":
            return f"json ({self.data_dir})"
        rendered = make_url(self.database_url or "").render_as_string(hide_password=True)
        return f"sql ({rendered}, prefix={self.table_prefix})"
