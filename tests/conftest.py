"""Shared test fixtures for rowstore.

Provides JSON-file and file-backed SQLite repositories plus a parametrized
``repository`` fixture that runs a test against both backends.
"""

import asyncio

import pytest

from rowstore.storage.json_files import JsonTableRepository
from rowstore.storage.locks import LockRegistry
from rowstore.storage.sql import SqlTableRepository


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def sqlite_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'rows.db'}"


@pytest.fixture
def data_dir(tmp_path):
    """Directory for table files."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def json_repo(data_dir) -> JsonTableRepository:
    return JsonTableRepository(data_dir, locks=LockRegistry())


@pytest.fixture
def db_url(tmp_path) -> str:
    """File-backed SQLite URL (each asyncio.run needs its own connections)."""
    return sqlite_url(tmp_path)


@pytest.fixture
def sql_factory(db_url):
    """Build SqlTableRepository instances; call inside the running loop."""

    def factory(**kwargs) -> SqlTableRepository:
        return SqlTableRepository.open(url=db_url, **kwargs)

    return factory


@pytest.fixture(params=["json", "sql"])
def repo_factory(request, data_dir, db_url):
    """Factory for a repository of either backend.

    SQL engines bind to the loop they are first used on, so tests create
    the repository inside the coroutine they pass to ``run``.
    """
    if request.param == "json":
        locks = LockRegistry()
        return lambda: JsonTableRepository(data_dir, locks=locks)
    return lambda: SqlTableRepository.open(url=db_url)
