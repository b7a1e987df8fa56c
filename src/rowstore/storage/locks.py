"""Per-key async locking and single-flight setup for rowstore backends.

LockRegistry serializes mutations per table inside one process.  Entries
exist only while a table has a holder or waiters, so the registry does not
grow with table churn.

SingleFlight runs an idempotent async setup step (e.g. CREATE TABLE) at most
once per key; concurrent callers share the in-flight attempt, and a failed
attempt is forgotten so the next caller retries.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class LockRegistry:
    """Process-local FIFO mutex per key.

    ``asyncio.Lock`` hands the lock to waiters in arrival order, which gives
    the per-table total ordering of mutations.

    Example::

        async with registry.acquire("stories"):
            rows = await read()
            await write(rows + new_rows)
    """

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        The lock is released on every exit path, including exceptions and
        cancellation while waiting.
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _LockEntry()
        entry.users += 1
        if entry.lock.locked():
            logger.debug("Waiting for table lock: %s (queued=%d)", key, entry.users - 1)
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class SingleFlight(Generic[K, T]):
    """Memoize one async result per key, retrying keys whose attempt failed."""

    def __init__(self) -> None:
        self._tasks: dict[K, asyncio.Future[T]] = {}

    async def run(self, key: K, factory: Callable[[], Awaitable[T]]) -> T:
        """Return the memoized result for ``key``, starting ``factory`` if needed."""
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
        try:
            return await asyncio.shield(task)
        except BaseException:
            if task.done() and self._tasks.get(key) is task:
                if task.cancelled() or task.exception() is not None:
                    del self._tasks[key]
            raise

    def forget(self, key: K) -> None:
        self._tasks.pop(key, None)

    def clear(self) -> None:
        self._tasks.clear()

    def __contains__(self, key: object) -> bool:
        task = self._tasks.get(key)  # type: ignore[arg-type]
        return task is not None and task.done() and not task.cancelled() and task.exception() is None
