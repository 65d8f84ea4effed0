"""SQLite adapter - sync (sqlite3 stdlib) and async (aiosqlite).

SQLite has no statement timeout; a progress handler interrupts the VM once
the deadline passes, which surfaces as ``OperationalError: interrupted``.
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable
from typing import Any

from row_loader.adapters.protocol import AsyncListPool, ListPool
from row_loader.core.connection import ConnectionConfig

# VM instructions between progress handler calls
_PROGRESS_STEPS = 1000


def _deadline_handler(timeout: float) -> Callable[[], int]:
    deadline = time.monotonic() + timeout

    def _handler() -> int:
        return 1 if time.monotonic() > deadline else 0

    return _handler


def _is_interrupt(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "interrupted" in str(exc)


class SqliteSyncAdapter(ListPool):
    """Synchronous SQLite adapter using stdlib sqlite3."""

    @property
    def paramstyle(self) -> str:
        return "qmark"

    def create_pool(self, config: ConnectionConfig) -> list[sqlite3.Connection]:
        """Create a 'pool' (list of connections) for SQLite."""
        pool: list[sqlite3.Connection] = []
        for _ in range(config.pool_size):
            conn = sqlite3.connect(config.database)
            conn.row_factory = sqlite3.Row
            pool.append(conn)
        return pool

    def close_pool(self, pool: list[sqlite3.Connection]) -> None:
        for conn in pool:
            conn.close()
        pool.clear()

    def execute(
        self,
        connection: sqlite3.Connection,
        sql: str,
        params: list[Any],
        timeout: float | None = None,
    ) -> sqlite3.Cursor:
        if timeout is not None:
            connection.set_progress_handler(_deadline_handler(timeout), _PROGRESS_STEPS)
        return connection.execute(sql, params)

    def finish(self, connection: sqlite3.Connection) -> None:
        connection.set_progress_handler(None, 0)

    def is_timeout(self, exc: BaseException) -> bool:
        return _is_interrupt(exc)


class SqliteAsyncAdapter(AsyncListPool):
    """Asynchronous SQLite adapter using aiosqlite."""

    @property
    def paramstyle(self) -> str:
        return "qmark"

    async def create_pool_async(self, config: ConnectionConfig) -> list[Any]:
        import aiosqlite

        pool: list[Any] = []
        for _ in range(config.pool_size):
            conn = await aiosqlite.connect(config.database)
            conn.row_factory = aiosqlite.Row
            pool.append(conn)
        return pool

    async def close_pool_async(self, pool: list[Any]) -> None:
        for conn in pool:
            await conn.close()
        pool.clear()

    async def execute_async(
        self,
        connection: Any,
        sql: str,
        params: list[Any],
        timeout: float | None = None,
    ) -> Any:
        if timeout is not None:
            await connection.set_progress_handler(_deadline_handler(timeout), _PROGRESS_STEPS)
        return await connection.execute(sql, params)

    async def finish_async(self, connection: Any) -> None:
        await connection.set_progress_handler(None, 0)

    def is_timeout(self, exc: BaseException) -> bool:
        return _is_interrupt(exc)
