"""PostgreSQL adapter - sync and async using psycopg (v3+).

Command timeouts map to the session ``statement_timeout`` setting.
"""

from __future__ import annotations

from typing import Any

from row_loader.adapters.protocol import AsyncListPool, ListPool
from row_loader.core.connection import ConnectionConfig


def _build_conninfo(config: ConnectionConfig) -> str:
    """Build a libpq connection string from config fields."""
    parts: list[str] = []
    if config.host is not None:
        parts.append(f"host={config.host}")
    if config.port is not None:
        parts.append(f"port={config.port}")
    if config.user is not None:
        parts.append(f"user={config.user}")
    if config.password is not None:
        parts.append(f"password={config.password}")
    parts.append(f"dbname={config.database}")
    return " ".join(parts)


def _timeout_statement(timeout: float | None) -> str:
    millis = 0 if timeout is None else max(1, int(timeout * 1000))
    return f"SET statement_timeout = {millis}"


def _is_query_canceled(exc: BaseException) -> bool:
    from psycopg import errors

    return isinstance(exc, errors.QueryCanceled)


class PostgresqlSyncAdapter(ListPool):
    """Synchronous PostgreSQL adapter using psycopg (v3+)."""

    def __init__(self) -> None:
        self._timed: set[int] = set()

    @property
    def paramstyle(self) -> str:
        return "format"

    def create_pool(self, config: ConnectionConfig) -> list[Any]:
        import psycopg

        conninfo = _build_conninfo(config)
        return [psycopg.connect(conninfo) for _ in range(config.pool_size)]

    def close_pool(self, pool: list[Any]) -> None:
        for conn in pool:
            conn.close()
        pool.clear()

    def execute(
        self,
        connection: Any,
        sql: str,
        params: list[Any],
        timeout: float | None = None,
    ) -> Any:
        if timeout is not None:
            connection.execute(_timeout_statement(timeout))
            self._timed.add(id(connection))
        return connection.execute(sql, params)

    def finish(self, connection: Any) -> None:
        if id(connection) in self._timed:
            self._timed.discard(id(connection))
            connection.execute(_timeout_statement(None))

    def is_timeout(self, exc: BaseException) -> bool:
        return _is_query_canceled(exc)


class PostgresqlAsyncAdapter(AsyncListPool):
    """Asynchronous PostgreSQL adapter using psycopg (v3+) async support."""

    def __init__(self) -> None:
        self._timed: set[int] = set()

    @property
    def paramstyle(self) -> str:
        return "format"

    async def create_pool_async(self, config: ConnectionConfig) -> list[Any]:
        import psycopg

        conninfo = _build_conninfo(config)
        pool: list[Any] = []
        for _ in range(config.pool_size):
            pool.append(await psycopg.AsyncConnection.connect(conninfo))
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
            await connection.execute(_timeout_statement(timeout))
            self._timed.add(id(connection))
        return await connection.execute(sql, params)

    async def finish_async(self, connection: Any) -> None:
        if id(connection) in self._timed:
            self._timed.discard(id(connection))
            await connection.execute(_timeout_statement(None))

    def is_timeout(self, exc: BaseException) -> bool:
        return _is_query_canceled(exc)
