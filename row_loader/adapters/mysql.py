"""MySQL adapter - sync (mysql-connector-python) and async (aiomysql).

Command timeouts map to ``MAX_EXECUTION_TIME`` for the session.
"""

from __future__ import annotations

from typing import Any

from row_loader.adapters.protocol import AsyncListPool, ListPool
from row_loader.core.connection import ConnectionConfig

# ER_QUERY_TIMEOUT: "Query execution was interrupted, maximum statement execution time exceeded"
_QUERY_TIMEOUT_ERRNO = 3024


def _timeout_statement(timeout: float | None) -> str:
    millis = 0 if timeout is None else max(1, int(timeout * 1000))
    return f"SET SESSION MAX_EXECUTION_TIME = {millis}"


def _is_query_timeout(exc: BaseException) -> bool:
    errno = getattr(exc, "errno", None)
    if errno is None and getattr(exc, "args", None):
        errno = exc.args[0]
    return errno == _QUERY_TIMEOUT_ERRNO


class MysqlSyncAdapter(ListPool):
    """Synchronous MySQL adapter using mysql-connector-python."""

    @property
    def paramstyle(self) -> str:
        return "format"

    def create_pool(self, config: ConnectionConfig) -> list[Any]:
        import mysql.connector

        return [
            mysql.connector.connect(
                host=config.host,
                port=config.port,
                user=config.user,
                password=config.password,
                database=config.database,
            )
            for _ in range(config.pool_size)
        ]

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
        cursor = connection.cursor()
        if timeout is not None:
            cursor.execute(_timeout_statement(timeout))
        cursor.execute(sql, params)
        return cursor

    def finish(self, connection: Any) -> None:
        cursor = connection.cursor()
        try:
            cursor.execute(_timeout_statement(None))
        finally:
            cursor.close()

    def is_timeout(self, exc: BaseException) -> bool:
        return _is_query_timeout(exc)


class MysqlAsyncAdapter(AsyncListPool):
    """Asynchronous MySQL adapter using aiomysql."""

    @property
    def paramstyle(self) -> str:
        return "format"

    async def create_pool_async(self, config: ConnectionConfig) -> list[Any]:
        import aiomysql

        pool: list[Any] = []
        for _ in range(config.pool_size):
            conn = await aiomysql.connect(
                host=config.host,
                port=config.port,
                user=config.user,
                password=config.password,
                db=config.database,
            )
            pool.append(conn)
        return pool

    async def close_pool_async(self, pool: list[Any]) -> None:
        for conn in pool:
            conn.close()
        pool.clear()

    async def execute_async(
        self,
        connection: Any,
        sql: str,
        params: list[Any],
        timeout: float | None = None,
    ) -> Any:
        cursor = await connection.cursor()
        if timeout is not None:
            await cursor.execute(_timeout_statement(timeout))
        await cursor.execute(sql, params)
        return cursor

    async def finish_async(self, connection: Any) -> None:
        cursor = await connection.cursor()
        try:
            await cursor.execute(_timeout_statement(None))
        finally:
            await cursor.close()

    def is_timeout(self, exc: BaseException) -> bool:
        return _is_query_timeout(exc)
