"""Oracle adapter - sync and async using oracledb.

Command timeouts map to the connection's ``call_timeout`` (milliseconds).
"""

from __future__ import annotations

from typing import Any

from row_loader.adapters.protocol import AsyncListPool, ListPool
from row_loader.core.connection import ConnectionConfig

# DPI-1067: call timeout exceeded
_CALL_TIMEOUT_CODE = "DPI-1067"


def _build_dsn(config: ConnectionConfig) -> str:
    """Build an Oracle DSN string from config fields (host:port/database)."""
    return f"{config.host}:{config.port}/{config.database}"


def _call_timeout(timeout: float | None) -> int:
    return 0 if timeout is None else max(1, int(timeout * 1000))


def _is_call_timeout(exc: BaseException) -> bool:
    return _CALL_TIMEOUT_CODE in str(exc)


class OracleSyncAdapter(ListPool):
    """Synchronous Oracle adapter using oracledb."""

    @property
    def paramstyle(self) -> str:
        return "numeric"

    def create_pool(self, config: ConnectionConfig) -> list[Any]:
        import oracledb

        dsn = _build_dsn(config)
        return [
            oracledb.connect(user=config.user, password=config.password, dsn=dsn)
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
        connection.call_timeout = _call_timeout(timeout)
        cursor = connection.cursor()
        cursor.execute(sql, params)
        return cursor

    def finish(self, connection: Any) -> None:
        connection.call_timeout = 0

    def is_timeout(self, exc: BaseException) -> bool:
        return _is_call_timeout(exc)


class OracleAsyncAdapter(AsyncListPool):
    """Asynchronous Oracle adapter using oracledb async support."""

    @property
    def paramstyle(self) -> str:
        return "numeric"

    async def create_pool_async(self, config: ConnectionConfig) -> list[Any]:
        import oracledb

        dsn = _build_dsn(config)
        pool: list[Any] = []
        for _ in range(config.pool_size):
            conn = await oracledb.connect_async(
                user=config.user, password=config.password, dsn=dsn
            )
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
        connection.call_timeout = _call_timeout(timeout)
        cursor = connection.cursor()
        await cursor.execute(sql, params)
        return cursor

    async def finish_async(self, connection: Any) -> None:
        connection.call_timeout = 0

    def is_timeout(self, exc: BaseException) -> bool:
        return _is_call_timeout(exc)
