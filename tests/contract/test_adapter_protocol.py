"""Contract tests for adapter protocol compliance."""

from __future__ import annotations

import sqlite3

import pytest

from row_loader.adapters.protocol import AsyncAdapter, SyncAdapter
from row_loader.adapters.sqlite import SqliteAsyncAdapter, SqliteSyncAdapter
from row_loader.core.connection import ConnectionConfig


@pytest.fixture
def sqlite_config() -> ConnectionConfig:
    return ConnectionConfig(driver="sqlite", database=":memory:", pool_size=1)


class TestSqliteSyncAdapterProtocol:
    def test_implements_sync_protocol(self) -> None:
        adapter = SqliteSyncAdapter()
        assert isinstance(adapter, SyncAdapter)

    def test_paramstyle(self) -> None:
        adapter = SqliteSyncAdapter()
        assert adapter.paramstyle == "qmark"

    def test_lifecycle(self, sqlite_config: ConnectionConfig) -> None:
        adapter = SqliteSyncAdapter()
        pool = adapter.create_pool(sqlite_config)
        assert len(pool) == 1

        conn = adapter.acquire_connection(pool)
        assert conn is not None

        cursor = adapter.execute(conn, "SELECT ? AS val", [1], timeout=5.0)
        assert cursor.description[0][0] == "val"
        row = cursor.fetchone()
        assert row["val"] == 1
        cursor.close()
        adapter.finish(conn)

        adapter.release_connection(conn, pool)
        assert len(pool) == 1

        adapter.close_pool(pool)
        assert len(pool) == 0

    def test_empty_pool(self, sqlite_config: ConnectionConfig) -> None:
        adapter = SqliteSyncAdapter()
        pool = adapter.create_pool(sqlite_config)
        adapter.acquire_connection(pool)
        with pytest.raises(RuntimeError, match="No connections"):
            adapter.acquire_connection(pool)

    def test_is_timeout(self) -> None:
        adapter = SqliteSyncAdapter()
        assert adapter.is_timeout(sqlite3.OperationalError("interrupted"))
        assert not adapter.is_timeout(sqlite3.OperationalError("no such table: t"))
        assert not adapter.is_timeout(ValueError("interrupted"))


class TestSqliteAsyncAdapterProtocol:
    def test_implements_async_protocol(self) -> None:
        adapter = SqliteAsyncAdapter()
        assert isinstance(adapter, AsyncAdapter)

    def test_paramstyle(self) -> None:
        adapter = SqliteAsyncAdapter()
        assert adapter.paramstyle == "qmark"

    async def test_lifecycle(self, sqlite_config: ConnectionConfig) -> None:
        adapter = SqliteAsyncAdapter()
        pool = await adapter.create_pool_async(sqlite_config)
        assert len(pool) == 1

        conn = await adapter.acquire_connection_async(pool)
        assert conn is not None

        cursor = await adapter.execute_async(conn, "SELECT ? AS val", [1], timeout=5.0)
        row = await cursor.fetchone()
        assert row["val"] == 1
        await cursor.close()
        await adapter.finish_async(conn)

        await adapter.release_connection_async(conn, pool)
        assert len(pool) == 1

        await adapter.close_pool_async(pool)
        assert len(pool) == 0


# --- PostgreSQL protocol compliance ---


class TestPostgresqlSyncAdapterProtocol:
    def test_implements_sync_protocol(self) -> None:
        from row_loader.adapters.postgresql import PostgresqlSyncAdapter

        adapter = PostgresqlSyncAdapter()
        assert isinstance(adapter, SyncAdapter)

    def test_paramstyle(self) -> None:
        from row_loader.adapters.postgresql import PostgresqlSyncAdapter

        adapter = PostgresqlSyncAdapter()
        assert adapter.paramstyle == "format"


class TestPostgresqlAsyncAdapterProtocol:
    def test_implements_async_protocol(self) -> None:
        from row_loader.adapters.postgresql import PostgresqlAsyncAdapter

        adapter = PostgresqlAsyncAdapter()
        assert isinstance(adapter, AsyncAdapter)

    def test_paramstyle(self) -> None:
        from row_loader.adapters.postgresql import PostgresqlAsyncAdapter

        adapter = PostgresqlAsyncAdapter()
        assert adapter.paramstyle == "format"


# --- MySQL protocol compliance ---


class TestMysqlSyncAdapterProtocol:
    def test_implements_sync_protocol(self) -> None:
        from row_loader.adapters.mysql import MysqlSyncAdapter

        adapter = MysqlSyncAdapter()
        assert isinstance(adapter, SyncAdapter)

    def test_paramstyle(self) -> None:
        from row_loader.adapters.mysql import MysqlSyncAdapter

        adapter = MysqlSyncAdapter()
        assert adapter.paramstyle == "format"

    def test_is_timeout(self) -> None:
        from row_loader.adapters.mysql import MysqlSyncAdapter

        class DriverError(Exception):
            def __init__(self, errno: int) -> None:
                super().__init__(errno, "message")
                self.errno = errno

        adapter = MysqlSyncAdapter()
        assert adapter.is_timeout(DriverError(3024))
        assert not adapter.is_timeout(DriverError(1146))


class TestMysqlAsyncAdapterProtocol:
    def test_implements_async_protocol(self) -> None:
        from row_loader.adapters.mysql import MysqlAsyncAdapter

        adapter = MysqlAsyncAdapter()
        assert isinstance(adapter, AsyncAdapter)

    def test_paramstyle(self) -> None:
        from row_loader.adapters.mysql import MysqlAsyncAdapter

        adapter = MysqlAsyncAdapter()
        assert adapter.paramstyle == "format"

    def test_is_timeout_from_args(self) -> None:
        from row_loader.adapters.mysql import MysqlAsyncAdapter

        adapter = MysqlAsyncAdapter()
        assert adapter.is_timeout(Exception(3024, "Query execution was interrupted"))


# --- Oracle protocol compliance ---


class TestOracleSyncAdapterProtocol:
    def test_implements_sync_protocol(self) -> None:
        from row_loader.adapters.oracle import OracleSyncAdapter

        adapter = OracleSyncAdapter()
        assert isinstance(adapter, SyncAdapter)

    def test_paramstyle(self) -> None:
        from row_loader.adapters.oracle import OracleSyncAdapter

        adapter = OracleSyncAdapter()
        assert adapter.paramstyle == "numeric"

    def test_is_timeout(self) -> None:
        from row_loader.adapters.oracle import OracleSyncAdapter

        adapter = OracleSyncAdapter()
        assert adapter.is_timeout(Exception("DPI-1067: call timeout of 500 ms exceeded"))
        assert not adapter.is_timeout(Exception("ORA-00942: table or view does not exist"))


class TestOracleAsyncAdapterProtocol:
    def test_implements_async_protocol(self) -> None:
        from row_loader.adapters.oracle import OracleAsyncAdapter

        adapter = OracleAsyncAdapter()
        assert isinstance(adapter, AsyncAdapter)

    def test_paramstyle(self) -> None:
        from row_loader.adapters.oracle import OracleAsyncAdapter

        adapter = OracleAsyncAdapter()
        assert adapter.paramstyle == "numeric"
