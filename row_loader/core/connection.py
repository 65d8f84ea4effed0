"""Connection configuration and management.

ConnectionConfig is a Pydantic model for type-safe connection config.
ConnectionManager and AsyncConnectionManager use adapter protocols for
pool-based connection lifecycle and pick the SQL dialect for the driver.
"""

from __future__ import annotations

import importlib
from contextlib import asynccontextmanager, contextmanager
from typing import Any

from pydantic import BaseModel

from row_loader.core.dialect import Dialect, get_dialect
from row_loader.core.enums import DatabaseBackend
from row_loader.core.exceptions import AdapterError, PoolError


class ConnectionConfig(BaseModel):
    """Configuration for database connections."""

    driver: str
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str
    pool_size: int = 5
    dialect: str | None = None
    command_timeout: float | None = None
    strict_aliases: bool = False
    extra: dict[str, Any] = {}


# Adapter module mapping: backend → (module_path, sync_class, async_class)
_ADAPTER_MAP: dict[DatabaseBackend, tuple[str, str, str]] = {
    DatabaseBackend.SQLITE: (
        "row_loader.adapters.sqlite",
        "SqliteSyncAdapter",
        "SqliteAsyncAdapter",
    ),
    DatabaseBackend.POSTGRESQL: (
        "row_loader.adapters.postgresql",
        "PostgresqlSyncAdapter",
        "PostgresqlAsyncAdapter",
    ),
    DatabaseBackend.MYSQL: (
        "row_loader.adapters.mysql",
        "MysqlSyncAdapter",
        "MysqlAsyncAdapter",
    ),
    DatabaseBackend.ORACLE: (
        "row_loader.adapters.oracle",
        "OracleSyncAdapter",
        "OracleAsyncAdapter",
    ),
}


def _load_adapter(driver: str, kind: str) -> Any:
    """Load a sync or async adapter by driver name."""
    try:
        backend = DatabaseBackend(driver.lower())
    except ValueError:
        raise AdapterError(f"Unsupported database driver: {driver}") from None

    module_path, sync_cls_name, async_cls_name = _ADAPTER_MAP[backend]
    cls_name = sync_cls_name if kind == "sync" else async_cls_name

    try:
        module = importlib.import_module(module_path)
        return getattr(module, cls_name)()
    except (ImportError, AttributeError) as e:
        raise AdapterError(f"Failed to load {kind} adapter for '{driver}': {e}") from e


def _resolve_dialect(config: ConnectionConfig) -> Dialect:
    return get_dialect(config.dialect or config.driver)


class ConnectionManager:
    """Synchronous connection manager using SyncAdapter protocol.

    Args:
        config: Connection settings.
        adapter: Optional adapter instance; loaded from ``config.driver``
            when omitted.
    """

    def __init__(self, config: ConnectionConfig, adapter: Any | None = None) -> None:
        self.config = config
        self._adapter = adapter if adapter is not None else _load_adapter(config.driver, "sync")
        self._dialect = _resolve_dialect(config)
        self._pool: Any = None

    @property
    def adapter(self) -> Any:
        return self._adapter

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    def initialize_pool(self) -> Any:
        """Initialize the connection pool."""
        if self._pool is None:
            self._pool = self._adapter.create_pool(self.config)
        return self._pool

    def acquire(self) -> Any:
        """Take a connection out of the pool; pair with ``release``."""
        if self._pool is None:
            self.initialize_pool()
        try:
            return self._adapter.acquire_connection(self._pool)
        except RuntimeError as e:
            raise PoolError(str(e)) from e

    def release(self, connection: Any) -> None:
        self._adapter.release_connection(connection, self._pool)

    @contextmanager
    def get_connection(self):  # type: ignore[no-untyped-def]
        """Get a connection from the pool as a context manager."""
        connection = self.acquire()
        try:
            yield connection
        finally:
            self.release(connection)

    def close_pool(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            self._adapter.close_pool(self._pool)
            self._pool = None


class AsyncConnectionManager:
    """Asynchronous connection manager using AsyncAdapter protocol."""

    def __init__(self, config: ConnectionConfig, adapter: Any | None = None) -> None:
        self.config = config
        self._adapter = adapter if adapter is not None else _load_adapter(config.driver, "async")
        self._dialect = _resolve_dialect(config)
        self._pool: Any = None

    @property
    def adapter(self) -> Any:
        return self._adapter

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    async def initialize_pool(self) -> Any:
        """Initialize the async connection pool."""
        if self._pool is None:
            self._pool = await self._adapter.create_pool_async(self.config)
        return self._pool

    async def acquire(self) -> Any:
        if self._pool is None:
            await self.initialize_pool()
        try:
            return await self._adapter.acquire_connection_async(self._pool)
        except RuntimeError as e:
            raise PoolError(str(e)) from e

    async def release(self, connection: Any) -> None:
        await self._adapter.release_connection_async(connection, self._pool)

    @asynccontextmanager
    async def get_connection(self):  # type: ignore[no-untyped-def]
        """Get an async connection from the pool as an async context manager."""
        connection = await self.acquire()
        try:
            yield connection
        finally:
            await self.release(connection)

    async def close_pool(self) -> None:
        """Close the async connection pool."""
        if self._pool is not None:
            await self._adapter.close_pool_async(self._pool)
            self._pool = None
