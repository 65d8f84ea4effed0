"""Database adapter protocols.

Every adapter module MUST implement these protocols so the loader can run
against any supported driver through the same command/cursor lifecycle.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from row_loader.core.connection import ConnectionConfig


@runtime_checkable
class SyncAdapter(Protocol):
    """Synchronous database adapter protocol."""

    @property
    def paramstyle(self) -> str:
        """Positional marker style: 'qmark' (?), 'format' (%s) or 'numeric' (:1)."""
        ...

    def create_pool(self, config: ConnectionConfig) -> Any:
        """Create a connection pool."""
        ...

    def acquire_connection(self, pool: Any) -> Any:
        """Acquire a connection from the pool."""
        ...

    def release_connection(self, connection: Any, pool: Any) -> None:
        """Release a connection back to the pool."""
        ...

    def close_pool(self, pool: Any) -> None:
        """Close the pool and release all connections."""
        ...

    def execute(
        self,
        connection: Any,
        sql: str,
        params: list[Any],
        timeout: float | None = None,
    ) -> Any:
        """Execute SQL and return a DB-API cursor with ``description``."""
        ...

    def finish(self, connection: Any) -> None:
        """Undo per-command connection state such as a statement timeout."""
        ...

    def is_timeout(self, exc: BaseException) -> bool:
        """Whether *exc* is the driver's statement-timeout error."""
        ...


@runtime_checkable
class AsyncAdapter(Protocol):
    """Asynchronous database adapter protocol."""

    @property
    def paramstyle(self) -> str:
        """Positional marker style: 'qmark' (?), 'format' (%s) or 'numeric' (:1)."""
        ...

    async def create_pool_async(self, config: ConnectionConfig) -> Any:
        """Create an async connection pool."""
        ...

    async def acquire_connection_async(self, pool: Any) -> Any:
        """Acquire a connection from the async pool."""
        ...

    async def release_connection_async(self, connection: Any, pool: Any) -> None:
        """Release a connection back to the async pool."""
        ...

    async def close_pool_async(self, pool: Any) -> None:
        """Close the async pool."""
        ...

    async def execute_async(
        self,
        connection: Any,
        sql: str,
        params: list[Any],
        timeout: float | None = None,
    ) -> Any:
        """Execute SQL asynchronously and return an async cursor."""
        ...

    async def finish_async(self, connection: Any) -> None:
        """Undo per-command connection state such as a statement timeout."""
        ...

    def is_timeout(self, exc: BaseException) -> bool:
        """Whether *exc* is the driver's statement-timeout error."""
        ...


class ListPool:
    """Pool bookkeeping shared by the adapters: a plain list of connections."""

    def acquire_connection(self, pool: list[Any]) -> Any:
        if not pool:
            raise RuntimeError("No connections available in pool")
        return pool.pop()

    def release_connection(self, connection: Any, pool: list[Any]) -> None:
        pool.append(connection)


class AsyncListPool:
    """Async variant of ListPool."""

    async def acquire_connection_async(self, pool: list[Any]) -> Any:
        if not pool:
            raise RuntimeError("No connections available in pool")
        return pool.pop()

    async def release_connection_async(self, connection: Any, pool: list[Any]) -> None:
        pool.append(connection)
