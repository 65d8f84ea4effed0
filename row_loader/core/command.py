"""Command and cursor resources.

A Command is a prepared statement bound to one connection. Executing it
yields a forward-only ResultCursor that reads columns by alias. Both are
scoped resources: the cursor is closed first, the command last.
"""

from __future__ import annotations

import logging
from typing import Any

from row_loader.core.exceptions import (
    ColumnMismatchError,
    CommandTimeoutError,
    ExecutionError,
)

logger = logging.getLogger(__name__)


def _column_index(description: Any) -> dict[str, tuple[int, str]]:
    """Map lowercased column labels to (position, label)."""
    if description is None:
        return {}
    return {desc[0].lower(): (i, desc[0]) for i, desc in enumerate(description)}


def _wrap_error(adapter: Any, sql: str, e: Exception) -> ExecutionError:
    if adapter.is_timeout(e):
        return CommandTimeoutError(sql, str(e))
    return ExecutionError(sql, str(e))


class _RowAccess:
    """Column lookup shared by the sync and async cursors."""

    def __init__(self, raw: Any, sql: str, strict: bool) -> None:
        self._raw = raw
        self._sql = sql
        self._strict = strict
        self._columns = _column_index(raw.description)
        self._row: Any = None

    @property
    def columns(self) -> list[str]:
        return [label for _, label in self._columns.values()]

    def get(self, alias: str) -> Any:
        """Read the value of *alias* on the current row.

        An alias absent from the result set reads as None unless the cursor
        is strict.
        """
        entry = self._columns.get(alias.lower())
        if entry is None:
            if self._strict:
                raise ColumnMismatchError(alias, self.columns)
            return None
        index, label = entry
        row = self._row
        if isinstance(row, dict):
            return row[label]
        return row[index]


class ResultCursor(_RowAccess):
    """Synchronous forward-only cursor."""

    def __init__(self, adapter: Any, raw: Any, sql: str, strict: bool = False) -> None:
        super().__init__(raw, sql, strict)
        self._adapter = adapter
        self.closed = False

    def advance(self) -> bool:
        """Move to the next row; False once the cursor is exhausted."""
        try:
            self._row = self._raw.fetchone()
        except Exception as e:
            raise _wrap_error(self._adapter, self._sql, e) from e
        return self._row is not None

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            try:
                self._raw.close()
            except Exception as e:
                raise _wrap_error(self._adapter, self._sql, e) from e


class Command:
    """Synchronous prepared command."""

    def __init__(
        self,
        adapter: Any,
        connection: Any,
        sql: str,
        params: list[Any],
        *,
        timeout: float | None = None,
        strict: bool = False,
    ) -> None:
        self._adapter = adapter
        self._connection = connection
        self.sql = sql
        self.params = params
        self.timeout = timeout
        self._strict = strict
        self.closed = False

    def execute(self) -> ResultCursor:
        logger.info(self.sql)
        try:
            raw = self._adapter.execute(self._connection, self.sql, self.params, self.timeout)
        except Exception as e:
            raise _wrap_error(self._adapter, self.sql, e) from e
        return ResultCursor(self._adapter, raw, self.sql, self._strict)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._adapter.finish(self._connection)


class AsyncResultCursor(_RowAccess):
    """Asynchronous forward-only cursor; only ``advance`` suspends."""

    def __init__(self, adapter: Any, raw: Any, sql: str, strict: bool = False) -> None:
        super().__init__(raw, sql, strict)
        self._adapter = adapter
        self.closed = False

    async def advance(self) -> bool:
        try:
            self._row = await self._raw.fetchone()
        except Exception as e:
            raise _wrap_error(self._adapter, self._sql, e) from e
        return self._row is not None

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            try:
                await self._raw.close()
            except Exception as e:
                raise _wrap_error(self._adapter, self._sql, e) from e


class AsyncCommand:
    """Asynchronous prepared command."""

    def __init__(
        self,
        adapter: Any,
        connection: Any,
        sql: str,
        params: list[Any],
        *,
        timeout: float | None = None,
        strict: bool = False,
    ) -> None:
        self._adapter = adapter
        self._connection = connection
        self.sql = sql
        self.params = params
        self.timeout = timeout
        self._strict = strict
        self.closed = False

    async def execute(self) -> AsyncResultCursor:
        logger.info(self.sql)
        try:
            raw = await self._adapter.execute_async(
                self._connection, self.sql, self.params, self.timeout
            )
        except Exception as e:
            raise _wrap_error(self._adapter, self.sql, e) from e
        return AsyncResultCursor(self._adapter, raw, self.sql, self._strict)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            await self._adapter.finish_async(self._connection)
