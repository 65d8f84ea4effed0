"""SQL dialect configuration and pagination rules.

A Dialect is a plain configuration value: capability flags plus a function
that appends the engine's paging clause to a query. Paging placeholders are
written as ``?`` like every other positional parameter.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from row_loader.core.exceptions import AdapterError

if TYPE_CHECKING:
    from row_loader.loader.loader import RowSelection


def _limit_offset(sql: str) -> str:
    return f"{sql} limit ? offset ?"


def _mysql_limit(sql: str) -> str:
    return f"{sql} limit ?, ?"


def _oracle_rownum(sql: str) -> str:
    return (
        "select * from ( select row_.*, rownum rownum_ from ( "
        f"{sql} ) row_ where rownum <= ?) where rownum_ > ?"
    )


@dataclass(frozen=True)
class Dialect:
    """Engine-specific SQL capabilities."""

    name: str
    supports_limit: bool = False
    prefer_limit: bool = False
    bind_limit_parameters_reversed: bool = False
    bind_limit_parameters_first: bool = False
    use_max_for_limit: bool = False
    max_alias_length: int = 64
    for_update_clause: str = " for update"
    limit_rewriter: Callable[[str], str] | None = None

    def rewrite_for_limit(self, sql: str) -> str:
        """Return *sql* with the paging clause added.

        Raises:
            AdapterError: if the dialect has no paging support.
        """
        if not self.supports_limit or self.limit_rewriter is None:
            raise AdapterError(f"Dialect '{self.name}' does not support limit queries")
        return self.limit_rewriter(sql)


def get_first_row(selection: RowSelection | None) -> int:
    return 0 if selection is None else selection.first_row


def use_limit(dialect: Dialect, selection: RowSelection | None) -> bool:
    """Decide whether paging happens in SQL rather than by skipping cursor rows."""
    return (
        dialect.supports_limit
        and selection is not None
        and selection.max_rows is not None
        and (dialect.prefer_limit or get_first_row(selection) != 0)
    )


def limit_parameters(dialect: Dialect, selection: RowSelection) -> list[int]:
    """Return the two paging parameter values in bind order."""
    if selection.max_rows is None:
        raise ValueError("limit parameters require max_rows")
    first_row = get_first_row(selection)
    last_row = selection.max_rows
    if dialect.use_max_for_limit:
        last_row += first_row
    if dialect.bind_limit_parameters_reversed:
        return [last_row, first_row]
    return [first_row, last_row]


GENERIC = Dialect(name="generic")

SQLITE = Dialect(
    name="sqlite",
    supports_limit=True,
    prefer_limit=True,
    bind_limit_parameters_reversed=True,
    for_update_clause="",
    limit_rewriter=_limit_offset,
)

POSTGRESQL = Dialect(
    name="postgresql",
    supports_limit=True,
    bind_limit_parameters_reversed=True,
    max_alias_length=63,
    limit_rewriter=_limit_offset,
)

MYSQL = Dialect(
    name="mysql",
    supports_limit=True,
    limit_rewriter=_mysql_limit,
)

ORACLE = Dialect(
    name="oracle",
    supports_limit=True,
    bind_limit_parameters_reversed=True,
    use_max_for_limit=True,
    max_alias_length=30,
    limit_rewriter=_oracle_rownum,
)

_DIALECTS: dict[str, Dialect] = {
    d.name: d for d in (GENERIC, SQLITE, POSTGRESQL, MYSQL, ORACLE)
}


def get_dialect(name: str) -> Dialect:
    """Look up a built-in dialect by name."""
    try:
        return _DIALECTS[name.lower()]
    except KeyError:
        raise AdapterError(f"Unknown dialect: {name}") from None
