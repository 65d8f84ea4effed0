"""SQL parameter normalization and binding.

SQL templates carry ``?`` positional markers. They are converted to the
driver's paramstyle here, leaving string literals untouched.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from row_loader.core.exceptions import ParameterBindingError

if TYPE_CHECKING:
    from row_loader.mapping.types import Type

# Matches single-quoted string literals (with escaped quotes handled)
_STRING_LITERAL_PATTERN = re.compile(r"'(?:[^'\\]|\\.)*'")


def normalize_params(sql: str, paramstyle: str) -> str:
    """Convert ``?`` markers to the target paramstyle.

    Args:
        sql: SQL string with ``?`` markers.
        paramstyle: DB-API paramstyle - 'qmark' (no conversion), 'format'
            (``%s``) or 'numeric' (``:1``, ``:2``...).

    Returns:
        SQL with markers converted to the target style.
    """
    if paramstyle == "qmark":
        return sql
    if paramstyle not in ("format", "numeric"):
        raise ValueError(f"Unsupported paramstyle: {paramstyle}")
    return _convert(sql, paramstyle)


@lru_cache(maxsize=256)
def _convert(sql: str, paramstyle: str) -> str:
    """Rewrite markers outside string literals."""
    counter = 0

    def _replace(segment: str) -> str:
        nonlocal counter
        out: list[str] = []
        for char in segment:
            if char == "?":
                counter += 1
                out.append("%s" if paramstyle == "format" else f":{counter}")
            elif char == "%" and paramstyle == "format":
                out.append("%%")
            else:
                out.append(char)
        return "".join(out)

    parts: list[str] = []
    last_end = 0

    for match in _STRING_LITERAL_PATTERN.finditer(sql):
        start, end = match.span()
        if start > last_end:
            parts.append(_replace(sql[last_end:start]))
        literal = match.group()
        parts.append(literal.replace("%", "%%") if paramstyle == "format" else literal)
        last_end = end

    if last_end < len(sql):
        parts.append(_replace(sql[last_end:]))

    return "".join(parts)


def count_markers(sql: str) -> int:
    """Count ``?`` markers outside string literals."""
    return _STRING_LITERAL_PATTERN.sub("", sql).count("?")


def bind_values(bindings: Sequence[tuple[Any, Type]]) -> list[Any]:
    """Flatten ``(value, type)`` bindings into driver parameter values.

    A type may span several columns, so one binding can yield several values.
    """
    params: list[Any] = []
    for position, (value, type_) in enumerate(bindings):
        try:
            params.extend(type_.bind(value))
        except (TypeError, ValueError) as e:
            raise ParameterBindingError(
                "<bindings>", f"binding #{position} ({type_.name}): {e}"
            ) from e
    return params
