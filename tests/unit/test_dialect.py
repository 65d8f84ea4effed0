"""Unit tests for dialect paging rules."""

from __future__ import annotations

import pytest

from row_loader.core.dialect import (
    GENERIC,
    MYSQL,
    ORACLE,
    POSTGRESQL,
    SQLITE,
    Dialect,
    get_dialect,
    limit_parameters,
    use_limit,
)
from row_loader.core.exceptions import AdapterError
from row_loader.loader.loader import RowSelection


class TestUseLimit:
    def test_no_selection(self) -> None:
        assert not use_limit(SQLITE, None)

    def test_requires_max_rows(self) -> None:
        assert not use_limit(SQLITE, RowSelection(first_row=10))

    def test_prefer_limit_pages_from_first_row(self) -> None:
        assert use_limit(SQLITE, RowSelection(max_rows=5))

    def test_without_preference_only_with_offset(self) -> None:
        assert not use_limit(POSTGRESQL, RowSelection(max_rows=5))
        assert use_limit(POSTGRESQL, RowSelection(first_row=1, max_rows=5))

    def test_unsupported_dialect(self) -> None:
        assert not use_limit(GENERIC, RowSelection(first_row=10, max_rows=5))


class TestLimitParameters:
    def test_offset_then_count(self) -> None:
        assert limit_parameters(MYSQL, RowSelection(first_row=10, max_rows=5)) == [10, 5]

    def test_reversed(self) -> None:
        assert limit_parameters(POSTGRESQL, RowSelection(first_row=10, max_rows=5)) == [5, 10]

    def test_max_for_limit(self) -> None:
        assert limit_parameters(ORACLE, RowSelection(first_row=10, max_rows=5)) == [15, 10]

    def test_requires_max_rows(self) -> None:
        with pytest.raises(ValueError):
            limit_parameters(SQLITE, RowSelection(first_row=3))


class TestRewrite:
    def test_limit_offset(self) -> None:
        assert SQLITE.rewrite_for_limit("select 1") == "select 1 limit ? offset ?"

    def test_mysql(self) -> None:
        assert MYSQL.rewrite_for_limit("select 1") == "select 1 limit ?, ?"

    def test_oracle_wraps_query(self) -> None:
        sql = ORACLE.rewrite_for_limit("select a from t")
        assert "( select a from t )" in sql
        assert sql.count("?") == 2

    def test_generic_cannot_rewrite(self) -> None:
        with pytest.raises(AdapterError):
            GENERIC.rewrite_for_limit("select 1")

    def test_custom_dialect(self) -> None:
        dialect = Dialect(
            name="custom",
            supports_limit=True,
            bind_limit_parameters_first=True,
            limit_rewriter=lambda sql: f"{sql} fetch first ? rows",
        )
        assert dialect.rewrite_for_limit("select 1") == "select 1 fetch first ? rows"


class TestGetDialect:
    def test_lookup_is_case_insensitive(self) -> None:
        assert get_dialect("SQLite") is SQLITE
        assert get_dialect("postgresql") is POSTGRESQL

    def test_unknown(self) -> None:
        with pytest.raises(AdapterError, match="Unknown dialect"):
            get_dialect("db2")
