"""Unit tests for parameter normalization and binding."""

from __future__ import annotations

import pytest

from row_loader.core.exceptions import ParameterBindingError
from row_loader.core.params import bind_values, count_markers, normalize_params
from row_loader.mapping.builder import prop
from row_loader.mapping.types import INTEGER, STRING, ComponentType


class TestNormalizeParams:
    def test_qmark_passthrough(self) -> None:
        sql = "SELECT * FROM users WHERE id = ?"
        assert normalize_params(sql, "qmark") == sql

    def test_format_conversion(self) -> None:
        sql = "SELECT * FROM users WHERE id = ? AND name = ?"
        expected = "SELECT * FROM users WHERE id = %s AND name = %s"
        assert normalize_params(sql, "format") == expected

    def test_numeric_conversion(self) -> None:
        sql = "SELECT * FROM t WHERE a = ? OR b = ?"
        assert normalize_params(sql, "numeric") == "SELECT * FROM t WHERE a = :1 OR b = :2"

    def test_string_literal_exclusion(self) -> None:
        sql = "SELECT * FROM t WHERE col = 'why?' AND id = ?"
        expected = "SELECT * FROM t WHERE col = 'why?' AND id = :1"
        assert normalize_params(sql, "numeric") == expected

    def test_percent_escaped_for_format(self) -> None:
        sql = "SELECT * FROM t WHERE name LIKE 'a%' AND id = ?"
        expected = "SELECT * FROM t WHERE name LIKE 'a%%' AND id = %s"
        assert normalize_params(sql, "format") == expected

    def test_unsupported_paramstyle(self) -> None:
        with pytest.raises(ValueError, match="Unsupported paramstyle"):
            normalize_params("SELECT ?", "named")

    def test_count_markers(self) -> None:
        assert count_markers("SELECT '?' FROM t WHERE a = ? AND b = ?") == 2


class TestBindValues:
    def test_scalar_bindings(self) -> None:
        assert bind_values([(1, INTEGER), ("x", STRING)]) == [1, "x"]

    def test_none_binds_null(self) -> None:
        assert bind_values([(None, INTEGER)]) == [None]

    def test_multi_column_type(self) -> None:
        class Point:
            def __init__(self, x: int, y: int) -> None:
                self.x = x
                self.y = y

        point_type = ComponentType(Point, [("x", INTEGER), ("y", INTEGER)])
        assert bind_values([(Point(3, 4), point_type), (7, INTEGER)]) == [3, 4, 7]
        assert bind_values([(None, point_type)]) == [None, None]

    def test_conversion_failure(self) -> None:
        with pytest.raises(ParameterBindingError, match="binding #1"):
            bind_values([(1, INTEGER), ("abc", INTEGER)])

    def test_prop_shorthand_columns(self) -> None:
        assert prop("name").columns == ("name",)
        assert prop("name", column="full_name").columns == ("full_name",)
