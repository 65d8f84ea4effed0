"""Unit tests for type marshallers."""

from __future__ import annotations

import datetime
import decimal
from dataclasses import dataclass
from typing import Any

import pytest

from row_loader.mapping.types import (
    BOOLEAN,
    DATE,
    DATETIME,
    DECIMAL,
    FLOAT,
    INTEGER,
    STRING,
    CollectionType,
    ComponentType,
    ManyToOneType,
    type_for_annotation,
)


class FakeCursor:
    def __init__(self, row: dict[str, Any]) -> None:
        self.row = row

    def get(self, alias: str) -> Any:
        return self.row.get(alias)


@dataclass
class Point:
    x: int = 0
    y: int = 0


class TestValueTypes:
    def test_null_reads_none(self) -> None:
        assert INTEGER.read(FakeCursor({"a": None}), ["a"]) is None

    @pytest.mark.parametrize(
        ("type_", "raw", "expected"),
        [
            (STRING, 12, "12"),
            (INTEGER, "7", 7),
            (FLOAT, 2, 2.0),
            (DECIMAL, 1.5, decimal.Decimal("1.5")),
            (BOOLEAN, 1, True),
            (DATE, "2024-01-31 10:00:00", datetime.date(2024, 1, 31)),
            (DATETIME, "2024-01-31 10:00:00", datetime.datetime(2024, 1, 31, 10, 0)),
        ],
    )
    def test_from_db(self, type_: Any, raw: Any, expected: Any) -> None:
        assert type_.read(FakeCursor({"v": raw}), ["v"]) == expected

    def test_bind(self) -> None:
        assert DECIMAL.bind(decimal.Decimal("2.50")) == ["2.50"]
        assert DATE.bind(datetime.date(2024, 1, 31)) == ["2024-01-31"]
        assert STRING.bind(None) == [None]

    @pytest.mark.parametrize(
        ("annotation", "expected"),
        [
            (int, INTEGER),
            ("str", STRING),
            ("int | None", INTEGER),
            ("Optional[float]", FLOAT),
            ("datetime.date", DATE),
            (list, None),
            ("list[str]", None),
        ],
    )
    def test_type_for_annotation(self, annotation: Any, expected: Any) -> None:
        assert type_for_annotation(annotation) is expected


class TestComponentType:
    point = ComponentType(Point, [("x", INTEGER), ("y", INTEGER)])

    def test_column_span(self) -> None:
        assert self.point.column_span == 2

    def test_read_and_resolve(self) -> None:
        values = self.point.hydrate(FakeCursor({"px": 1, "py": 2}), ["px", "py"], None, None)
        assert values == [1, 2]
        point = self.point.resolve(values, None, None)
        assert isinstance(point, Point)
        assert (point.x, point.y) == (1, 2)

    def test_all_null_is_none(self) -> None:
        assert self.point.hydrate(FakeCursor({}), ["px", "py"], None, None) is None
        assert self.point.resolve(None, None, None) is None


class TestAssociationTypes:
    def test_many_to_one_hydrates_identifier(self) -> None:
        type_ = ManyToOneType("Customer")
        assert type_.is_association
        assert type_.hydrate(FakeCursor({"c": 9}), ["c"], None, None) == 9

    def test_many_to_one_resolves_through_session(self) -> None:
        calls = []

        class Session:
            def internal_load(self, entity: Any, identifier: Any) -> str:
                calls.append((entity, identifier))
                return "customer"

        type_ = ManyToOneType("Customer")
        assert type_.resolve(9, Session(), None) == "customer"
        assert type_.resolve(None, Session(), None) is None
        assert calls == [("Customer", 9)]

    def test_collection_type(self) -> None:
        type_ = CollectionType("Order.lines", "array")
        assert type_.column_span == 0
        assert type_.is_array
        assert type_.bind([1, 2]) == []
