"""Integration tests for discriminator-based subclass resolution against SQLite."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import pytest

from row_loader.core.connection import ConnectionConfig
from row_loader.core.engine import Engine
from row_loader.core.exceptions import UnresolvedDiscriminatorError, WrongRuntimeTypeError
from row_loader.mapping.builder import entity, prop
from row_loader.mapping.types import INTEGER

# --- Test models ---


@dataclass
class Animal:
    id: int = 0
    name: str = ""


@dataclass
class Dog(Animal):
    bark_volume: int = 0


@dataclass
class Cat(Animal):
    lives: int = 0


ANIMAL = (
    entity(Animal, "animals")
    .id("id")
    .property("name")
    .discriminator("kind", value="A")
    .subclass(Dog, "D", [prop("bark_volume", INTEGER)])
    .subclass(Cat, "C", [prop("lives", INTEGER)])
    .build()
)

SCHEMA = """
CREATE TABLE animals (
    id INTEGER PRIMARY KEY,
    kind TEXT NOT NULL,
    name TEXT NOT NULL,
    bark_volume INTEGER,
    lives INTEGER
);
INSERT INTO animals VALUES (1, 'D', 'Rex', 7, NULL);
INSERT INTO animals VALUES (2, 'C', 'Tom', NULL, 9);
INSERT INTO animals VALUES (3, 'A', 'Generic', NULL, NULL);
INSERT INTO animals VALUES (4, 'X', 'Mystery', NULL, NULL);
"""


# --- Fixtures ---


@pytest.fixture
def engine(sqlite_config: ConnectionConfig, run_script) -> Iterator[Engine]:
    run_script(SCHEMA)
    engine = Engine.from_config(sqlite_config, [ANIMAL])
    yield engine
    engine.close()


def _query(engine: Engine, returns: type = Animal):
    fragment = engine.select_fragment(returns, "a", "0_")
    return engine.compile_query(
        f"select {fragment} from animals a where a.id between ? and ? order by a.id", [returns]
    )


class TestDiscriminator:
    def test_rows_resolve_to_subclasses(self, engine: Engine) -> None:
        with engine.open_session() as session:
            rex, tom, generic = session.list(_query(engine), [(1, INTEGER), (3, INTEGER)])
        assert type(rex) is Dog
        assert type(tom) is Cat
        assert type(generic) is Animal
        assert rex.bark_volume == 7
        assert tom.lives == 9
        assert generic.name == "Generic"

    def test_unknown_discriminator_fails(self, engine: Engine) -> None:
        with engine.open_session() as session:
            with pytest.raises(UnresolvedDiscriminatorError) as exc_info:
                session.list(_query(engine), [(4, INTEGER), (4, INTEGER)])
        assert exc_info.value.value == "X"
        assert exc_info.value.identifier == 4
        assert exc_info.value.root_class is Animal

    def test_subtypes_share_identity_space(self, engine: Engine) -> None:
        with engine.open_session() as session:
            rex = session.get(Animal, 1)
            assert type(rex) is Dog
            assert session.get(Dog, 1) is rex

    def test_subclass_get_filters_by_discriminator(self, engine: Engine) -> None:
        with engine.open_session() as session:
            assert session.get(Cat, 1) is None
            assert type(session.get(Cat, 2)) is Cat

    def test_cached_instance_of_wrong_type(self, engine: Engine) -> None:
        with engine.open_session() as session:
            session.get(Dog, 1)
            with pytest.raises(WrongRuntimeTypeError):
                session.get(Cat, 1)

    def test_row_for_wrong_type_in_identity_map(self, engine: Engine) -> None:
        with engine.open_session() as session:
            session.get(Animal, 1)
            with pytest.raises(WrongRuntimeTypeError) as exc_info:
                session.list(_query(engine, Cat), [(1, INTEGER), (1, INTEGER)])
        assert exc_info.value.expected is Cat
        assert exc_info.value.actual is Dog

    def test_failed_scan_leaves_no_partial_instances(self, engine: Engine) -> None:
        with engine.open_session() as session:
            with pytest.raises(UnresolvedDiscriminatorError):
                session.list(_query(engine), [(1, INTEGER), (4, INTEGER)])
            rex = session.get(Animal, 1)
            assert type(rex) is Dog
            assert rex.name == "Rex"
            assert rex.bark_volume == 7
