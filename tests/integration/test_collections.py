"""Integration tests for collections and components against SQLite.

Covers: lazy collection handles, collections fetched in the owner's query,
raw collections wrapped on association, arrays tracked through the session
side table, collections moving between sessions, refresh, and recovery
from loads that fail partway.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from row_loader.core.connection import ConnectionConfig
from row_loader.core.engine import Engine
from row_loader.core.exceptions import (
    CollectionSessionError,
    ExecutionError,
    LazyInitializationError,
    MappingError,
    SessionError,
)
from row_loader.mapping.builder import entity, prop
from row_loader.mapping.collection import CollectionPersister
from row_loader.mapping.transform import DistinctRootEntityTransformer, RootEntityTransformer
from row_loader.mapping.types import INTEGER, STRING, ManyToOneType
from row_loader.session.collections import (
    PersistentCollection,
    PersistentList,
    PersistentMap,
    PersistentSet,
)

# --- Test models ---


@dataclass
class Pet:
    id: int = 0
    name: str = ""


@dataclass
class Address:
    street: str = ""
    city: str = ""


@dataclass
class Owner:
    id: int = 0
    name: str = ""
    address: Address | None = None
    pets: list[Pet] = field(default_factory=list)
    nicknames: set[str] = field(default_factory=set)
    scores: list[int] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)


PET = entity(Pet, "pets").id("id").property("name").build()

OWNER = (
    entity(Owner, "owners")
    .id("id")
    .property("name")
    .component("address", Address, [prop("street"), prop("city")])
    .collection("pets")
    .collection("nicknames", kind="set")
    .collection("scores", kind="array")
    .collection("tags", kind="map")
    .build()
)

COLLECTIONS = [
    CollectionPersister(
        "Owner.pets", "pets", ["owner_id"], ManyToOneType(Pet), ["id"], order_by="t.id"
    ),
    CollectionPersister("Owner.nicknames", "nicknames", ["owner_id"], STRING, ["nickname"]),
    CollectionPersister(
        "Owner.scores", "scores", ["owner_id"], INTEGER, ["score"], index_columns=["pos"]
    ),
    CollectionPersister(
        "Owner.tags",
        "tags",
        ["owner_id"],
        STRING,
        ["tag_value"],
        index_columns=["tag_key"],
        index_type=STRING,
    ),
]


class FailOnSecondRow(RootEntityTransformer):
    def __init__(self) -> None:
        self.rows = 0

    def transform_tuple(self, row: Sequence[Any], aliases: Sequence[str]) -> Any:
        self.rows += 1
        if self.rows == 2:
            raise MappingError("cannot transform row")
        return super().transform_tuple(row, aliases)


SCHEMA = """
CREATE TABLE owners (id INTEGER PRIMARY KEY, name TEXT, street TEXT, city TEXT);
CREATE TABLE pets (id INTEGER PRIMARY KEY, owner_id INTEGER, name TEXT);
CREATE TABLE nicknames (owner_id INTEGER, nickname TEXT);
CREATE TABLE scores (owner_id INTEGER, pos INTEGER, score INTEGER);
CREATE TABLE tags (owner_id INTEGER, tag_key TEXT, tag_value TEXT);

INSERT INTO owners VALUES (1, 'Ann', 'Main St', 'Springfield');
INSERT INTO owners VALUES (2, 'Ben', NULL, NULL);
INSERT INTO pets VALUES (1, 1, 'Rex');
INSERT INTO pets VALUES (2, 1, 'Tom');
INSERT INTO pets VALUES (3, NULL, 'Stray');
INSERT INTO nicknames VALUES (1, 'Boss');
INSERT INTO nicknames VALUES (1, 'Chief');
INSERT INTO scores VALUES (1, 2, 20);
INSERT INTO scores VALUES (1, 0, 30);
INSERT INTO scores VALUES (1, 1, 10);
INSERT INTO tags VALUES (1, 'color', 'brown');
INSERT INTO tags VALUES (1, 'size', 'L');
"""


# --- Fixtures ---


@pytest.fixture
def engine(sqlite_config: ConnectionConfig, run_script) -> Iterator[Engine]:
    run_script(SCHEMA)
    engine = Engine.from_config(sqlite_config, [PET, OWNER], COLLECTIONS)
    yield engine
    engine.close()


@pytest.fixture
def owners_with_pets(engine: Engine):
    """Owners and their pets in one query; pets fill ``Owner.pets`` as they stream by."""
    sql = (
        f"select {engine.select_fragment(Pet, 'p', '0_')}, "
        f"{engine.select_fragment(Owner, 'o', '1_')}, "
        f"{engine.collection_select_fragment('Owner.pets', 'p', 'c0_')} "
        "from owners o left join pets p on p.owner_id = o.id order by o.id, p.id"
    )
    return engine.compile_query(
        sql,
        [Pet, Owner],
        collection_role="Owner.pets",
        collection_owner=1,
        transformer=DistinctRootEntityTransformer(),
    )


class TestComponents:
    def test_component_hydrated(self, engine: Engine) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
        assert isinstance(ann.address, Address)
        assert (ann.address.street, ann.address.city) == ("Main St", "Springfield")

    def test_all_null_component_is_none(self, engine: Engine) -> None:
        with engine.open_session() as session:
            assert session.get(Owner, 2).address is None


class TestLazyCollections:
    def test_collection_is_uninitialized_handle(self, engine: Engine) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
            assert isinstance(ann.pets, PersistentList)
            assert not ann.pets.was_initialized
            assert ann.pets.role == "Owner.pets"
            assert ann.pets.key == 1

    def test_access_initializes_entity_collection(self, engine: Engine) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
            assert [p.name for p in ann.pets] == ["Rex", "Tom"]
            assert ann.pets.was_initialized
            assert ann.pets[0] is session.get(Pet, 1)

    def test_value_collections(self, engine: Engine) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
            assert isinstance(ann.nicknames, PersistentSet)
            assert set(ann.nicknames) == {"Boss", "Chief"}
            assert isinstance(ann.tags, PersistentMap)
            assert dict(ann.tags) == {"color": "brown", "size": "L"}

    def test_empty_collection(self, engine: Engine) -> None:
        with engine.open_session() as session:
            ben = session.get(Owner, 2)
            assert len(ben.pets) == 0
            assert ben.pets.was_initialized

    def test_array_loaded_eagerly_and_left_raw(self, engine: Engine) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
            assert type(ann.scores) is list
            assert ann.scores == [30, 10, 20]
            holder = session.get_collection_holder(ann.scores)
            assert holder is not None
            assert holder.array is ann.scores

    def test_access_after_close_fails(self, engine: Engine) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
        with pytest.raises(LazyInitializationError):
            len(ann.pets)

    def test_failed_load_can_be_retried(self, engine: Engine, run_script) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
            run_script("ALTER TABLE pets RENAME TO pets_moved;")
            with pytest.raises(ExecutionError):
                len(ann.pets)
            assert not ann.pets.was_initialized
            assert not ann.pets.is_loading

            run_script("ALTER TABLE pets_moved RENAME TO pets;")
            assert [p.name for p in ann.pets] == ["Rex", "Tom"]
            assert ann.pets.was_initialized


class TestFetchedCollections:
    def test_collection_filled_from_owner_query(self, engine: Engine, owners_with_pets) -> None:
        with engine.open_session() as session:
            ann, ben = session.list(owners_with_pets)
            assert ann.pets.was_initialized
            assert ben.pets.was_initialized
            assert [p.name for p in ann.pets] == ["Rex", "Tom"]
            assert len(ben.pets) == 0
            assert ann.pets[1] is session.get(Pet, 2)

    def test_initialized_collection_is_not_refilled(
        self, engine: Engine, owners_with_pets
    ) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
            pets = list(ann.pets)
            (again, _) = session.list(owners_with_pets)
            assert again is ann
            assert list(ann.pets) == pets

    def test_failed_scan_discards_partial_state(self, engine: Engine) -> None:
        sql = (
            f"select {engine.select_fragment(Pet, 'p', '0_')}, "
            f"{engine.select_fragment(Owner, 'o', '1_')}, "
            f"{engine.collection_select_fragment('Owner.pets', 'p', 'c0_')} "
            "from owners o left join pets p on p.owner_id = o.id order by o.id, p.id"
        )
        query = engine.compile_query(
            sql,
            [Pet, Owner],
            collection_role="Owner.pets",
            collection_owner=1,
            transformer=FailOnSecondRow(),
        )
        with engine.open_session() as session:
            with pytest.raises(MappingError):
                session.list(query)
            ann = session.get(Owner, 1)
            assert ann.name == "Ann"
            assert session.get(Pet, 1).name == "Rex"
            assert not ann.pets.was_initialized
            assert [p.name for p in ann.pets] == ["Rex", "Tom"]


class TestRefresh:
    def test_refresh_reloads_state_and_collections(self, engine: Engine, run_script) -> None:
        with engine.open_session() as session:
            ann = session.get(Owner, 1)
            pets = ann.pets
            scores = ann.scores
            assert len(pets) == 2
            run_script(
                "UPDATE owners SET name = 'Anna' WHERE id = 1;"
                "INSERT INTO pets VALUES (4, 1, 'Zed');"
                "INSERT INTO scores VALUES (1, 3, 40);"
            )

            session.refresh(ann)
            assert ann.name == "Anna"
            assert ann.pets is pets
            assert [p.name for p in ann.pets] == ["Rex", "Tom", "Zed"]
            assert ann.scores is scores
            assert scores == [30, 10, 20, 40]

    def test_refresh_unknown_instance(self, engine: Engine) -> None:
        with engine.open_session() as session:
            with pytest.raises(SessionError):
                session.refresh(Owner(id=1))


class TestWrapping:
    def test_associate_wraps_raw_collections(self, engine: Engine) -> None:
        scores = [1, 2, 3]
        owner = Owner(
            id=9, name="Cy", nicknames={"C"}, scores=scores, tags={"k": "v"}, pets=[Pet(id=5)]
        )
        with engine.open_session() as session:
            session.associate(owner)
            assert isinstance(owner.pets, PersistentList)
            assert isinstance(owner.nicknames, PersistentSet)
            assert isinstance(owner.tags, PersistentMap)
            assert owner.pets.role == "Owner.pets"
            assert [p.id for p in owner.pets] == [5]
            assert set(owner.nicknames) == {"C"}

            assert owner.scores is scores
            holder = session.get_collection_holder(scores)
            assert holder is not None
            assert holder.role == "Owner.scores"

    def test_associate_twice_is_stable(self, engine: Engine) -> None:
        owner = Owner(id=9, pets=[])
        with engine.open_session() as session:
            session.associate(owner)
            wrapped = owner.pets
            session.associate(owner)
            assert owner.pets is wrapped

    def test_collection_cannot_join_two_open_sessions(self, engine: Engine) -> None:
        with engine.open_session() as first, engine.open_session() as second:
            ann = first.get(Owner, 1)
            with pytest.raises(CollectionSessionError):
                second.associate(ann)

    def test_collection_reattaches_after_close(self, engine: Engine) -> None:
        with engine.open_session() as first:
            ann = first.get(Owner, 1)
            assert len(ann.nicknames) == 2
            pets = ann.pets
        with engine.open_session() as second:
            second.associate(ann)
            assert ann.pets is pets
            assert isinstance(pets, PersistentCollection)
            assert pets.session is second
            assert second.contains_collection(pets)
            assert ann.nicknames.stored_snapshot == {"Boss", "Chief"}
            assert [p.name for p in pets] == ["Rex", "Tom"]
