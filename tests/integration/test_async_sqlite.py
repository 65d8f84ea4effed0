"""Integration tests for AsyncEngine against SQLite (aiosqlite)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import pytest

from row_loader.core.connection import ConnectionConfig
from row_loader.core.engine import AsyncEngine
from row_loader.core.exceptions import LazyInitializationError, SessionError
from row_loader.mapping.builder import entity
from row_loader.mapping.collection import CollectionPersister
from row_loader.mapping.types import INTEGER, STRING
from row_loader.session.proxy import EntityProxy, is_initialized

# --- Test models ---


@dataclass
class Department:
    id: int = 0
    name: str = ""
    parent: Department | None = None
    codes: list[str] = field(default_factory=list)


DEPARTMENT = (
    entity(Department, "departments")
    .id("id")
    .property("name")
    .many_to_one("parent", Department)
    .collection("codes")
    .build()
)

CODES = CollectionPersister(
    "Department.codes", "codes", ["department_id"], STRING, ["code"], order_by="t.code"
)

SCHEMA = """
CREATE TABLE departments (id INTEGER PRIMARY KEY, name TEXT NOT NULL, parent_id INTEGER);
CREATE TABLE codes (department_id INTEGER, code TEXT);
INSERT INTO departments VALUES (1, 'Head Office', NULL);
INSERT INTO departments VALUES (2, 'Sales', 1);
INSERT INTO departments VALUES (3, 'Support', 1);
INSERT INTO codes VALUES (2, 'S2');
INSERT INTO codes VALUES (2, 'S1');
"""


# --- Fixtures ---


@pytest.fixture
async def engine(sqlite_config: ConnectionConfig, run_script) -> AsyncIterator[AsyncEngine]:
    run_script(SCHEMA)
    engine = AsyncEngine.from_config(sqlite_config, [DEPARTMENT], [CODES])
    yield engine
    await engine.close()


@pytest.fixture
def children_query(engine: AsyncEngine):
    fragment = engine.select_fragment(Department, "d", "0_")
    return engine.compile_query(
        f"select {fragment} from departments d where d.parent_id = ? order by d.id", [Department]
    )


class TestAsyncLoading:
    async def test_get(self, engine: AsyncEngine) -> None:
        async with engine.open_session() as session:
            sales = await session.get(Department, 2)
            assert sales.name == "Sales"
            assert await session.get(Department, 2) is sales

    async def test_get_missing(self, engine: AsyncEngine) -> None:
        async with engine.open_session() as session:
            assert await session.get(Department, 42) is None

    async def test_list(self, engine: AsyncEngine, children_query) -> None:
        async with engine.open_session() as session:
            result = await session.list(children_query, [(1, INTEGER)])
        assert [d.name for d in result] == ["Sales", "Support"]

    async def test_list_paged(self, engine: AsyncEngine, children_query) -> None:
        async with engine.open_session() as session:
            result = await session.list(children_query, [(1, INTEGER)], first_row=1, max_rows=1)
        assert [d.id for d in result] == [3]

    async def test_refresh(self, engine: AsyncEngine, run_script) -> None:
        async with engine.open_session() as session:
            sales = await session.get(Department, 2)
            await session.initialize(sales.codes)
            run_script(
                "UPDATE departments SET name = 'Sales EU' WHERE id = 2;"
                "INSERT INTO codes VALUES (2, 'S3');"
            )
            await session.refresh(sales)
            assert sales.name == "Sales EU"
            assert not sales.codes.was_initialized
            await session.initialize(sales.codes)
            assert list(sales.codes) == ["S1", "S2", "S3"]


class TestAsyncLaziness:
    async def test_references_become_proxies(self, engine: AsyncEngine) -> None:
        async with engine.open_session() as session:
            sales = await session.get(Department, 2)
            parent = sales.parent
            assert isinstance(parent, EntityProxy)
            assert parent.id == 1
            with pytest.raises(LazyInitializationError):
                parent.name  # noqa: B018

    async def test_initialize_proxy(self, engine: AsyncEngine) -> None:
        async with engine.open_session() as session:
            sales = await session.get(Department, 2)
            head = await session.initialize(sales.parent)
            assert head.name == "Head Office"
            assert is_initialized(sales.parent)
            assert sales.parent.name == "Head Office"
            assert await session.get(Department, 1) is head

    async def test_reference_in_result_set_is_instance(
        self, engine: AsyncEngine, children_query
    ) -> None:
        async with engine.open_session() as session:
            head = await session.get(Department, 1)
            sales, support = await session.list(children_query, [(1, INTEGER)])
            assert sales.parent is head
            assert support.parent is head

    async def test_collection_requires_explicit_initialize(self, engine: AsyncEngine) -> None:
        async with engine.open_session() as session:
            sales = await session.get(Department, 2)
            with pytest.raises(LazyInitializationError):
                len(sales.codes)
            await session.initialize(sales.codes)
            assert list(sales.codes) == ["S1", "S2"]


class TestAsyncLifecycle:
    async def test_sync_close_rejected(self, engine: AsyncEngine) -> None:
        session = engine.open_session()
        with pytest.raises(SessionError):
            session.close()
        await session.close_async()

    async def test_closed_session_rejects_queries(self, engine: AsyncEngine) -> None:
        session = engine.open_session()
        await session.close_async()
        with pytest.raises(SessionError):
            await session.get(Department, 1)

    async def test_sessions_release_connections(self, engine: AsyncEngine) -> None:
        for _ in range(5):
            async with engine.open_session() as session:
                await session.get(Department, 1)
