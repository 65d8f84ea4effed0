"""Shared test fixtures."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from row_loader.core.connection import ConnectionConfig


@pytest.fixture
def sqlite_config(tmp_path: Path) -> ConnectionConfig:
    """File-backed SQLite config; two pooled connections see the same data."""
    return ConnectionConfig(driver="sqlite", database=str(tmp_path / "test.db"), pool_size=2)


@pytest.fixture
def memory_config() -> ConnectionConfig:
    """SQLite in-memory connection config."""
    return ConnectionConfig(driver="sqlite", database=":memory:", pool_size=1)


@pytest.fixture
def run_script(sqlite_config: ConnectionConfig):
    """Helper to run DDL/DML directly against the test database.

    Usage:
        run_script("CREATE TABLE t (id INTEGER); INSERT INTO t VALUES (1);")
    """

    def _run(script: str) -> None:
        conn = sqlite3.connect(sqlite_config.database)
        try:
            conn.executescript(script)
            conn.commit()
        finally:
            conn.close()

    return _run
