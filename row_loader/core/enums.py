"""Database backend and lock mode enumerations."""

from __future__ import annotations

from enum import Enum


class DatabaseBackend(Enum):
    """Supported database backends."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    ORACLE = "oracle"


_LOCK_LEVELS = {
    "none": 0,
    "read": 5,
    "upgrade": 10,
    "upgrade_nowait": 10,
    "write": 10,
}


class LockMode(Enum):
    """Concurrency-control strength requested for, or held on, a loaded instance.

    Modes are ordered by level; UPGRADE, UPGRADE_NOWAIT and WRITE share the
    same level, so none of them is stronger than another.
    """

    NONE = "none"
    READ = "read"
    UPGRADE = "upgrade"
    UPGRADE_NOWAIT = "upgrade_nowait"
    WRITE = "write"

    @property
    def level(self) -> int:
        return _LOCK_LEVELS[self.value]

    def greater_than(self, other: LockMode) -> bool:
        return self.level > other.level

    def less_than(self, other: LockMode) -> bool:
        return self.level < other.level


class EntityStatus(Enum):
    """Lifecycle state of an entity entry in a session."""

    LOADING = "loading"
    LOADED = "loaded"
