"""Session layer - identity map, tracked collections and proxies."""

from __future__ import annotations

from row_loader.session.collections import (
    PersistentArrayHolder,
    PersistentCollection,
    PersistentList,
    PersistentMap,
    PersistentSet,
)
from row_loader.session.proxy import EntityProxy, is_initialized, unproxy
from row_loader.session.session import AsyncSession, EntityEntry, Session
from row_loader.session.wrap import WrapVisitor

__all__ = [
    "Session",
    "AsyncSession",
    "EntityEntry",
    "PersistentCollection",
    "PersistentList",
    "PersistentSet",
    "PersistentMap",
    "PersistentArrayHolder",
    "EntityProxy",
    "is_initialized",
    "unproxy",
    "WrapVisitor",
]
