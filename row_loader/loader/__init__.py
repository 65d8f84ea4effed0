"""Loaders - turn result sets into entities within a session."""

from __future__ import annotations

from row_loader.loader.loader import (
    AsyncCollectionLoader,
    AsyncEntityLoader,
    AsyncLoader,
    CollectionLoader,
    EntityLoader,
    Loader,
    QueryParameters,
    RowSelection,
)

__all__ = [
    "Loader",
    "AsyncLoader",
    "EntityLoader",
    "AsyncEntityLoader",
    "CollectionLoader",
    "AsyncCollectionLoader",
    "QueryParameters",
    "RowSelection",
]
