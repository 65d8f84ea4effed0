"""RowLoader - entity loading and hydration over raw SQL."""

from __future__ import annotations

from row_loader.core.connection import (
    AsyncConnectionManager,
    ConnectionConfig,
    ConnectionManager,
)
from row_loader.core.dialect import Dialect, get_dialect
from row_loader.core.engine import AsyncEngine, Engine
from row_loader.core.enums import DatabaseBackend, LockMode
from row_loader.core.exceptions import (
    AdapterError,
    CollectionSessionError,
    ColumnMismatchError,
    CommandTimeoutError,
    ConnectionError,  # noqa: A004
    ExecutionError,
    HydrationError,
    LazyInitializationError,
    LoaderConfigurationError,
    MappingCompilationError,
    MappingError,
    NonUniqueObjectError,
    ObjectNotFoundError,
    ParameterBindingError,
    PoolError,
    RowLoaderError,
    SessionError,
    StaleStateError,
    UnknownEntityError,
    UnresolvedDiscriminatorError,
    WrongRuntimeTypeError,
)
from row_loader.loader.loader import AsyncLoader, Loader, QueryParameters, RowSelection
from row_loader.mapping.builder import entity, prop
from row_loader.mapping.collection import CollectionPersister
from row_loader.mapping.persister import EntityPersister, IdentityKey
from row_loader.session.session import AsyncSession, Session

__all__ = [
    # Connection
    "ConnectionConfig",
    "ConnectionManager",
    "AsyncConnectionManager",
    # Dialect
    "Dialect",
    "get_dialect",
    # Engine
    "Engine",
    "AsyncEngine",
    # Session
    "Session",
    "AsyncSession",
    # Loading
    "Loader",
    "AsyncLoader",
    "QueryParameters",
    "RowSelection",
    # Mapping
    "entity",
    "prop",
    "EntityPersister",
    "CollectionPersister",
    "IdentityKey",
    # Enums
    "DatabaseBackend",
    "LockMode",
    # Exceptions
    "RowLoaderError",
    "ExecutionError",
    "CommandTimeoutError",
    "ParameterBindingError",
    "HydrationError",
    "StaleStateError",
    "WrongRuntimeTypeError",
    "UnresolvedDiscriminatorError",
    "MappingError",
    "ColumnMismatchError",
    "MappingCompilationError",
    "UnknownEntityError",
    "LoaderConfigurationError",
    "SessionError",
    "LazyInitializationError",
    "NonUniqueObjectError",
    "ObjectNotFoundError",
    "CollectionSessionError",
    "AdapterError",
    "ConnectionError",
    "PoolError",
]
