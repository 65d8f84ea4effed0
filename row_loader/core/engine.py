"""Session factories.

The Engine owns everything sessions share: the connection manager, the SQL
dialect, the alias resolver, the registry of entity and collection
persisters, and the loaders compiled from them. Sessions are cheap and
short-lived; engines live for the application's lifetime.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from row_loader.core.connection import AsyncConnectionManager, ConnectionConfig, ConnectionManager
from row_loader.core.dialect import Dialect
from row_loader.core.exceptions import (
    LoaderConfigurationError,
    MappingCompilationError,
    UnknownEntityError,
)
from row_loader.loader.loader import (
    AsyncCollectionLoader,
    AsyncEntityLoader,
    AsyncLoader,
    CollectionLoader,
    EntityLoader,
    Loader,
)
from row_loader.mapping.aliases import AliasResolver
from row_loader.mapping.collection import CollectionPersister
from row_loader.mapping.persister import EntityPersister
from row_loader.mapping.types import CollectionType, ManyToOneType
from row_loader.session.session import AsyncSession, Session

logger = logging.getLogger(__name__)


class _MappingRegistry:
    """Persister lookup and loader caches shared by both engines."""

    _entity_loader_class: type = EntityLoader
    _collection_loader_class: type = CollectionLoader
    _loader_class: type = Loader

    def __init__(
        self,
        connection_manager: Any,
        mappings: Sequence[EntityPersister] = (),
        collections: Sequence[CollectionPersister] = (),
    ) -> None:
        self._connection_manager = connection_manager
        self.dialect: Dialect = connection_manager.dialect
        self.paramstyle: str = connection_manager.adapter.paramstyle
        self.aliases = AliasResolver(self.dialect)
        self._by_class: dict[type, EntityPersister] = {}
        self._by_name: dict[str, EntityPersister] = {}
        self._collections: dict[str, CollectionPersister] = {}
        self._collection_types: dict[str, CollectionType] = {}
        self._entity_loaders: dict[str, Any] = {}
        self._collection_loaders: dict[str, Any] = {}
        for persister in mappings:
            self.register(persister)
        for collection in collections:
            self.register_collection(collection)

    @property
    def connection_manager(self) -> Any:
        return self._connection_manager

    # --- Registration ---

    def register(self, persister: EntityPersister) -> None:
        """Register a root persister and every subclass persister beneath it."""
        for member in persister.iter_hierarchy():
            if member.entity_name in self._by_name:
                raise MappingCompilationError(f"Entity '{member.entity_name}' is already mapped")
            self._by_name[member.entity_name] = member
            self._by_class[member.mapped_class] = member
            for prop in member.properties:
                if isinstance(prop.type, CollectionType):
                    self._collection_types.setdefault(prop.type.role, prop.type)
            logger.debug("Registered entity %s (table %s)", member.entity_name, member.table)

    def register_collection(self, persister: CollectionPersister) -> None:
        if persister.role in self._collections:
            raise MappingCompilationError(f"Collection role '{persister.role}' is already mapped")
        self._check_set_elements(persister)
        self._collections[persister.role] = persister

    def _check_set_elements(self, persister: CollectionPersister) -> None:
        """A set of entities needs a hashable entity class."""
        collection_type = self._collection_types.get(persister.role)
        element = persister.element_type
        if collection_type is None or collection_type.kind != "set":
            return
        if not isinstance(element, ManyToOneType):
            return
        target = element.entity
        if isinstance(target, str):
            target_persister = self._by_name.get(target)
            target = target_persister.mapped_class if target_persister is not None else None
        if target is not None and target.__hash__ is None:
            raise MappingCompilationError(
                f"Collection role '{persister.role}' is a set of {target.__name__}, "
                "which is unhashable; map it as a list or make the class hashable"
            )

    # --- Lookup ---

    def persister(self, entity: type | str) -> EntityPersister:
        """Persister for a mapped class or entity name."""
        if isinstance(entity, str):
            try:
                return self._by_name[entity]
            except KeyError:
                raise UnknownEntityError(entity) from None
        return self.persister_for_class(entity)

    def persister_for_class(self, cls: type) -> EntityPersister:
        for klass in cls.__mro__:
            persister = self._by_class.get(klass)
            if persister is not None:
                return persister
        raise UnknownEntityError(cls)

    def collection_persister(self, role: str) -> CollectionPersister:
        try:
            return self._collections[role]
        except KeyError:
            raise LoaderConfigurationError(f"Unknown collection role: {role}") from None

    def collection_type(self, role: str) -> CollectionType:
        try:
            return self._collection_types[role]
        except KeyError:
            raise LoaderConfigurationError(f"No entity owns collection role: {role}") from None

    # --- Loaders ---

    def entity_loader(self, persister: EntityPersister) -> Any:
        loader = self._entity_loaders.get(persister.entity_name)
        if loader is None:
            loader = self._entity_loader_class(self, persister)
            self._entity_loaders[persister.entity_name] = loader
        return loader

    def collection_loader(self, role: str) -> Any:
        loader = self._collection_loaders.get(role)
        if loader is None:
            loader = self._collection_loader_class(self, self.collection_persister(role))
            self._collection_loaders[role] = loader
        return loader

    def compile_query(
        self, sql: str, returns: Sequence[type | str | EntityPersister] = (), **options: Any
    ) -> Any:
        """Compile a SQL template whose rows carry the given entities.

        Args:
            sql: Template with ``?`` markers; its SELECT list must use the
                aliases produced by ``select_fragment`` for each position.
            returns: Entity classes, names or persisters, one per position.
            **options: Loader options (``suffixes``, ``aliases``,
                ``collection_role``, ``collection_owner``, ``lock_modes``,
                ``transformer``, ``strict``).

        Returns:
            A loader to pass to ``Session.list``.
        """
        persisters = [p if isinstance(p, EntityPersister) else self.persister(p) for p in returns]
        return self._loader_class(self, sql, persisters, **options)

    def select_fragment(self, entity: type | str, table_alias: str, suffix: str) -> str:
        """SELECT list for *entity* at *suffix*, matching the aliases loaders read."""
        return self.aliases.select_fragment(self.persister(entity), table_alias, suffix)

    def collection_select_fragment(self, role: str, table_alias: str, suffix: str) -> str:
        return self.aliases.collection_select_fragment(
            self.collection_persister(role), table_alias, suffix
        )


class Engine(_MappingRegistry):
    """Synchronous session factory."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        mappings: Sequence[EntityPersister] = (),
        collections: Sequence[CollectionPersister] = (),
    ) -> None:
        super().__init__(connection_manager, mappings, collections)

    @classmethod
    def from_config(
        cls,
        config: ConnectionConfig,
        mappings: Sequence[EntityPersister] = (),
        collections: Sequence[CollectionPersister] = (),
    ) -> Engine:
        """Create an Engine from a ConnectionConfig.

        Args:
            config: ConnectionConfig instance
            mappings: Root entity persisters
            collections: Collection persisters

        Returns:
            Engine instance
        """
        return cls(ConnectionManager(config), mappings, collections)

    def open_session(self) -> Session:
        return Session(self)

    def close(self) -> None:
        self._connection_manager.close_pool()


class AsyncEngine(_MappingRegistry):
    """Asynchronous session factory."""

    _entity_loader_class = AsyncEntityLoader
    _collection_loader_class = AsyncCollectionLoader
    _loader_class = AsyncLoader

    def __init__(
        self,
        connection_manager: AsyncConnectionManager,
        mappings: Sequence[EntityPersister] = (),
        collections: Sequence[CollectionPersister] = (),
    ) -> None:
        super().__init__(connection_manager, mappings, collections)

    @classmethod
    def from_config(
        cls,
        config: ConnectionConfig,
        mappings: Sequence[EntityPersister] = (),
        collections: Sequence[CollectionPersister] = (),
    ) -> AsyncEngine:
        return cls(AsyncConnectionManager(config), mappings, collections)

    def open_session(self) -> AsyncSession:
        return AsyncSession(self)

    async def close(self) -> None:
        await self._connection_manager.close_pool()
