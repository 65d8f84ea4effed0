"""Unit of work.

A Session owns the identity map, the entity entries that record lock mode,
version and hydrated state, the tracked collections and the proxies for one
logical transaction. Loaders drive it through the two-phase load contract:
register an instance as uninitialized, hand over its hydrated values, and
finalize it once the whole result set has been read.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from row_loader.core.command import AsyncCommand, Command
from row_loader.core.enums import EntityStatus, LockMode
from row_loader.core.exceptions import (
    LazyInitializationError,
    NonUniqueObjectError,
    ObjectNotFoundError,
    SessionError,
    WrongRuntimeTypeError,
)
from row_loader.loader.loader import Loader, QueryParameters, RowSelection
from row_loader.mapping.persister import EntityPersister, IdentityKey
from row_loader.mapping.types import CollectionType, ComponentType, Type
from row_loader.session.collections import (
    PersistentArrayHolder,
    PersistentCollection,
    persistent_class_for,
)
from row_loader.session.proxy import EntityProxy
from row_loader.session.wrap import WrapVisitor

if TYPE_CHECKING:
    from row_loader.core.engine import AsyncEngine, Engine
    from row_loader.mapping.collection import CollectionPersister

logger = logging.getLogger(__name__)


@dataclass
class EntityEntry:
    """Bookkeeping for one instance associated with a session."""

    instance: Any
    persister: EntityPersister
    key: IdentityKey
    status: EntityStatus
    lock_mode: LockMode
    loaded_state: list[Any] | None = None
    version: Any = None


def _collection_types(types: Sequence[Type]) -> Iterator[CollectionType]:
    for type_ in types:
        if isinstance(type_, CollectionType):
            yield type_
        elif isinstance(type_, ComponentType):
            yield from _collection_types(type_.subtypes)


class Session:
    """Synchronous unit of work bound to one pooled connection."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._connection: Any = None
        self.is_open = True
        self._entities: dict[IdentityKey, Any] = {}
        self._entries: dict[int, EntityEntry] = {}
        self._proxies: dict[IdentityKey, EntityProxy] = {}
        self._collections: dict[tuple[str, Any], PersistentCollection] = {}
        self._collection_ids: dict[int, PersistentCollection] = {}
        self._new_collections: list[PersistentCollection] = []
        self._loading_collections: dict[tuple[str, Any], PersistentCollection] = {}
        self._ignored_loading: set[tuple[str, Any]] = set()
        self._array_holders: dict[int, PersistentArrayHolder] = {}
        self._nonlazy_collections: list[PersistentCollection] = []
        self._load_depth = 0
        self._fetch_disabled = 0

    @property
    def engine(self) -> Engine:
        return self._engine

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- Commands ---

    def prepare_command(
        self, sql: str, params: list[Any], timeout: float | None, *, strict: bool | None = None
    ) -> Command:
        """Build a command on this session's connection."""
        self._check_open()
        manager = self._engine.connection_manager
        if self._connection is None:
            self._connection = manager.acquire()
        return Command(
            manager.adapter,
            self._connection,
            sql,
            params,
            timeout=timeout if timeout is not None else manager.config.command_timeout,
            strict=manager.config.strict_aliases if strict is None else strict,
        )

    def _check_open(self) -> None:
        if not self.is_open:
            raise SessionError("Session is closed")

    # --- Identity map / two-phase load ---

    def get_persister(self, instance: Any) -> EntityPersister:
        return self._engine.persister_for_class(type(instance))

    def lookup(self, key: IdentityKey) -> Any:
        return self._entities.get(key)

    def entry_of(self, instance: Any) -> EntityEntry | None:
        return self._entries.get(id(instance))

    def identifier_of(self, instance: Any) -> Any:
        entry = self._entries.get(id(instance))
        if entry is not None:
            return entry.key.identifier
        return self.get_persister(instance).get_identifier(instance)

    def register_uninitialized(self, key: IdentityKey, instance: Any, lock_mode: LockMode) -> None:
        """Enter *instance* in the identity map before its state is read."""
        self._entities[key] = instance
        self._entries[id(instance)] = EntityEntry(
            instance=instance,
            persister=self.get_persister(instance),
            key=key,
            status=EntityStatus.LOADING,
            lock_mode=lock_mode,
        )

    def complete_two_phase_load(
        self,
        persister: EntityPersister,
        identifier: Any,
        values: list[Any],
        instance: Any,
        lock_mode: LockMode,
    ) -> None:
        """Record the hydrated (unresolved) state of a registered instance."""
        entry = self._entries[id(instance)]
        entry.persister = persister
        entry.loaded_state = values
        entry.lock_mode = lock_mode
        if persister.version_index is not None:
            entry.version = values[persister.version_index]

    def current_lock_mode(self, instance: Any) -> LockMode:
        entry = self._entries.get(id(instance))
        return entry.lock_mode if entry is not None else LockMode.NONE

    def current_version(self, instance: Any) -> Any:
        entry = self._entries.get(id(instance))
        return entry.version if entry is not None else None

    def set_lock_mode(self, instance: Any, lock_mode: LockMode) -> None:
        self._entries[id(instance)].lock_mode = lock_mode

    def instantiate(self, mapped_class: type, identifier: Any) -> Any:
        return self._engine.persister_for_class(mapped_class).instantiate(identifier)

    def finalize_deferred(self, entities: Sequence[Any]) -> None:
        """Resolve associations of hydrated entities in deferral order."""
        for instance in entities:
            self._initialize_entity(instance)
        for instance in entities:
            WrapVisitor(self).process(instance, self._entries[id(instance)].persister)

    def _initialize_entity(self, instance: Any) -> None:
        entry = self._entries[id(instance)]
        if entry.status is EntityStatus.LOADED:
            return
        persister = entry.persister
        hydrated = entry.loaded_state or []
        logger.debug("Resolving associations for %s", entry.key)
        resolved = [
            type_.resolve(value, self, instance)
            for type_, value in zip(persister.property_types, hydrated)
        ]
        persister.set_property_values(instance, resolved)
        entry.loaded_state = list(resolved)
        entry.status = EntityStatus.LOADED
        logger.debug("Done materializing entity %s", entry.key)

    # --- Proxies and association loading ---

    @contextmanager
    def fetch_disabled(self) -> Iterator[None]:
        """Resolve missing associations to proxies instead of loading them."""
        self._fetch_disabled += 1
        try:
            yield
        finally:
            self._fetch_disabled -= 1

    def proxy_for(self, persister: EntityPersister, key: IdentityKey | None, impl: Any) -> Any:
        """Return the proxy already handed out for *key*, now backed by *impl*; else *impl*."""
        if key is None:
            return impl
        proxy = self._proxies.get(key)
        if proxy is None:
            return impl
        if impl is not None:
            proxy.set_implementation(impl)
        return proxy

    def _create_proxy(self, persister: EntityPersister, key: IdentityKey) -> EntityProxy:
        proxy = EntityProxy(self, persister, key.identifier)
        self._proxies[key] = proxy
        return proxy

    def internal_load(self, entity: type | str, identifier: Any) -> Any:
        """Resolve a reference: identity map, then proxy, then an immediate load."""
        persister = self._engine.persister(entity)
        key = IdentityKey.of(identifier, persister)
        instance = self._entities.get(key)
        if instance is not None:
            return instance
        proxy = self._proxies.get(key)
        if proxy is not None:
            return proxy
        if persister.lazy or self._fetch_disabled:
            return self._create_proxy(persister, key)
        return self.immediate_load(persister, identifier)

    def immediate_load(self, persister: EntityPersister, identifier: Any) -> Any:
        instance = self.get(persister.mapped_class, identifier)
        if instance is None:
            raise ObjectNotFoundError(persister.entity_name, identifier)
        return instance

    # --- Public loading API ---

    def get(self, entity: type | str, identifier: Any, lock_mode: LockMode = LockMode.NONE) -> Any:
        """Return the instance for *identifier*, or None if no row exists."""
        persister = self._engine.persister(entity)
        cached = self._cached(persister, identifier, lock_mode)
        if cached is not None:
            return cached
        return self._engine.entity_loader(persister).load(self, identifier, lock_mode=lock_mode)

    def _cached(self, persister: EntityPersister, identifier: Any, lock_mode: LockMode) -> Any:
        """Cached instance that satisfies *lock_mode* without a query, else None."""
        cached = self._entities.get(IdentityKey.of(identifier, persister))
        if cached is None:
            return None
        if not persister.is_instance(cached):
            raise WrongRuntimeTypeError(identifier, persister.mapped_class, type(cached))
        if lock_mode.greater_than(self.current_lock_mode(cached)):
            return None
        return cached

    def load(self, entity: type | str, identifier: Any) -> Any:
        """Return the instance or a lazy proxy for it without hitting the database."""
        return self.internal_load(entity, identifier)

    def refresh(self, instance: Any) -> None:
        """Re-read *instance*'s state and collections from the database in place."""
        entry = self._prepare_refresh(instance)
        self._engine.entity_loader(entry.persister).load(
            self, entry.key.identifier, optional_object=instance, lock_mode=entry.lock_mode
        )

    def _prepare_refresh(self, instance: Any) -> EntityEntry:
        entry = self._entries.get(id(instance))
        if entry is None:
            raise SessionError("Cannot refresh an instance not associated with this session")
        self.evict(instance)
        identifier = entry.key.identifier
        for collection_type in _collection_types(entry.persister.property_types):
            collection = self._collections.get((collection_type.role, identifier))
            if collection is not None:
                # reloads on next access, or right after the refresh for arrays
                collection.prepare(collection_type.role, identifier, instance)
        return entry

    def list(
        self,
        loader: Loader,
        bindings: Sequence[tuple[Any, Type]] = (),
        *,
        first_row: int = 0,
        max_rows: int | None = None,
        timeout: float | None = None,
        lock_modes: Sequence[LockMode] | None = None,
        return_proxies: bool = False,
    ) -> list[Any]:
        """Run a compiled query in this session."""
        parameters = QueryParameters(
            bindings=list(bindings),
            selection=RowSelection(first_row=first_row, max_rows=max_rows, timeout=timeout),
            lock_modes=lock_modes,
        )
        return loader.list(self, parameters, return_proxies=return_proxies)

    # --- Load nesting ---

    def before_load(self) -> None:
        self._load_depth += 1

    def after_load(self) -> None:
        self._load_depth -= 1

    def initialize_non_lazy_collections(self) -> None:
        if self._load_depth != 0:
            return
        while self._nonlazy_collections:
            self._nonlazy_collections.pop()._read()

    # --- Collections ---

    def contains_collection(self, collection: PersistentCollection) -> bool:
        return id(collection) in self._collection_ids

    def _track(self, collection: PersistentCollection) -> None:
        self._collection_ids[id(collection)] = collection
        if collection.role is not None and collection.key is not None:
            self._collections[(collection.role, collection.key)] = collection

    def add_new_collection(self, collection: PersistentCollection) -> None:
        self._new_collections.append(collection)
        self._track(collection)

    def reattach_collection(self, collection: PersistentCollection, snapshot: Any) -> None:
        """Track a collection that arrived from another session, keeping its snapshot."""
        collection.restore_snapshot(snapshot)
        self._track(collection)

    def add_loaded_collection(self, collection: PersistentCollection) -> None:
        self._track(collection)

    def add_collection_holder(self, holder: PersistentArrayHolder) -> None:
        self._array_holders[id(holder.array)] = holder

    def get_collection_holder(self, array: Any) -> PersistentArrayHolder | None:
        return self._array_holders.get(id(array))

    def get_collection(self, role: str, key: Any) -> PersistentCollection | None:
        return self._collections.get((role, key))

    def resolve_collection(
        self, collection_type: CollectionType, key: Any, owner: Any
    ) -> PersistentCollection | list[Any]:
        """Value for a collection property of *owner* being initialized."""
        loading = self._loading_collections.get((collection_type.role, key))
        if loading is not None and (collection_type.role, key) not in self._ignored_loading:
            loading.owner = owner
            result: PersistentCollection = loading
        else:
            existing = self._collections.get((collection_type.role, key))
            if existing is not None:
                result = existing
            else:
                result = persistent_class_for(collection_type.kind)(self)
                result.prepare(collection_type.role, key, owner)
                self._track(result)
                if not collection_type.lazy:
                    self._nonlazy_collections.append(result)
        if isinstance(result, PersistentArrayHolder):
            # arrays are exposed raw and tracked through the side table
            self.add_collection_holder(result)
            pending = any(c is result for c in self._nonlazy_collections)
            if not result.was_initialized and not pending:
                self._nonlazy_collections.append(result)
            return result.array
        return result

    def find_or_create_collection_placeholder(
        self, persister: CollectionPersister, owner_key: Any
    ) -> PersistentCollection:
        """Collection that receives rows for (role, owner key) during a multi-collection scan."""
        slot = (persister.role, owner_key)
        collection = self._loading_collections.get(slot)
        if collection is not None:
            return collection
        existing = self._collections.get(slot)
        if existing is not None and not existing.was_initialized:
            collection = existing
        else:
            collection = self._new_placeholder(persister, owner_key)
            if existing is not None:
                logger.debug("Collection already initialized; ignoring rows for %s", slot)
                self._ignored_loading.add(slot)
        collection.begin_read()
        self._loading_collections[slot] = collection
        return collection

    def _new_placeholder(
        self, persister: CollectionPersister, owner_key: Any
    ) -> PersistentCollection:
        collection_type = self._engine.collection_type(persister.role)
        collection = persistent_class_for(collection_type.kind)(self)
        collection.prepare(persister.role, owner_key)
        return collection

    def end_loading_collections(self, persister: CollectionPersister) -> None:
        """Close every collection of *persister*'s role opened during the scan."""
        finished = [slot for slot in self._loading_collections if slot[0] == persister.role]
        for slot in finished:
            collection = self._loading_collections.pop(slot)
            collection.end_read()
            if slot in self._ignored_loading:
                self._ignored_loading.discard(slot)
                continue
            self._track(collection)
        logger.debug("%d collections initialized for role %s", len(finished), persister.role)

    def abort_loading_collections(self, persister: CollectionPersister) -> None:
        """Drop every collection of *persister*'s role left open by a failed scan."""
        for slot in [slot for slot in self._loading_collections if slot[0] == persister.role]:
            self._loading_collections.pop(slot).abort_read()
            self._ignored_loading.discard(slot)

    def initialize_collection(self, collection: PersistentCollection) -> None:
        """Load an uninitialized collection handle through its collection loader."""
        self._check_open()
        if collection.role is None:
            raise LazyInitializationError("Cannot initialize a collection without a role")
        loader = self._engine.collection_loader(collection.role)
        loader.load_collection(self, collection.key, collection)

    # --- Association management ---

    def associate(self, instance: Any, lock_mode: LockMode = LockMode.NONE) -> None:
        """Attach a detached instance and track the collections it carries."""
        self._check_open()
        persister = self.get_persister(instance)
        key = IdentityKey.of(persister.get_identifier(instance), persister)
        existing = self._entities.get(key)
        if existing is not None and existing is not instance:
            raise NonUniqueObjectError(persister.entity_name, key.identifier)
        if existing is None:
            self._entities[key] = instance
            self._entries[id(instance)] = EntityEntry(
                instance=instance,
                persister=persister,
                key=key,
                status=EntityStatus.LOADED,
                lock_mode=lock_mode,
                loaded_state=persister.get_property_values(instance),
                version=persister.get_version(instance),
            )
        WrapVisitor(self).process(instance, persister)

    def contains(self, instance: Any) -> bool:
        return id(instance) in self._entries

    def evict(self, instance: Any) -> None:
        entry = self._entries.pop(id(instance), None)
        if entry is not None:
            self._entities.pop(entry.key, None)

    def evict_unfinished(self, instances: Sequence[Any]) -> None:
        """Evict instances whose load never completed, with any proxy pointing at them."""
        for instance in instances:
            entry = self._entries.get(id(instance))
            if entry is None or entry.status is not EntityStatus.LOADING:
                continue
            self.evict(instance)
            proxy = self._proxies.get(entry.key)
            if proxy is not None and proxy._rl_target is instance:
                proxy.set_implementation(None)

    def clear(self) -> None:
        self._entities.clear()
        self._entries.clear()
        self._proxies.clear()
        self._collections.clear()
        self._collection_ids.clear()
        self._new_collections.clear()
        self._loading_collections.clear()
        self._ignored_loading.clear()
        self._array_holders.clear()
        self._nonlazy_collections.clear()

    def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        for proxy in self._proxies.values():
            proxy.detach()
        for collection in self._collection_ids.values():
            collection.unset_session(self)
        self.clear()
        self._release_connection()

    def _release_connection(self) -> None:
        if self._connection is not None:
            self._engine.connection_manager.release(self._connection)
            self._connection = None


class AsyncSession(Session):
    """Session whose queries run on an async driver.

    Only query execution and row advance suspend. Lazy proxies and
    collections cannot load on attribute access here; load them with an
    explicit ``get``/``initialize`` call instead.
    """

    def __init__(self, engine: AsyncEngine) -> None:  # type: ignore[override]
        super().__init__(engine)  # type: ignore[arg-type]
        self._fetch_disabled = 1

    async def __aenter__(self) -> AsyncSession:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close_async()

    def prepare_command(
        self, sql: str, params: list[Any], timeout: float | None, *, strict: bool | None = None
    ) -> Command:
        raise SessionError("AsyncSession executes commands with prepare_command_async")

    async def prepare_command_async(
        self, sql: str, params: list[Any], timeout: float | None, *, strict: bool | None = None
    ) -> AsyncCommand:
        self._check_open()
        manager = self._engine.connection_manager
        if self._connection is None:
            self._connection = await manager.acquire()
        return AsyncCommand(
            manager.adapter,
            self._connection,
            sql,
            params,
            timeout=timeout if timeout is not None else manager.config.command_timeout,
            strict=manager.config.strict_aliases if strict is None else strict,
        )

    def immediate_load(self, persister: EntityPersister, identifier: Any) -> Any:
        raise LazyInitializationError(
            f"Cannot lazily load {persister.entity_name}#{identifier} in an async session; "
            "use 'await session.get(...)'"
        )

    def initialize_collection(self, collection: PersistentCollection) -> None:
        raise LazyInitializationError(
            f"Cannot lazily initialize collection {collection.role} in an async session; "
            "use 'await session.initialize(...)'"
        )

    def initialize_non_lazy_collections(self) -> None:
        # handled by initialize_non_lazy_collections_async
        return

    async def initialize_non_lazy_collections_async(self) -> None:
        if self._load_depth != 0:
            return
        while self._nonlazy_collections:
            await self.initialize(self._nonlazy_collections.pop())

    async def get(  # type: ignore[override]
        self, entity: type | str, identifier: Any, lock_mode: LockMode = LockMode.NONE
    ) -> Any:
        persister = self._engine.persister(entity)
        cached = self._cached(persister, identifier, lock_mode)
        if cached is not None:
            return cached
        loader = self._engine.entity_loader(persister)
        return await loader.load(self, identifier, lock_mode=lock_mode)

    async def refresh(self, instance: Any) -> None:  # type: ignore[override]
        entry = self._prepare_refresh(instance)
        loader = self._engine.entity_loader(entry.persister)
        await loader.load(
            self, entry.key.identifier, optional_object=instance, lock_mode=entry.lock_mode
        )

    async def initialize(self, target: Any) -> Any:
        """Load a proxy's target or an uninitialized collection."""
        if isinstance(target, EntityProxy):
            if target._rl_target is None:
                persister = target._rl_persister
                instance = await self.get(persister.mapped_class, target._rl_identifier)
                if instance is None:
                    raise ObjectNotFoundError(persister.entity_name, target._rl_identifier)
                target.set_implementation(instance)
            return target._rl_target
        if isinstance(target, PersistentCollection) and not target.was_initialized:
            loader = self._engine.collection_loader(target.role)  # type: ignore[arg-type]
            await loader.load_collection(self, target.key, target)
        return target

    async def list(  # type: ignore[override]
        self,
        loader: Any,
        bindings: Sequence[tuple[Any, Type]] = (),
        *,
        first_row: int = 0,
        max_rows: int | None = None,
        timeout: float | None = None,
        lock_modes: Sequence[LockMode] | None = None,
        return_proxies: bool = False,
    ) -> list[Any]:
        parameters = QueryParameters(
            bindings=list(bindings),
            selection=RowSelection(first_row=first_row, max_rows=max_rows, timeout=timeout),
            lock_modes=lock_modes,
        )
        return await loader.list(self, parameters, return_proxies=return_proxies)

    def close(self) -> None:
        raise SessionError("Use 'await session.close_async()' to close an AsyncSession")

    async def close_async(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        for proxy in self._proxies.values():
            proxy.detach()
        for collection in self._collection_ids.values():
            collection.unset_session(self)
        self.clear()
        if self._connection is not None:
            await self._engine.connection_manager.release(self._connection)
            self._connection = None
