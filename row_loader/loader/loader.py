"""Hydration pipeline.

A Loader executes one compiled SQL template and turns its result set into
entities. Every row is matched against the session's identity map: known
instances are type- and version-checked, new ones are registered before
their properties are read and finished only after the whole result set has
been consumed, so rows that reference each other never see a half-built
object. Rows may also feed collection elements, either for the owners
loaded in the same row or for one collection being initialized.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from row_loader.core.dialect import get_first_row, limit_parameters, use_limit
from row_loader.core.enums import LockMode
from row_loader.core.exceptions import (
    HydrationError,
    LoaderConfigurationError,
    StaleStateError,
    UnresolvedDiscriminatorError,
    WrongRuntimeTypeError,
)
from row_loader.core.params import bind_values, normalize_params
from row_loader.mapping.aliases import CollectionAliases, EntityAliases, generate_suffixes
from row_loader.mapping.persister import EntityPersister, IdentityKey
from row_loader.mapping.transform import RowTransformer
from row_loader.mapping.types import ManyToOneType, Type

if TYPE_CHECKING:
    from row_loader.core.command import ResultCursor
    from row_loader.mapping.collection import CollectionPersister
    from row_loader.session.collections import PersistentCollection
    from row_loader.session.session import AsyncSession, Session

logger = logging.getLogger(__name__)

COLLECTION_SUFFIX = "c0_"


@dataclass
class RowSelection:
    """Paging window and timeout for one execution."""

    first_row: int = 0
    max_rows: int | None = None
    timeout: float | None = None


@dataclass
class QueryParameters:
    """Bindings and per-execution options.

    ``optional_object``/``optional_id`` let an entity load fill an existing
    instance (refresh) and skip reading the identifier it already knows.
    ``collection`` is the handle a collection load reads into.
    """

    bindings: list[tuple[Any, Type]] = field(default_factory=list)
    selection: RowSelection | None = None
    lock_modes: Sequence[LockMode] | None = None
    optional_object: Any = None
    optional_id: Any = None
    collection: PersistentCollection | None = None


class _RowProcessor:
    """Compiled query state and the per-row logic shared by sync and async loaders."""

    def __init__(
        self,
        factory: Any,
        sql: str,
        returns: Sequence[EntityPersister] = (),
        *,
        suffixes: Sequence[str] | None = None,
        aliases: Sequence[str] | None = None,
        collection_role: str | None = None,
        collection_owner: int | None = None,
        collection_suffix: str = COLLECTION_SUFFIX,
        id_position: int | None = None,
        lock_modes: Sequence[LockMode] | None = None,
        transformer: RowTransformer | None = None,
        strict: bool | None = None,
    ) -> None:
        self._factory = factory
        self.sql = sql
        self.persisters: tuple[EntityPersister, ...] = tuple(returns)
        count = len(self.persisters)

        self.suffixes = list(suffixes) if suffixes is not None else generate_suffixes(count)
        if len(self.suffixes) != count:
            raise LoaderConfigurationError(
                f"{count} returned entities but {len(self.suffixes)} suffixes"
            )
        resolver = factory.aliases
        self.entity_aliases: list[EntityAliases] = [
            resolver.entity_aliases(p, s) for p, s in zip(self.persisters, self.suffixes)
        ]
        self.return_aliases = (
            tuple(aliases) if aliases is not None else tuple(p.entity_name for p in self.persisters)
        )
        if len(self.return_aliases) != count:
            raise LoaderConfigurationError(
                f"{count} returned entities but {len(self.return_aliases)} aliases"
            )

        self.collection_persister: CollectionPersister | None = None
        self.collection_aliases: CollectionAliases | None = None
        if collection_role is not None:
            self.collection_persister = factory.collection_persister(collection_role)
            self.collection_aliases = resolver.collection_aliases(
                self.collection_persister, collection_suffix
            )
        if collection_owner is not None:
            if self.collection_persister is None:
                raise LoaderConfigurationError("collection_owner given without collection_role")
            if not 0 <= collection_owner < count:
                raise LoaderConfigurationError(
                    f"Collection owner position {collection_owner} is outside the "
                    f"{count} returned entities"
                )
        self.collection_owner = collection_owner

        self.id_position = count - 1 if id_position is None else id_position
        if count and not 0 <= self.id_position < count:
            raise LoaderConfigurationError(f"Identifier position {id_position} is out of range")

        self.lock_modes = list(lock_modes) if lock_modes is not None else [LockMode.NONE] * count
        if len(self.lock_modes) != count:
            raise LoaderConfigurationError(
                f"{count} returned entities but {len(self.lock_modes)} lock modes"
            )
        self.transformer = transformer or RowTransformer()
        self.strict = strict

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.sql})"

    # --- Statement preparation ---

    def render_sql(self, parameters: QueryParameters) -> str:
        return self.sql

    def prepare_statement(self, parameters: QueryParameters) -> tuple[str, list[Any]]:
        """Apply dialect paging and driver paramstyle; return (sql, params)."""
        dialect = self._factory.dialect
        selection = parameters.selection
        sql = self.render_sql(parameters)
        params = bind_values(parameters.bindings)
        if use_limit(dialect, selection):
            sql = dialect.rewrite_for_limit(sql)
            paging = limit_parameters(dialect, selection)  # type: ignore[arg-type]
            params = paging + params if dialect.bind_limit_parameters_first else params + paging
        return normalize_params(sql, self._factory.paramstyle), params

    def _rows_to_skip(self, selection: RowSelection | None) -> int:
        if use_limit(self._factory.dialect, selection):
            return 0
        return get_first_row(selection)

    @staticmethod
    def _max_rows(selection: RowSelection | None) -> int | None:
        return None if selection is None else selection.max_rows

    @staticmethod
    def _timeout(selection: RowSelection | None) -> float | None:
        return None if selection is None else selection.timeout

    def _effective_lock_modes(self, parameters: QueryParameters) -> Sequence[LockMode]:
        if parameters.lock_modes is None:
            return self.lock_modes
        if len(parameters.lock_modes) != len(self.persisters):
            raise LoaderConfigurationError(
                f"{len(self.persisters)} returned entities but "
                f"{len(parameters.lock_modes)} lock modes"
            )
        return parameters.lock_modes

    # --- Row processing ---

    def process_row(
        self,
        session: Session,
        cursor: ResultCursor,
        parameters: QueryParameters,
        lock_modes: Sequence[LockMode],
        hydrated: list[Any],
        return_proxies: bool,
    ) -> Any:
        keys = self._read_keys(cursor, parameters)
        row = self._get_row(session, cursor, keys, parameters, lock_modes, hydrated)

        if return_proxies:
            for i, persister in enumerate(self.persisters):
                row[i] = session.proxy_for(persister, keys[i], row[i])

        collection_persister = self.collection_persister
        collection_aliases = self.collection_aliases
        if collection_persister is not None and collection_aliases is not None:
            if parameters.collection is not None:
                self._read_collection_row(
                    cursor, collection_persister, collection_aliases, parameters.collection
                )
            else:
                self._read_owned_collection_row(
                    session, cursor, collection_persister, collection_aliases, row, keys
                )

        return self.transformer.transform_tuple(row, self.return_aliases)

    def _read_keys(
        self, cursor: ResultCursor, parameters: QueryParameters
    ) -> list[IdentityKey | None]:
        keys: list[IdentityKey | None] = []
        for i, (persister, aliases) in enumerate(zip(self.persisters, self.entity_aliases)):
            if i == self.id_position and parameters.optional_id is not None:
                keys.append(IdentityKey.of(parameters.optional_id, persister))
                continue
            identifier = persister.identifier_type.read(cursor, aliases.identifier)
            keys.append(None if identifier is None else IdentityKey.of(identifier, persister))
        return keys

    def _get_row(
        self,
        session: Session,
        cursor: ResultCursor,
        keys: list[IdentityKey | None],
        parameters: QueryParameters,
        lock_modes: Sequence[LockMode],
        hydrated: list[Any],
    ) -> list[Any]:
        row: list[Any] = []
        for i, key in enumerate(keys):
            if key is None:
                row.append(None)
                continue
            persister = self.persisters[i]
            instance = session.lookup(key)
            if instance is not None:
                self._instance_already_loaded(
                    session, cursor, i, persister, key, instance, lock_modes[i]
                )
            else:
                instance = self._instance_not_yet_loaded(
                    session, cursor, i, persister, key, lock_modes[i], parameters, hydrated
                )
            row.append(instance)
        return row

    def _instance_already_loaded(
        self,
        session: Session,
        cursor: ResultCursor,
        i: int,
        persister: EntityPersister,
        key: IdentityKey,
        instance: Any,
        lock_mode: LockMode,
    ) -> None:
        if not persister.is_instance(instance):
            raise WrongRuntimeTypeError(key.identifier, persister.mapped_class, type(instance))

        held = session.current_lock_mode(instance)
        if lock_mode is not LockMode.NONE and held.less_than(lock_mode):
            if persister.is_versioned:
                self._check_version(session, cursor, i, persister, key, instance)
            session.set_lock_mode(instance, lock_mode)

    def _check_version(
        self,
        session: Session,
        cursor: ResultCursor,
        i: int,
        persister: EntityPersister,
        key: IdentityKey,
        instance: Any,
    ) -> None:
        version_type = persister.version_type
        aliases = self.entity_aliases[i]
        current = version_type.read(cursor, aliases.version)  # type: ignore[union-attr, arg-type]
        cached = session.current_version(instance)
        if cached is None:
            return
        logger.debug("Checking version of %s: %s against %s", key, cached, current)
        if not version_type.is_equal(cached, current):  # type: ignore[union-attr]
            raise StaleStateError(persister.entity_name, key.identifier)

    def _instance_not_yet_loaded(
        self,
        session: Session,
        cursor: ResultCursor,
        i: int,
        persister: EntityPersister,
        key: IdentityKey,
        lock_mode: LockMode,
        parameters: QueryParameters,
        hydrated: list[Any],
    ) -> Any:
        instance_class = self._instance_class(cursor, i, persister, key.identifier)
        optional = parameters.optional_object
        if optional is not None and key == IdentityKey.of(parameters.optional_id, persister):
            instance = optional
        else:
            instance = session.instantiate(instance_class, key.identifier)

        acquired = LockMode.READ if lock_mode is LockMode.NONE else lock_mode
        concrete = self._factory.persister_for_class(instance_class)
        aliases = self._factory.aliases.entity_aliases(concrete, self.suffixes[i])

        logger.debug("Initializing object from row: %s", key)
        session.register_uninitialized(key, instance, acquired)
        hydrated.append(instance)
        values = [
            type_.hydrate(cursor, column_aliases, session, instance)
            for type_, column_aliases in zip(concrete.property_types, aliases.properties)
        ]
        session.complete_two_phase_load(concrete, key.identifier, values, instance, acquired)
        return instance

    def _instance_class(
        self, cursor: ResultCursor, i: int, persister: EntityPersister, identifier: Any
    ) -> type:
        if not persister.has_subclasses:
            return persister.mapped_class
        alias = self.entity_aliases[i].discriminator
        value = persister.discriminator_type.read(cursor, [alias]) if alias else None
        instance_class = persister.subclass_for_discriminator(value)
        if instance_class is None:
            raise UnresolvedDiscriminatorError(value, identifier, persister.root.mapped_class)
        return instance_class

    def _read_owned_collection_row(
        self,
        session: Session,
        cursor: ResultCursor,
        persister: CollectionPersister,
        aliases: CollectionAliases,
        row: list[Any],
        keys: list[IdentityKey | None],
    ) -> None:
        owner = None
        owner_key = None
        if self.collection_owner is not None:
            owner = row[self.collection_owner]
            owner_identity = keys[self.collection_owner]
            owner_key = None if owner_identity is None else owner_identity.identifier

        collection_key = persister.read_key(cursor, aliases)
        if collection_key is not None:
            collection = session.find_or_create_collection_placeholder(persister, collection_key)
            collection.read_from(cursor, persister, aliases, owner)
        elif owner_key is not None:
            # an owner with no elements still ends up with an initialized, empty collection
            session.find_or_create_collection_placeholder(persister, owner_key)

    def _read_collection_row(
        self,
        cursor: ResultCursor,
        persister: CollectionPersister,
        aliases: CollectionAliases,
        collection: PersistentCollection,
    ) -> None:
        if persister.read_key(cursor, aliases) is not None:
            collection.read_from(cursor, persister, aliases, collection.owner)

    # --- After the scan ---

    def end_collections(self, session: Session, parameters: QueryParameters) -> None:
        if self.collection_persister is None:
            return
        if parameters.collection is not None:
            collection = parameters.collection
            collection.end_read()
            session.add_loaded_collection(collection)
        else:
            session.end_loading_collections(self.collection_persister)

    def abort_load(
        self, session: Session, parameters: QueryParameters, hydrated: Sequence[Any]
    ) -> None:
        """Undo a failed load: forget unfinished instances and close open collections."""
        session.evict_unfinished(hydrated)
        if self.collection_persister is None:
            return
        if parameters.collection is not None:
            parameters.collection.abort_read()
        else:
            session.abort_loading_collections(self.collection_persister)

    def _single_result(
        self, results: list[Any], persister: EntityPersister, identifier: Any
    ) -> Any:
        if not results:
            return None
        if len(results) > 1 and any(r is not results[0] for r in results):
            raise HydrationError(
                f"More than one row with the given identifier was found: "
                f"{persister.entity_name}#{identifier}"
            )
        return results[0]


class Loader(_RowProcessor):
    """Synchronous loader."""

    def list(
        self, session: Session, parameters: QueryParameters, *, return_proxies: bool = False
    ) -> list[Any]:
        session.before_load()
        try:
            results = self._do_query(session, parameters, return_proxies)
        finally:
            session.after_load()
        session.initialize_non_lazy_collections()
        return results

    def load_entity(
        self,
        session: Session,
        bindings: list[tuple[Any, Type]],
        optional_object: Any = None,
        optional_id: Any = None,
        lock_mode: LockMode | None = None,
    ) -> Any:
        """Load the entity at the identifier position, or None if no row matches."""
        lock_modes = None
        if lock_mode is not None:
            lock_modes = [lock_mode] * len(self.persisters)
        parameters = QueryParameters(
            bindings=bindings,
            lock_modes=lock_modes,
            optional_object=optional_object,
            optional_id=optional_id,
        )
        results = self.list(session, parameters)
        return self._single_result(results, self.persisters[self.id_position], optional_id)

    def load_collection(
        self, session: Session, owner_id: Any, collection: PersistentCollection
    ) -> None:
        """Read every element of *collection* (owned by *owner_id*) from the database."""
        if self.collection_persister is None:
            raise LoaderConfigurationError(f"{self!r} does not load a collection")
        logger.debug("Loading collection: %s#%s", self.collection_persister.role, owner_id)
        collection.begin_read()
        parameters = QueryParameters(
            bindings=[(owner_id, self.collection_persister.key_type)], collection=collection
        )
        try:
            self.list(session, parameters)
        except Exception:
            collection.abort_read()
            raise
        logger.debug("Done loading collection")

    def _do_query(
        self, session: Session, parameters: QueryParameters, return_proxies: bool
    ) -> list[Any]:
        selection = parameters.selection
        sql, params = self.prepare_statement(parameters)
        lock_modes = self._effective_lock_modes(parameters)
        max_rows = self._max_rows(selection)
        hydrated: list[Any] = []
        results: list[Any] = []

        command = session.prepare_command(sql, params, self._timeout(selection), strict=self.strict)
        try:
            try:
                cursor = command.execute()
                try:
                    for _ in range(self._rows_to_skip(selection)):
                        if not cursor.advance():
                            break
                    logger.debug("Processing result set")
                    count = 0
                    while (max_rows is None or count < max_rows) and cursor.advance():
                        logger.debug("Result set row: %d", count)
                        results.append(
                            self.process_row(
                                session, cursor, parameters, lock_modes, hydrated, return_proxies
                            )
                        )
                        count += 1
                    logger.debug("Done processing result set (%d rows)", count)
                finally:
                    cursor.close()
            finally:
                command.close()

            logger.debug("Total objects hydrated: %d", len(hydrated))
            session.finalize_deferred(hydrated)
            self.end_collections(session, parameters)
        except Exception:
            self.abort_load(session, parameters, hydrated)
            raise
        return self.transformer.transform_list(results)


class AsyncLoader(_RowProcessor):
    """Loader for async sessions; only command execution and row advance are awaited."""

    async def list(
        self,
        session: AsyncSession,
        parameters: QueryParameters,
        *,
        return_proxies: bool = False,
    ) -> list[Any]:
        session.before_load()
        try:
            results = await self._do_query(session, parameters, return_proxies)
        finally:
            session.after_load()
        await session.initialize_non_lazy_collections_async()
        return results

    async def load_entity(
        self,
        session: AsyncSession,
        bindings: list[tuple[Any, Type]],
        optional_object: Any = None,
        optional_id: Any = None,
        lock_mode: LockMode | None = None,
    ) -> Any:
        lock_modes = None
        if lock_mode is not None:
            lock_modes = [lock_mode] * len(self.persisters)
        parameters = QueryParameters(
            bindings=bindings,
            lock_modes=lock_modes,
            optional_object=optional_object,
            optional_id=optional_id,
        )
        results = await self.list(session, parameters)
        return self._single_result(results, self.persisters[self.id_position], optional_id)

    async def load_collection(
        self, session: AsyncSession, owner_id: Any, collection: PersistentCollection
    ) -> None:
        if self.collection_persister is None:
            raise LoaderConfigurationError(f"{self!r} does not load a collection")
        logger.debug("Loading collection: %s#%s", self.collection_persister.role, owner_id)
        collection.begin_read()
        parameters = QueryParameters(
            bindings=[(owner_id, self.collection_persister.key_type)], collection=collection
        )
        try:
            await self.list(session, parameters)
        except Exception:
            collection.abort_read()
            raise
        logger.debug("Done loading collection")

    async def _do_query(
        self, session: AsyncSession, parameters: QueryParameters, return_proxies: bool
    ) -> list[Any]:
        selection = parameters.selection
        sql, params = self.prepare_statement(parameters)
        lock_modes = self._effective_lock_modes(parameters)
        max_rows = self._max_rows(selection)
        hydrated: list[Any] = []
        results: list[Any] = []

        command = await session.prepare_command_async(
            sql, params, self._timeout(selection), strict=self.strict
        )
        try:
            try:
                cursor = await command.execute()
                try:
                    for _ in range(self._rows_to_skip(selection)):
                        if not await cursor.advance():
                            break
                    logger.debug("Processing result set")
                    count = 0
                    while (max_rows is None or count < max_rows) and await cursor.advance():
                        logger.debug("Result set row: %d", count)
                        row = self.process_row(
                            session,  # type: ignore[arg-type]
                            cursor,  # type: ignore[arg-type]
                            parameters,
                            lock_modes,
                            hydrated,
                            return_proxies,
                        )
                        results.append(row)
                        count += 1
                    logger.debug("Done processing result set (%d rows)", count)
                finally:
                    await cursor.close()
            finally:
                await command.close()

            logger.debug("Total objects hydrated: %d", len(hydrated))
            session.finalize_deferred(hydrated)
            self.end_collections(session, parameters)
        except Exception:
            self.abort_load(session, parameters, hydrated)
            raise
        return self.transformer.transform_list(results)


# --- Metadata-driven loaders ---


class _EntitySelect:
    """Select-by-identifier SQL for one persister, with an optional lock clause."""

    def __init__(self, factory: Any, persister: EntityPersister) -> None:
        suffix = generate_suffixes(1)[0]
        resolver = factory.aliases
        restrictions = [f"t.{column} = ?" for column in persister.identifier_columns]
        self._discriminator_bindings: list[tuple[Any, Type]] = []
        if persister.parent is not None and persister.discriminator_column is not None:
            values = [
                p.discriminator_value
                for p in persister.iter_hierarchy()
                if p.discriminator_value is not None
            ]
            markers = ", ".join("?" for _ in values)
            restrictions.append(f"t.{persister.discriminator_column} in ({markers})")
            self._discriminator_bindings = [(v, persister.discriminator_type) for v in values]
        sql = (
            f"select {resolver.select_fragment(persister, 't', suffix)} "
            f"from {persister.table} t where {' and '.join(restrictions)}"
        )
        self._locked_sql = sql + factory.dialect.for_update_clause
        self.entity_persister = persister
        super().__init__(factory, sql, [persister], suffixes=[suffix])  # type: ignore[call-arg]

    def render_sql(self, parameters: QueryParameters) -> str:
        modes = parameters.lock_modes or ()
        if any(mode.greater_than(LockMode.READ) for mode in modes):
            return self._locked_sql
        return self.sql  # type: ignore[attr-defined, no-any-return]

    def _bindings(self, identifier: Any) -> list[tuple[Any, Type]]:
        return [(identifier, self.entity_persister.identifier_type), *self._discriminator_bindings]


class EntityLoader(_EntitySelect, Loader):
    """Loads one entity by identifier."""

    def load(
        self,
        session: Session,
        identifier: Any,
        *,
        optional_object: Any = None,
        lock_mode: LockMode = LockMode.NONE,
    ) -> Any:
        return self.load_entity(
            session, self._bindings(identifier), optional_object, identifier, lock_mode
        )


class AsyncEntityLoader(_EntitySelect, AsyncLoader):
    async def load(
        self,
        session: AsyncSession,
        identifier: Any,
        *,
        optional_object: Any = None,
        lock_mode: LockMode = LockMode.NONE,
    ) -> Any:
        return await self.load_entity(
            session, self._bindings(identifier), optional_object, identifier, lock_mode
        )


class _CollectionSelect:
    """Select-by-owner-key SQL for one collection role.

    A one-to-many collection stored in its element entity's table also
    selects the element entity, so elements are hydrated in the same pass.
    """

    def __init__(self, factory: Any, persister: CollectionPersister) -> None:
        resolver = factory.aliases
        returns: list[EntityPersister] = []
        fragments = [resolver.collection_select_fragment(persister, "t", COLLECTION_SUFFIX)]
        element_type = persister.element_type
        if isinstance(element_type, ManyToOneType):
            element = factory.persister(element_type.entity)
            if element.table == persister.table:
                returns.append(element)
                fragments.insert(0, resolver.select_fragment(element, "t", generate_suffixes(1)[0]))
        restrictions = " and ".join(f"t.{column} = ?" for column in persister.key_columns)
        sql = f"select {', '.join(fragments)} from {persister.table} t where {restrictions}"
        if persister.order_by:
            sql += f" order by {persister.order_by}"
        super().__init__(  # type: ignore[call-arg]
            factory, sql, returns, collection_role=persister.role
        )


class CollectionLoader(_CollectionSelect, Loader):
    """Initializes collections of one role."""


class AsyncCollectionLoader(_CollectionSelect, AsyncLoader):
    pass
