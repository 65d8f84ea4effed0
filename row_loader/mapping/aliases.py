"""Result-set column aliases.

Every persister position in a query owns a suffix; its columns appear in the
SELECT list as ``<column><suffix>``. Aliases are computed once per compiled
query and must match the SELECT list the SQL template produces, otherwise
hydration reads nulls (or fails in strict mode).
"""

from __future__ import annotations

from dataclasses import dataclass

from row_loader.core.dialect import Dialect
from row_loader.mapping.collection import CollectionPersister
from row_loader.mapping.persister import EntityPersister

_QUOTES = "\"`[]"


def unquote(column: str) -> str:
    return column.strip(_QUOTES)


def column_alias(column: str, suffix: str, max_length: int = 64) -> str:
    """Deterministic alias for *column* at *suffix*, truncated to fit *max_length*."""
    name = unquote(column)
    limit = max_length - len(suffix)
    if len(name) > limit:
        name = name[:limit]
    return f"{name}{suffix}"


def generate_suffixes(count: int, start: int = 0) -> list[str]:
    return [f"{i}_" for i in range(start, start + count)]


@dataclass(frozen=True)
class EntityAliases:
    suffix: str
    identifier: tuple[str, ...]
    properties: tuple[tuple[str, ...], ...]
    discriminator: str | None
    version: tuple[str, ...] | None


@dataclass(frozen=True)
class CollectionAliases:
    suffix: str
    key: tuple[str, ...]
    element: tuple[str, ...]
    index: tuple[str, ...]


class AliasResolver:
    """Computes and caches aliases for persisters under a dialect."""

    def __init__(self, dialect: Dialect) -> None:
        self._max_length = dialect.max_alias_length
        self._entity_cache: dict[tuple[int, str], EntityAliases] = {}
        self._collection_cache: dict[tuple[int, str], CollectionAliases] = {}

    def _aliases(self, columns: tuple[str, ...], suffix: str) -> tuple[str, ...]:
        return tuple(column_alias(c, suffix, self._max_length) for c in columns)

    def entity_aliases(self, persister: EntityPersister, suffix: str) -> EntityAliases:
        cache_key = (id(persister), suffix)
        cached = self._entity_cache.get(cache_key)
        if cached is not None:
            return cached
        properties = tuple(self._aliases(p.columns, suffix) for p in persister.properties)
        discriminator = None
        if persister.root.has_subclasses and persister.discriminator_column is not None:
            discriminator = column_alias(persister.discriminator_column, suffix, self._max_length)
        version = None
        if persister.version_index is not None:
            version = properties[persister.version_index]
        aliases = EntityAliases(
            suffix=suffix,
            identifier=self._aliases(persister.identifier_columns, suffix),
            properties=properties,
            discriminator=discriminator,
            version=version,
        )
        self._entity_cache[cache_key] = aliases
        return aliases

    def collection_aliases(
        self, persister: CollectionPersister, suffix: str
    ) -> CollectionAliases:
        cache_key = (id(persister), suffix)
        cached = self._collection_cache.get(cache_key)
        if cached is None:
            cached = CollectionAliases(
                suffix=suffix,
                key=self._aliases(persister.key_columns, suffix),
                element=self._aliases(persister.element_columns, suffix),
                index=self._aliases(persister.index_columns, suffix),
            )
            self._collection_cache[cache_key] = cached
        return cached

    # --- SELECT list rendering ---

    def select_fragment(self, persister: EntityPersister, table_alias: str, suffix: str) -> str:
        """Render ``alias.column AS <alias>`` items for a persister and its subclasses."""
        columns: list[str] = list(persister.identifier_columns)
        if persister.root.has_subclasses and persister.discriminator_column is not None:
            columns.append(persister.discriminator_column)
        for member in persister.iter_hierarchy():
            for prop in member.properties:
                columns.extend(prop.columns)
        return self._render(table_alias, columns, suffix)

    def collection_select_fragment(
        self, persister: CollectionPersister, table_alias: str, suffix: str
    ) -> str:
        columns = [*persister.key_columns, *persister.element_columns, *persister.index_columns]
        return self._render(table_alias, columns, suffix)

    def _render(self, table_alias: str, columns: list[str], suffix: str) -> str:
        seen: dict[str, None] = {}
        for column in columns:
            seen.setdefault(column, None)
        return ", ".join(
            f"{table_alias}.{column} AS {column_alias(column, suffix, self._max_length)}"
            for column in seen
        )
