"""Entity mapping DSL builder.

Provides a fluent builder that compiles into an EntityPersister.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from typing import Any

from row_loader.core.exceptions import MappingCompilationError
from row_loader.mapping.persister import EntityPersister, Property
from row_loader.mapping.types import (
    INTEGER,
    STRING,
    CollectionType,
    ComponentType,
    ManyToOneType,
    Type,
    ValueType,
    type_for_annotation,
)


def _get_field_annotations(cls: type) -> dict[str, Any]:
    """Extract field names and annotations (dataclass, Pydantic, or plain)."""
    # Pydantic model
    if hasattr(cls, "model_fields"):
        return {name: info.annotation for name, info in cls.model_fields.items()}

    # Dataclass
    if dataclasses.is_dataclass(cls):
        return {f.name: f.type for f in dataclasses.fields(cls)}

    # Plain class - use class annotations
    annotations: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        annotations.update(getattr(klass, "__annotations__", {}))
    return annotations


def prop(
    name: str,
    type_: Type = STRING,
    column: str | None = None,
    *,
    columns: Sequence[str] | None = None,
) -> Property:
    """Shorthand for a Property whose single column defaults to its name."""
    if columns is None:
        columns = () if type_.column_span == 0 else (column or name,)
    return Property(name, type_, tuple(columns))


def entity(mapped_class: type, table: str | None = None) -> EntityMappingBuilder:
    """Entry point for the entity mapping DSL.

    Args:
        mapped_class: The entity class.
        table: Table name. Defaults to the lowercase class name.

    Returns:
        A builder for chaining mapping declarations.
    """
    return EntityMappingBuilder(mapped_class, table or mapped_class.__name__.lower())


class EntityMappingBuilder:
    """Fluent builder for entity mapping definitions."""

    def __init__(self, mapped_class: type, table: str) -> None:
        self._mapped_class = mapped_class
        self._table = table
        self._entity_name: str | None = None
        self._identifier: Property | None = None
        self._properties: list[Property] = []
        self._auto_fields_enabled = False
        self._version: str | None = None
        self._discriminator: tuple[str, ValueType, Any] | None = None
        self._subclasses: list[tuple[type, Any, list[Property], str | None]] = []
        self._lazy = True

    def named(self, entity_name: str) -> EntityMappingBuilder:
        self._entity_name = entity_name
        return self

    def id(
        self, name: str, type_: ValueType = INTEGER, column: str | None = None
    ) -> EntityMappingBuilder:
        """Set the identifier property."""
        self._identifier = prop(name, type_, column)
        return self

    def property(
        self,
        name: str,
        type_: Type = STRING,
        column: str | None = None,
        *,
        columns: Sequence[str] | None = None,
    ) -> EntityMappingBuilder:
        """Map a single property."""
        self._properties.append(prop(name, type_, column, columns=columns))
        return self

    def auto_fields(self) -> EntityMappingBuilder:
        """Map every remaining scalar field of the class by attribute name."""
        self._auto_fields_enabled = True
        return self

    def version(
        self, name: str, type_: ValueType = INTEGER, column: str | None = None
    ) -> EntityMappingBuilder:
        """Map an optimistic-lock version property."""
        self._properties.append(prop(name, type_, column))
        self._version = name
        return self

    def many_to_one(
        self,
        name: str,
        target: type | str,
        column: str | None = None,
        id_type: ValueType = INTEGER,
    ) -> EntityMappingBuilder:
        """Map a foreign-key reference to another entity."""
        type_ = ManyToOneType(target, id_type)
        self._properties.append(prop(name, type_, column or f"{name}_id"))
        return self

    def component(
        self, name: str, component_class: type, properties: Sequence[Property]
    ) -> EntityMappingBuilder:
        """Map an embedded value object; its properties supply the columns."""
        type_ = ComponentType(component_class, [(p.name, p.type) for p in properties])
        columns = tuple(c for p in properties for c in p.columns)
        self._properties.append(Property(name, type_, columns))
        return self

    def collection(
        self, name: str, role: str | None = None, kind: str = "list", lazy: bool = True
    ) -> EntityMappingBuilder:
        """Map a collection-valued property backed by a CollectionPersister role."""
        role = role or f"{self._mapped_class.__name__}.{name}"
        self._properties.append(Property(name, CollectionType(role, kind, lazy), ()))
        return self

    def discriminator(
        self, column: str, type_: ValueType = STRING, value: Any = None
    ) -> EntityMappingBuilder:
        """Declare the discriminator column and this class's own value."""
        self._discriminator = (column, type_, value)
        return self

    def subclass(
        self,
        mapped_class: type,
        value: Any,
        properties: Sequence[Property] = (),
        entity_name: str | None = None,
    ) -> EntityMappingBuilder:
        """Declare a subclass stored in the same table under discriminator *value*."""
        self._subclasses.append((mapped_class, value, list(properties), entity_name))
        return self

    def lazy(self, enabled: bool = True) -> EntityMappingBuilder:
        """Whether references to this entity may be proxied."""
        self._lazy = enabled
        return self

    def build(self) -> EntityPersister:
        """Compile and validate the mapping into an EntityPersister."""
        if self._identifier is None:
            raise MappingCompilationError(
                f"{self._mapped_class.__name__} must have an identifier set via .id()"
            )

        properties = list(self._properties)
        if self._auto_fields_enabled:
            taken = {p.name for p in properties} | {self._identifier.name}
            for name, annotation in _get_field_annotations(self._mapped_class).items():
                if name in taken:
                    continue
                type_ = type_for_annotation(annotation)
                if type_ is not None:
                    properties.append(prop(name, type_))

        names = [p.name for p in properties]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise MappingCompilationError(f"Duplicate property mappings: {duplicates}")
        for p in properties:
            if len(p.columns) != p.type.column_span:
                raise MappingCompilationError(
                    f"Property '{p.name}' spans {p.type.column_span} columns, "
                    f"mapped to {len(p.columns)}"
                )

        if self._subclasses and self._discriminator is None:
            raise MappingCompilationError(
                "A discriminator column is required when subclasses are declared"
            )
        disc_column, disc_type, disc_value = self._discriminator or (None, STRING, None)

        root = EntityPersister(
            self._mapped_class,
            self._table,
            self._identifier,
            properties,
            entity_name=self._entity_name,
            version=self._version,
            discriminator_column=disc_column,
            discriminator_type=disc_type,
            discriminator_value=disc_value,
            lazy=self._lazy,
        )
        seen_values = {disc_value}
        for cls, value, sub_properties, sub_name in self._subclasses:
            if not issubclass(cls, self._mapped_class):
                raise MappingCompilationError(
                    f"{cls.__name__} is not a subclass of {self._mapped_class.__name__}"
                )
            if value in seen_values:
                raise MappingCompilationError(f"Duplicate discriminator value {value!r}")
            seen_values.add(value)
            EntityPersister(
                cls,
                self._table,
                self._identifier,
                sub_properties,
                entity_name=sub_name,
                discriminator_value=value,
                lazy=self._lazy,
                parent=root,
            )
        return root
