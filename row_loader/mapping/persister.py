"""Entity persisters.

A persister is the metadata and codec bundle for one entity type: its
identifier, mapped properties and their columns, an optional version
property, and (for hierarchies sharing one table) the discriminator that
selects the concrete subclass of a row.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from row_loader.mapping.types import STRING, Type, ValueType


def _is_pydantic_model(cls: type) -> bool:
    """Check if a class is a Pydantic BaseModel."""
    try:
        from pydantic import BaseModel

        return issubclass(cls, BaseModel)
    except ImportError:
        return False


def instantiate_blank(cls: type) -> Any:
    """Create an instance without running its constructor.

    Pydantic models go through ``model_construct``; dataclass fields with
    defaults are pre-populated so unmapped fields still read normally.
    """
    if _is_pydantic_model(cls):
        return cls.model_construct()  # type: ignore[attr-defined]
    instance = cls.__new__(cls)
    if dataclasses.is_dataclass(cls):
        for f in dataclasses.fields(cls):
            if f.default is not dataclasses.MISSING:
                object.__setattr__(instance, f.name, f.default)
            elif f.default_factory is not dataclasses.MISSING:
                object.__setattr__(instance, f.name, f.default_factory())
    return instance


@dataclasses.dataclass(frozen=True)
class IdentityKey:
    """Addresses one live instance per session: (identifier, root entity name)."""

    identifier: Any
    entity_name: str

    @classmethod
    def of(cls, identifier: Any, persister: EntityPersister) -> IdentityKey:
        return cls(identifier, persister.root_entity_name)

    def __str__(self) -> str:
        return f"{self.entity_name}#{self.identifier}"


@dataclasses.dataclass(frozen=True)
class Property:
    """One mapped attribute: name, type marshaller and the columns it spans."""

    name: str
    type: Type
    columns: tuple[str, ...] = ()


@runtime_checkable
class Loadable(Protocol):
    """What the loader needs from a persister."""

    entity_name: str
    root_entity_name: str
    mapped_class: type
    identifier: Property
    properties: tuple[Property, ...]
    version_index: int | None
    discriminator_column: str | None
    discriminator_type: ValueType
    lazy: bool

    @property
    def is_versioned(self) -> bool: ...

    @property
    def has_subclasses(self) -> bool: ...

    def subclass_for_discriminator(self, value: Any) -> type | None: ...

    def instantiate(self, identifier: Any) -> Any: ...

    def get_property_values(self, instance: Any) -> list[Any]: ...

    def set_property_values(self, instance: Any, values: Sequence[Any]) -> None: ...


class EntityPersister:
    """Concrete persister for a mapped class.

    Subclass persisters of a single-table hierarchy are created with
    ``parent``; they share the root's table, identifier and discriminator and
    carry the root's properties followed by their own.
    """

    def __init__(
        self,
        mapped_class: type,
        table: str,
        identifier: Property,
        properties: Sequence[Property] = (),
        *,
        entity_name: str | None = None,
        version: str | None = None,
        discriminator_column: str | None = None,
        discriminator_type: ValueType = STRING,
        discriminator_value: Any = None,
        lazy: bool = True,
        parent: EntityPersister | None = None,
    ) -> None:
        self.mapped_class = mapped_class
        self.entity_name = entity_name or mapped_class.__name__
        self.parent = parent
        self.root: EntityPersister = parent.root if parent is not None else self
        self.root_entity_name = self.root.entity_name if parent is not None else self.entity_name
        self.table = table
        self.identifier = identifier
        inherited = parent.properties if parent is not None else ()
        self.properties: tuple[Property, ...] = tuple(inherited) + tuple(properties)
        self.lazy = lazy
        self.discriminator_column = (
            parent.discriminator_column if parent is not None else discriminator_column
        )
        self.discriminator_type = (
            parent.discriminator_type if parent is not None else discriminator_type
        )
        self.discriminator_value = discriminator_value
        self.subclasses: list[EntityPersister] = []
        self._classes_by_discriminator: dict[Any, type] = {}

        version_name = version if version is not None else (
            parent.version_property if parent is not None else None
        )
        self.version_property = version_name
        self.version_index: int | None = None
        if version_name is not None:
            names = self.property_names
            if version_name not in names:
                raise ValueError(f"Version property '{version_name}' is not mapped")
            self.version_index = names.index(version_name)

        if parent is not None:
            parent.subclasses.append(self)
            self.root._register_discriminator(discriminator_value, mapped_class)
        elif discriminator_column is not None:
            self._register_discriminator(discriminator_value, mapped_class)

    def _register_discriminator(self, value: Any, cls: type) -> None:
        if value is not None:
            self._classes_by_discriminator[value] = cls

    # --- Metadata ---

    @property
    def identifier_type(self) -> Type:
        return self.identifier.type

    @property
    def identifier_columns(self) -> tuple[str, ...]:
        return self.identifier.columns

    @property
    def property_names(self) -> list[str]:
        return [p.name for p in self.properties]

    @property
    def property_types(self) -> list[Type]:
        return [p.type for p in self.properties]

    @property
    def is_versioned(self) -> bool:
        return self.version_index is not None

    @property
    def version_type(self) -> Type | None:
        if self.version_index is None:
            return None
        return self.properties[self.version_index].type

    @property
    def has_subclasses(self) -> bool:
        return bool(self.subclasses)

    def subclass_for_discriminator(self, value: Any) -> type | None:
        return self.root._classes_by_discriminator.get(value)

    def iter_hierarchy(self) -> list[EntityPersister]:
        """This persister followed by every subclass persister, depth first."""
        result = [self]
        for sub in self.subclasses:
            result.extend(sub.iter_hierarchy())
        return result

    # --- Instances ---

    def is_instance(self, instance: Any) -> bool:
        return isinstance(instance, self.mapped_class)

    def instantiate(self, identifier: Any) -> Any:
        instance = instantiate_blank(self.mapped_class)
        self.set_identifier(instance, identifier)
        return instance

    def get_identifier(self, instance: Any) -> Any:
        return getattr(instance, self.identifier.name, None)

    def set_identifier(self, instance: Any, identifier: Any) -> None:
        setattr(instance, self.identifier.name, identifier)

    def get_version(self, instance: Any) -> Any:
        if self.version_property is None:
            return None
        return getattr(instance, self.version_property, None)

    def get_property_values(self, instance: Any) -> list[Any]:
        return [getattr(instance, p.name, None) for p in self.properties]

    def set_property_values(self, instance: Any, values: Sequence[Any]) -> None:
        for prop, value in zip(self.properties, values):
            setattr(instance, prop.name, value)

    def __repr__(self) -> str:
        return f"EntityPersister({self.entity_name})"
