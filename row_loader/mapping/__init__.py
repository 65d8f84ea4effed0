"""Mapping layer - entity metadata, type marshallers and result transformers."""

from __future__ import annotations

from row_loader.mapping.aliases import AliasResolver, CollectionAliases, EntityAliases
from row_loader.mapping.builder import EntityMappingBuilder, entity, prop
from row_loader.mapping.collection import CollectionPersister
from row_loader.mapping.persister import EntityPersister, IdentityKey, Loadable, Property
from row_loader.mapping.transform import (
    AliasToDictTransformer,
    AliasToModelTransformer,
    DistinctRootEntityTransformer,
    RootEntityTransformer,
    RowTransformer,
)
from row_loader.mapping.types import (
    BOOLEAN,
    DATE,
    DATETIME,
    DECIMAL,
    FLOAT,
    INTEGER,
    STRING,
    CollectionType,
    ComponentType,
    ManyToOneType,
    Type,
    ValueType,
)

__all__ = [
    "EntityPersister",
    "Loadable",
    "Property",
    "IdentityKey",
    "CollectionPersister",
    "EntityMappingBuilder",
    "entity",
    "prop",
    "AliasResolver",
    "EntityAliases",
    "CollectionAliases",
    "RowTransformer",
    "RootEntityTransformer",
    "DistinctRootEntityTransformer",
    "AliasToDictTransformer",
    "AliasToModelTransformer",
    "Type",
    "ValueType",
    "ManyToOneType",
    "ComponentType",
    "CollectionType",
    "STRING",
    "INTEGER",
    "FLOAT",
    "DECIMAL",
    "BOOLEAN",
    "DATETIME",
    "DATE",
]
