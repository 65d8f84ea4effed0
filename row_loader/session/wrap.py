"""Collection wrapping visitor.

Walks an entity's property values (descending into components) and makes
sure every collection reachable from it is tracked by the session. Raw
collections are wrapped and substituted in their slot; raw arrays are
tracked through the session's side table and left in place.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from row_loader.mapping.types import CollectionType, ComponentType, Type
from row_loader.session.collections import PersistentArrayHolder, PersistentCollection

if TYPE_CHECKING:
    from row_loader.mapping.persister import EntityPersister
    from row_loader.session.session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Managed:
    handle: PersistentCollection


@dataclass(frozen=True)
class Unmanaged:
    raw: Any


def classify(value: Any) -> Managed | Unmanaged | None:
    if value is None:
        return None
    if isinstance(value, PersistentCollection):
        return Managed(value)
    return Unmanaged(value)


class WrapVisitor:
    """Wraps raw collections of one entity graph into tracked handles."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.substitution_required = False

    def process(self, entity: Any, persister: EntityPersister) -> None:
        values = persister.get_property_values(entity)
        self._process_values(values, persister.property_types)
        if self.substitution_required:
            persister.set_property_values(entity, values)

    def _process_values(self, values: list[Any], types: Sequence[Type]) -> bool:
        substituted = False
        for i, type_ in enumerate(types):
            result = self.process_value(values[i], type_)
            if result is not None:
                values[i] = result
                substituted = True
                self.substitution_required = True
        return substituted

    def process_value(self, value: Any, type_: Type) -> Any:
        """Return a replacement for *value*, or None to leave the slot untouched."""
        if isinstance(type_, CollectionType):
            return self.process_collection(value, type_)
        if isinstance(type_, ComponentType):
            return self.process_component(value, type_)
        return None

    def process_collection(self, value: Any, collection_type: CollectionType) -> Any:
        variant = classify(value)
        if variant is None:
            return None
        if isinstance(variant, Managed):
            handle = variant.handle
            if handle.set_current_session(self.session):
                self.session.reattach_collection(handle, handle.stored_snapshot)
            return None

        session = self.session
        if collection_type.is_array:
            if session.get_collection_holder(variant.raw) is None:
                holder = PersistentArrayHolder(session, variant.raw)
                holder.role = collection_type.role
                session.add_new_collection(holder)
                session.add_collection_holder(holder)
            return None

        wrapped = collection_type.wrap(session, variant.raw)
        wrapped.role = collection_type.role
        session.add_new_collection(wrapped)
        logger.debug("Wrapped collection in role: %s", collection_type.role)
        return wrapped

    def process_component(self, component: Any, component_type: ComponentType) -> Any:
        if component is not None:
            values = component_type.get_property_values(component)
            substitute = False
            for i, subtype in enumerate(component_type.subtypes):
                result = self.process_value(values[i], subtype)
                if result is not None:
                    values[i] = result
                    substitute = True
            if substitute:
                component_type.set_property_values(component, values)
        return None
