"""Collection persisters.

Describes where a collection role's rows live: the table, the foreign key
pointing at the owner, the element columns and (for lists and maps) the
index columns.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from row_loader.mapping.types import INTEGER, Type, ValueType

if TYPE_CHECKING:
    from row_loader.core.command import ResultCursor
    from row_loader.mapping.aliases import CollectionAliases
    from row_loader.session.session import Session


class CollectionPersister:
    """Metadata for one collection role.

    Args:
        role: Role name, conventionally ``"Owner.property"``.
        table: Table holding the collection rows.
        key_columns: Foreign-key columns referencing the owner.
        element_type: Marshaller for elements; a ManyToOneType makes a
            collection of entities, which for a set role needs a hashable
            entity class.
        element_columns: Columns read by ``element_type``.
        key_type: Marshaller for the owner key; defaults to INTEGER.
        index_columns: Ordering (list) or key (map) columns.
        index_type: Marshaller for the index.
        order_by: Optional ORDER BY fragment used by collection loaders.
    """

    def __init__(
        self,
        role: str,
        table: str,
        key_columns: Sequence[str],
        element_type: Type,
        element_columns: Sequence[str],
        *,
        key_type: ValueType = INTEGER,
        index_columns: Sequence[str] = (),
        index_type: Type | None = None,
        order_by: str | None = None,
    ) -> None:
        if len(element_columns) != element_type.column_span:
            raise ValueError(
                f"Collection '{role}': element type spans {element_type.column_span} "
                f"columns, got {len(element_columns)}"
            )
        if index_columns and index_type is None:
            index_type = INTEGER
        self.role = role
        self.table = table
        self.key_columns = tuple(key_columns)
        self.key_type = key_type
        self.element_type = element_type
        self.element_columns = tuple(element_columns)
        self.index_columns = tuple(index_columns)
        self.index_type = index_type
        self.order_by = order_by

    @property
    def has_index(self) -> bool:
        return bool(self.index_columns)

    @property
    def is_one_to_many(self) -> bool:
        return self.element_type.is_association

    def read_key(self, cursor: ResultCursor, aliases: CollectionAliases) -> Any:
        return self.key_type.read(cursor, aliases.key)

    def read_element(
        self, cursor: ResultCursor, aliases: CollectionAliases, session: Session, owner: Any
    ) -> Any:
        value = self.element_type.hydrate(cursor, aliases.element, session, owner)
        return self.element_type.resolve(value, session, owner)

    def read_index(self, cursor: ResultCursor, aliases: CollectionAliases) -> Any:
        if self.index_type is None:
            return None
        return self.index_type.read(cursor, aliases.index)

    def __repr__(self) -> str:
        return f"CollectionPersister({self.role})"
