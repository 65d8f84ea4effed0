"""Type marshallers.

A Type converts column values read from a cursor into Python values and
converts bound Python values into driver parameters. Association and
collection types hydrate in two phases: ``hydrate`` reads raw state from the
row, ``resolve`` turns it into objects once every entity in the result set
has been registered.
"""

from __future__ import annotations

import datetime
import decimal
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from row_loader.core.command import ResultCursor
    from row_loader.session.session import Session


class Type:
    """Base type: one or more columns mapped to one Python value."""

    name = "type"
    column_span = 1
    is_association = False
    is_collection = False
    is_component = False

    def read(self, cursor: ResultCursor, aliases: Sequence[str]) -> Any:
        """Read a value from the current row; None when the columns are null."""
        raise NotImplementedError

    def hydrate(
        self, cursor: ResultCursor, aliases: Sequence[str], session: Session, owner: Any
    ) -> Any:
        return self.read(cursor, aliases)

    def resolve(self, value: Any, session: Session, owner: Any) -> Any:
        return value

    def bind(self, value: Any) -> list[Any]:
        raise NotImplementedError

    def is_equal(self, a: Any, b: Any) -> bool:
        return bool(a == b)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class ValueType(Type):
    """Single-column scalar type."""

    python_type: type = object

    def from_db(self, raw: Any) -> Any:
        return raw

    def to_db(self, value: Any) -> Any:
        return value

    def read(self, cursor: ResultCursor, aliases: Sequence[str]) -> Any:
        raw = cursor.get(aliases[0])
        return None if raw is None else self.from_db(raw)

    def bind(self, value: Any) -> list[Any]:
        return [None if value is None else self.to_db(value)]


class StringType(ValueType):
    name = "string"
    python_type = str

    def from_db(self, raw: Any) -> str:
        return raw if isinstance(raw, str) else str(raw)


class IntegerType(ValueType):
    name = "integer"
    python_type = int

    def from_db(self, raw: Any) -> int:
        return int(raw)

    def to_db(self, value: Any) -> int:
        return int(value)


class FloatType(ValueType):
    name = "float"
    python_type = float

    def from_db(self, raw: Any) -> float:
        return float(raw)


class DecimalType(ValueType):
    name = "decimal"
    python_type = decimal.Decimal

    def from_db(self, raw: Any) -> decimal.Decimal:
        if isinstance(raw, decimal.Decimal):
            return raw
        return decimal.Decimal(str(raw))

    def to_db(self, value: Any) -> str:
        return str(value)


class BooleanType(ValueType):
    name = "boolean"
    python_type = bool

    def from_db(self, raw: Any) -> bool:
        return bool(raw)

    def to_db(self, value: Any) -> bool:
        return bool(value)


class DateTimeType(ValueType):
    name = "datetime"
    python_type = datetime.datetime

    def from_db(self, raw: Any) -> datetime.datetime:
        if isinstance(raw, datetime.datetime):
            return raw
        return datetime.datetime.fromisoformat(str(raw))

    def to_db(self, value: datetime.datetime) -> str:
        return value.isoformat(sep=" ")


class DateType(ValueType):
    name = "date"
    python_type = datetime.date

    def from_db(self, raw: Any) -> datetime.date:
        if isinstance(raw, datetime.datetime):
            return raw.date()
        if isinstance(raw, datetime.date):
            return raw
        return datetime.date.fromisoformat(str(raw)[:10])

    def to_db(self, value: datetime.date) -> str:
        return value.isoformat()


STRING = StringType()
INTEGER = IntegerType()
FLOAT = FloatType()
DECIMAL = DecimalType()
BOOLEAN = BooleanType()
DATETIME = DateTimeType()
DATE = DateType()

_BY_PYTHON_TYPE: dict[Any, ValueType] = {
    t.python_type: t for t in (STRING, INTEGER, FLOAT, DECIMAL, BOOLEAN, DATETIME, DATE)
}
_BY_ANNOTATION_NAME: dict[str, ValueType] = {
    "str": STRING,
    "int": INTEGER,
    "float": FLOAT,
    "bool": BOOLEAN,
    "Decimal": DECIMAL,
    "decimal.Decimal": DECIMAL,
    "datetime": DATETIME,
    "datetime.datetime": DATETIME,
    "date": DATE,
    "datetime.date": DATE,
}


def type_for_annotation(annotation: Any) -> ValueType | None:
    """Guess a scalar type from a field annotation (class or string form)."""
    if isinstance(annotation, str):
        parts = [p.strip() for p in annotation.split("|") if p.strip() != "None"]
        name = parts[0] if len(parts) == 1 else annotation
        if name.startswith("Optional[") and name.endswith("]"):
            name = name[len("Optional[") : -1]
        return _BY_ANNOTATION_NAME.get(name)
    return _BY_PYTHON_TYPE.get(annotation)


class ManyToOneType(Type):
    """Reference to another entity through a foreign key.

    Hydrates to the referenced identifier; resolves to the instance from the
    identity map, a proxy, or a freshly loaded instance.
    """

    is_association = True

    def __init__(self, entity: type | str, id_type: ValueType = INTEGER) -> None:
        self.entity = entity
        self.id_type = id_type
        self.column_span = id_type.column_span
        target = entity if isinstance(entity, str) else entity.__name__
        self.name = f"many-to-one({target})"

    def read(self, cursor: ResultCursor, aliases: Sequence[str]) -> Any:
        return self.id_type.read(cursor, aliases)

    def resolve(self, value: Any, session: Session, owner: Any) -> Any:
        if value is None:
            return None
        return session.internal_load(self.entity, value)

    def bind(self, value: Any) -> list[Any]:
        return self.id_type.bind(value)


class ComponentType(Type):
    """Embedded value object spread over its owner's columns."""

    is_component = True

    def __init__(self, component_class: type, properties: Sequence[tuple[str, Type]]) -> None:
        self.component_class = component_class
        self.property_names = [name for name, _ in properties]
        self.subtypes = [type_ for _, type_ in properties]
        self.column_span = sum(t.column_span for t in self.subtypes)
        self.name = f"component({component_class.__name__})"

    def _split(self, aliases: Sequence[str]) -> list[Sequence[str]]:
        chunks: list[Sequence[str]] = []
        start = 0
        for subtype in self.subtypes:
            chunks.append(aliases[start : start + subtype.column_span])
            start += subtype.column_span
        return chunks

    def read(self, cursor: ResultCursor, aliases: Sequence[str]) -> Any:
        values = [t.read(cursor, a) for t, a in zip(self.subtypes, self._split(aliases))]
        return None if all(v is None for v in values) else values

    def hydrate(
        self, cursor: ResultCursor, aliases: Sequence[str], session: Session, owner: Any
    ) -> Any:
        values = [
            t.hydrate(cursor, a, session, owner)
            for t, a in zip(self.subtypes, self._split(aliases))
        ]
        scalar = [v for t, v in zip(self.subtypes, values) if not t.is_collection]
        return None if all(v is None for v in scalar) else values

    def resolve(self, value: Any, session: Session, owner: Any) -> Any:
        if value is None:
            return None
        from row_loader.mapping.persister import instantiate_blank

        component = instantiate_blank(self.component_class)
        resolved = [t.resolve(v, session, owner) for t, v in zip(self.subtypes, value)]
        self.set_property_values(component, resolved)
        return component

    def get_property_values(self, component: Any) -> list[Any]:
        return [getattr(component, name, None) for name in self.property_names]

    def set_property_values(self, component: Any, values: Sequence[Any]) -> None:
        for name, value in zip(self.property_names, values):
            setattr(component, name, value)

    def bind(self, value: Any) -> list[Any]:
        if value is None:
            return [None] * self.column_span
        params: list[Any] = []
        for subtype, sub_value in zip(self.subtypes, self.get_property_values(value)):
            params.extend(subtype.bind(sub_value))
        return params


class CollectionType(Type):
    """Collection-valued property owned by an entity; occupies no owner columns.

    ``kind`` is one of 'list', 'set', 'map' or 'array'.
    """

    is_collection = True
    column_span = 0
    KINDS = ("list", "set", "map", "array")

    def __init__(self, role: str, kind: str = "list", lazy: bool = True) -> None:
        if kind not in self.KINDS:
            raise ValueError(f"Unknown collection kind: {kind}")
        self.role = role
        self.kind = kind
        self.lazy = lazy
        self.name = f"{kind}({role})"

    @property
    def is_array(self) -> bool:
        return self.kind == "array"

    def read(self, cursor: ResultCursor, aliases: Sequence[str]) -> Any:
        return None

    def hydrate(
        self, cursor: ResultCursor, aliases: Sequence[str], session: Session, owner: Any
    ) -> Any:
        # owner's identifier keys the collection
        return session.identifier_of(owner)

    def resolve(self, value: Any, session: Session, owner: Any) -> Any:
        if value is None:
            return None
        return session.resolve_collection(self, value, owner)

    def wrap(self, session: Session, raw: Any) -> Any:
        """Wrap a raw (non-array) collection in a tracked collection handle."""
        from row_loader.session.collections import persistent_class_for

        return persistent_class_for(self.kind)(session, raw)

    def bind(self, value: Any) -> list[Any]:
        return []
