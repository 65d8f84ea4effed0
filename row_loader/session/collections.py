"""Tracked collection handles.

A PersistentCollection is bound to one session and one (role, owner key).
Loaders fill it through the read cycle ``begin_read`` → ``read_from`` ×N →
``end_read``; an uninitialized handle loads itself on first access.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, MutableMapping, MutableSequence, MutableSet
from typing import TYPE_CHECKING, Any

from row_loader.core.exceptions import CollectionSessionError, LazyInitializationError

if TYPE_CHECKING:
    from row_loader.core.command import ResultCursor
    from row_loader.mapping.aliases import CollectionAliases
    from row_loader.mapping.collection import CollectionPersister
    from row_loader.session.session import Session


class PersistentCollection:
    """Base for tracked collections."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session
        self.role: str | None = None
        self.key: Any = None
        self.owner: Any = None
        self._initialized = True
        self._loading = False
        self._pending: list[tuple[Any, Any]] = []
        self._snapshot: Any = None

    # --- Session binding ---

    @property
    def session(self) -> Session | None:
        return self._session

    def set_current_session(self, session: Session) -> bool:
        """Bind to *session*; True when the binding actually changed."""
        if session is self._session:
            return False
        current = self._session
        if current is not None and current.is_open and current.contains_collection(self):
            raise CollectionSessionError(
                f"Illegal attempt to associate collection {self.role} with two open sessions"
            )
        self._session = session
        return True

    def unset_session(self, session: Session) -> bool:
        if session is self._session:
            self._session = None
            return True
        return False

    # --- Read cycle ---

    @property
    def was_initialized(self) -> bool:
        return self._initialized

    @property
    def is_loading(self) -> bool:
        return self._loading

    def prepare(self, role: str, key: Any, owner: Any = None) -> None:
        """Mark as an uninitialized handle for (role, key)."""
        self.role = role
        self.key = key
        self.owner = owner
        self._initialized = False

    def begin_read(self) -> None:
        if self._loading:
            return
        self._loading = True
        self._pending = []

    def read_from(
        self,
        cursor: ResultCursor,
        persister: CollectionPersister,
        aliases: CollectionAliases,
        owner: Any,
    ) -> None:
        session = self._session
        element = persister.read_element(cursor, aliases, session, owner)  # type: ignore[arg-type]
        index = persister.read_index(cursor, aliases)
        self._pending.append((index, element))

    def end_read(self) -> bool:
        """Apply the rows read so far; False if no read cycle was open."""
        if not self._loading:
            return False
        self._loading = False
        rows, self._pending = self._pending, []
        self._apply_loaded(rows)
        self._initialized = True
        self._snapshot = self.snapshot()
        return True

    def abort_read(self) -> None:
        """Drop a read cycle that will not complete; the handle stays uninitialized."""
        self._loading = False
        self._pending = []

    def _apply_loaded(self, rows: list[tuple[Any, Any]]) -> None:
        raise NotImplementedError

    def _read(self) -> None:
        if self._initialized:
            return
        if self._loading:
            raise LazyInitializationError(f"Illegal access to loading collection {self.role}")
        session = self._session
        if session is None or not session.is_open:
            raise LazyInitializationError(
                f"Failed to lazily initialize collection {self.role}: no open session"
            )
        session.initialize_collection(self)

    # --- Snapshots ---

    def snapshot(self) -> Any:
        raise NotImplementedError

    @property
    def stored_snapshot(self) -> Any:
        return self._snapshot

    def restore_snapshot(self, snapshot: Any) -> None:
        self._snapshot = snapshot


def _ordered(rows: list[tuple[Any, Any]]) -> list[Any]:
    if rows and all(index is not None for index, _ in rows):
        rows = sorted(rows, key=lambda row: row[0])
    return [element for _, element in rows]


class PersistentList(PersistentCollection, MutableSequence):
    """List (or bag) collection."""

    def __init__(self, session: Session | None = None, values: list[Any] | None = None) -> None:
        super().__init__(session)
        self._values: list[Any] = values if values is not None else []

    def _apply_loaded(self, rows: list[tuple[Any, Any]]) -> None:
        self._values[:] = _ordered(rows)

    def snapshot(self) -> list[Any]:
        return list(self._values)

    def __getitem__(self, index: Any) -> Any:
        self._read()
        return self._values[index]

    def __setitem__(self, index: Any, value: Any) -> None:
        self._read()
        self._values[index] = value

    def __delitem__(self, index: Any) -> None:
        self._read()
        del self._values[index]

    def __len__(self) -> int:
        self._read()
        return len(self._values)

    def insert(self, index: int, value: Any) -> None:
        self._read()
        self._values.insert(index, value)

    def __eq__(self, other: object) -> bool:
        self._read()
        if isinstance(other, PersistentList):
            other = list(other)
        return self._values == other

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        if not self._initialized:
            return f"<PersistentList {self.role}#{self.key} uninitialized>"
        return repr(self._values)


class PersistentSet(PersistentCollection, MutableSet):
    """Set collection; elements must be hashable."""

    def __init__(self, session: Session | None = None, values: set[Any] | None = None) -> None:
        super().__init__(session)
        self._values: set[Any] = values if values is not None else set()

    def _apply_loaded(self, rows: list[tuple[Any, Any]]) -> None:
        self._values.clear()
        self._values.update(element for _, element in rows)

    def snapshot(self) -> set[Any]:
        return set(self._values)

    def __contains__(self, value: object) -> bool:
        self._read()
        return value in self._values

    def __iter__(self) -> Iterator[Any]:
        self._read()
        return iter(self._values)

    def __len__(self) -> int:
        self._read()
        return len(self._values)

    def add(self, value: Any) -> None:
        self._read()
        self._values.add(value)

    def discard(self, value: Any) -> None:
        self._read()
        self._values.discard(value)

    def __repr__(self) -> str:
        if not self._initialized:
            return f"<PersistentSet {self.role}#{self.key} uninitialized>"
        return repr(self._values)


class PersistentMap(PersistentCollection, MutableMapping):
    """Map collection keyed by the index column."""

    def __init__(
        self, session: Session | None = None, values: dict[Any, Any] | None = None
    ) -> None:
        super().__init__(session)
        self._values: dict[Any, Any] = values if values is not None else {}

    def _apply_loaded(self, rows: list[tuple[Any, Any]]) -> None:
        self._values.clear()
        self._values.update(rows)

    def snapshot(self) -> dict[Any, Any]:
        return dict(self._values)

    def __getitem__(self, key: Any) -> Any:
        self._read()
        return self._values[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._read()
        self._values[key] = value

    def __delitem__(self, key: Any) -> None:
        self._read()
        del self._values[key]

    def __iter__(self) -> Iterator[Any]:
        self._read()
        return iter(self._values)

    def __len__(self) -> int:
        self._read()
        return len(self._values)

    def __repr__(self) -> str:
        if not self._initialized:
            return f"<PersistentMap {self.role}#{self.key} uninitialized>"
        return repr(self._values)


class PersistentArrayHolder(PersistentCollection):
    """Tracks an array-role value that stays in its owner's slot.

    The owner keeps its own reference to the array, so the holder is found
    through the session's side table keyed by the array's identity.
    """

    def __init__(self, session: Session | None = None, array: list[Any] | None = None) -> None:
        super().__init__(session)
        self.array: list[Any] = array if array is not None else []

    def _apply_loaded(self, rows: list[tuple[Any, Any]]) -> None:
        self.array[:] = _ordered(rows)

    def snapshot(self) -> list[Any]:
        return list(self.array)

    def elements(self) -> Iterable[Any]:
        self._read()
        return iter(self.array)


_BY_KIND: dict[str, type[PersistentCollection]] = {
    "list": PersistentList,
    "set": PersistentSet,
    "map": PersistentMap,
    "array": PersistentArrayHolder,
}


def persistent_class_for(kind: str) -> type[PersistentCollection]:
    return _BY_KIND[kind]
