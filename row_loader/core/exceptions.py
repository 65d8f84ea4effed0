"""RowLoader exception hierarchy.

All exceptions are RowLoader-specific. Raw driver exceptions are never
exposed to callers; they are chained as ``__cause__``.
"""

from __future__ import annotations

from typing import Any


class RowLoaderError(Exception):
    """Base exception for all RowLoader errors."""


# --- Execution ---


class ExecutionError(RowLoaderError):
    """Raised when a command or its cursor fails."""

    def __init__(self, sql: str, detail: str) -> None:
        self.sql = sql
        super().__init__(f"Execution failed for [{sql}]: {detail}")


class CommandTimeoutError(ExecutionError):
    """Raised when a command exceeds its timeout."""


class ParameterBindingError(ExecutionError):
    """Raised when bindings cannot be converted to driver parameters."""


# --- Hydration ---


class HydrationError(RowLoaderError):
    """Base for errors raised while turning rows into entities."""


class StaleStateError(HydrationError):
    """Raised when a row's version disagrees with the cached version on lock upgrade."""

    def __init__(self, entity_name: str, identifier: Any) -> None:
        self.entity_name = entity_name
        self.identifier = identifier
        super().__init__(
            f"Row was updated or deleted by another transaction: {entity_name}#{identifier}"
        )


class WrongRuntimeTypeError(HydrationError):
    """Raised when a cached instance is not of the type the query expects."""

    def __init__(self, identifier: Any, expected: type, actual: type) -> None:
        self.identifier = identifier
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Loaded object #{identifier} was of wrong class: expected "
            f"{expected.__name__}, found {actual.__name__}"
        )


class UnresolvedDiscriminatorError(HydrationError):
    """Raised when a discriminator value names no known subtype."""

    def __init__(self, value: Any, identifier: Any, root_class: type) -> None:
        self.value = value
        self.identifier = identifier
        self.root_class = root_class
        super().__init__(
            f"Discriminator {value!r} of {root_class.__name__}#{identifier} "
            "does not map to a known subclass"
        )


# --- Mapping ---


class MappingError(RowLoaderError):
    """Base for mapping metadata errors."""


class ColumnMismatchError(MappingError):
    """Raised in strict mode when an alias is missing from the cursor."""

    def __init__(self, alias: str, available: list[str]) -> None:
        self.alias = alias
        self.available = available
        super().__init__(f"Column alias '{alias}' not in result set; columns: {available}")


class MappingCompilationError(MappingError):
    """Raised when an entity mapping fails validation during build()."""


class UnknownEntityError(MappingError):
    """Raised when no persister is registered for a class or entity name."""

    def __init__(self, entity: Any) -> None:
        self.entity = entity
        super().__init__(f"Unknown entity: {entity!r}")


class LoaderConfigurationError(MappingError):
    """Raised when a compiled query is internally inconsistent."""


# --- Session ---


class SessionError(RowLoaderError):
    """Base for unit-of-work errors."""


class LazyInitializationError(SessionError):
    """Raised when a proxy or collection cannot be initialized."""


class NonUniqueObjectError(SessionError):
    """Raised when a different instance with the same identity is already associated."""

    def __init__(self, entity_name: str, identifier: Any) -> None:
        self.entity_name = entity_name
        self.identifier = identifier
        super().__init__(
            "A different object with the same identifier is already associated "
            f"with the session: {entity_name}#{identifier}"
        )


class ObjectNotFoundError(SessionError):
    """Raised when a proxied row does not exist."""

    def __init__(self, entity_name: str, identifier: Any) -> None:
        self.entity_name = entity_name
        self.identifier = identifier
        super().__init__(f"No row with the given identifier exists: {entity_name}#{identifier}")


class CollectionSessionError(SessionError):
    """Raised when a collection is associated with two open sessions."""


# --- Adapter ---


class AdapterError(RowLoaderError):
    """Base for adapter errors."""


class ConnectionError(AdapterError):  # noqa: A001
    """Raised on connection failures."""


class PoolError(AdapterError):
    """Raised on connection pool failures."""
