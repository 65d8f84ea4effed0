"""Lazy entity proxies.

A proxy stands in for an entity that has not been loaded. The first
attribute access loads the target through the owning session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from row_loader.core.exceptions import LazyInitializationError

if TYPE_CHECKING:
    from row_loader.mapping.persister import EntityPersister
    from row_loader.session.session import Session

_SLOTS = ("_rl_session", "_rl_persister", "_rl_identifier", "_rl_target")


class EntityProxy:
    """Placeholder for an entity identified by (persister, identifier)."""

    __slots__ = _SLOTS

    def __init__(self, session: Session, persister: EntityPersister, identifier: Any) -> None:
        object.__setattr__(self, "_rl_session", session)
        object.__setattr__(self, "_rl_persister", persister)
        object.__setattr__(self, "_rl_identifier", identifier)
        object.__setattr__(self, "_rl_target", None)

    def _rl_initialize(self) -> Any:
        target = object.__getattribute__(self, "_rl_target")
        if target is not None:
            return target
        session: Session | None = object.__getattribute__(self, "_rl_session")
        persister = object.__getattribute__(self, "_rl_persister")
        identifier = object.__getattribute__(self, "_rl_identifier")
        if session is None or not session.is_open:
            raise LazyInitializationError(
                f"Could not initialize proxy {persister.entity_name}#{identifier}: no open session"
            )
        target = session.immediate_load(persister, identifier)
        object.__setattr__(self, "_rl_target", target)
        return target

    def set_implementation(self, target: Any) -> None:
        object.__setattr__(self, "_rl_target", target)

    def detach(self) -> None:
        object.__setattr__(self, "_rl_session", None)

    def __getattr__(self, name: str) -> Any:
        if name == object.__getattribute__(self, "_rl_persister").identifier.name:
            return object.__getattribute__(self, "_rl_identifier")
        return getattr(self._rl_initialize(), name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _SLOTS:
            object.__setattr__(self, name, value)
        else:
            setattr(self._rl_initialize(), name, value)

    def __repr__(self) -> str:
        persister = object.__getattribute__(self, "_rl_persister")
        identifier = object.__getattribute__(self, "_rl_identifier")
        state = "initialized" if is_initialized(self) else "uninitialized"
        return f"<EntityProxy {persister.entity_name}#{identifier} {state}>"


def is_initialized(obj: Any) -> bool:
    """False only for a proxy whose target has not been loaded."""
    if isinstance(obj, EntityProxy):
        return object.__getattribute__(obj, "_rl_target") is not None
    return True


def unproxy(obj: Any) -> Any:
    """Return the real instance behind *obj*, loading it if needed."""
    if isinstance(obj, EntityProxy):
        return obj._rl_initialize()
    return obj
