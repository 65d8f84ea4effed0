"""Result transformers.

A transformer turns the row slot array of a loaded row into the value
appended to the query result, and may post-process the whole list once the
scan is over.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from row_loader.core.exceptions import MappingError
from row_loader.mapping.persister import _is_pydantic_model

T = TypeVar("T")


class RowTransformer:
    """Default transformer: a single entity per row, or a tuple of them."""

    def transform_tuple(self, row: Sequence[Any], aliases: Sequence[str]) -> Any:
        if len(row) == 1:
            return row[0]
        return tuple(row)

    def transform_list(self, results: list[Any]) -> list[Any]:
        return results


class RootEntityTransformer(RowTransformer):
    """Keep only the last entity of each row (the root of a fetch join)."""

    def transform_tuple(self, row: Sequence[Any], aliases: Sequence[str]) -> Any:
        return row[-1]


class DistinctRootEntityTransformer(RootEntityTransformer):
    """Root entities with duplicates (by identity) removed, first occurrence wins."""

    def transform_list(self, results: list[Any]) -> list[Any]:
        seen: set[int] = set()
        distinct = []
        for item in results:
            if id(item) not in seen:
                seen.add(id(item))
                distinct.append(item)
        return distinct


class AliasToDictTransformer(RowTransformer):
    """Map each row to ``{alias: entity}``."""

    def transform_tuple(self, row: Sequence[Any], aliases: Sequence[str]) -> dict[str, Any]:
        return dict(zip(aliases, row))


class AliasToModelTransformer(RowTransformer, Generic[T]):
    """Construct a model from the row, one keyword argument per alias.

    Detection order:
    1. Pydantic BaseModel -> model_validate(row)
    2. dataclass -> target_class(**row)
    3. Plain class -> target_class(**row)

    Args:
        target_class: The class to construct from each row.
        aliases: Optional alias-to-field-name mapping.
    """

    def __init__(self, target_class: type[T], aliases: dict[str, str] | None = None) -> None:
        self._target_class = target_class
        self._aliases = aliases
        self._is_pydantic = _is_pydantic_model(target_class)

    def _apply_aliases(self, row: dict[str, Any]) -> dict[str, Any]:
        if not self._aliases:
            return row
        return {self._aliases.get(key, key): value for key, value in row.items()}

    def transform_tuple(self, row: Sequence[Any], aliases: Sequence[str]) -> T:
        values = self._apply_aliases(dict(zip(aliases, row)))
        name = self._target_class.__name__

        if self._is_pydantic:
            try:
                validate = self._target_class.model_validate  # type: ignore[attr-defined]
                return validate(values, from_attributes=True)  # type: ignore[no-any-return]
            except Exception as e:
                raise MappingError(f"Cannot construct {name} from row: {e}") from e

        try:
            return self._target_class(**values)
        except TypeError as e:
            raise MappingError(f"Cannot construct {name} from row: {e}") from e
