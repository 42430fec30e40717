from __future__ import annotations

from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Protocol

from ..model.entity import Entity, EntityKey


class PersistenceAdapter(Protocol):
    """Durability seam the graph manager depends on.

    Stores hand out copies: mutating an entity returned by ``load`` or
    ``scan`` never changes stored state until it is passed back to ``store``.
    """

    def load(self, type_name: str, entity_id: int) -> Entity: ...

    def store(self, entity: Entity) -> int: ...

    def erase(self, type_name: str, entity_id: int) -> None: ...

    def allocate_id(self, type_name: str) -> int: ...

    def exists(self, type_name: str, entity_id: int) -> bool: ...

    def scan(self, type_name: str) -> Iterator[Entity]: ...

    def count(self, type_name: str) -> int: ...

    def referrers(self, key: EntityKey) -> list[tuple[EntityKey, str]]: ...

    def transaction(self) -> AbstractContextManager[None]: ...
