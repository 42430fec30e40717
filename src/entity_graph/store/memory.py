from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from ..errors import NotFound
from ..model.entity import Entity, EntityKey

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Reference adapter: an arena mapping (type, id) to entity copies.

    Stored entities are replaced on write, never mutated in place, so a
    transaction snapshot only needs to copy the per-type dicts. Id counters
    are not part of the snapshot: an id handed out once is never handed out
    again, even if the transaction that took it rolled back.
    """

    def __init__(self) -> None:
        self._entities: dict[str, dict[int, Entity]] = {}
        self._counters: dict[str, int] = {}
        self._depth = 0
        self._snapshot: dict[str, dict[int, Entity]] | None = None

    def allocate_id(self, type_name: str) -> int:
        n = self._counters.get(type_name, 0) + 1
        self._counters[type_name] = n
        return n

    def load(self, type_name: str, entity_id: int) -> Entity:
        try:
            ent = self._entities[type_name][entity_id].copy()
        except KeyError:
            raise NotFound(type_name, entity_id) from None
        ent._mark_synced()
        return ent

    def exists(self, type_name: str, entity_id: int) -> bool:
        return entity_id in self._entities.get(type_name, {})

    def store(self, entity: Entity) -> int:
        if entity.id is None:
            entity.id = self.allocate_id(entity.type_name)
        for s in entity.slots.values():
            s.keys()  # rejects transient references
        self._entities.setdefault(entity.type_name, {})[entity.id] = entity.copy()
        if entity.id > self._counters.get(entity.type_name, 0):
            self._counters[entity.type_name] = entity.id
        return entity.id

    def erase(self, type_name: str, entity_id: int) -> None:
        try:
            del self._entities[type_name][entity_id]
        except KeyError:
            raise NotFound(type_name, entity_id) from None

    def scan(self, type_name: str) -> Iterator[Entity]:
        bucket = self._entities.get(type_name, {})
        for entity_id in sorted(bucket):
            ent = bucket.get(entity_id)
            if ent is not None:
                ent = ent.copy()
                ent._mark_synced()
                yield ent

    def count(self, type_name: str) -> int:
        return len(self._entities.get(type_name, {}))

    def referrers(self, key: EntityKey) -> list[tuple[EntityKey, str]]:
        out: list[tuple[EntityKey, str]] = []
        for type_name in sorted(self._entities):
            bucket = self._entities[type_name]
            for entity_id in sorted(bucket):
                for slot_name, s in bucket[entity_id].slots.items():
                    if key in s.keys():
                        out.append((EntityKey(type_name, entity_id), slot_name))
        return out

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth == 0:
            self._snapshot = {t: dict(bucket) for t, bucket in self._entities.items()}
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._entities = self._snapshot or {}
                self._snapshot = None
                logger.warning("In-memory transaction rolled back")
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None
