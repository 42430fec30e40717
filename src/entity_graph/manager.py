"""
Graph manager: the single mutator of an entity store.

Saves and deletes walk the relationship graph depth-first from the root
entity, following only slots whose descriptor cascades the operation, with a
per-call visited set keyed by ``EntityKey`` so cyclic structures terminate
and every entity is handled exactly once. Each top-level call runs inside one
store transaction; nothing is committed unless the whole cascade succeeds.

Callers serialise access themselves (one call in flight per manager).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from dataclasses import dataclass, field
from typing import Any

from .errors import (
    CardinalityViolation,
    ConstraintViolation,
    InvalidArgument,
    NotFound,
    RequiresRepair,
    TransientReferenceError,
    TypeMismatch,
)
from .mapping.descriptors import CascadePolicy, SlotSpec
from .mapping.registry import RelationshipRegistry
from .model.entity import Entity, EntityKey, EntityType, ref_key
from .paging import Page, SortDirection, check_sort_key, check_window, sort_entities
from .settings import EntityGraphSettings
from .settings import settings as default_settings
from .store.base import PersistenceAdapter
from .store.memory import InMemoryStore

logger = logging.getLogger(__name__)

TransactionScope = Callable[[], AbstractContextManager[Any]]
Target = Entity | EntityKey


@dataclass(slots=True)
class DeleteResult:
    """Outcome of ``GraphManager.delete``.

    ``deleted`` lists erased keys in cascade order (root first).
    ``requires_repair`` lists every surviving reference to an erased entity.
    """

    deleted: list[EntityKey]
    requires_repair: list[RequiresRepair] = field(default_factory=list)

    @property
    def affected(self) -> list[EntityKey]:
        seen: dict[EntityKey, None] = {}
        for r in self.requires_repair:
            seen.setdefault(r.entity, None)
        return list(seen)


@dataclass(slots=True)
class Query:
    """Lazy, restartable view over one entity type.

    Every iteration re-reads the store and re-evaluates the predicate; results
    are not stable if the store is mutated mid-iteration.
    """

    store: PersistenceAdapter
    type_name: str
    predicate: Callable[[Entity], bool]

    def __iter__(self) -> Iterator[Entity]:
        for ent in self.store.scan(self.type_name):
            if self.predicate(ent):
                yield ent

    def first(self) -> Entity | None:
        return next(iter(self), None)

    def count(self) -> int:
        return sum(1 for _ in self)


def _type_name(t: str | EntityType) -> str:
    return t.name if isinstance(t, EntityType) else t


class GraphManager:
    def __init__(
        self,
        registry: RelationshipRegistry,
        store: PersistenceAdapter | None = None,
        *,
        settings: EntityGraphSettings | None = None,
    ):
        registry.close()
        self.registry = registry
        self.store: PersistenceAdapter = store if store is not None else InMemoryStore()
        self.settings = settings or default_settings

    @classmethod
    def from_settings(
        cls, registry: RelationshipRegistry, settings: EntityGraphSettings | None = None
    ) -> GraphManager:
        """Build a manager whose store is chosen by ``settings.store``."""
        settings = settings or default_settings
        store: PersistenceAdapter
        if settings.store == "sqlite":
            from .store.sqlite import SQLiteStore

            store = SQLiteStore(path=settings.sqlite_path, registry=registry)
        else:
            store = InMemoryStore()
        return cls(registry, store, settings=settings)

    # --------------------------
    # helpers
    # --------------------------

    @contextmanager
    def _unit_of_work(self, transaction: TransactionScope | None) -> Iterator[None]:
        outer = transaction() if transaction is not None else nullcontext()
        with outer, self.store.transaction():
            yield

    def _key_for(self, target: Target) -> EntityKey:
        if isinstance(target, Entity):
            if target.is_transient:
                raise NotFound(target.type_name, None, f"{target.type_name} was never saved")
            return target.key
        if isinstance(target, EntityKey):
            return target
        raise InvalidArgument(f"expected Entity or EntityKey, got {type(target).__name__}")

    def _load(self, key: EntityKey) -> Entity:
        return self.store.load(key.type_name, key.id)

    def _specs(self, type_name: str) -> dict[str, SlotSpec]:
        return {s.name: s for s in self.registry.slots_for(type_name)}

    # --------------------------
    # save
    # --------------------------

    def save(self, entity: Entity, *, transaction: TransactionScope | None = None) -> Entity:
        """Persist ``entity`` and every transient entity reachable through
        SAVE/ALL cascades.

        Returns the same object with its identifier populated and its slots
        normalised to keys.

        Raises:
            TypeMismatch: unregistered type, undeclared slot, or a target of the
                wrong type.
            CardinalityViolation: a to-one slot would hold more than one target,
                or a required slot would be empty.
            TransientReferenceError: a non-cascading slot holds an unsaved entity.
            NotFound: a slot references an entity that is not stored.
            ConstraintViolation: a unique or non-nullable field check failed.
        """
        assigned: list[Entity] = []
        try:
            with self._unit_of_work(transaction):
                written = self._save_in_tx(entity, assigned)
        except Exception as e:
            for ent in assigned:
                ent._reset_id()
            logger.warning(f"Save of {entity!r} failed: {e}")
            raise
        for user_obj, stored in written:
            user_obj._sync_from(stored)
        logger.info(f"Saved {entity!r} ({len(written)} entities in cascade)")
        return entity

    def save_all(
        self, entities: Iterable[Entity], *, transaction: TransactionScope | None = None
    ) -> list[Entity]:
        """Save a batch atomically: either every entity is saved or none is."""
        batch = list(entities)
        assigned: list[Entity] = []
        written: list[tuple[Entity, Entity]] = []
        try:
            with self._unit_of_work(transaction):
                for i, ent in enumerate(batch, 1):
                    written.extend(self._save_in_tx(ent, assigned))
                    if i % self.settings.batch_size == 0:
                        logger.debug(f"save_all: {i}/{len(batch)} saved")
        except Exception as e:
            for ent in assigned:
                ent._reset_id()
            logger.error(f"Batch save of {len(batch)} entities rolled back: {e}")
            raise
        for user_obj, stored in written:
            user_obj._sync_from(stored)
        logger.info(f"Batch saved {len(batch)} entities")
        return batch

    def _save_in_tx(self, root: Entity, assigned: list[Entity]) -> list[tuple[Entity, Entity]]:
        plan = self._plan_save(root, assigned)
        work = self._apply_save(plan)
        for w in work.values():
            self.store.store(w)
        return [(ent, work[key]) for key, ent in plan.items()]

    def _plan_save(self, root: Entity, assigned: list[Entity]) -> dict[EntityKey, Entity]:
        plan: dict[EntityKey, Entity] = {}

        def visit(ent: Entity) -> None:
            self.registry.entity_type(ent.type_name)  # TypeMismatch when unregistered
            if ent.is_transient:
                ent.id = self.store.allocate_id(ent.type_name)
                assigned.append(ent)
            key = ent.key
            seen = plan.get(key)
            if seen is not None:
                if seen is not ent:
                    raise InvalidArgument(f"two different objects claim {key}")
                return
            plan[key] = ent
            self._validate(ent)
            slots = ent.slots
            for spec in self.registry.slots_for(ent.type_name):
                slot = slots.get(spec.name)
                if not slot:
                    continue
                for ref in slot:
                    if not isinstance(ref, Entity) or ref.key in plan:
                        continue
                    if ref.is_transient:
                        if not spec.cascades(CascadePolicy.SAVE):
                            raise TransientReferenceError(
                                f"{key}.{spec.name} references an unsaved {ref.type_name}"
                            )
                        visit(ref)

        visit(root)
        return plan

    def _validate(self, ent: Entity) -> None:
        specs = self._specs(ent.type_name)
        for name, slot in ent.slots.items():
            spec = specs.get(name)
            if spec is None:
                if len(slot):
                    raise TypeMismatch(f"{ent.type_name} declares no relationship slot {name!r}")
                continue
            if not spec.to_many and len(slot) > 1:
                raise CardinalityViolation(
                    f"{ent.type_name}.{name} is to-one but holds {len(slot)} targets"
                )
            for ref in slot:
                if not self.registry.is_defined(ref.type_name):
                    raise TypeMismatch(
                        f"{ent.type_name}.{name} references unregistered type {ref.type_name!r}"
                    )
                if ref.type_name != spec.target_type:
                    raise TypeMismatch(
                        f"{ent.type_name}.{name} expects {spec.target_type}, got {ref.type_name}"
                    )
        for name, fspec in ent.entity_type.fields.items():
            if not fspec.nullable and ent.get_attribute(name) is None:
                raise ConstraintViolation(f"{ent.type_name}.{name} cannot be null")

    def _apply_save(self, plan: dict[EntityKey, Entity]) -> dict[EntityKey, Entity]:
        """Compute the final stored state of every entity the save touches."""
        work: dict[EntityKey, Entity] = {}
        wanted: dict[tuple[EntityKey, str], list[EntityKey]] = {}
        ops: list[tuple[bool, EntityKey, SlotSpec, EntityKey]] = []

        def get(key: EntityKey) -> Entity | None:
            if key not in work:
                if not self.store.exists(key.type_name, key.id):
                    return None
                work[key] = self._load(key)
            return work[key]

        for key, ent in plan.items():
            specs = self._specs(ent.type_name)
            prev = self._load(key) if self.store.exists(key.type_name, key.id) else None
            w = ent.copy()
            w.repairs = []
            given = w.slots
            for name, slot in given.items():
                new_keys = [ref_key(r) for r in slot]
                for k in new_keys:
                    if k not in plan and not self.store.exists(k.type_name, k.id):
                        raise NotFound(k.type_name, k.id, f"{key}.{name} references missing {k}")
                prev_keys = prev.slot(name).keys() if prev is not None else []
                # the caller's edits since its last load/save, merged onto the stored state
                base = ent._synced_keys(name)
                if base is None:
                    base = prev_keys
                removed = [k for k in base if k not in new_keys and k in prev_keys]
                added = [k for k in new_keys if k not in base and k not in prev_keys]
                wanted[(key, name)] = new_keys
                spec = specs.get(name)
                if spec is None or spec.back_slot is None:
                    slot.replace([k for k in prev_keys if k not in removed] + added)
                    continue
                slot.replace(prev_keys)
                ops.extend((False, key, spec, k) for k in removed)
                ops.extend((True, key, spec, k) for k in added)
            # slots absent from the caller's object keep their stored contents
            if prev is not None:
                for name, pslot in prev.slots.items():
                    if name not in given:
                        w.slot(name).replace(pslot.keys())
            work[key] = w

        for linking, a, spec, b in ops:
            self._apply_op(get, linking, a, spec, b)

        # caller's order first, then entries mirrored in from other entities
        for (key, name), order in wanted.items():
            slot = work[key].slot(name)
            current = slot.keys()
            slot.replace([k for k in order if k in current] + [k for k in current if k not in order])

        self._check_cardinality(work.values())
        self._check_unique(plan, work)
        return work

    @staticmethod
    def _apply_op(
        get: Callable[[EntityKey], Entity | None],
        linking: bool,
        a: EntityKey,
        spec: SlotSpec,
        b: EntityKey,
    ) -> bool:
        """Add or remove one association on both sides.

        The back side is skipped when ``b`` no longer exists (dropping a
        dangling reference).
        """
        fwd = get(a).slot(spec.name)
        changed = False
        if linking:
            if b not in fwd:
                fwd.add(b)
                changed = True
        else:
            changed = fwd.remove(b)
        other = get(b) if spec.back_slot is not None else None
        if other is not None:
            back = other.slot(spec.back_slot)
            if linking:
                back.add(a)
            else:
                changed = back.remove(a) or changed
        return changed

    def _check_cardinality(self, entities: Iterable[Entity]) -> None:
        for ent in entities:
            slots = ent.slots
            for spec in self.registry.slots_for(ent.type_name):
                n = len(slots.get(spec.name) or ())
                if not spec.to_many and n > 1:
                    raise CardinalityViolation(
                        f"{ent.key}.{spec.name} is to-one but would hold {n} targets"
                    )
                if spec.required and n == 0:
                    raise CardinalityViolation(f"{ent.key}.{spec.name} is required")

    def _check_unique(self, plan: dict[EntityKey, Entity], work: dict[EntityKey, Entity]) -> None:
        by_type: dict[str, list[Entity]] = {}
        for key in plan:
            by_type.setdefault(key.type_name, []).append(work[key])
        for type_name, ents in by_type.items():
            et = self.registry.entity_type(type_name)
            unique = [n for n, f in et.fields.items() if f.unique]
            if not unique:
                continue
            for name in unique:
                taken: dict[Any, EntityKey] = {}
                for ent in ents:
                    value = ent.get_attribute(name)
                    if value is None:
                        continue
                    if value in taken:
                        raise ConstraintViolation(f"{type_name}.{name}={value!r} is not unique")
                    taken[value] = ent.key
                for other in self.store.scan(type_name):
                    if other.key in plan:
                        continue
                    value = other.get_attribute(name)
                    if value is not None and value in taken:
                        raise ConstraintViolation(
                            f"{type_name}.{name}={value!r} already used by {other.key}"
                        )

    # --------------------------
    # delete / repair
    # --------------------------

    def delete(self, target: Target, *, transaction: TransactionScope | None = None) -> DeleteResult:
        """Erase ``target`` and everything reachable through DELETE/ALL cascades.

        Surviving entities that still reference an erased entity keep the
        reference and are flagged with ``RequiresRepair``.

        Raises:
            NotFound: the entity was never saved or is no longer stored. The
                store is left untouched.
        """
        key = self._key_for(target)
        if not self.store.exists(key.type_name, key.id):
            raise NotFound(key.type_name, key.id)

        try:
            with self._unit_of_work(transaction):
                doomed = self._cascade_closure(key, CascadePolicy.DELETE)
                for k in doomed:
                    self.store.erase(k.type_name, k.id)
                doomed_set = set(doomed)

                notices: list[RequiresRepair] = []
                touched: dict[EntityKey, Entity] = {}
                for k in doomed:
                    for referrer, slot_name in self.store.referrers(k):
                        if referrer in doomed_set:
                            continue
                        ent = touched.get(referrer)
                        if ent is None:
                            ent = touched[referrer] = self._load(referrer)
                        notice = RequiresRepair(entity=referrer, slot=slot_name, missing=k)
                        if notice not in ent.repairs:
                            ent.repairs.append(notice)
                        notices.append(notice)
                for ent in touched.values():
                    self.store.store(ent)
        except Exception as e:
            logger.error(f"Failed to delete {key}: {e}")
            raise

        logger.info(f"Deleted {key} ({len(doomed) - 1} cascaded)")
        if notices:
            logger.warning(
                f"{len(touched)} entities require repair after deleting {key}: "
                + ", ".join(str(k) for k in touched)
            )
        return DeleteResult(deleted=doomed, requires_repair=notices)

    def _cascade_closure(self, root: EntityKey, op: CascadePolicy) -> list[EntityKey]:
        order: list[EntityKey] = []
        visited: set[EntityKey] = set()
        stack = [root]
        while stack:
            key = stack.pop()
            if key in visited or not self.store.exists(key.type_name, key.id):
                continue
            visited.add(key)
            order.append(key)
            ent = self._load(key)
            slots = ent.slots
            children: list[EntityKey] = []
            for spec in self.registry.slots_for(key.type_name):
                if spec.cascades(op) and spec.name in slots:
                    children.extend(slots[spec.name].keys())
            # reversed so the first registered slot is walked first
            stack.extend(reversed(children))
        return order

    def repair(self, target: Target, *, transaction: TransactionScope | None = None) -> Entity:
        """Drop dangling references from ``target`` and clear its repair flags."""
        key = self._key_for(target)
        with self._unit_of_work(transaction):
            ent = self._load(key)
            dropped = 0
            for slot in ent.slots.values():
                for k in slot.keys():
                    if not self.store.exists(k.type_name, k.id):
                        slot.remove(k)
                        dropped += 1
            ent.repairs = []
            self.store.store(ent)
            ent._mark_synced()
        logger.info(f"Repaired {key}: dropped {dropped} dangling references")
        return ent

    # --------------------------
    # associations
    # --------------------------

    def _association(
        self, a: Target, slot_name: str, b: Target, linking: bool, transaction: TransactionScope | None
    ) -> bool:
        a_key, b_key = self._key_for(a), self._key_for(b)
        spec = self.registry.slot(a_key.type_name, slot_name)
        if b_key.type_name != spec.target_type:
            raise TypeMismatch(f"{a_key.type_name}.{slot_name} expects {spec.target_type}, got {b_key.type_name}")
        with self._unit_of_work(transaction):
            work = {a_key: self._load(a_key), b_key: self._load(b_key)}
            changed = self._apply_op(work.get, linking, a_key, spec, b_key)
            self._check_cardinality(work.values())
            for w in work.values():
                self.store.store(w)
        # keep the caller's handles current for the slots this call changed
        if isinstance(a, Entity):
            a._sync_slot(work[a_key], spec.name)
        if isinstance(b, Entity) and spec.back_slot is not None:
            b._sync_slot(work[b_key], spec.back_slot)
        verb = "Linked" if linking else "Unlinked"
        logger.debug(f"{verb} {a_key}.{slot_name} <-> {b_key} (changed={changed})")
        return changed

    def link(self, a: Target, slot_name: str, b: Target, *, transaction: TransactionScope | None = None) -> bool:
        """Add the association (a, b) on both sides in one atomic step."""
        return self._association(a, slot_name, b, True, transaction)

    def unlink(self, a: Target, slot_name: str, b: Target, *, transaction: TransactionScope | None = None) -> bool:
        """Remove the association (a, b) on both sides in one atomic step."""
        return self._association(a, slot_name, b, False, transaction)

    # --------------------------
    # lookups
    # --------------------------

    def find_by_id(self, entity_type: str | EntityType, entity_id: int) -> Entity:
        name = _type_name(entity_type)
        self.registry.entity_type(name)
        return self.store.load(name, entity_id)

    def find_all(self, entity_type: str | EntityType) -> list[Entity]:
        name = _type_name(entity_type)
        self.registry.entity_type(name)
        return list(self.store.scan(name))

    def exists(self, entity_type: str | EntityType, entity_id: int) -> bool:
        return self.store.exists(_type_name(entity_type), entity_id)

    def count(self, entity_type: str | EntityType) -> int:
        return self.store.count(_type_name(entity_type))

    def query(self, entity_type: str | EntityType, predicate: Callable[[Entity], bool]) -> Query:
        name = _type_name(entity_type)
        self.registry.entity_type(name)
        return Query(store=self.store, type_name=name, predicate=predicate)

    def find_by(self, entity_type: str | EntityType, **criteria: Any) -> list[Entity]:
        """Entities whose attributes equal every given value."""
        et = self.registry.entity_type(_type_name(entity_type))
        for name in criteria:
            if name not in et.fields:
                raise KeyError(f"{et.name} has no attribute {name!r}")
        return list(
            self.query(et.name, lambda e: all(e.get_attribute(k) == v for k, v in criteria.items()))
        )

    def find_one_by(self, entity_type: str | EntityType, **criteria: Any) -> Entity:
        found = self.find_by(entity_type, **criteria)
        if not found:
            name = _type_name(entity_type)
            raise NotFound(name, None, f"no {name} matching {criteria!r}")
        return found[0]

    def values(self, entity_type: str | EntityType, attribute: str) -> list[Any]:
        """Project one attribute across every entity of a type, in id order."""
        return [e.get_attribute(attribute) for e in self.find_all(entity_type)]

    def resolve(self, entity: Entity, slot_name: str) -> list[Entity]:
        """Load the entities behind one slot. Dangling references are skipped."""
        self.registry.slot(entity.type_name, slot_name)
        out: list[Entity] = []
        for ref in entity.slot(slot_name):
            if isinstance(ref, Entity) and ref.is_transient:
                out.append(ref)
                continue
            k = ref_key(ref)
            if self.store.exists(k.type_name, k.id):
                out.append(self._load(k))
            else:
                logger.debug(f"resolve: {entity!r}.{slot_name} skips dangling {k}")
        return out

    # --------------------------
    # paging
    # --------------------------

    def page(
        self,
        entity_type: str | EntityType,
        offset: int = 0,
        limit: int | None = None,
        sort_key: str = "id",
        direction: SortDirection | str = SortDirection.ASC,
    ) -> Page:
        """Sorted window over all entities of a type.

        Entities with equal sort values are ordered by id ascending.

        Raises:
            InvalidArgument: ``offset < 0``, ``limit <= 0``, an unknown sort
                key (or a value-object attribute without a field path), or an
                unknown direction.
        """
        limit = self.settings.default_page_size if limit is None else limit
        check_window(offset, limit)
        et = self.registry.entity_type(_type_name(entity_type))
        check_sort_key(et, sort_key)
        try:
            direction = SortDirection(direction)
        except ValueError as e:
            raise InvalidArgument(str(e)) from e

        ordered = sort_entities(list(self.store.scan(et.name)), sort_key, direction)
        return Page(
            items=ordered[offset : offset + limit],
            offset=offset,
            limit=limit,
            total=len(ordered),
            sort_key=sort_key,
            direction=direction,
        )

    def page_number(
        self,
        entity_type: str | EntityType,
        number: int,
        size: int,
        sort_key: str = "id",
        direction: SortDirection | str = SortDirection.ASC,
    ) -> Page:
        """Page-number form of ``page``: page ``number`` (0-based) of ``size`` items."""
        if number < 0:
            raise InvalidArgument("Page number cannot be negative.")
        if size <= 0:
            raise InvalidArgument("Page size must be greater than 0.")
        return self.page(entity_type, number * size, size, sort_key, direction)
