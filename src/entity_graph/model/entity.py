"""
Entity model for the relationship graph.

Entities are identity-bearing records: a type, an identifier assigned by the
manager on first save, scalar and embedded attributes, and relationship
slots. Slots hold ``EntityKey`` handles for persistent targets (or the
``Entity`` object itself while the target is still transient), never live
links to stored objects, so cycle checks are plain set membership over keys.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple, Union

from ..errors import InvalidArgument, RequiresRepair, TransientReferenceError, TypeMismatch
from .values import ValueObject


class EntityKey(NamedTuple):
    """Arena handle: (type name, identifier)."""

    type_name: str
    id: int

    def __str__(self) -> str:
        return f"{self.type_name}#{self.id}"


# --------------------------
# Field specs
# --------------------------


@dataclass(frozen=True, slots=True)
class Scalar:
    """Plain attribute. ``py_type`` of None accepts any value."""

    py_type: type | tuple[type, ...] | None = None
    nullable: bool = True
    unique: bool = False

    def check(self, owner: str, name: str, value: Any) -> Any:
        if value is None or self.py_type is None:
            return value
        allowed = self.py_type if isinstance(self.py_type, tuple) else (self.py_type,)
        # bool is an int subclass; only accept it when asked for explicitly
        if not isinstance(value, self.py_type) or (isinstance(value, bool) and bool not in allowed):
            raise TypeMismatch(
                f"{owner}.{name} expects {self.py_type!r}, got {type(value).__name__}"
            )
        return copy.deepcopy(value)

    def encode(self, value: Any) -> Any:
        return value

    def decode(self, raw: Any) -> Any:
        return raw


@dataclass(frozen=True, slots=True)
class Embedded:
    """Value-object attribute, copied by value on assignment."""

    value_type: type[ValueObject]
    nullable: bool = True
    unique: bool = False

    def check(self, owner: str, name: str, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, self.value_type):
            raise TypeMismatch(
                f"{owner}.{name} expects {self.value_type.__name__}, got {type(value).__name__}"
            )
        return value.model_copy(deep=True)

    def encode(self, value: Any) -> Any:
        return None if value is None else value.model_dump()

    def decode(self, raw: Any) -> Any:
        return None if raw is None else self.value_type.model_validate(raw)


FieldSpec = Union[Scalar, Embedded]


class EntityType:
    """Named mapping from attribute name to field spec.

    Relationship slots are not declared here; they come from the descriptors
    registered against the type in a ``RelationshipRegistry``.
    """

    def __init__(self, name: str, fields: Mapping[str, FieldSpec] | None = None):
        if not name:
            raise InvalidArgument("entity type name cannot be empty")
        self.name = name
        self.fields: dict[str, FieldSpec] = dict(fields or {})

    def new(self, **values: Any) -> Entity:
        """Build a transient entity of this type."""
        return Entity(self, **values)

    def __repr__(self) -> str:
        return f"EntityType({self.name!r}, fields={list(self.fields)})"


# --------------------------
# Relationship slots
# --------------------------

Ref = Union[EntityKey, "Entity"]


def ref_key(ref: Ref) -> EntityKey | None:
    """Key of a slot reference, or None for a still-transient entity."""
    if isinstance(ref, EntityKey):
        return ref
    return ref.key


class RelationshipSlot:
    """Ordered, duplicate-free references to related entities."""

    __slots__ = ("name", "_refs")

    def __init__(self, name: str, refs: Iterable[Ref | Entity] = ()):
        self.name = name
        self._refs: list[Ref] = []
        for r in refs:
            self.add(r)

    @staticmethod
    def _coerce(target: Any) -> Ref:
        if isinstance(target, Entity):
            return target if target.is_transient else target.key
        if isinstance(target, EntityKey):
            return target
        if isinstance(target, tuple) and len(target) == 2:
            return EntityKey(*target)
        raise TypeMismatch(f"cannot reference {type(target).__name__} from a relationship slot")

    @staticmethod
    def _same(a: Ref, b: Ref) -> bool:
        if a is b:
            return True
        ka, kb = ref_key(a), ref_key(b)
        return ka is not None and ka == kb

    def _index(self, ref: Ref) -> int:
        for i, r in enumerate(self._refs):
            if self._same(r, ref):
                return i
        return -1

    def add(self, target: Ref | Entity) -> None:
        ref = self._coerce(target)
        if self._index(ref) < 0:
            self._refs.append(ref)

    def remove(self, target: Ref | Entity) -> bool:
        i = self._index(self._coerce(target))
        if i < 0:
            return False
        del self._refs[i]
        return True

    def set(self, target: Ref | Entity | None) -> None:
        """Replace the contents with a single target (or nothing)."""
        self._refs.clear()
        if target is not None:
            self.add(target)

    def clear(self) -> None:
        self._refs.clear()

    def get(self) -> Ref | None:
        return self._refs[0] if self._refs else None

    @property
    def refs(self) -> tuple[Ref, ...]:
        return tuple(self._refs)

    def keys(self) -> list[EntityKey]:
        out: list[EntityKey] = []
        for r in self._refs:
            k = ref_key(r)
            if k is None:
                raise TransientReferenceError(f"slot {self.name!r} holds an unsaved {r.type_name}")
            out.append(k)
        return out

    def replace(self, keys: Iterable[EntityKey]) -> None:
        self._refs = list(keys)

    def signature(self) -> tuple[Any, ...]:
        return tuple(ref_key(r) or ("transient", id(r)) for r in self._refs)

    def copy(self) -> RelationshipSlot:
        dup = RelationshipSlot(self.name)
        dup._refs = list(self._refs)
        return dup

    def __iter__(self) -> Iterator[Ref]:
        return iter(list(self._refs))

    def __len__(self) -> int:
        return len(self._refs)

    def __contains__(self, target: object) -> bool:
        try:
            return self._index(self._coerce(target)) >= 0
        except TypeMismatch:
            return False

    def __repr__(self) -> str:
        items = ", ".join(str(ref_key(r) or f"<transient {r.type_name}>") for r in self._refs)
        return f"RelationshipSlot({self.name!r}, [{items}])"


# --------------------------
# Entity
# --------------------------


class Entity:
    """Identity-bearing record.

    `id` is None while the entity is transient. The manager assigns it on the
    first save; after that it never changes.
    """

    __hash__ = None  # type: ignore[assignment]

    def __init__(self, entity_type: EntityType, *, id: int | None = None, **values: Any):
        self.entity_type = entity_type
        self._id: int | None = None
        self._attributes: dict[str, Any] = {name: None for name in entity_type.fields}
        self._slots: dict[str, RelationshipSlot] = {}
        # slot keys as of the last load or committed save; None until then
        self._synced: dict[str, list[EntityKey]] | None = None
        self.repairs: list[RequiresRepair] = []
        if id is not None:
            self.id = id
        for name, value in values.items():
            self.set_attribute(name, value)

    # identity

    @property
    def type_name(self) -> str:
        return self.entity_type.name

    @property
    def id(self) -> int | None:
        return self._id

    @id.setter
    def id(self, value: int) -> None:
        if value is None:
            raise InvalidArgument("identifier cannot be cleared")
        if self._id is not None and value != self._id:
            raise InvalidArgument(f"{self.type_name} #{self._id}: identifier is immutable")
        self._id = value

    def _reset_id(self) -> None:
        # rollback path only
        self._id = None

    def _sync_from(self, stored: Entity) -> None:
        # after a committed save: mirror slots and repair flags of the stored copy
        self._slots = {name: s.copy() for name, s in stored._slots.items()}
        self.repairs = list(stored.repairs)
        self._mark_synced()

    def _sync_slot(self, stored: Entity, name: str) -> None:
        self._slots[name] = stored.get_relationship_slot(name).copy()
        if self._synced is not None:
            self._synced[name] = self._slots[name].keys()

    def _mark_synced(self) -> None:
        self._synced = {name: s.keys() for name, s in self._slots.items()}

    def _synced_keys(self, name: str) -> list[EntityKey] | None:
        if self._synced is None:
            return None
        return list(self._synced.get(name, ()))

    @property
    def key(self) -> EntityKey | None:
        return None if self._id is None else EntityKey(self.type_name, self._id)

    @property
    def is_transient(self) -> bool:
        return self._id is None

    # attributes

    def get_attribute(self, name: str) -> Any:
        if name not in self.entity_type.fields:
            raise KeyError(f"{self.type_name} has no attribute {name!r}")
        return self._attributes.get(name)

    def set_attribute(self, name: str, value: Any) -> None:
        spec = self.entity_type.fields.get(name)
        if spec is None:
            raise KeyError(f"{self.type_name} has no attribute {name!r}")
        self._attributes[name] = spec.check(self.type_name, name, value)

    @property
    def attributes(self) -> dict[str, Any]:
        return dict(self._attributes)

    # relationship slots

    def get_relationship_slot(self, name: str) -> RelationshipSlot:
        slot = self._slots.get(name)
        if slot is None:
            slot = self._slots[name] = RelationshipSlot(name)
        return slot

    slot = get_relationship_slot

    @property
    def slots(self) -> dict[str, RelationshipSlot]:
        return dict(self._slots)

    # repair state

    @property
    def requires_repair(self) -> bool:
        return bool(self.repairs)

    # copying / equality

    def copy(self) -> Entity:
        dup = Entity(self.entity_type)
        dup._id = self._id
        dup._attributes = copy.deepcopy(self._attributes)
        dup._slots = {name: s.copy() for name, s in self._slots.items()}
        dup.repairs = list(self.repairs)
        if self._synced is not None:
            dup._synced = {name: list(keys) for name, keys in self._synced.items()}
        return dup

    def _signature(self) -> dict[str, tuple[Any, ...]]:
        return {name: s.signature() for name, s in self._slots.items() if len(s)}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return (
            self.type_name == other.type_name
            and self._id == other._id
            and self._attributes == other._attributes
            and self._signature() == other._signature()
        )

    def __repr__(self) -> str:
        ident = "transient" if self._id is None else f"#{self._id}"
        return f"<{self.type_name} {ident}>"

    # record form

    def to_record(self) -> dict[str, Any]:
        fields = self.entity_type.fields
        return {
            "type": self.type_name,
            "id": self._id,
            "attributes": {n: fields[n].encode(v) for n, v in self._attributes.items()},
            "slots": {n: [list(k) for k in s.keys()] for n, s in self._slots.items() if len(s)},
            "repairs": [[r.slot, r.missing.type_name, r.missing.id] for r in self.repairs],
        }

    @classmethod
    def from_record(cls, entity_type: EntityType, record: Mapping[str, Any]) -> Entity:
        ent = cls(entity_type)
        ent._id = record.get("id")
        for name, raw in (record.get("attributes") or {}).items():
            spec = entity_type.fields.get(name)
            if spec is not None:
                ent._attributes[name] = spec.decode(raw)
        for name, keys in (record.get("slots") or {}).items():
            ent.get_relationship_slot(name).replace(EntityKey(t, i) for t, i in keys)
        key = ent.key
        for slot_name, t, i in record.get("repairs") or []:
            ent.repairs.append(RequiresRepair(entity=key, slot=slot_name, missing=EntityKey(t, i)))
        ent._mark_synced()
        return ent
