from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Cardinality(str, Enum):
    """Multiplicity, read from the source type towards the target type."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"

    @property
    def target_many(self) -> bool:
        """Source-side slot holds a collection."""
        return self in (Cardinality.ONE_TO_MANY, Cardinality.MANY_TO_MANY)

    @property
    def source_many(self) -> bool:
        """Target-side (back) slot holds a collection."""
        return self in (Cardinality.MANY_TO_ONE, Cardinality.MANY_TO_MANY)


class CascadePolicy(str, Enum):
    NONE = "none"
    SAVE = "save"
    DELETE = "delete"
    ALL = "all"

    def covers(self, op: CascadePolicy) -> bool:
        if self is CascadePolicy.NONE or op is CascadePolicy.NONE:
            return False
        return self is CascadePolicy.ALL or self is op


@dataclass(frozen=True, slots=True)
class RelationshipDescriptor:
    """Registered relationship between an ordered pair of entity types."""

    source_type: str
    target_type: str
    cardinality: Cardinality
    owning_side: str
    cascade: CascadePolicy
    source_slot: str
    target_slot: str | None = None  # None: unidirectional
    required: bool = False  # the to-one side must always hold a target

    @property
    def pair(self) -> tuple[str, str]:
        return (self.source_type, self.target_type)

    @property
    def bidirectional(self) -> bool:
        return self.target_slot is not None

    @property
    def owned_by_source(self) -> bool:
        return self.owning_side == self.source_type

    def source_spec(self) -> SlotSpec:
        return SlotSpec(
            owner_type=self.source_type,
            name=self.source_slot,
            target_type=self.target_type,
            to_many=self.cardinality.target_many,
            owning=self.owned_by_source,
            back_slot=self.target_slot,
            required=self.required and not self.cardinality.target_many,
            descriptor=self,
        )

    def target_spec(self) -> SlotSpec | None:
        if self.target_slot is None:
            return None
        return SlotSpec(
            owner_type=self.target_type,
            name=self.target_slot,
            target_type=self.source_type,
            to_many=self.cardinality.source_many,
            # self-referential pairs are owned through the source slot only
            owning=self.owning_side == self.target_type and not self.owned_by_source,
            back_slot=self.source_slot,
            required=self.required and self.cardinality is Cardinality.ONE_TO_MANY,
            descriptor=self,
        )


@dataclass(frozen=True, slots=True)
class SlotSpec:
    """One materialised side of a relationship descriptor."""

    owner_type: str
    name: str
    target_type: str
    to_many: bool
    owning: bool
    back_slot: str | None
    required: bool
    descriptor: RelationshipDescriptor

    def cascades(self, op: CascadePolicy) -> bool:
        """Operations propagate only from the owning side."""
        return self.owning and self.descriptor.cascade.covers(op)
