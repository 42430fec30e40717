"""
Relationship registry.

Explicit configuration of entity types and the relationships between them.
The registry is mutable only until it is closed; ``GraphManager`` closes it
on construction, after which every ``define``/``register`` call fails.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..errors import ConfigurationError, TypeMismatch
from ..model.entity import EntityType
from .descriptors import Cardinality, CascadePolicy, RelationshipDescriptor, SlotSpec

logger = logging.getLogger(__name__)


def _type_name(t: str | EntityType) -> str:
    return t.name if isinstance(t, EntityType) else t


class RelationshipRegistry:
    def __init__(self, entity_types: Iterable[EntityType] = ()):
        self._types: dict[str, EntityType] = {}
        self._descriptors: dict[tuple[str, str], RelationshipDescriptor] = {}
        # type name -> slot name -> spec, in slot registration order
        self._slots: dict[str, dict[str, SlotSpec]] = {}
        self._closed = False
        for et in entity_types:
            self.define(et)

    # configuration phase

    def _check_open(self) -> None:
        if self._closed:
            raise ConfigurationError("relationship registry is closed")

    def define(self, entity_type: EntityType) -> EntityType:
        self._check_open()
        if entity_type.name in self._types:
            raise ConfigurationError(f"entity type {entity_type.name!r} already defined")
        self._types[entity_type.name] = entity_type
        self._slots[entity_type.name] = {}
        return entity_type

    def register(
        self,
        type_a: str | EntityType,
        type_b: str | EntityType,
        cardinality: Cardinality | str,
        owning_side: str | EntityType,
        cascade: CascadePolicy | str = CascadePolicy.NONE,
        *,
        source_slot: str,
        target_slot: str | None = None,
        required: bool = False,
    ) -> RelationshipDescriptor:
        """Register a relationship from ``type_a`` to ``type_b``.

        Raises:
            ConfigurationError: the ordered pair is already registered, a type
                is undefined, ``owning_side`` is not one of the pair, a slot
                name collides, or the owning side has no slot.
        """
        self._check_open()
        a, b, owner = _type_name(type_a), _type_name(type_b), _type_name(owning_side)

        for name in (a, b):
            if name not in self._types:
                raise ConfigurationError(f"entity type {name!r} is not defined")
        if (a, b) in self._descriptors:
            raise ConfigurationError(f"relationship {a} -> {b} already registered")
        if owner not in (a, b):
            raise ConfigurationError(f"owning side {owner!r} is not one of ({a}, {b})")
        if not source_slot:
            raise ConfigurationError(f"relationship {a} -> {b} needs a source slot name")

        try:
            cardinality = Cardinality(cardinality)
            cascade = CascadePolicy(cascade)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        desc = RelationshipDescriptor(
            source_type=a,
            target_type=b,
            cardinality=cardinality,
            owning_side=owner,
            cascade=cascade,
            source_slot=source_slot,
            target_slot=target_slot,
            required=required,
        )
        if owner == b and a != b and target_slot is None:
            raise ConfigurationError(f"owning side {b!r} of {a} -> {b} exposes no slot")

        specs = [desc.source_spec()]
        back = desc.target_spec()
        if back is not None:
            specs.append(back)
        if a == b and target_slot == source_slot:
            raise ConfigurationError(f"self relationship on {a!r} reuses slot {source_slot!r}")
        for spec in specs:
            if spec.name in self._slots[spec.owner_type]:
                raise ConfigurationError(f"{spec.owner_type}.{spec.name} already declared")
            if spec.name in self._types[spec.owner_type].fields:
                raise ConfigurationError(
                    f"{spec.owner_type}.{spec.name} collides with an attribute"
                )

        self._descriptors[(a, b)] = desc
        for spec in specs:
            self._slots[spec.owner_type][spec.name] = spec
        logger.debug(f"Registered {cardinality.value} {a}.{source_slot} -> {b} (owner={owner})")
        return desc

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            logger.info(
                f"Relationship registry closed: {len(self._types)} types, "
                f"{len(self._descriptors)} relationships"
            )

    @property
    def closed(self) -> bool:
        return self._closed

    # lookups

    def is_defined(self, type_name: str) -> bool:
        return type_name in self._types

    def entity_type(self, type_name: str | EntityType) -> EntityType:
        name = _type_name(type_name)
        try:
            return self._types[name]
        except KeyError:
            raise TypeMismatch(f"entity type {name!r} is not registered") from None

    @property
    def entity_types(self) -> list[EntityType]:
        return list(self._types.values())

    @property
    def descriptors(self) -> list[RelationshipDescriptor]:
        return list(self._descriptors.values())

    def slots_for(self, type_name: str) -> list[SlotSpec]:
        return list(self._slots.get(type_name, {}).values())

    def slot(self, type_name: str, slot_name: str) -> SlotSpec:
        spec = self._slots.get(type_name, {}).get(slot_name)
        if spec is None:
            raise TypeMismatch(f"{type_name} declares no relationship slot {slot_name!r}")
        return spec
