"""Entities and embedded value objects."""

from .entity import Embedded, Entity, EntityKey, EntityType, RelationshipSlot, Scalar, ref_key
from .values import FullName, ValueObject

__all__ = [
    "Embedded",
    "Entity",
    "EntityKey",
    "EntityType",
    "FullName",
    "RelationshipSlot",
    "Scalar",
    "ValueObject",
    "ref_key",
]
