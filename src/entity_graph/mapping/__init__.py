"""Relationship descriptors and the registry that holds them."""

from .descriptors import Cardinality, CascadePolicy, RelationshipDescriptor, SlotSpec
from .registry import RelationshipRegistry

__all__ = [
    "Cardinality",
    "CascadePolicy",
    "RelationshipDescriptor",
    "RelationshipRegistry",
    "SlotSpec",
]
