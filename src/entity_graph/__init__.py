"""entity-graph

In-process relationship graph: typed entities connected by
cardinality-constrained relationships, with cascading save/delete, embedded
value objects, lookups, lazy queries and pagination over a pluggable store.
"""

from .errors import (
    CardinalityViolation,
    ConfigurationError,
    ConstraintViolation,
    GraphError,
    InvalidArgument,
    NotFound,
    RequiresRepair,
    TransientReferenceError,
    TypeMismatch,
)
from .manager import DeleteResult, GraphManager, Query
from .mapping import Cardinality, CascadePolicy, RelationshipDescriptor, RelationshipRegistry
from .model import Embedded, Entity, EntityKey, EntityType, FullName, RelationshipSlot, Scalar, ValueObject
from .paging import Page, SortDirection
from .store import InMemoryStore, PersistenceAdapter, SQLiteStore

__version__ = "0.1.0"

__all__ = [
    "Cardinality",
    "CardinalityViolation",
    "CascadePolicy",
    "ConfigurationError",
    "ConstraintViolation",
    "DeleteResult",
    "Embedded",
    "Entity",
    "EntityKey",
    "EntityType",
    "FullName",
    "GraphError",
    "GraphManager",
    "InMemoryStore",
    "InvalidArgument",
    "NotFound",
    "Page",
    "PersistenceAdapter",
    "Query",
    "RelationshipDescriptor",
    "RelationshipRegistry",
    "RelationshipSlot",
    "RequiresRepair",
    "SQLiteStore",
    "Scalar",
    "SortDirection",
    "TransientReferenceError",
    "TypeMismatch",
    "ValueObject",
]
