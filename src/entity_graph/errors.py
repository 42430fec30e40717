"""Error kinds raised by the relationship graph.

Configuration errors surface while the registry is being built and are fatal.
Everything else is raised synchronously from the manager call that hit it and
is never retried internally.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .model.entity import EntityKey


class GraphError(Exception):
    """Base class for all entity-graph errors."""


class ConfigurationError(GraphError):
    """Invalid or duplicate registration, or mutation after the registry closed."""


class NotFound(GraphError, LookupError):
    """Lookup or delete target is absent."""

    def __init__(self, type_name: str, entity_id: object | None = None, detail: str | None = None):
        self.type_name = type_name
        self.entity_id = entity_id
        msg = detail or f"{type_name} #{entity_id} not found"
        super().__init__(msg)


class CardinalityViolation(GraphError):
    """A relationship slot would hold more (or fewer) targets than declared."""


class TypeMismatch(GraphError, TypeError):
    """Wrong entity type in a slot, undeclared slot, or wrong attribute type."""


class InvalidArgument(GraphError, ValueError):
    """Bad call arguments, e.g. pagination bounds."""


class ConstraintViolation(GraphError):
    """A unique or non-nullable field constraint failed."""


class TransientReferenceError(GraphError):
    """A non-cascading slot references an entity that was never saved."""


@dataclass(frozen=True, slots=True)
class RequiresRepair:
    """Warning attached to an entity whose slot still points at a deleted entity.

    Not an exception: recorded on the surviving entity and returned from
    ``GraphManager.delete`` so the caller decides how to remediate.
    """

    entity: EntityKey
    slot: str
    missing: EntityKey
