from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .errors import InvalidArgument
from .model.entity import Embedded, Entity, EntityType


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(slots=True)
class Page:
    """One window over a sorted result set."""

    items: list[Entity]
    offset: int
    limit: int
    total: int
    sort_key: str = "id"
    direction: SortDirection = SortDirection.ASC
    ids: list[int] = field(init=False)

    def __post_init__(self) -> None:
        self.ids = [e.id for e in self.items]

    @property
    def has_next(self) -> bool:
        return self.offset + len(self.items) < self.total

    @property
    def number(self) -> int:
        return self.offset // self.limit

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def check_window(offset: int, limit: int) -> None:
    if offset < 0:
        raise InvalidArgument(f"offset cannot be negative (got {offset})")
    if limit <= 0:
        raise InvalidArgument(f"limit must be greater than 0 (got {limit})")


def check_sort_key(entity_type: EntityType, sort_key: str) -> None:
    """Reject keys that do not resolve to an orderable field.

    A value-object attribute is only sortable through one of its fields
    (``name.first_name``), never as a whole.
    """
    if sort_key == "id":
        return
    head, *path = sort_key.split(".")
    spec = entity_type.fields.get(head)
    if spec is None:
        raise InvalidArgument(f"{entity_type.name} cannot be sorted by {sort_key!r}")
    model = spec.value_type if isinstance(spec, Embedded) else None
    for part in path:
        if model is None or part not in model.model_fields:
            raise InvalidArgument(f"{entity_type.name} cannot be sorted by {sort_key!r}")
        annotation = model.model_fields[part].annotation
        model = annotation if isinstance(annotation, type) and issubclass(annotation, BaseModel) else None
    if model is not None:
        raise InvalidArgument(
            f"{entity_type.name}.{sort_key} is a value object; sort by one of its fields "
            f"({', '.join(f'{sort_key}.{f}' for f in model.model_fields)})"
        )


def sort_value(entity: Entity, sort_key: str) -> Any:
    """Resolve ``id``, an attribute name, or a dotted path into a value object."""
    if sort_key == "id":
        return entity.id
    head, _, rest = sort_key.partition(".")
    value = entity.get_attribute(head)
    for part in rest.split(".") if rest else ():
        if value is None:
            break
        value = getattr(value, part)
    return value


def sort_entities(items: list[Entity], sort_key: str, direction: SortDirection) -> list[Entity]:
    """Sort by ``sort_key``; equal keys always fall back to id ascending.

    Missing values sort before present ones in ascending order.
    """
    # stable sorts: tie-break pass first, then the primary key
    ordered = sorted(items, key=lambda e: e.id)
    return sorted(
        ordered,
        key=lambda e: _present_first(sort_value(e, sort_key)),
        reverse=direction is SortDirection.DESC,
    )


def _present_first(value: Any) -> tuple[bool, Any]:
    return (value is not None, value if value is not None else 0)
