from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ValueObject(BaseModel):
    """Embedded composite with no identity.

    Equality is structural. Instances are frozen and are copied by value
    whenever they are assigned into an entity.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")


class FullName(ValueObject):
    first_name: str
    middle_name: str | None = None
    last_name: str | None = None

    def display(self) -> str:
        parts = (self.first_name, self.middle_name, self.last_name)
        return " ".join(p for p in parts if p)
