"""
Entity & value object model tests.
"""

import pytest
from pydantic import ValidationError

from entity_graph import (
    Embedded,
    Entity,
    EntityKey,
    EntityType,
    FullName,
    InvalidArgument,
    RelationshipSlot,
    Scalar,
    TypeMismatch,
)

PERSON = EntityType("Person", {"name": Embedded(FullName), "age": Scalar(int)})
LAPTOP = EntityType("Laptop", {"brand": Scalar(str)})


# =============================================================================
# VALUE OBJECTS
# =============================================================================

class TestValueObjects:

    def test_structural_equality(self):
        assert FullName(first_name="Asha", last_name="Rao") == FullName(first_name="Asha", last_name="Rao")
        assert FullName(first_name="Asha") != FullName(first_name="Asha", middle_name="K")

    def test_frozen(self):
        name = FullName(first_name="Asha")
        with pytest.raises(ValidationError):
            name.first_name = "Ben"

    def test_display_skips_missing_parts(self):
        assert FullName(first_name="Asha", last_name="Rao").display() == "Asha Rao"

    def test_copied_by_value_into_entities(self):
        name = FullName(first_name="Asha")
        a = PERSON.new(name=name)
        b = PERSON.new(name=name)
        assert a.get_attribute("name") == name
        assert a.get_attribute("name") is not name
        assert a.get_attribute("name") is not b.get_attribute("name")


# =============================================================================
# ATTRIBUTES & IDENTITY
# =============================================================================

class TestEntityAttributes:

    def test_new_entity_is_transient(self):
        p = PERSON.new(age=30)
        assert p.is_transient
        assert p.id is None and p.key is None
        assert p.get_attribute("age") == 30
        assert p.get_attribute("name") is None

    def test_unknown_attribute(self):
        p = PERSON.new()
        with pytest.raises(KeyError):
            p.get_attribute("height")
        with pytest.raises(KeyError):
            p.set_attribute("height", 180)

    def test_wrong_scalar_type(self):
        with pytest.raises(TypeMismatch):
            PERSON.new(age="thirty")

    def test_bool_is_not_an_int(self):
        with pytest.raises(TypeMismatch):
            PERSON.new(age=True)
        assert EntityType("Flag", {"on": Scalar(bool)}).new(on=True).get_attribute("on") is True

    def test_wrong_value_object_type(self):
        with pytest.raises(TypeMismatch):
            PERSON.new(name="Asha Rao")

    def test_identifier_is_immutable(self):
        p = PERSON.new()
        p.id = 7
        p.id = 7
        assert p.key == EntityKey("Person", 7)
        with pytest.raises(InvalidArgument):
            p.id = 8

    def test_structural_equality_includes_slots(self):
        a = Entity(PERSON, id=1, age=3)
        b = Entity(PERSON, id=1, age=3)
        assert a == b
        b.slot("laptops").add(EntityKey("Laptop", 1))
        assert a != b
        # empty slots do not count
        a.slot("laptops")
        b.slot("laptops").clear()
        assert a == b


# =============================================================================
# RELATIONSHIP SLOTS
# =============================================================================

class TestRelationshipSlot:

    def test_add_ignores_duplicates(self):
        slot = RelationshipSlot("laptops")
        slot.add(EntityKey("Laptop", 1))
        slot.add(("Laptop", 1))
        assert slot.keys() == [EntityKey("Laptop", 1)]

    def test_persistent_entities_become_keys(self):
        laptop = Entity(LAPTOP, id=4)
        slot = RelationshipSlot("laptops", [laptop])
        assert slot.refs == (EntityKey("Laptop", 4),)
        assert laptop in slot

    def test_transient_entities_kept_by_identity(self):
        a, b = LAPTOP.new(), LAPTOP.new()
        slot = RelationshipSlot("laptops", [a, b, a])
        assert len(slot) == 2
        assert slot.remove(a)
        assert list(slot) == [b]
        assert not slot.remove(a)

    def test_set_and_get(self):
        slot = RelationshipSlot("passport")
        assert slot.get() is None
        slot.set(EntityKey("Passport", 1))
        slot.set(EntityKey("Passport", 2))
        assert slot.get() == EntityKey("Passport", 2)
        slot.set(None)
        assert len(slot) == 0

    def test_rejects_non_entities(self):
        with pytest.raises(TypeMismatch):
            RelationshipSlot("laptops").add("Laptop#1")


# =============================================================================
# RECORD FORM
# =============================================================================

class TestRecords:

    def test_record_rebuilds_equal_entity(self):
        p = Entity(PERSON, id=2, name=FullName(first_name="Asha"), age=41)
        p.slot("laptops").add(EntityKey("Laptop", 9))
        record = p.to_record()
        assert record["attributes"]["name"]["first_name"] == "Asha"
        assert Entity.from_record(PERSON, record) == p
