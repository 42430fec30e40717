"""
Pytest configuration for entity-graph tests.
"""

import pytest

from entity_graph import (
    Cardinality,
    CascadePolicy,
    EntityType,
    FullName,
    GraphManager,
    RelationshipRegistry,
    Scalar,
)
from entity_graph.presets import mapping_registry, school_registry


@pytest.fixture
def school() -> GraphManager:
    """Empty manager over the school preset (in-memory store)."""
    return GraphManager(school_registry())


@pytest.fixture
def mapping() -> GraphManager:
    """Empty manager over the person/passport/laptop preset."""
    return GraphManager(mapping_registry())


@pytest.fixture
def cyclic() -> GraphManager:
    """Course -> Teacher -> Course, both directions cascading ALL."""
    course = EntityType("Course", {"name": Scalar(str)})
    teacher = EntityType("Teacher", {"name": Scalar(str)})
    reg = RelationshipRegistry([course, teacher])
    reg.register(course, teacher, Cardinality.MANY_TO_ONE, course, CascadePolicy.ALL, source_slot="teacher")
    reg.register(teacher, course, Cardinality.ONE_TO_MANY, teacher, CascadePolicy.ALL, source_slot="courses")
    return GraphManager(reg)


@pytest.fixture
def new_student(school):
    """Factory for transient students with a unique email."""
    student_t = school.registry.entity_type("Student")

    def make(first: str, email: str | None = None):
        return student_t.new(
            name=FullName(first_name=first),
            email=email or f"{first.lower()}@example.com",
        )

    return make


@pytest.fixture
def saved_guardian(school, new_student):
    """A persisted guardian with two persisted students (Alice, Bob)."""
    guardian = school.registry.entity_type("Guardian").new(name="Meera", email="meera@example.com")
    guardian.slot("students").add(new_student("Alice"))
    guardian.slot("students").add(new_student("Bob"))
    return school.save(guardian)
