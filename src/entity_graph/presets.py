"""Ready-made registries for the two demo domains.

``school``: guardians, students, courses, teachers and course material.
``mapping``: people with a passport and any number of laptops.

Each call returns a fresh, still-open registry.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from .mapping.descriptors import Cardinality, CascadePolicy
from .mapping.registry import RelationshipRegistry
from .model.entity import Embedded, EntityType, Scalar
from .model.values import FullName

if TYPE_CHECKING:
    from .manager import GraphManager


def school_registry() -> RelationshipRegistry:
    guardian = EntityType(
        "Guardian",
        {
            "name": Scalar(str),
            "email": Scalar(str),
            "mobile": Scalar(str),
        },
    )
    student = EntityType(
        "Student",
        {
            "name": Embedded(FullName),
            "email": Scalar(str, nullable=False, unique=True),
        },
    )
    course = EntityType("Course", {"name": Scalar(str), "credits": Scalar(int)})
    teacher = EntityType("Teacher", {"name": Embedded(FullName)})
    material = EntityType("CourseMaterial", {"url": Scalar(str)})

    reg = RelationshipRegistry([guardian, student, course, teacher, material])
    reg.register(
        guardian, student, Cardinality.ONE_TO_MANY, guardian, CascadePolicy.ALL,
        source_slot="students", target_slot="guardian", required=True,
    )
    reg.register(
        course, student, Cardinality.MANY_TO_MANY, course, CascadePolicy.NONE,
        source_slot="students", target_slot="courses",
    )
    reg.register(
        teacher, course, Cardinality.ONE_TO_MANY, teacher, CascadePolicy.ALL,
        source_slot="courses", target_slot="teacher",
    )
    reg.register(
        course, material, Cardinality.ONE_TO_ONE, course, CascadePolicy.ALL,
        source_slot="material", target_slot="course",
    )
    return reg


def mapping_registry() -> RelationshipRegistry:
    person = EntityType("Person", {"name": Embedded(FullName)})
    passport = EntityType("Passport", {"name": Embedded(FullName)})
    laptop = EntityType(
        "Laptop",
        {"brand": Scalar(str), "model": Scalar(str), "price": Scalar(str)},
    )

    reg = RelationshipRegistry([person, passport, laptop])
    reg.register(
        person, passport, Cardinality.ONE_TO_ONE, person, CascadePolicy.ALL,
        source_slot="passport", target_slot="person",
    )
    reg.register(
        person, laptop, Cardinality.ONE_TO_MANY, person, CascadePolicy.ALL,
        source_slot="laptops", target_slot="person",
    )
    return reg


# --------------------------
# Sample data
# --------------------------

_STUDENTS = [
    ("Alice", "CSE"),
    ("Bob", "ECE"),
    ("Charlie", "MECH"),
    ("David", "CIVIL"),
    ("Eve", "IT"),
    ("Frank", "EEE"),
    ("Grace", "AERO"),
    ("Hank", "BIO"),
    ("Ivy", "CHEM"),
    ("Jack", "AUTO"),
]


def seed_school(manager: GraphManager) -> str:
    """Two guardians, ten students, two teachers with one course each."""
    if manager.count("Student"):
        return "Student"
    reg = manager.registry
    guardian_t, student_t = reg.entity_type("Guardian"), reg.entity_type("Student")
    course_t, teacher_t = reg.entity_type("Course"), reg.entity_type("Teacher")
    material_t = reg.entity_type("CourseMaterial")

    guardians = [
        guardian_t.new(name="Meera", email="meera@example.com", mobile="555-0101"),
        guardian_t.new(name="Ravi", email="ravi@example.com", mobile="555-0102"),
    ]
    for i, (first, dep) in enumerate(_STUDENTS):
        student = student_t.new(
            name=FullName(first_name=first, last_name=dep),
            email=f"{first.lower()}@example.com",
        )
        guardians[i % 2].slot("students").add(student)
    manager.save_all(guardians)

    for first, course_name, credits in (("Kumar", "Algorithms", 4), ("Lena", "Databases", 3)):
        course = course_t.new(name=course_name, credits=credits)
        course.slot("material").set(material_t.new(url=f"https://example.com/{course_name.lower()}"))
        teacher = teacher_t.new(name=FullName(first_name=first))
        teacher.slot("courses").add(course)
        manager.save(teacher)

    students = manager.find_all("Student")
    for course in manager.find_all("Course"):
        for student in students[course.id - 1 :: 2]:
            manager.link(course, "students", student)
    return "Student"


def seed_mapping(manager: GraphManager) -> str:
    """Three people, each with a passport and one or two laptops."""
    if manager.count("Person"):
        return "Person"
    reg = manager.registry
    person_t, passport_t, laptop_t = (
        reg.entity_type("Person"),
        reg.entity_type("Passport"),
        reg.entity_type("Laptop"),
    )
    people = []
    for i, (first, last) in enumerate((("Asha", "Rao"), ("Ben", "Okafor"), ("Chen", "Wei"))):
        name = FullName(first_name=first, last_name=last)
        person = person_t.new(name=name)
        person.slot("passport").set(passport_t.new(name=name))
        for j in range(1 + i % 2):
            person.slot("laptops").add(
                laptop_t.new(brand="Lenovo" if j else "Dell", model=f"M{i}{j}", price=f"{900 + 100 * j}")
            )
        people.append(person)
    manager.save_all(people)
    return "Person"


PRESETS: dict[str, tuple[Callable[[], RelationshipRegistry], Callable[[GraphManager], str]]] = {
    "school": (school_registry, seed_school),
    "mapping": (mapping_registry, seed_mapping),
}


def build_preset(name: str) -> RelationshipRegistry:
    try:
        factory, _ = PRESETS[name]
    except KeyError:
        raise KeyError(f"unknown preset {name!r} (choose from {', '.join(PRESETS)})") from None
    return factory()


def seed_preset(name: str, manager: GraphManager) -> str:
    """Load the sample data for ``name``; returns the type worth paging through."""
    return PRESETS[name][1](manager)
