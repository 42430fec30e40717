"""
Lookups, associations, lazy queries and pagination.
"""

import pytest

from entity_graph import (
    CardinalityViolation,
    EntityKey,
    FullName,
    InvalidArgument,
    NotFound,
    SortDirection,
    TypeMismatch,
)


@pytest.fixture
def people(mapping):
    """Ten saved people; first names cycle through b, a."""
    person_t = mapping.registry.entity_type("Person")
    mapping.save_all(person_t.new(name=FullName(first_name="ba"[i % 2])) for i in range(10))
    return mapping


# =============================================================================
# LOOKUPS
# =============================================================================

class TestLookups:

    def test_find_all_in_id_order(self, people):
        assert [p.id for p in people.find_all("Person")] == list(range(1, 11))

    def test_find_by_id_missing(self, people):
        with pytest.raises(NotFound):
            people.find_by_id("Person", 11)

    def test_unregistered_type(self, people):
        with pytest.raises(TypeMismatch):
            people.find_all("Alien")

    def test_find_by_and_values(self, school, saved_guardian):
        assert school.find_one_by("Student", email="bob@example.com").id == 2
        assert school.values("Student", "email") == ["alice@example.com", "bob@example.com"]
        assert school.find_by("Student", email="nobody@example.com") == []
        with pytest.raises(NotFound):
            school.find_one_by("Student", email="nobody@example.com")
        with pytest.raises(KeyError):
            school.find_by("Student", phone="555")


# =============================================================================
# QUERIES
# =============================================================================

class TestQuery:

    def test_query_is_lazy(self, people):
        calls = []
        q = people.query("Person", lambda e: calls.append(e.id) or True)
        assert calls == []
        assert q.first().id == 1
        assert calls == [1]

    def test_query_is_restartable(self, people):
        q = people.query("Person", lambda e: e.get_attribute("name").first_name == "a")
        assert [e.id for e in q] == [2, 4, 6, 8, 10]
        assert [e.id for e in q] == [2, 4, 6, 8, 10]
        people.save(people.registry.entity_type("Person").new(name=FullName(first_name="a")))
        assert q.count() == 6


# =============================================================================
# ASSOCIATIONS
# =============================================================================

class TestAssociations:

    @pytest.fixture
    def course(self, school, saved_guardian):
        return school.save(school.registry.entity_type("Course").new(name="Algorithms", credits=4))

    def test_link_then_unlink_restores_both_sides(self, school, course):
        alice = EntityKey("Student", 1)
        before = (school.find_by_id("Course", course.id), school.find_by_id("Student", 1))

        assert school.link(course, "students", alice)
        assert school.find_by_id("Course", course.id).slot("students").keys() == [alice]
        assert school.find_by_id("Student", 1).slot("courses").keys() == [course.key]
        assert not school.link(course, "students", alice)

        assert school.unlink(course, "students", alice)
        after = (school.find_by_id("Course", course.id), school.find_by_id("Student", 1))
        assert after == before

    def test_link_from_the_back_side(self, school, course):
        school.link(EntityKey("Student", 2), "courses", course)
        assert school.find_by_id("Course", course.id).slot("students").keys() == [EntityKey("Student", 2)]

    def test_link_wrong_type(self, school, course, saved_guardian):
        with pytest.raises(TypeMismatch):
            school.link(course, "students", saved_guardian)
        with pytest.raises(TypeMismatch):
            school.link(course, "pupils", EntityKey("Student", 1))

    def test_save_after_link_keeps_association(self, school, course):
        alice = EntityKey("Student", 1)
        school.link(course, "students", alice)
        assert course.slot("students").keys() == [alice]

        course.set_attribute("credits", 5)
        school.save(course)
        assert school.find_by_id("Course", course.id).slot("students").keys() == [alice]
        assert school.find_by_id("Student", 1).slot("courses").keys() == [course.key]

    def test_handle_saved_before_link_keeps_association(self, school, saved_guardian):
        course = school.registry.entity_type("Course").new(name="Databases", credits=3)
        school.save(course)
        school.link(EntityKey("Course", course.id), "students", EntityKey("Student", 2))
        # handle was not passed to link, so it still shows no students
        assert course.slot("students").keys() == []

        course.set_attribute("credits", 4)
        school.save(course)
        assert school.find_by_id("Course", course.id).slot("students").keys() == [EntityKey("Student", 2)]

    def test_stale_student_handle_keeps_association(self, school, course):
        alice = school.find_by_id("Student", 1)
        school.link(course, "students", alice.key)

        alice.set_attribute("name", FullName(first_name="Alicia"))
        school.save(alice)
        assert school.find_by_id("Student", 1).slot("courses").keys() == [course.key]
        assert school.find_by_id("Course", course.id).slot("students").keys() == [alice.key]

    def test_link_syncs_back_side_handle(self, school, course):
        bob = school.find_one_by("Student", email="bob@example.com")
        school.link(course, "students", bob)
        assert bob.slot("courses").keys() == [course.key]

        bob.slot("courses").clear()
        school.save(bob)
        assert school.find_by_id("Course", course.id).slot("students").keys() == []

    def test_stale_handle_does_not_undo_unlink(self, school, course):
        alice = EntityKey("Student", 1)
        school.link(course, "students", alice)
        stale = school.find_by_id("Course", course.id)
        school.unlink(course, "students", alice)

        stale.set_attribute("credits", 6)
        school.save(stale)
        assert school.find_by_id("Course", course.id).slot("students").keys() == []
        assert school.find_by_id("Student", 1).slot("courses").keys() == []

    def test_link_over_to_one_capacity(self, mapping):
        person_t, passport_t = (mapping.registry.entity_type(n) for n in ("Person", "Passport"))
        owner = person_t.new()
        owner.slot("passport").set(passport_t.new())
        mapping.save(owner)
        other = mapping.save(person_t.new())
        with pytest.raises(CardinalityViolation):
            mapping.link(other, "passport", EntityKey("Passport", 1))
        assert mapping.find_by_id("Person", other.id).slot("passport").keys() == []


# =============================================================================
# PAGINATION
# =============================================================================

class TestPaging:

    def test_consecutive_pages(self, people):
        first = people.page("Person", 0, 5)
        second = people.page("Person", 5, 5)
        assert first.ids == [1, 2, 3, 4, 5]
        assert second.ids == [6, 7, 8, 9, 10]
        assert first.has_next and not second.has_next
        assert (first.total, first.total_pages, second.number) == (10, 2, 1)

    def test_window_past_the_end(self, people):
        assert people.page("Person", 20, 5).ids == []

    def test_default_page_size(self, people):
        assert len(people.page("Person").items) == 10

    def test_ties_break_by_id(self, people):
        asc = people.page("Person", 0, 4, sort_key="name.first_name")
        desc = people.page("Person", 0, 4, sort_key="name.first_name", direction=SortDirection.DESC)
        assert asc.ids == [2, 4, 6, 8]
        assert desc.ids == [1, 3, 5, 7]

    def test_page_number(self, people):
        assert people.page_number("Person", 1, 3).ids == [4, 5, 6]
        assert people.page_number("Person", 0, 3, direction="desc").ids == [10, 9, 8]

    @pytest.mark.parametrize("offset,limit", [(-1, 5), (0, 0), (0, -3)])
    def test_invalid_window(self, people, offset, limit):
        with pytest.raises(InvalidArgument):
            people.page("Person", offset, limit)

    def test_invalid_page_number_and_size(self, people):
        with pytest.raises(InvalidArgument, match="cannot be negative"):
            people.page_number("Person", -1, 5)
        with pytest.raises(InvalidArgument, match="greater than 0"):
            people.page_number("Person", 0, 0)

    def test_invalid_sort(self, people):
        with pytest.raises(InvalidArgument):
            people.page("Person", sort_key="height")
        with pytest.raises(InvalidArgument):
            people.page("Person", sort_key="name.height")
        with pytest.raises(InvalidArgument):
            people.page("Person", sort_key="name.first_name.initial")
        with pytest.raises(InvalidArgument):
            people.page("Person", direction="sideways")

    def test_value_object_needs_a_field_path(self, people):
        with pytest.raises(InvalidArgument, match="name.first_name"):
            people.page("Person", 0, 5, sort_key="name")
        assert people.page("Person", 0, 2, sort_key="name.last_name").ids == [1, 2]
