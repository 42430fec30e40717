"""
SQLite adapter tests: persistence across connections, rollback, referrers.
"""

import pytest

from entity_graph import (
    CardinalityViolation,
    EntityKey,
    FullName,
    GraphManager,
    NotFound,
    SQLiteStore,
)
from entity_graph.presets import mapping_registry, seed_mapping


def _open(path):
    registry = mapping_registry()
    return GraphManager(registry, SQLiteStore(path=str(path), registry=registry))


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "graph.db"


@pytest.fixture
def manager(db_path):
    m = _open(db_path)
    yield m
    m.store.close()


# =============================================================================
# ROUND TRIP
# =============================================================================

class TestSQLitePersistence:

    def test_saved_graph_survives_reopen(self, manager, db_path):
        person_t = manager.registry.entity_type("Person")
        passport_t = manager.registry.entity_type("Passport")
        laptop_t = manager.registry.entity_type("Laptop")
        p = person_t.new(name=FullName(first_name="Asha", last_name="Rao"))
        p.slot("passport").set(passport_t.new(name=FullName(first_name="Asha", last_name="Rao")))
        p.slot("laptops").add(laptop_t.new(brand="Dell", model="XPS", price="1200"))
        manager.save(p)

        again = _open(db_path)
        try:
            loaded = again.find_by_id("Person", p.id)
            assert loaded == p
            assert loaded.get_attribute("name") == FullName(first_name="Asha", last_name="Rao")
            assert again.find_by_id("Passport", 1).slot("person").keys() == [p.key]
        finally:
            again.store.close()

    def test_seeded_counts(self, manager):
        seed_mapping(manager)
        seed_mapping(manager)
        assert manager.count("Person") == 3
        assert manager.count("Passport") == 3
        assert manager.count("Laptop") == 4

    def test_referrers_use_the_reference_index(self, manager):
        seed_mapping(manager)
        assert manager.store.referrers(EntityKey("Passport", 2)) == [(EntityKey("Person", 2), "passport")]

    def test_erase_missing_row(self, manager):
        with pytest.raises(NotFound):
            manager.store.erase("Person", 5)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TestSQLiteTransactions:

    def test_failed_save_rolls_back(self, manager):
        seed_mapping(manager)
        thief = manager.registry.entity_type("Person").new()
        thief.slot("passport").set(EntityKey("Passport", 1))
        with pytest.raises(CardinalityViolation):
            manager.save(thief)
        assert thief.is_transient
        assert manager.count("Person") == 3
        assert manager.find_by_id("Passport", 1).slot("person").keys() == [EntityKey("Person", 1)]

    def test_delete_cascades_and_commits(self, manager, db_path):
        seed_mapping(manager)
        result = manager.delete(EntityKey("Person", 2))
        assert result.deleted[0] == EntityKey("Person", 2)
        assert len(result.deleted) == 4
        again = _open(db_path)
        try:
            assert again.count("Person") == 2
            assert again.count("Laptop") == 2
        finally:
            again.store.close()

    def test_ids_keep_counting_after_delete(self, manager):
        person_t = manager.registry.entity_type("Person")
        manager.save(person_t.new())
        last = manager.save(person_t.new())
        manager.delete(last)
        assert manager.save(person_t.new()).id == 3
