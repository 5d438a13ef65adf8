"""Tests for entity resolution and lookups in LoreDatabase."""

import threading

import pytest

from lore.memory.entities import normalize_name
from lore.memory.lore_database import LoreDatabase


class TestResolveEntity:
    """Tests for resolve_entity()."""

    def test_creates_on_first_reference(self, db):
        """An unknown name creates a new entity."""
        entity_id = db.resolve_entity("middle-earth", "Frodo")
        entity = db.get_entity(entity_id)
        assert entity is not None
        assert entity.name == "Frodo"
        assert entity.normalized_name == "frodo"
        assert entity.world_id == "middle-earth"

    def test_case_insensitive_identity(self, db):
        """Names differing only in case or surrounding spaces resolve to one entity."""
        first = db.resolve_entity("w", "Alice")
        assert db.resolve_entity("w", "ALICE") == first
        assert db.resolve_entity("w", "  alice ") == first
        assert db.count_entities("w") == 1

    def test_first_casing_is_kept(self, db):
        """The display name keeps the casing of the first mention."""
        entity_id = db.resolve_entity("w", "Gandalf the Grey")
        db.resolve_entity("w", "GANDALF THE GREY")
        entity = db.get_entity(entity_id)
        assert entity is not None
        assert entity.name == "Gandalf the Grey"

    def test_worlds_are_separate(self, db):
        """The same name in two worlds gives two entities."""
        a = db.resolve_entity("world-a", "Bob")
        b = db.resolve_entity("world-b", "Bob")
        assert a != b

    @pytest.mark.parametrize("name", ["", "   ", "\t\n"])
    def test_empty_name_rejected(self, db, name):
        """Blank names are rejected and nothing is stored."""
        with pytest.raises(ValueError, match="empty"):
            db.resolve_entity("w", name)
        assert db.count_entities("w") == 0

    def test_overlong_name_rejected(self, db):
        """Names over the length limit are rejected."""
        with pytest.raises(ValueError, match="exceed"):
            db.resolve_entity("w", "x" * 201)

    def test_concurrent_first_reference_creates_one_entity(self, tmp_path):
        """Two connections resolving the same new name end up with a single row."""
        db_path = tmp_path / "lore.db"
        first = LoreDatabase(db_path)
        second = LoreDatabase(db_path)
        results: list[str] = []
        errors: list[Exception] = []

        def resolve(database: LoreDatabase) -> None:
            try:
                for _ in range(20):
                    results.append(database.resolve_entity("w", "Samwise"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=resolve, args=(d,)) for d in (first, second)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        try:
            assert errors == []
            assert len(set(results)) == 1
            assert first.count_entities("w") == 1
        finally:
            first.close()
            second.close()


class TestEntityLookups:
    """Tests for non-creating lookups."""

    def test_find_by_name_does_not_create(self, db):
        """find_entity_by_name returns None for unknown names and stores nothing."""
        assert db.find_entity_by_name("w", "Nobody") is None
        assert db.count_entities("w") == 0

    def test_find_by_name_any_case(self, db):
        """find_entity_by_name matches regardless of case."""
        entity_id = db.resolve_entity("w", "Aragorn")
        found = db.find_entity_by_name("w", "aRaGoRn")
        assert found is not None
        assert found.id == entity_id

    def test_find_by_blank_name(self, db):
        """A blank name finds nothing."""
        assert db.find_entity_by_name("w", "  ") is None

    def test_get_unknown_id(self, db):
        """get_entity returns None for an unknown ID."""
        assert db.get_entity("missing") is None

    def test_find_entities_by_ids(self, db):
        """Known IDs map to entities; unknown and duplicate IDs are ignored."""
        a = db.resolve_entity("w", "A")
        b = db.resolve_entity("w", "B")
        found = db.find_entities_by_ids([a, b, a, "missing"])
        assert set(found) == {a, b}
        assert found[a].name == "A"
        assert db.find_entities_by_ids([]) == {}

    def test_list_entities_sorted(self, db):
        """list_entities is ordered by normalized name and scoped to the world."""
        for name in ("charlie", "Alpha", "bravo"):
            db.resolve_entity("w", name)
        db.resolve_entity("other", "Zulu")
        assert [e.name for e in db.list_entities("w")] == ["Alpha", "bravo", "charlie"]

    def test_search_entities(self, db):
        """search_entities matches substrings case-insensitively."""
        for name in ("Frodo Baggins", "Bilbo Baggins", "Samwise Gamgee"):
            db.resolve_entity("w", name)
        names = [e.name for e in db.search_entities("w", "BAGGINS")]
        assert names == ["Bilbo Baggins", "Frodo Baggins"]

    def test_search_treats_wildcards_literally(self, db):
        """% and _ in the query are not SQL wildcards."""
        db.resolve_entity("w", "100% Pure")
        db.resolve_entity("w", "Plain")
        assert [e.name for e in db.search_entities("w", "%")] == ["100% Pure"]
        assert db.search_entities("w", "_") == []


class TestDeleteEntity:
    """Tests for delete_entity()."""

    def test_delete_removes_relationships(self, db):
        """Deleting an entity deletes every relationship touching it."""
        db.create_relationship("w", "Frodo", "ally", "Sam", bidirectional=True)
        db.create_relationship("w", "Sam", "owns", "Rope")
        frodo = db.find_entity_by_name("w", "Frodo")
        sam = db.find_entity_by_name("w", "Sam")
        assert frodo is not None and sam is not None

        assert db.delete_entity(sam.id) is True

        assert db.get_entity(sam.id) is None
        assert db.count_relationships() == 0
        assert db.related_entities(frodo.id, 5) == set()

    def test_delete_unknown(self, db):
        """Deleting an unknown ID returns False."""
        assert db.delete_entity("missing") is False


class TestNormalizeName:
    """Tests for normalize_name()."""

    def test_strips_and_lowercases(self):
        """Surrounding whitespace is removed and the name lower-cased."""
        assert normalize_name("  Éowyn of ROHAN ") == "éowyn of rohan"
