"""Tests for SqliteFactStore."""

from datetime import datetime, timedelta

import pytest

from lore.memory.entities import Fact
from lore.memory.fact_store import SqliteFactStore


@pytest.fixture
def store(db) -> SqliteFactStore:
    return SqliteFactStore(db, "middle-earth")


def _fact(fact_id: str, fact_type: str = "character", source: str = "ch1.md", **kw) -> Fact:
    return Fact(
        id=fact_id,
        type=fact_type,
        subject=kw.pop("subject", "Frodo"),
        predicate=kw.pop("predicate", "lives in"),
        object=kw.pop("object", "the Shire"),
        source_file=source,
        **kw,
    )


class TestSqliteFactStore:
    """Tests for saving and reading facts."""

    def test_save_and_get(self, store):
        """A saved fact reads back with all fields."""
        fact = _fact("f1", context="before the quest", source_line=3, confidence=0.7)
        store.save(fact)
        loaded = store.get("f1")
        assert loaded is not None
        assert loaded.as_text() == "Frodo lives in the Shire (before the quest)"
        assert loaded.source_line == 3
        assert loaded.confidence == 0.7
        assert loaded.embedding is None

    def test_embedding_kept(self, store):
        """An embedding the fact already carries is stored as-is."""
        store.save(_fact("f1", embedding=[0.1, 0.2]))
        loaded = store.get("f1")
        assert loaded is not None
        assert loaded.embedding == [0.1, 0.2]

    def test_save_replaces(self, store):
        """Saving the same ID again replaces the stored fact."""
        store.save(_fact("f1"))
        store.save(_fact("f1", object="Bag End"))
        assert store.count() == 1
        loaded = store.get("f1")
        assert loaded is not None
        assert loaded.object == "Bag End"

    def test_save_batch_is_atomic(self, store):
        """A batch with an invalid fact stores nothing."""
        with pytest.raises(ValueError, match="no id"):
            store.save_batch([_fact("f1"), _fact("")])
        assert store.count() == 0

    def test_worlds_are_separate(self, db, store):
        """Facts are scoped to the store's world."""
        store.save(_fact("f1"))
        other = SqliteFactStore(db, "narnia")
        assert other.get("f1") is None
        assert other.count() == 0

    def test_list_pages_newest_first(self, store):
        """list() pages through facts newest first."""
        base = datetime(2024, 1, 1)
        store.save_batch(
            [_fact(f"f{i}", created_at=base + timedelta(minutes=i)) for i in range(5)]
        )
        assert [f.id for f in store.list(limit=2)] == ["f4", "f3"]
        assert [f.id for f in store.list(limit=2, offset=2)] == ["f2", "f1"]

    def test_list_by_type(self, store):
        """list_by_type filters by type and honours the limit."""
        store.save_batch(
            [_fact("c1"), _fact("c2"), _fact("l1", fact_type="location")]
        )
        assert {f.id for f in store.list_by_type("character")} == {"c1", "c2"}
        assert len(store.list_by_type("character", limit=1)) == 1
        assert store.list_by_type("rule") == []

    def test_list_and_delete_by_source(self, store):
        """Facts can be listed and removed per source file."""
        store.save_batch([_fact("a", source="a.md"), _fact("b", source="b.md")])
        assert [f.id for f in store.list_by_source("a.md")] == ["a"]
        assert store.delete_by_source("a.md") == 1
        assert store.count() == 1

    def test_delete(self, store):
        """delete() reports whether the fact existed."""
        store.save(_fact("f1"))
        assert store.delete("f1") is True
        assert store.delete("f1") is False

    def test_delete_all(self, db, store):
        """delete_all() clears this world only."""
        other = SqliteFactStore(db, "narnia")
        store.save_batch([_fact("a"), _fact("b")])
        other.save(_fact("c"))
        assert store.delete_all() == 2
        assert store.count() == 0
        assert other.count() == 1
