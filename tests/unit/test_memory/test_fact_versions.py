"""Tests for the fact version ledger."""

import threading

import pytest

from lore.memory.entities import ChangeType, Fact
from lore.memory.lore_database import LoreDatabase


def _fact(**overrides) -> Fact:
    data = {
        "id": "fact-1",
        "type": "character",
        "subject": "Frodo",
        "predicate": "carries",
        "object": "the Ring",
    }
    data.update(overrides)
    return Fact(**data)


class TestRecordVersion:
    """Tests for record_version()."""

    def test_first_version_is_one(self, db):
        """The first recorded version of a fact is number 1."""
        version = db.record_version("fact-1", ChangeType.CREATION, _fact(), "imported")
        assert version.version == 1
        assert version.change_type == ChangeType.CREATION
        assert version.reason == "imported"
        assert version.data_snapshot["subject"] == "Frodo"

    def test_versions_are_consecutive(self, db):
        """Versions run 1..N without gaps."""
        db.record_version("fact-1", ChangeType.CREATION, _fact())
        for i in range(4):
            db.record_version("fact-1", ChangeType.UPDATE, _fact(object=f"ring {i}"))
        numbers = sorted(v.version for v in db.versions_of("fact-1"))
        assert numbers == [1, 2, 3, 4, 5]
        assert db.count_versions("fact-1") == 5

    def test_numbering_is_per_fact(self, db):
        """Each fact has its own counter."""
        db.record_version("fact-1", ChangeType.CREATION, _fact())
        other = db.record_version("fact-2", ChangeType.CREATION, _fact(id="fact-2"))
        assert other.version == 1

    def test_accepts_plain_dict_and_string_change_type(self, db):
        """Snapshots may be dicts and change types plain strings."""
        version = db.record_version("fact-1", "update", {"note": "manual"})
        assert version.change_type == ChangeType.UPDATE
        assert version.data_snapshot == {"note": "manual"}

    def test_unknown_change_type(self, db):
        """An unknown change type is rejected before anything is written."""
        with pytest.raises(ValueError):
            db.record_version("fact-1", "renamed", _fact())
        assert db.count_versions("fact-1") == 0

    def test_empty_fact_id(self, db):
        """An empty fact ID is rejected."""
        with pytest.raises(ValueError, match="fact_id"):
            db.record_version("", ChangeType.CREATION, _fact())

    def test_snapshot_round_trips(self, db):
        """The stored snapshot reads back as JSON-safe data."""
        db.record_version("fact-1", ChangeType.CREATION, _fact(confidence=0.5))
        stored = db.latest_version("fact-1")
        assert stored is not None
        assert stored.data_snapshot["confidence"] == 0.5
        assert isinstance(stored.data_snapshot["created_at"], str)

    def test_concurrent_writers_get_distinct_versions(self, tmp_path):
        """Two connections appending at once never reuse a version number."""
        db_path = tmp_path / "lore.db"
        first = LoreDatabase(db_path)
        second = LoreDatabase(db_path)
        errors: list[Exception] = []

        def append(database: LoreDatabase) -> None:
            try:
                for _ in range(15):
                    database.record_version("shared", ChangeType.UPDATE, {"x": 1})
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=append, args=(d,)) for d in (first, second)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        try:
            assert errors == []
            numbers = sorted(v.version for v in first.versions_of("shared"))
            assert numbers == list(range(1, 31))
        finally:
            first.close()
            second.close()


class TestReadVersions:
    """Tests for versions_of(), latest_version() and count_versions()."""

    def test_most_recent_first(self, db):
        """versions_of lists newest version first."""
        for _ in range(3):
            db.record_version("fact-1", ChangeType.UPDATE, _fact())
        assert [v.version for v in db.versions_of("fact-1")] == [3, 2, 1]

    def test_limit(self, db):
        """The limit caps the number of versions returned."""
        for _ in range(3):
            db.record_version("fact-1", ChangeType.UPDATE, _fact())
        assert [v.version for v in db.versions_of("fact-1", limit=2)] == [3, 2]

    def test_invalid_limit(self, db):
        """A non-positive limit is rejected."""
        with pytest.raises(ValueError, match="limit"):
            db.versions_of("fact-1", limit=0)

    def test_latest_is_max(self, db):
        """latest_version returns the highest number."""
        db.record_version("fact-1", ChangeType.CREATION, _fact())
        db.record_version("fact-1", ChangeType.DELETION, _fact())
        latest = db.latest_version("fact-1")
        assert latest is not None
        assert latest.version == 2
        assert latest.change_type == ChangeType.DELETION

    def test_unknown_fact(self, db):
        """An unknown fact has no versions."""
        assert db.versions_of("nope") == []
        assert db.latest_version("nope") is None
        assert db.count_versions("nope") == 0
