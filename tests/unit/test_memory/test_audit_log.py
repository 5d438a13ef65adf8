"""Tests for the audit log."""

import pytest


class TestLogAction:
    """Tests for log_action()."""

    def test_ids_are_sequential(self, db):
        """Each entry gets the next ID."""
        first = db.log_action("facts.save")
        second = db.log_action("facts.save")
        assert second == first + 1

    def test_details_round_trip(self, db):
        """Details are stored as JSON and read back as a dict."""
        db.log_action("relationship.create", fact_id="rel-1", details={"type": "ally", "n": 2})
        (entry,) = db.find_audit_by_fact("rel-1")
        assert entry.action == "relationship.create"
        assert entry.details == {"type": "ally", "n": 2}

    def test_missing_details(self, db):
        """Entries without details read back with an empty dict and no fact."""
        db.log_action("facts.save")
        (entry,) = db.find_audit_by_action("facts.save")
        assert entry.details == {}
        assert entry.fact_id is None

    def test_empty_action_rejected(self, db):
        """An empty action is rejected."""
        with pytest.raises(ValueError, match="action"):
            db.log_action("")


class TestFindAudit:
    """Tests for find_audit_by_fact() and find_audit_by_action()."""

    def test_by_fact_newest_first(self, db):
        """Entries for a fact come newest first and exclude other facts."""
        older = db.log_action("fact.update", fact_id="f1")
        db.log_action("fact.update", fact_id="f2")
        newer = db.log_action("fact.delete", fact_id="f1")
        assert [e.id for e in db.find_audit_by_fact("f1")] == [newer, older]

    def test_by_action_with_limit(self, db):
        """find_audit_by_action honours the limit and ordering."""
        ids = [db.log_action("facts.save") for _ in range(5)]
        db.log_action("fact.delete", fact_id="x")
        found = db.find_audit_by_action("facts.save", limit=3)
        assert [e.id for e in found] == list(reversed(ids))[:3]

    def test_by_action_invalid_limit(self, db):
        """A non-positive limit is rejected."""
        with pytest.raises(ValueError, match="limit"):
            db.find_audit_by_action("facts.save", limit=0)

    def test_unknown(self, db):
        """Unknown fact or action finds nothing."""
        assert db.find_audit_by_fact("missing") == []
        assert db.find_audit_by_action("missing") == []
