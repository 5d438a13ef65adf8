"""Tests for the command-line entry point in main.py."""

import logging

import pytest

import main
from lore.services import StagingSession
from lore.settings import Settings
from lore.utils.exceptions import ConfigError

load_settings = main.load_settings


@pytest.fixture(autouse=True)
def cli_settings(tmp_settings, monkeypatch):
    """Run every command against a temp database."""
    monkeypatch.setattr(main, "load_settings", lambda: tmp_settings)
    return tmp_settings


@pytest.fixture(autouse=True)
def restore_root_logger():
    """main() reconfigures logging; put pytest's handlers back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def run(capsys, *argv: str) -> tuple[int, str]:
    code = main.main(["--log-file", "none", "--log-level", "ERROR", *argv])
    return code, capsys.readouterr().out


class TestRelate:
    """Tests for relate, unrelate and relations."""

    def test_relate_and_list(self, capsys):
        code, out = run(
            capsys, "--world", "shire", "relate", "Frodo", "ally", "Sam", "--bidirectional"
        )
        assert code == 0
        assert out.startswith("Created relationship: ")
        assert "  Frodo --ally<-> Sam" in out

        code, out = run(capsys, "--world", "shire", "relations", "sam")
        assert code == 0
        assert "Relationships for sam:" in out
        assert "Frodo --ally<-> Sam" in out

    def test_worlds_are_separate(self, capsys):
        run(capsys, "--world", "shire", "relate", "Frodo", "ally", "Sam")
        code, out = run(capsys, "--world", "mordor", "relations", "Frodo")
        assert code == 0
        assert out.strip() == "No relationships found for: Frodo"

    def test_invalid_type(self, capsys):
        """An unknown relationship type is reported with the valid list."""
        code, out = run(capsys, "relate", "Alice", "friend", "Bob")
        assert code == 1
        assert out.startswith("Error: invalid relationship type: friend (valid: parent, child,")

    def test_type_filter(self, capsys):
        run(capsys, "relate", "Frodo", "ally", "Sam")
        run(capsys, "relate", "Frodo", "owns", "Sting")
        code, out = run(capsys, "relations", "Frodo", "--type", "owns")
        assert code == 0
        assert "Frodo --owns--> Sting" in out
        assert "Sam" not in out

    def test_depth_lists_related_entities(self, capsys):
        run(capsys, "relate", "Frodo", "ally", "Sam", "--bidirectional")
        run(capsys, "relate", "Sam", "member_of", "Fellowship")
        code, out = run(capsys, "relations", "Frodo", "--depth", "2")
        assert code == 0
        assert "Entities within 2 hops of Frodo:" in out
        assert "  Fellowship" in out
        assert "  Sam" in out

    def test_depth_with_type_filter(self, capsys):
        """--type also applies to the traversal at depth above 1."""
        run(capsys, "relate", "Frodo", "ally", "Sam")
        run(capsys, "relate", "Sam", "ally", "Merry")
        run(capsys, "relate", "Frodo", "owns", "Sting")
        code, out = run(capsys, "relations", "Frodo", "--depth", "2", "--type", "ally")
        assert code == 0
        assert "  Merry" in out
        assert "  Sam" in out
        assert "Sting" not in out

    @pytest.mark.parametrize("depth", ["0", "6"])
    def test_invalid_depth(self, capsys, depth):
        code, out = run(capsys, "relations", "Frodo", "--depth", depth)
        assert code == 1
        assert out.strip() == "Error: depth must be between 1 and 5"

    def test_unrelate(self, capsys):
        _, out = run(capsys, "relate", "Frodo", "owns", "Sting")
        rel_id = out.splitlines()[0].removeprefix("Created relationship: ")

        code, out = run(capsys, "unrelate", rel_id)
        assert code == 0
        assert out.strip() == f"Deleted relationship: {rel_id}"

        code, out = run(capsys, "unrelate", rel_id)
        assert code == 1
        assert out.strip() == f"Error: relationship not found: {rel_id}"


class TestEntities:
    """Tests for the entities command."""

    def test_lists_world_entities(self, capsys):
        run(capsys, "--world", "shire", "relate", "Frodo", "ally", "Sam")
        run(capsys, "--world", "shire", "relate", "Bilbo", "parent", "Frodo")
        code, out = run(capsys, "--world", "shire", "entities")
        assert code == 0
        lines = out.splitlines()
        assert lines[0] == "Entities (3 total):"
        assert [line.split()[-1] for line in lines[2:]] == ["Bilbo", "Frodo", "Sam"]
        assert lines[2].startswith("  ") and "..." in lines[2]

    def test_search_and_limit(self, capsys):
        """--search filters by name and --limit caps the listing."""
        run(capsys, "relate", "Frodo Baggins", "ally", "Sam")
        run(capsys, "relate", "Bilbo Baggins", "parent", "Frodo Baggins")
        code, out = run(capsys, "entities", "--search", "bag")
        assert code == 0
        assert "Entities (2 total):" in out
        assert "Sam" not in out

        code, out = run(capsys, "entities", "--limit", "1")
        assert code == 0
        assert out.splitlines()[0] == "Entities (3 total):"
        assert len(out.splitlines()) == 3

    def test_empty_world(self, capsys):
        code, out = run(capsys, "--world", "mordor", "entities")
        assert (code, out.strip()) == (0, "No entities found.")

    def test_invalid_limit(self, capsys):
        code, out = run(capsys, "entities", "--limit", "0")
        assert (code, out.strip()) == (1, "Error: limit must be positive, got 0")


class TestTypes:
    """Tests for the types command."""

    def test_list_defaults(self, capsys):
        code, out = run(capsys, "types", "list")
        assert code == 0
        for name in ("character", "location", "event", "relationship", "rule", "timeline"):
            assert name in out

    def test_add_describe_remove(self, capsys):
        code, out = run(capsys, "types", "add", "Faction", "Organised groups")
        assert (code, out.strip()) == (0, "Added entity type: faction")

        code, out = run(capsys, "types", "describe", "faction")
        assert code == 0
        assert "Description: Organised groups" in out
        assert "Default:     False" in out

        code, out = run(capsys, "types", "remove", "faction")
        assert (code, out.strip()) == (0, "Removed entity type: faction")

    def test_remove_default_refused(self, capsys):
        code, out = run(capsys, "types", "remove", "character")
        assert (code, out.strip()) == (1, "Error: cannot remove default type: character")

    def test_describe_unknown(self, capsys):
        code, out = run(capsys, "types", "describe", "faction")
        assert (code, out.strip()) == (1, "Error: entity type not found: faction")

    def test_invalid_name(self, capsys):
        code, out = run(capsys, "types", "add", "magic-item")
        assert code == 1
        assert out.startswith("Error: invalid type name 'magic-item'")


class TestHistoryAudit:
    """Tests for history and audit."""

    def test_audit_by_fact(self, capsys):
        _, out = run(capsys, "relate", "Frodo", "owns", "Sting")
        rel_id = out.splitlines()[0].removeprefix("Created relationship: ")

        code, out = run(capsys, "audit", "--fact", rel_id)
        assert code == 0
        assert f"relationship.create {rel_id}" in out

    def test_audit_by_action_empty(self, capsys):
        code, out = run(capsys, "audit", "--action", "facts.save")
        assert (code, out.strip()) == (0, "No audit entries found.")

    def test_audit_requires_target(self, capsys):
        with pytest.raises(SystemExit):
            main.main(["audit"])

    def test_history_unknown(self, capsys):
        code, out = run(capsys, "history", "nope")
        assert (code, out.strip()) == (0, "No history for fact: nope")


class TestWatch:
    """Tests for wiring of the watch command."""

    def test_uses_settings_defaults(self, capsys, monkeypatch, cli_settings):
        seen = {}

        def fake_run(self, read_line=input):
            seen["source"] = self.source
            seen["auto_save"] = self.auto_save
            seen["world"] = self.ctx.world_id

        monkeypatch.setattr(StagingSession, "run", fake_run)
        cli_settings.watch_auto_save = True

        assert run(capsys, "--world", "shire", "watch")[0] == 0
        assert seen == {"source": "interactive", "auto_save": True, "world": "shire"}

    def test_flags_override(self, capsys, monkeypatch):
        seen = {}

        def fake_run(self, read_line=input):
            seen["source"] = self.source
            seen["auto_save"] = self.auto_save

        monkeypatch.setattr(StagingSession, "run", fake_run)

        run(capsys, "watch", "--source", "chapter1.md", "--auto-save")
        assert seen == {"source": "chapter1.md", "auto_save": True}


class TestStartup:
    """Tests for settings and argument handling."""

    def test_config_error(self, capsys, monkeypatch):
        def broken():
            raise ConfigError("invalid settings: chunk_size must be between 100 and 100000")

        monkeypatch.setattr(main, "load_settings", broken)
        code, out = run(capsys, "types", "list")
        assert code == 1
        assert out.startswith("Error: invalid settings: chunk_size")

    def test_load_settings_wraps_value_error(self, monkeypatch):
        """A bad settings file surfaces as ConfigError."""

        def invalid(cls, use_cache=True):
            raise ValueError("chunk_size must be between 100 and 100000, got 5")

        monkeypatch.setattr(Settings, "load", classmethod(invalid))
        with pytest.raises(ConfigError, match="invalid settings: chunk_size"):
            load_settings()

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main.main([])
