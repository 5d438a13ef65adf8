"""Pytest fixtures for Lore tests."""

import logging
from collections.abc import Generator
from pathlib import Path

import pytest

from lore.memory.fact_store import SqliteFactStore
from lore.memory.lore_database import LoreDatabase
from lore.services.context import RequestContext
from lore.settings import Settings


@pytest.fixture(autouse=True, scope="function")
def cleanup_production_log_handlers():
    """Remove file handlers pointing to the production log after each test.

    Tests that call setup_logging() with the default file would otherwise leave
    a handler writing to logs/lore.log for the rest of the session.
    """
    yield

    root_logger = logging.getLogger()
    production_log_name = "lore.log"

    handlers_to_remove = []
    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            if hasattr(handler, "baseFilename") and production_log_name in handler.baseFilename:
                handlers_to_remove.append(handler)

    for handler in handlers_to_remove:
        handler.close()
        root_logger.removeHandler(handler)


@pytest.fixture(autouse=True)
def clear_settings_cache_per_test():
    """Clear Settings cache before each test to ensure isolation."""
    Settings.clear_cache()
    yield
    Settings.clear_cache()


@pytest.fixture(autouse=True)
def isolate_settings_file(tmp_path, monkeypatch):
    """Redirect settings.json to a temp directory so tests never touch the real file."""
    import lore.settings._settings as settings_module

    monkeypatch.setattr(settings_module, "SETTINGS_FILE", tmp_path / "settings.json")
    yield


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    """Default settings with the database inside tmp_path.

    Created directly rather than via Settings.load() so tests do not depend on a
    local settings.json.
    """
    settings = Settings(database_path=str(tmp_path / "lore.db"))
    settings.validate()
    return settings


@pytest.fixture
def db(tmp_path: Path) -> Generator[LoreDatabase]:
    """A fresh lore database in a temp directory."""
    database = LoreDatabase(tmp_path / "test_lore.db", busy_timeout=1.0)
    yield database
    database.close()


@pytest.fixture
def ctx(tmp_settings: Settings) -> RequestContext:
    """Request context for the "middle-earth" world."""
    return RequestContext(world_id="middle-earth", settings=tmp_settings)


@pytest.fixture
def fact_stores(db: LoreDatabase):
    """Fact store factory bound to the test database."""

    def factory(world_id: str) -> SqliteFactStore:
        return SqliteFactStore(db, world_id)

    return factory
