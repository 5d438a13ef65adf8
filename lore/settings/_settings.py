"""Main Settings dataclass for Lore.

Settings are stored in settings.json next to the package and can be edited by hand.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, ClassVar

from lore.settings import _validation as _validation_mod
from lore.settings._paths import DEFAULT_DATABASE_PATH, SETTINGS_FILE

logger = logging.getLogger(__name__)


def _merge_with_defaults(data: dict[str, Any], settings_cls: type[Settings]) -> bool:
    """Merge loaded JSON data with dataclass defaults.

    - Adds missing keys with their default values
    - Removes keys that no longer exist in the dataclass

    Modifies *data* in place.

    Returns:
        True if any changes were made, False otherwise.
    """
    default_dict = asdict(settings_cls())
    known_fields = {f.name for f in fields(settings_cls)}
    changed = False

    for key in list(data):
        if key not in known_fields:
            logger.info("Removing obsolete setting: %s", key)
            del data[key]
            changed = True

    for key in known_fields:
        if key not in data:
            logger.info("Adding new setting with default: %s", key)
            data[key] = default_dict[key]
            changed = True

    return changed


def _atomic_write_json(path: Path | str, data: dict[str, Any]) -> None:
    """Write JSON to *path* atomically via a temp file + rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError as cleanup_err:
            logger.warning("Failed to remove temp settings file %s: %s", tmp_path, cleanup_err)
        raise


def _read_settings_file(path: Path) -> dict[str, Any]:
    """Read the settings file, backing up and discarding it if it is corrupt."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error("Corrupted settings file (invalid JSON): %s", e)
        data = None
    except OSError as e:
        logger.error("Cannot read settings file (may be locked or inaccessible): %s", e)
        return {}

    if isinstance(data, dict):
        return data

    if data is not None:
        logger.error("Corrupted settings file (expected JSON object, got %s)", type(data).__name__)
    backup_path = path.with_suffix(".json.corrupt")
    try:
        shutil.copy(path, backup_path)
        logger.info("Backed up corrupted settings to %s", backup_path)
    except OSError as copy_err:
        logger.warning("Failed to backup corrupted settings: %s", copy_err)
    return {}


@dataclass
class Settings:
    """Application settings, stored as JSON."""

    # General
    log_level: str = "INFO"
    default_world: str = "default"

    # Relational store
    database_path: str = str(DEFAULT_DATABASE_PATH)
    busy_timeout_seconds: float = 5.0
    default_traversal_depth: int = 1
    audit_list_limit: int = 50

    # Ollama
    ollama_url: str = "http://localhost:11434"
    ollama_timeout: int = 120
    extraction_model: str = "llama3.1:8b"
    context_size: int = 8192
    extraction_temperature: float = 0.1
    llm_max_retries: int = 3
    stream_inter_chunk_timeout: int = 120
    stream_wall_clock_timeout: int = 600

    # Extraction
    chunk_size: int = 2000
    chunk_overlap: int = 200
    consistency_check_enabled: bool = True
    consistency_candidates_per_type: int = 20

    # Watch session
    watch_source: str = "interactive"
    watch_auto_save: bool = False

    def save(self) -> None:
        """Save settings to JSON file."""
        self.validate()
        _atomic_write_json(SETTINGS_FILE, asdict(self))
        logger.debug("Settings saved to %s", SETTINGS_FILE)

    def validate(self) -> bool:
        """Validate all settings fields. Delegates to _validation module.

        Returns:
            True if any settings were normalized during validation, False otherwise.

        Raises:
            ValueError: If any field contains an invalid value.
        """
        return _validation_mod.validate(self)

    # Class-level cache for settings (speeds up repeated load() calls)
    _cached_instance: ClassVar[Settings | None] = None

    @classmethod
    def load(cls, use_cache: bool = True) -> Settings:
        """Load settings from JSON file, or create defaults.

        New settings get default values and removed settings are cleaned up;
        customized values are preserved.

        Args:
            use_cache: If True, return cached instance if available. Set to False
                to force reload from disk.

        Returns:
            Settings instance.

        Raises:
            ValueError: If a stored value has the wrong type or is out of range.
        """
        if use_cache and cls._cached_instance is not None:
            return cls._cached_instance

        data = _read_settings_file(SETTINGS_FILE)
        loaded_from_file = bool(data)
        logger.info("Settings load: loaded_from_file=%s, keys_read=%d", loaded_from_file, len(data))

        changed = _merge_with_defaults(data, cls)

        # TypeError comes from range checks comparing e.g. a str against an int
        try:
            settings = cls(**data)
            changed = settings.validate() or changed
        except TypeError as e:
            raise ValueError(f"A setting has an invalid type: {e}") from e

        if changed or not loaded_from_file:
            try:
                _atomic_write_json(SETTINGS_FILE, asdict(settings))
            except OSError as write_err:
                logger.warning("Could not persist settings to disk: %s", write_err)

        cls._cached_instance = settings
        return settings

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the cached settings instance.

        Use this in tests that need to verify settings loading behavior,
        or after programmatically modifying settings files.
        """
        cls._cached_instance = None
