"""Settings package for Lore.

- _paths.py: Path constants for the settings file and data directory
- _validation.py: Field validation functions
- _settings.py: Main Settings dataclass
"""

from lore.settings._paths import DATA_DIR, DEFAULT_DATABASE_PATH, SETTINGS_FILE
from lore.settings._settings import Settings

__all__ = [
    "DATA_DIR",
    "DEFAULT_DATABASE_PATH",
    "SETTINGS_FILE",
    "Settings",
]
