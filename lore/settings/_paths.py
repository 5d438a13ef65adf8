"""Path constants for Lore settings and data files."""

from pathlib import Path

SETTINGS_FILE = Path(__file__).parent.parent / "settings.json"

# Go up from lore/settings to lore/, then up to project root, then into data/
DATA_DIR = Path(__file__).parent.parent.parent / "data"
DEFAULT_DATABASE_PATH = DATA_DIR / "lore.db"

__all__ = [
    "DATA_DIR",
    "DEFAULT_DATABASE_PATH",
    "SETTINGS_FILE",
]
