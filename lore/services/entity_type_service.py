"""Entity type service - the extensible vocabulary of fact and entity types."""

from __future__ import annotations

import logging
import threading

from lore.memory.default_types import DEFAULT_ENTITY_TYPES, is_default_type, is_valid_type_name
from lore.memory.entities import EntityType
from lore.memory.lore_database import LoreDatabase
from lore.utils.exceptions import InvalidNameError, NotFoundError, ProtectedDefaultError

logger = logging.getLogger(__name__)


def normalize_type_name(name: str) -> str:
    """Type names are matched lower-cased with surrounding whitespace removed."""
    return name.strip().lower()


class EntityTypeService:
    """Type registry with a cached set of valid names.

    The cache is filled on first use and dropped whenever this service changes
    the vocabulary.
    """

    def __init__(self, db: LoreDatabase):
        self.db = db
        self._valid_names: frozenset[str] | None = None
        self._cache_lock = threading.Lock()

    def _invalidate_cache(self) -> None:
        with self._cache_lock:
            self._valid_names = None

    def _names(self) -> frozenset[str]:
        names = self._valid_names
        if names is None:
            with self._cache_lock:
                # Double-check after acquiring lock
                if self._valid_names is None:
                    self._valid_names = frozenset(t.name for t in self.db.list_entity_types())
                    logger.debug("Loaded %d entity types into cache", len(self._valid_names))
                names = self._valid_names
        return names

    def load_defaults(self) -> int:
        """Seed the default types that are missing. Safe to call repeatedly.

        Returns:
            Number of default types inserted by this call.
        """
        inserted = self.db.insert_missing_entity_types(DEFAULT_ENTITY_TYPES)
        if inserted:
            self._invalidate_cache()
        return inserted

    def is_valid(self, name: str) -> bool:
        """Check whether a type name is registered."""
        return normalize_type_name(name) in self._names()

    def list(self) -> list[EntityType]:
        """All registered types ordered by name."""
        return self.db.list_entity_types()

    def describe(self, name: str) -> EntityType | None:
        return self.db.get_entity_type(normalize_type_name(name))

    def add(self, name: str, description: str = "") -> EntityType:
        """Register a new type.

        Raises:
            InvalidNameError: If the normalized name breaks the naming rule.
            AlreadyExistsError: If the type is already registered.
        """
        normalized = normalize_type_name(name)
        if not is_valid_type_name(normalized):
            raise InvalidNameError(name)
        entity_type = self.db.add_entity_type(normalized, description.strip())
        self._invalidate_cache()
        logger.info("Added entity type: %s", normalized)
        return entity_type

    def remove(self, name: str) -> None:
        """Remove a custom type.

        Raises:
            ProtectedDefaultError: If the type is one of the defaults.
            NotFoundError: If the type is not registered.
        """
        normalized = normalize_type_name(name)
        if is_default_type(normalized):
            raise ProtectedDefaultError(normalized)
        if not self.db.delete_entity_type(normalized):
            raise NotFoundError("entity type", normalized)
        self._invalidate_cache()
        logger.info("Removed entity type: %s", normalized)

    def valid_type_names(self) -> list[str]:
        """Sorted list of registered type names."""
        return sorted(self._names())

    def build_prompt_type_list(self) -> str:
        """Type names joined for use in an extraction prompt, e.g. "character, event"."""
        return ", ".join(self.valid_type_names())
