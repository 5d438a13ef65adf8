"""Services layer - operations on the lore knowledge base, scoped by RequestContext.

The CLI talks to these services only; they own validation, auditing and the
mirroring between the relationship graph and the fact store.
"""

import logging
import time
from dataclasses import dataclass

from lore.memory.fact_store import FactStore, SqliteFactStore
from lore.memory.lore_database import LoreDatabase
from lore.settings import Settings

from .context import RequestContext
from .entity_service import EntityService
from .entity_type_service import EntityTypeService
from .extraction_service import ExtractionOptions, ExtractionResult, ExtractionService
from .fact_service import FactService
from .llm_client import OllamaFactAnalyzer
from .relationship_service import RelationshipService
from .staging_session import SessionState, StagingSession

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Dependency injection container for all services.

    Usage:
        settings = Settings.load()
        services = ServiceContainer(settings)
        ctx = services.context("middle-earth")

        services.relationships.create(ctx, "Frodo", "ally", "Sam", bidirectional=True)
        services.close()
    """

    settings: Settings
    db: LoreDatabase
    entities: EntityService
    entity_types: EntityTypeService
    relationships: RelationshipService
    facts: FactService
    analyzer: OllamaFactAnalyzer
    extraction: ExtractionService

    def __init__(self, settings: Settings | None = None):
        """Open the database and initialize all services with shared settings.

        Args:
            settings: Application settings. If None, loads from settings.json.
        """
        start = time.perf_counter()
        self.settings = settings or Settings.load()
        self.db = LoreDatabase(self.settings.database_path, self.settings.busy_timeout_seconds)

        self.entity_types = EntityTypeService(self.db)
        seeded = self.entity_types.load_defaults()
        if seeded:
            logger.info("Seeded %d default entity types", seeded)

        self.entities = EntityService(self.db)
        self.relationships = RelationshipService(self.db, self.fact_store)
        self.facts = FactService(self.db, self.fact_store)
        self.analyzer = OllamaFactAnalyzer(self.settings)
        self.extraction = ExtractionService(self.fact_store, self.analyzer, self.entity_types)

        logger.debug("ServiceContainer ready in %.3fs", time.perf_counter() - start)

    def fact_store(self, world_id: str) -> FactStore:
        """Fact store for one world."""
        return SqliteFactStore(self.db, world_id)

    def context(self, world_id: str | None = None) -> RequestContext:
        return RequestContext.for_world(world_id, self.settings)

    def close(self) -> None:
        self.db.close()


__all__ = [
    "ServiceContainer",
    "RequestContext",
    "EntityService",
    "EntityTypeService",
    "RelationshipService",
    "FactService",
    "OllamaFactAnalyzer",
    "ExtractionService",
    "ExtractionOptions",
    "ExtractionResult",
    "StagingSession",
    "SessionState",
]
