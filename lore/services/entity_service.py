"""Entity service - name resolution and entity lookups within a world."""

from __future__ import annotations

import logging

from lore.memory.entities import Entity
from lore.memory.lore_database import LoreDatabase
from lore.services.context import RequestContext

logger = logging.getLogger(__name__)


class EntityService:
    """Entity registry operations scoped by the request's world."""

    def __init__(self, db: LoreDatabase):
        self.db = db

    def resolve(self, ctx: RequestContext, name: str) -> str:
        """Return the ID for *name* in the world, creating the entity on first mention."""
        return self.db.resolve_entity(ctx.world_id, name)

    def find_by_name(self, ctx: RequestContext, name: str) -> Entity | None:
        """Case-insensitive lookup that never creates."""
        return self.db.find_entity_by_name(ctx.world_id, name)

    def list(self, ctx: RequestContext, limit: int | None = None) -> list[Entity]:
        return self.db.list_entities(ctx.world_id, limit)

    def search(self, ctx: RequestContext, query: str, limit: int | None = None) -> list[Entity]:
        return self.db.search_entities(ctx.world_id, query, limit)

    def count(self, ctx: RequestContext) -> int:
        return self.db.count_entities(ctx.world_id)

    def delete(self, ctx: RequestContext, name: str) -> bool:
        """Delete an entity by name along with all of its relationships.

        Returns:
            True if the entity existed.
        """
        entity = self.find_by_name(ctx, name)
        if entity is None:
            return False
        logger.info("Deleting entity %r (%s) from world %s", entity.name, entity.id, ctx.world_id)
        return self.db.delete_entity(entity.id)
