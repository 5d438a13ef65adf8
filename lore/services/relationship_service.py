"""Relationship service - typed edges between named entities and graph queries."""

from __future__ import annotations

import logging
from collections.abc import Callable

from lore.memory.entities import Entity, Fact, Relationship, RelationshipView
from lore.memory.fact_store import FactStore
from lore.memory.lore_database import (
    MAX_TRAVERSAL_DEPTH,
    LoreDatabase,
    validate_relation_type,
)
from lore.services.context import RequestContext
from lore.utils.exceptions import InvalidDepthError

logger = logging.getLogger(__name__)

FactStoreFactory = Callable[[str], FactStore]

MIN_TRAVERSAL_DEPTH = 1


def validate_depth(depth: int) -> int:
    """Check a user-supplied traversal depth.

    Raises:
        InvalidDepthError: If depth is outside 1..MAX_TRAVERSAL_DEPTH.
    """
    if not MIN_TRAVERSAL_DEPTH <= depth <= MAX_TRAVERSAL_DEPTH:
        raise InvalidDepthError(depth, MIN_TRAVERSAL_DEPTH, MAX_TRAVERSAL_DEPTH)
    return depth


class RelationshipService:
    """Create, remove and query relationships by entity name.

    When a fact store factory is given, every relationship is mirrored into the
    world's fact store as a "relationship" fact with the same ID, so it shows up
    alongside extracted facts.
    """

    def __init__(self, db: LoreDatabase, fact_stores: FactStoreFactory | None = None):
        self.db = db
        self.fact_stores = fact_stores

    def create(
        self,
        ctx: RequestContext,
        source_name: str,
        relation_type: str,
        target_name: str,
        bidirectional: bool = False,
    ) -> Relationship:
        """Create a relationship, auto-creating both endpoint entities.

        The endpoints, the edge, its mirror fact and the audit entry are written in
        one transaction; if any of them fails, none is kept.

        Raises:
            InvalidRelationshipTypeError: If relation_type is not in the vocabulary.
            BusyError: If the database stayed locked past the busy timeout.
        """
        logger.info(
            "Adding relationship in %s: %s --%s--> %s",
            ctx.world_id,
            source_name,
            relation_type,
            target_name,
        )
        validate_relation_type(relation_type)
        with self.db.write_transaction():
            relationship = self.db.create_relationship(
                ctx.world_id, source_name, relation_type, target_name, bidirectional
            )
            if self.fact_stores is not None:
                fact = self._to_fact(relationship)
                try:
                    self.fact_stores(ctx.world_id).save(fact)
                except Exception as e:
                    logger.error(
                        "Failed to mirror relationship %s, rolling back: %s", relationship.id, e
                    )
                    raise
            self.db.log_action(
                "relationship.create",
                fact_id=relationship.id,
                details={
                    "world": ctx.world_id,
                    "source": source_name,
                    "type": relationship.type.value,
                    "target": target_name,
                    "bidirectional": bidirectional,
                },
            )
        logger.debug("Created relationship %s", relationship.id)
        return relationship

    def _to_fact(self, relationship: Relationship) -> Fact:
        """Render a relationship as a fact, using the stored entity names."""
        entities = self.db.find_entities_by_ids(
            [relationship.source_entity_id, relationship.target_entity_id]
        )
        source = entities[relationship.source_entity_id]
        target = entities[relationship.target_entity_id]
        return Fact(
            id=relationship.id,
            type="relationship",
            subject=source.name,
            predicate=relationship.type.value,
            object=target.name,
            context="bidirectional" if relationship.bidirectional else "",
            confidence=1.0,
            created_at=relationship.created_at,
            updated_at=relationship.created_at,
        )

    def delete(self, ctx: RequestContext, rel_id: str) -> Relationship:
        """Delete a relationship by ID; endpoint entities are kept.

        Raises:
            NotFoundError: If no relationship has this ID.
        """
        logger.info("Deleting relationship %s from %s", rel_id, ctx.world_id)
        with self.db.write_transaction():
            relationship = self.db.delete_relationship(rel_id)
            if self.fact_stores is not None:
                self.fact_stores(ctx.world_id).delete(rel_id)
            self.db.log_action(
                "relationship.delete",
                fact_id=rel_id,
                details={"world": ctx.world_id, "type": relationship.type.value},
            )
        return relationship

    def get(self, rel_id: str) -> Relationship | None:
        return self.db.get_relationship(rel_id)

    def find_between(
        self,
        ctx: RequestContext,
        source_name: str,
        target_name: str,
        relation_type: str | None = None,
    ) -> Relationship | None:
        """Find a relationship between two named entities.

        Directional relationships only match source-to-target; bidirectional ones
        match either way. Unknown names give None.
        """
        source = self.db.find_entity_by_name(ctx.world_id, source_name)
        target = self.db.find_entity_by_name(ctx.world_id, target_name)
        if source is None or target is None:
            return None
        return self.db.find_relationship_between(source.id, target.id, relation_type)

    def list_for_entity(self, ctx: RequestContext, name: str) -> list[RelationshipView]:
        """Relationships visible from a named entity; empty for an unknown name."""
        entity = self.db.find_entity_by_name(ctx.world_id, name)
        if entity is None:
            logger.debug("No entity named %r in %s", name, ctx.world_id)
            return []
        return self.db.list_relationships_for_entity(entity.id)

    def list_by_type(self, ctx: RequestContext, relation_type: str) -> list[Relationship]:
        """Relationships of one type in the request's world.

        Raises:
            InvalidRelationshipTypeError: If relation_type is not in the vocabulary.
        """
        rel_type = validate_relation_type(relation_type)
        return self.db.list_relationships_by_type(rel_type.value, ctx.world_id)

    def count(self, ctx: RequestContext | None = None) -> int:
        """Count relationships, in one world when a context is given."""
        return self.db.count_relationships(ctx.world_id if ctx else None)

    def related(
        self, ctx: RequestContext, name: str, depth: int, relation_type: str | None = None
    ) -> list[Entity]:
        """Entities reachable from a named entity within depth hops, sorted by name.

        With relation_type set, only relationships of that type are walked.

        Raises:
            InvalidDepthError: If depth is outside 1-5.
            InvalidRelationshipTypeError: If relation_type is not in the vocabulary.
        """
        validate_depth(depth)
        if relation_type is not None:
            relation_type = validate_relation_type(relation_type).value
        entity = self.db.find_entity_by_name(ctx.world_id, name)
        if entity is None:
            return []
        related_ids = self.db.related_entities(entity.id, depth, relation_type)
        related = self.db.find_entities_by_ids(list(related_ids))
        logger.debug("%d entities within %d hops of %r", len(related), depth, name)
        return sorted(related.values(), key=lambda e: e.normalized_name)
