"""Relationship storage and lookups for LoreDatabase."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from lore.memory.entities import (
    VALID_RELATION_TYPES,
    Relationship,
    RelationshipView,
    RelationType,
)
from lore.utils.exceptions import InvalidRelationshipTypeError, NotFoundError

from . import _entities, _graph

if TYPE_CHECKING:
    from . import LoreDatabase

logger = logging.getLogger(__name__)


def validate_relation_type(relation_type: str) -> RelationType:
    """Check a relationship type against the fixed vocabulary.

    Raises:
        InvalidRelationshipTypeError: If the type is not in the vocabulary.
    """
    if relation_type not in VALID_RELATION_TYPES:
        raise InvalidRelationshipTypeError(str(relation_type), VALID_RELATION_TYPES)
    return RelationType(relation_type)


def create_relationship(
    db: LoreDatabase,
    world_id: str,
    source_name: str,
    relation_type: str,
    target_name: str,
    bidirectional: bool = False,
) -> Relationship:
    """Create a relationship between two named entities.

    The type is validated before anything is written. Both endpoints are resolved
    (and created if new) in the same transaction as the edge insert, so a failure
    leaves neither new entities nor a half-made edge behind.

    Args:
        db: LoreDatabase instance.
        world_id: World namespace for the endpoint names.
        source_name: Name of the source entity.
        relation_type: One of the fixed relationship types.
        target_name: Name of the target entity.
        bidirectional: Whether lookup and traversal work in both directions.

    Returns:
        The stored Relationship.

    Raises:
        InvalidRelationshipTypeError: If relation_type is not in the vocabulary.
        ValueError: If either name is empty.
        BusyError: If the database stayed locked past the busy timeout.
    """
    rel_type = validate_relation_type(relation_type)

    with db._lock:
        with db.write_transaction() as cursor:
            source_id, _ = _entities.resolve_in_transaction(cursor, world_id, source_name)
            target_id, _ = _entities.resolve_in_transaction(cursor, world_id, target_name)
            relationship = Relationship(
                id=str(uuid.uuid4()),
                source_entity_id=source_id,
                target_entity_id=target_id,
                type=rel_type,
                bidirectional=bidirectional,
            )
            cursor.execute(
                """
                INSERT INTO relationships
                (id, source_entity_id, target_entity_id, type, bidirectional, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    relationship.id,
                    source_id,
                    target_id,
                    rel_type.value,
                    1 if bidirectional else 0,
                    relationship.created_at.isoformat(),
                ),
            )
        _graph.add_relationship_to_graph(db, relationship)

    logger.debug(
        "Added relationship: %s --%s--> %s (bidirectional=%s)",
        source_name,
        rel_type.value,
        target_name,
        bidirectional,
    )
    return relationship


def delete_relationship(db: LoreDatabase, rel_id: str) -> Relationship:
    """Delete a relationship. Endpoint entities are kept.

    Returns:
        The deleted relationship.

    Raises:
        NotFoundError: If no relationship has this ID.
    """
    with db._lock:
        with db.write_transaction() as cursor:
            cursor.execute("SELECT * FROM relationships WHERE id = ?", (rel_id,))
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError("relationship", rel_id)
            relationship = row_to_relationship(row)
            cursor.execute("DELETE FROM relationships WHERE id = ?", (rel_id,))
        _graph.remove_relationship_from_graph(db, relationship)

    logger.debug("Deleted relationship %s", rel_id)
    return relationship


def get_relationship(db: LoreDatabase, rel_id: str) -> Relationship | None:
    """Get a relationship by ID."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT * FROM relationships WHERE id = ?", (rel_id,))
        row = cursor.fetchone()
        return row_to_relationship(row) if row else None


def find_relationship_between(
    db: LoreDatabase, source_id: str, target_id: str, relation_type: str | None = None
) -> Relationship | None:
    """Find a relationship from source to target.

    A directional edge only matches in its own direction; a bidirectional edge
    matches either way round. When several match, the newest wins.

    Args:
        db: LoreDatabase instance.
        source_id: Entity ID on the "from" side of the query.
        target_id: Entity ID on the "to" side of the query.
        relation_type: Optional type filter.

    Returns:
        Relationship or None
    """
    query = """
        SELECT * FROM relationships
        WHERE ((source_entity_id = ? AND target_entity_id = ?)
           OR (bidirectional = 1 AND source_entity_id = ? AND target_entity_id = ?))
    """
    params: list[str] = [source_id, target_id, target_id, source_id]
    if relation_type is not None:
        query += " AND type = ?"
        params.append(relation_type)
    query += " ORDER BY created_at DESC, rowid DESC LIMIT 1"

    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(query, params)
        row = cursor.fetchone()
        return row_to_relationship(row) if row else None


def list_relationships_for_entity(db: LoreDatabase, entity_id: str) -> list[RelationshipView]:
    """List relationships visible from an entity, newest first.

    Includes every edge the entity is the source of, plus bidirectional edges it
    is the target of. Each view carries both endpoint entities.
    """
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM relationships
            WHERE source_entity_id = ? OR (target_entity_id = ? AND bidirectional = 1)
            ORDER BY created_at DESC, rowid DESC
            """,
            (entity_id, entity_id),
        )
        relationships = [row_to_relationship(row) for row in cursor.fetchall()]
        endpoint_ids = [r.source_entity_id for r in relationships] + [
            r.target_entity_id for r in relationships
        ]
        entities = _entities.find_entities_by_ids(db, endpoint_ids)

    return [
        RelationshipView(
            relationship=rel,
            source=entities.get(rel.source_entity_id),
            target=entities.get(rel.target_entity_id),
        )
        for rel in relationships
    ]


def list_relationships_by_type(
    db: LoreDatabase, relation_type: str, world_id: str | None = None
) -> list[Relationship]:
    """List relationships of one type, newest first, optionally limited to a world."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        if world_id is None:
            cursor.execute(
                "SELECT * FROM relationships WHERE type = ? ORDER BY created_at DESC, rowid DESC",
                (relation_type,),
            )
        else:
            cursor.execute(
                """
                SELECT r.* FROM relationships r
                JOIN entities e ON e.id = r.source_entity_id
                WHERE r.type = ? AND e.world_id = ?
                ORDER BY r.created_at DESC, r.rowid DESC
                """,
                (relation_type, world_id),
            )
        return [row_to_relationship(row) for row in cursor.fetchall()]


def list_relationships(db: LoreDatabase) -> list[Relationship]:
    """List all relationships in insertion order."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT * FROM relationships ORDER BY rowid")
        return [row_to_relationship(row) for row in cursor.fetchall()]


def count_relationships(db: LoreDatabase, world_id: str | None = None) -> int:
    """Count relationships, optionally limited to a world."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        if world_id is None:
            cursor.execute("SELECT COUNT(*) FROM relationships")
        else:
            cursor.execute(
                """
                SELECT COUNT(*) FROM relationships r
                JOIN entities e ON e.id = r.source_entity_id
                WHERE e.world_id = ?
                """,
                (world_id,),
            )
        result = cursor.fetchone()
        return int(result[0]) if result else 0


def row_to_relationship(row: sqlite3.Row) -> Relationship:
    """Convert a database row to a Relationship."""
    return Relationship(
        id=row["id"],
        source_entity_id=row["source_entity_id"],
        target_entity_id=row["target_entity_id"],
        type=RelationType(row["type"]),
        bidirectional=bool(row["bidirectional"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )
