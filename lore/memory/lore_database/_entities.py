"""Entity registry operations for LoreDatabase."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from lore.memory.entities import Entity, normalize_name

if TYPE_CHECKING:
    from . import LoreDatabase

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200


def _clean_name(name: str) -> tuple[str, str]:
    """Return (display name, normalized name), rejecting unusable names."""
    display = name.strip()
    if not display:
        raise ValueError("Entity name cannot be empty")
    if len(display) > MAX_NAME_LENGTH:
        raise ValueError(f"Entity name cannot exceed {MAX_NAME_LENGTH} characters")
    return display, normalize_name(display)


def resolve_in_transaction(cursor: sqlite3.Cursor, world_id: str, name: str) -> tuple[str, bool]:
    """Find or create an entity using a cursor inside an open write transaction.

    The insert is a no-op when the normalized name is already taken, so two writers
    racing on the same new name both end up with the single stored row.

    Returns:
        Tuple of (entity ID, whether this call created it).
    """
    display, normalized = _clean_name(name)
    cursor.execute(
        """
        INSERT INTO entities (id, world_id, name, normalized_name, created_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (world_id, normalized_name) DO NOTHING
        """,
        (str(uuid.uuid4()), world_id, display, normalized, datetime.now().isoformat()),
    )
    created = cursor.rowcount == 1
    cursor.execute(
        "SELECT id FROM entities WHERE world_id = ? AND normalized_name = ?",
        (world_id, normalized),
    )
    entity_id: str = cursor.fetchone()["id"]
    if created:
        logger.debug("Created entity %r (%s) in world %s", display, entity_id, world_id)
    return entity_id, created


def resolve_entity(db: LoreDatabase, world_id: str, name: str) -> str:
    """Resolve a name to an entity ID within a world, creating the entity if absent.

    Args:
        db: LoreDatabase instance.
        world_id: World namespace.
        name: Free-text name; matched case-insensitively.

    Returns:
        Entity ID.

    Raises:
        ValueError: If the name is empty or too long.
    """
    with db.write_transaction() as cursor:
        entity_id, _ = resolve_in_transaction(cursor, world_id, name)
    return entity_id


def find_entity_by_name(db: LoreDatabase, world_id: str, name: str) -> Entity | None:
    """Find an entity by case-insensitive name without creating it."""
    normalized = normalize_name(name)
    if not normalized:
        return None
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(
            "SELECT * FROM entities WHERE world_id = ? AND normalized_name = ?",
            (world_id, normalized),
        )
        row = cursor.fetchone()
        return row_to_entity(row) if row else None


def get_entity(db: LoreDatabase, entity_id: str) -> Entity | None:
    """Get an entity by ID."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT * FROM entities WHERE id = ?", (entity_id,))
        row = cursor.fetchone()
        return row_to_entity(row) if row else None


def find_entities_by_ids(db: LoreDatabase, entity_ids: list[str]) -> dict[str, Entity]:
    """Get several entities in one query.

    Args:
        db: LoreDatabase instance.
        entity_ids: IDs to look up; duplicates and unknown IDs are ignored.

    Returns:
        Mapping of entity ID to Entity for the IDs that exist.
    """
    unique_ids = list(dict.fromkeys(entity_ids))
    if not unique_ids:
        return {}
    placeholders = ",".join("?" for _ in unique_ids)
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(f"SELECT * FROM entities WHERE id IN ({placeholders})", unique_ids)
        return {row["id"]: row_to_entity(row) for row in cursor.fetchall()}


def _limit_clause(limit: int | None) -> tuple[str, tuple[int, ...]]:
    if limit is None:
        return "", ()
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")
    return " LIMIT ?", (limit,)


def list_entities(db: LoreDatabase, world_id: str, limit: int | None = None) -> list[Entity]:
    """List entities of a world ordered by normalized name.

    Raises:
        ValueError: If limit is not positive.
    """
    clause, params = _limit_clause(limit)
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(
            "SELECT * FROM entities WHERE world_id = ? ORDER BY normalized_name" + clause,
            (world_id, *params),
        )
        return [row_to_entity(row) for row in cursor.fetchall()]


def search_entities(
    db: LoreDatabase, world_id: str, query: str, limit: int | None = None
) -> list[Entity]:
    """Search entities whose name contains *query* (case-insensitive)."""
    needle = normalize_name(query)
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    clause, params = _limit_clause(limit)
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM entities
            WHERE world_id = ? AND normalized_name LIKE ? ESCAPE '\\'
            ORDER BY normalized_name
            """
            + clause,
            (world_id, f"%{escaped}%", *params),
        )
        return [row_to_entity(row) for row in cursor.fetchall()]


def count_entities(db: LoreDatabase, world_id: str) -> int:
    """Count entities in a world."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM entities WHERE world_id = ?", (world_id,))
        result = cursor.fetchone()
        return int(result[0]) if result else 0


def delete_entity(db: LoreDatabase, entity_id: str) -> bool:
    """Delete an entity; its relationships go with it (ON DELETE CASCADE).

    Returns:
        True if the entity existed.
    """
    from . import _graph

    with db._lock:
        with db.write_transaction() as cursor:
            cursor.execute("DELETE FROM entities WHERE id = ?", (entity_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            _graph.remove_entity_from_graph(db, entity_id)
            logger.debug("Deleted entity %s with its relationships", entity_id)
    return deleted


def row_to_entity(row: sqlite3.Row) -> Entity:
    """Convert a database row to an Entity."""
    return Entity(
        id=row["id"],
        world_id=row["world_id"],
        name=row["name"],
        normalized_name=row["normalized_name"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )
