"""Entity type vocabulary storage for LoreDatabase."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING

from lore.memory.entities import EntityType
from lore.utils.exceptions import AlreadyExistsError

if TYPE_CHECKING:
    from . import LoreDatabase

logger = logging.getLogger(__name__)


def add_entity_type(db: LoreDatabase, name: str, description: str = "") -> EntityType:
    """Insert a new entity type.

    The name is stored as given; naming rules are enforced by the caller.

    Raises:
        AlreadyExistsError: If a type with this name exists.
    """
    entity_type = EntityType(name=name, description=description)
    try:
        with db.write_transaction() as cursor:
            cursor.execute(
                "INSERT INTO entity_types (name, description, created_at) VALUES (?, ?, ?)",
                (name, description, entity_type.created_at.isoformat()),
            )
    except sqlite3.IntegrityError as e:
        raise AlreadyExistsError("entity type", name) from e
    logger.debug("Added entity type: %s", name)
    return entity_type


def insert_missing_entity_types(db: LoreDatabase, types: dict[str, str]) -> int:
    """Insert every (name, description) pair whose name is not stored yet.

    Returns:
        Number of types inserted.
    """
    now = datetime.now().isoformat()
    inserted = 0
    with db.write_transaction() as cursor:
        for name, description in types.items():
            cursor.execute(
                "INSERT OR IGNORE INTO entity_types (name, description, created_at) "
                "VALUES (?, ?, ?)",
                (name, description, now),
            )
            inserted += cursor.rowcount
    if inserted:
        logger.info("Seeded %d entity types", inserted)
    return inserted


def get_entity_type(db: LoreDatabase, name: str) -> EntityType | None:
    """Get an entity type by name."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT * FROM entity_types WHERE name = ?", (name,))
        row = cursor.fetchone()
        return row_to_entity_type(row) if row else None


def list_entity_types(db: LoreDatabase) -> list[EntityType]:
    """List entity types ordered by name."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT * FROM entity_types ORDER BY name")
        return [row_to_entity_type(row) for row in cursor.fetchall()]


def delete_entity_type(db: LoreDatabase, name: str) -> bool:
    """Delete an entity type. Returns True if it existed."""
    with db.write_transaction() as cursor:
        cursor.execute("DELETE FROM entity_types WHERE name = ?", (name,))
        deleted = cursor.rowcount > 0
    if deleted:
        logger.debug("Deleted entity type: %s", name)
    return deleted


def row_to_entity_type(row: sqlite3.Row) -> EntityType:
    """Convert a database row to an EntityType."""
    return EntityType(
        name=row["name"],
        description=row["description"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )
