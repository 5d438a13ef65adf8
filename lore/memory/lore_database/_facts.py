"""Fact table operations for LoreDatabase, scoped per world."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING

from lore.memory.entities import Fact

if TYPE_CHECKING:
    from . import LoreDatabase

logger = logging.getLogger(__name__)


def save_facts(db: LoreDatabase, world_id: str, facts: list[Fact]) -> None:
    """Insert or replace facts in one transaction.

    Raises:
        ValueError: If a fact has no ID.
    """
    if not facts:
        return
    for fact in facts:
        if not fact.id:
            raise ValueError(f"Fact has no id: {fact.as_text()}")

    with db.write_transaction() as cursor:
        cursor.executemany(
            """
            INSERT OR REPLACE INTO facts
            (id, world_id, type, subject, predicate, object, context, source_file,
             source_line, confidence, embedding, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    fact.id,
                    world_id,
                    fact.type,
                    fact.subject,
                    fact.predicate,
                    fact.object,
                    fact.context,
                    fact.source_file,
                    fact.source_line,
                    fact.confidence,
                    json.dumps(fact.embedding) if fact.embedding is not None else None,
                    fact.created_at.isoformat(),
                    fact.updated_at.isoformat(),
                )
                for fact in facts
            ],
        )
    logger.debug("Saved %d facts to world %s", len(facts), world_id)


def get_fact(db: LoreDatabase, world_id: str, fact_id: str) -> Fact | None:
    """Get a fact by ID."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT * FROM facts WHERE world_id = ? AND id = ?", (world_id, fact_id))
        row = cursor.fetchone()
        return row_to_fact(row) if row else None


def list_facts(db: LoreDatabase, world_id: str, limit: int = 100, offset: int = 0) -> list[Fact]:
    """List facts of a world, newest first, one page at a time."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM facts WHERE world_id = ?
            ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?
            """,
            (world_id, limit, offset),
        )
        return [row_to_fact(row) for row in cursor.fetchall()]


def list_facts_by_type(
    db: LoreDatabase, world_id: str, fact_type: str, limit: int = 100
) -> list[Fact]:
    """List facts of one type, newest first."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM facts WHERE world_id = ? AND type = ?
            ORDER BY created_at DESC, rowid DESC LIMIT ?
            """,
            (world_id, fact_type, limit),
        )
        return [row_to_fact(row) for row in cursor.fetchall()]


def list_facts_by_source(db: LoreDatabase, world_id: str, source_file: str) -> list[Fact]:
    """List facts extracted from one source, in source order."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM facts WHERE world_id = ? AND source_file = ?
            ORDER BY source_line, rowid
            """,
            (world_id, source_file),
        )
        return [row_to_fact(row) for row in cursor.fetchall()]


def delete_fact(db: LoreDatabase, world_id: str, fact_id: str) -> bool:
    """Delete a fact. Returns True if it existed."""
    with db.write_transaction() as cursor:
        cursor.execute("DELETE FROM facts WHERE world_id = ? AND id = ?", (world_id, fact_id))
        return cursor.rowcount > 0


def delete_facts_by_source(db: LoreDatabase, world_id: str, source_file: str) -> int:
    """Delete all facts from one source; returns how many were removed."""
    with db.write_transaction() as cursor:
        cursor.execute(
            "DELETE FROM facts WHERE world_id = ? AND source_file = ?", (world_id, source_file)
        )
        deleted = cursor.rowcount
    logger.debug("Deleted %d facts from source %s in world %s", deleted, source_file, world_id)
    return deleted


def delete_all_facts(db: LoreDatabase, world_id: str) -> int:
    """Delete every fact of a world; returns how many were removed."""
    with db.write_transaction() as cursor:
        cursor.execute("DELETE FROM facts WHERE world_id = ?", (world_id,))
        deleted = cursor.rowcount
    logger.info("Deleted all %d facts in world %s", deleted, world_id)
    return deleted


def count_facts(db: LoreDatabase, world_id: str) -> int:
    """Count facts in a world."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM facts WHERE world_id = ?", (world_id,))
        result = cursor.fetchone()
        return int(result[0]) if result else 0


def row_to_fact(row: sqlite3.Row) -> Fact:
    """Convert a database row to a Fact."""
    return Fact(
        id=row["id"],
        type=row["type"],
        subject=row["subject"],
        predicate=row["predicate"],
        object=row["object"],
        context=row["context"],
        source_file=row["source_file"],
        source_line=row["source_line"],
        confidence=row["confidence"],
        embedding=json.loads(row["embedding"]) if row["embedding"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
