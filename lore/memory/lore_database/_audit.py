"""Audit log operations for LoreDatabase."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING, Any

from lore.memory.entities import AuditEntry

if TYPE_CHECKING:
    from . import LoreDatabase

logger = logging.getLogger(__name__)


def log_action(
    db: LoreDatabase,
    action: str,
    fact_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> int:
    """Append an entry to the audit log.

    Args:
        db: LoreDatabase instance.
        action: Dotted action name, e.g. "relationship.create".
        fact_id: Fact the action concerns, if any.
        details: Extra key-value data, stored as JSON.

    Returns:
        The sequential ID of the new entry.

    Raises:
        ValueError: If action is empty.
    """
    if not action:
        raise ValueError("audit action cannot be empty")
    details_json = json.dumps(details, ensure_ascii=False, default=str) if details else None

    with db.write_transaction() as cursor:
        cursor.execute(
            "INSERT INTO audit_log (action, fact_id, details, created_at) VALUES (?, ?, ?, ?)",
            (action, fact_id, details_json, datetime.now().isoformat()),
        )
        entry_id = cursor.lastrowid
    assert entry_id is not None  # AUTOINCREMENT always assigns one
    logger.debug("Audit %d: %s (fact=%s)", entry_id, action, fact_id)
    return entry_id


def find_by_fact(db: LoreDatabase, fact_id: str) -> list[AuditEntry]:
    """Get audit entries for a fact, most recent first."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT * FROM audit_log WHERE fact_id = ? ORDER BY id DESC", (fact_id,))
        return [row_to_audit_entry(row) for row in cursor.fetchall()]


def find_by_action(db: LoreDatabase, action: str, limit: int = 50) -> list[AuditEntry]:
    """Get the most recent audit entries for an action.

    Raises:
        ValueError: If limit is not positive.
    """
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(
            "SELECT * FROM audit_log WHERE action = ? ORDER BY id DESC LIMIT ?", (action, limit)
        )
        return [row_to_audit_entry(row) for row in cursor.fetchall()]


def row_to_audit_entry(row: sqlite3.Row) -> AuditEntry:
    """Convert a database row to an AuditEntry."""
    return AuditEntry(
        id=row["id"],
        action=row["action"],
        fact_id=row["fact_id"],
        details=json.loads(row["details"]) if row["details"] else {},
        created_at=datetime.fromisoformat(row["created_at"]),
    )
