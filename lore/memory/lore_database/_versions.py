"""Fact version ledger for LoreDatabase.

An append-only history: every committed change to a fact gets the next version
number. Rows are never updated or removed.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from lore.memory.entities import ChangeType, FactVersion

if TYPE_CHECKING:
    from . import LoreDatabase

logger = logging.getLogger(__name__)


def _snapshot_to_dict(snapshot: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """Turn a fact (or plain dict) into JSON-safe data for storage."""
    if isinstance(snapshot, BaseModel):
        return snapshot.model_dump(mode="json")
    return dict(snapshot)


def record_version(
    db: LoreDatabase,
    fact_id: str,
    change_type: ChangeType | str,
    snapshot: BaseModel | dict[str, Any],
    reason: str = "",
) -> FactVersion:
    """Append the next version of a fact.

    The new version number is computed inside the same write transaction as the
    insert, so concurrent writers cannot hand out the same number twice.

    Args:
        db: LoreDatabase instance.
        fact_id: ID of the fact in the fact store.
        change_type: creation, update or deletion.
        snapshot: The fact's data at this version.
        reason: Free-text explanation of the change.

    Returns:
        The recorded FactVersion.

    Raises:
        ValueError: If fact_id is empty or change_type is unknown.
    """
    if not fact_id:
        raise ValueError("fact_id cannot be empty")
    change = ChangeType(change_type)
    data = _snapshot_to_dict(snapshot)
    version_id = str(uuid.uuid4())
    now = datetime.now()

    with db.write_transaction() as cursor:
        cursor.execute(
            "SELECT COALESCE(MAX(version), 0) + 1 FROM fact_versions WHERE fact_id = ?",
            (fact_id,),
        )
        version = int(cursor.fetchone()[0])
        cursor.execute(
            """
            INSERT INTO fact_versions
            (id, fact_id, version, change_type, data_snapshot, reason, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                version_id,
                fact_id,
                version,
                change.value,
                json.dumps(data, ensure_ascii=False),
                reason,
                now.isoformat(),
            ),
        )

    logger.debug("Recorded version %d of fact %s (%s)", version, fact_id, change.value)
    return FactVersion(
        id=version_id,
        fact_id=fact_id,
        version=version,
        change_type=change,
        data_snapshot=data,
        reason=reason,
        created_at=now,
    )


def versions_of(db: LoreDatabase, fact_id: str, limit: int | None = None) -> list[FactVersion]:
    """Get versions of a fact, most recent first.

    Args:
        db: LoreDatabase instance.
        fact_id: Fact ID.
        limit: Maximum number of versions to return (None for all).

    Returns:
        List of versions ordered by version number descending.

    Raises:
        ValueError: If limit is not positive.
    """
    if limit is not None and limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")

    query = "SELECT * FROM fact_versions WHERE fact_id = ? ORDER BY version DESC"
    params: tuple[Any, ...] = (fact_id,)
    if limit is not None:
        query += " LIMIT ?"
        params = (fact_id, limit)

    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute(query, params)
        return [row_to_fact_version(row) for row in cursor.fetchall()]


def latest_version(db: LoreDatabase, fact_id: str) -> FactVersion | None:
    """Get the highest-numbered version of a fact."""
    versions = versions_of(db, fact_id, limit=1)
    return versions[0] if versions else None


def count_versions(db: LoreDatabase, fact_id: str) -> int:
    """Count versions recorded for a fact."""
    with db._lock:
        db._ensure_open()
        cursor = db.conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM fact_versions WHERE fact_id = ?", (fact_id,))
        result = cursor.fetchone()
        return int(result[0]) if result else 0


def row_to_fact_version(row: sqlite3.Row) -> FactVersion:
    """Convert a database row to a FactVersion."""
    return FactVersion(
        id=row["id"],
        fact_id=row["fact_id"],
        version=row["version"],
        change_type=ChangeType(row["change_type"]),
        data_snapshot=json.loads(row["data_snapshot"]),
        reason=row["reason"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )
