"""SQLite-backed lore database with NetworkX traversal."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from networkx import MultiDiGraph

from lore.memory.entities import (
    AuditEntry,
    ChangeType,
    Entity,
    EntityType,
    Fact,
    FactVersion,
    Relationship,
    RelationshipView,
)
from lore.utils.exceptions import BusyError, DatabaseClosedError

from . import _audit, _entities, _entity_types, _facts, _graph, _relationships, _schema, _versions
from ._relationships import validate_relation_type

logger = logging.getLogger(__name__)

# Schema version stamped on new databases
SCHEMA_VERSION = 1

# Traversal never walks further than this many hops
MAX_TRAVERSAL_DEPTH = 5

DEFAULT_BUSY_TIMEOUT_SECONDS = 5.0


def is_busy_error(error: sqlite3.OperationalError) -> bool:
    """Check whether an OperationalError is SQLite lock contention."""
    message = str(error).lower()
    return "database is locked" in message or "database is busy" in message


class LoreDatabase:
    """SQLite-backed store for entities, relationships, types, fact history and audit.

    Thread-safe implementation using RLock for all database operations. Writers take
    an immediate transaction so concurrent processes are serialized by SQLite; a
    writer that waits longer than the busy timeout fails with BusyError.
    """

    def __init__(
        self, db_path: Path | str, busy_timeout: float = DEFAULT_BUSY_TIMEOUT_SECONDS
    ) -> None:
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file.
            busy_timeout: Seconds a writer waits on a locked database before BusyError.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout = busy_timeout

        self._lock = threading.RLock()

        # Transactions are explicit (see write_transaction), so autocommit otherwise
        self.conn = sqlite3.connect(
            str(self.db_path),
            timeout=busy_timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        self._closed = False
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.execute(f"PRAGMA busy_timeout={int(busy_timeout * 1000)}")

        self._graph: MultiDiGraph[Any] | None = None
        self._graph_data_version: int | None = None

        # Cursor of the transaction currently open on this connection, if any
        self._tx_cursor: sqlite3.Cursor | None = None

        _schema.init_schema(self)
        logger.debug("Opened lore database %s (busy_timeout=%.1fs)", self.db_path, busy_timeout)

    def __del__(self) -> None:
        """Safety net for resource cleanup."""
        if hasattr(self, "_closed") and not self._closed:
            try:
                self.close()
            except Exception as e:
                # Log but don't raise during garbage collection
                logger.debug("Error during LoreDatabase cleanup in __del__: %s", e)

    def _ensure_open(self) -> None:
        """Raise DatabaseClosedError if the connection has been closed."""
        if self._closed:
            raise DatabaseClosedError(f"Database {self.db_path} is closed")

    @contextmanager
    def write_transaction(self) -> Iterator[sqlite3.Cursor]:
        """Run a block of writes as one immediate transaction.

        Commits when the block exits normally and rolls back on any exception.
        A block opened while another one is active on the same thread joins the
        outer transaction; only the outermost block commits or rolls back. A
        rollback also drops the cached graph, which may hold edges added inside it.

        Yields:
            Cursor bound to the open transaction.

        Raises:
            BusyError: If another connection holds the write lock past the busy timeout.
        """
        with self._lock:
            self._ensure_open()
            if self._tx_cursor is not None:
                yield self._tx_cursor
                return
            cursor = self.conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                self._tx_cursor = cursor
                try:
                    yield cursor
                except BaseException:
                    self.conn.rollback()
                    self._graph = None
                    raise
                finally:
                    self._tx_cursor = None
                self.conn.commit()
            except sqlite3.OperationalError as e:
                if self.conn.in_transaction:
                    self.conn.rollback()
                    self._graph = None
                if is_busy_error(e):
                    logger.warning("Write to %s failed on lock contention: %s", self.db_path, e)
                    raise BusyError(
                        f"database is busy (locked by another writer for more than "
                        f"{self.busy_timeout:g}s)"
                    ) from e
                raise

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._closed:
                return
            self.conn.close()
            self._closed = True
            self._graph = None
        logger.debug("Closed lore database %s", self.db_path)

    def __enter__(self) -> LoreDatabase:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        """Context manager exit - close connection."""
        self.close()
        return False

    # ========== Entity Registry ==========

    def resolve_entity(self, world_id: str, name: str) -> str:
        """Return the id of the entity named *name*, creating it on first reference."""
        return _entities.resolve_entity(self, world_id, name)

    def find_entity_by_name(self, world_id: str, name: str) -> Entity | None:
        """Find an entity by case-insensitive name without creating it."""
        return _entities.find_entity_by_name(self, world_id, name)

    def get_entity(self, entity_id: str) -> Entity | None:
        """Get an entity by ID."""
        return _entities.get_entity(self, entity_id)

    def find_entities_by_ids(self, entity_ids: list[str]) -> dict[str, Entity]:
        """Get several entities at once, keyed by ID."""
        return _entities.find_entities_by_ids(self, entity_ids)

    def list_entities(self, world_id: str, limit: int | None = None) -> list[Entity]:
        """List entities of a world ordered by name."""
        return _entities.list_entities(self, world_id, limit)

    def search_entities(
        self, world_id: str, query: str, limit: int | None = None
    ) -> list[Entity]:
        """Search entities of a world by name substring."""
        return _entities.search_entities(self, world_id, query, limit)

    def count_entities(self, world_id: str) -> int:
        """Count entities in a world."""
        return _entities.count_entities(self, world_id)

    def delete_entity(self, entity_id: str) -> bool:
        """Delete an entity and every relationship touching it."""
        return _entities.delete_entity(self, entity_id)

    # ========== Type Registry ==========

    def add_entity_type(self, name: str, description: str = "") -> EntityType:
        """Insert a new entity type."""
        return _entity_types.add_entity_type(self, name, description)

    def insert_missing_entity_types(self, types: dict[str, str]) -> int:
        """Insert each type that is not present yet; returns how many were added."""
        return _entity_types.insert_missing_entity_types(self, types)

    def get_entity_type(self, name: str) -> EntityType | None:
        """Get an entity type by name."""
        return _entity_types.get_entity_type(self, name)

    def list_entity_types(self) -> list[EntityType]:
        """List entity types ordered by name."""
        return _entity_types.list_entity_types(self)

    def delete_entity_type(self, name: str) -> bool:
        """Delete an entity type."""
        return _entity_types.delete_entity_type(self, name)

    # ========== Relationship Store ==========

    def create_relationship(
        self,
        world_id: str,
        source_name: str,
        relation_type: str,
        target_name: str,
        bidirectional: bool = False,
    ) -> Relationship:
        """Create a relationship between two named entities, creating them as needed."""
        return _relationships.create_relationship(
            self, world_id, source_name, relation_type, target_name, bidirectional
        )

    def delete_relationship(self, rel_id: str) -> Relationship:
        """Delete a relationship and return the removed row."""
        return _relationships.delete_relationship(self, rel_id)

    def get_relationship(self, rel_id: str) -> Relationship | None:
        """Get a relationship by ID."""
        return _relationships.get_relationship(self, rel_id)

    def find_relationship_between(
        self, source_id: str, target_id: str, relation_type: str | None = None
    ) -> Relationship | None:
        """Find a relationship from source to target, or a bidirectional one either way."""
        return _relationships.find_relationship_between(self, source_id, target_id, relation_type)

    def list_relationships_for_entity(self, entity_id: str) -> list[RelationshipView]:
        """List relationships visible from an entity, with endpoints resolved."""
        return _relationships.list_relationships_for_entity(self, entity_id)

    def list_relationships_by_type(
        self, relation_type: str, world_id: str | None = None
    ) -> list[Relationship]:
        """List relationships of one type."""
        return _relationships.list_relationships_by_type(self, relation_type, world_id)

    def list_relationships(self) -> list[Relationship]:
        """List all relationships."""
        return _relationships.list_relationships(self)

    def count_relationships(self, world_id: str | None = None) -> int:
        """Count relationships."""
        return _relationships.count_relationships(self, world_id)

    # ========== Graph Traversal ==========

    def get_graph(self) -> MultiDiGraph[Any]:
        """Get the relationship graph (lazy-loaded, refreshed after outside writes)."""
        return _graph.get_graph(self)

    def related_entities(
        self, start_id: str, depth: int, relation_type: str | None = None
    ) -> set[str]:
        """Entity IDs reachable from start_id within depth hops."""
        return _graph.related_entities(self, start_id, depth, relation_type)

    def invalidate_graph_cache(self) -> None:
        """Force graph rebuild on next access."""
        _graph.invalidate_graph(self)

    # ========== Fact Version Ledger ==========

    def record_version(
        self,
        fact_id: str,
        change_type: ChangeType | str,
        snapshot: Fact | dict[str, Any],
        reason: str = "",
    ) -> FactVersion:
        """Append the next version of a fact to the ledger."""
        return _versions.record_version(self, fact_id, change_type, snapshot, reason)

    def versions_of(self, fact_id: str, limit: int | None = None) -> list[FactVersion]:
        """Get versions of a fact, most recent first."""
        return _versions.versions_of(self, fact_id, limit)

    def latest_version(self, fact_id: str) -> FactVersion | None:
        """Get the highest version of a fact."""
        return _versions.latest_version(self, fact_id)

    def count_versions(self, fact_id: str) -> int:
        """Count versions recorded for a fact."""
        return _versions.count_versions(self, fact_id)

    # ========== Audit Log ==========

    def log_action(
        self, action: str, fact_id: str | None = None, details: dict[str, Any] | None = None
    ) -> int:
        """Append an audit entry and return its sequential ID."""
        return _audit.log_action(self, action, fact_id, details)

    def find_audit_by_fact(self, fact_id: str) -> list[AuditEntry]:
        """Get audit entries for a fact, most recent first."""
        return _audit.find_by_fact(self, fact_id)

    def find_audit_by_action(self, action: str, limit: int = 50) -> list[AuditEntry]:
        """Get the most recent audit entries for an action."""
        return _audit.find_by_action(self, action, limit)

    # ========== Facts ==========

    def save_facts(self, world_id: str, facts: list[Fact]) -> None:
        """Insert or replace facts of a world in one transaction."""
        _facts.save_facts(self, world_id, facts)

    def get_fact(self, world_id: str, fact_id: str) -> Fact | None:
        """Get a fact by ID."""
        return _facts.get_fact(self, world_id, fact_id)

    def list_facts(self, world_id: str, limit: int = 100, offset: int = 0) -> list[Fact]:
        """List facts of a world, newest first."""
        return _facts.list_facts(self, world_id, limit, offset)

    def list_facts_by_type(self, world_id: str, fact_type: str, limit: int = 100) -> list[Fact]:
        """List facts of one type, newest first."""
        return _facts.list_facts_by_type(self, world_id, fact_type, limit)

    def list_facts_by_source(self, world_id: str, source_file: str) -> list[Fact]:
        """List facts extracted from one source."""
        return _facts.list_facts_by_source(self, world_id, source_file)

    def delete_fact(self, world_id: str, fact_id: str) -> bool:
        """Delete a fact."""
        return _facts.delete_fact(self, world_id, fact_id)

    def delete_facts_by_source(self, world_id: str, source_file: str) -> int:
        """Delete all facts from one source; returns how many were removed."""
        return _facts.delete_facts_by_source(self, world_id, source_file)

    def delete_all_facts(self, world_id: str) -> int:
        """Delete every fact of a world; returns how many were removed."""
        return _facts.delete_all_facts(self, world_id)

    def count_facts(self, world_id: str) -> int:
        """Count facts in a world."""
        return _facts.count_facts(self, world_id)


__all__ = [
    "MAX_TRAVERSAL_DEPTH",
    "SCHEMA_VERSION",
    "LoreDatabase",
    "is_busy_error",
    "validate_relation_type",
]
