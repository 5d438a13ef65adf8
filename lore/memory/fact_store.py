"""Fact store interface and the SQLite-backed implementation.

The staging pipeline and the services only talk to the FactStore protocol, so a
vector store that computes embeddings can be dropped in without touching them.
SqliteFactStore keeps facts in the lore database and stores whatever embedding a
fact already carries without computing or comparing any.
"""

from __future__ import annotations

import logging
from typing import Protocol

from lore.memory.entities import Fact
from lore.memory.lore_database import LoreDatabase

logger = logging.getLogger(__name__)


class FactStore(Protocol):
    """Storage for the facts of one world."""

    def save(self, fact: Fact) -> None: ...

    def save_batch(self, facts: list[Fact]) -> None: ...

    def get(self, fact_id: str) -> Fact | None: ...

    def list(self, limit: int = 100, offset: int = 0) -> list[Fact]: ...

    def list_by_type(self, fact_type: str, limit: int = 100) -> list[Fact]: ...

    def list_by_source(self, source_file: str) -> list[Fact]: ...

    def delete(self, fact_id: str) -> bool: ...

    def delete_by_source(self, source_file: str) -> int: ...

    def delete_all(self) -> int: ...

    def count(self) -> int: ...


class SqliteFactStore:
    """FactStore for one world backed by the facts table of a LoreDatabase."""

    def __init__(self, db: LoreDatabase, world_id: str):
        self.db = db
        self.world_id = world_id

    def save(self, fact: Fact) -> None:
        self.db.save_facts(self.world_id, [fact])

    def save_batch(self, facts: list[Fact]) -> None:
        """Save all facts in one transaction; either all are stored or none."""
        self.db.save_facts(self.world_id, facts)
        logger.info("Saved batch of %d facts to world %s", len(facts), self.world_id)

    def get(self, fact_id: str) -> Fact | None:
        return self.db.get_fact(self.world_id, fact_id)

    def list(self, limit: int = 100, offset: int = 0) -> list[Fact]:
        return self.db.list_facts(self.world_id, limit, offset)

    def list_by_type(self, fact_type: str, limit: int = 100) -> list[Fact]:
        return self.db.list_facts_by_type(self.world_id, fact_type, limit)

    def list_by_source(self, source_file: str) -> list[Fact]:
        return self.db.list_facts_by_source(self.world_id, source_file)

    def delete(self, fact_id: str) -> bool:
        return self.db.delete_fact(self.world_id, fact_id)

    def delete_by_source(self, source_file: str) -> int:
        return self.db.delete_facts_by_source(self.world_id, source_file)

    def delete_all(self) -> int:
        return self.db.delete_all_facts(self.world_id)

    def count(self) -> int:
        return self.db.count_facts(self.world_id)
