"""Fact service - keeps the fact store, version ledger and audit log in step."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from lore.memory.entities import ChangeType, Fact, FactVersion
from lore.memory.fact_store import FactStore
from lore.memory.lore_database import LoreDatabase
from lore.services.context import RequestContext
from lore.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class FactService:
    """Write path for facts.

    The ledger never touches the fact store by itself; this service performs the
    store write, the matching versions and the audit entry in one transaction of
    the lore database, so a failure part way leaves none of them behind. A fact
    store kept outside the lore database does not take part in that transaction.
    """

    def __init__(self, db: LoreDatabase, fact_stores: Callable[[str], FactStore]):
        self.db = db
        self.fact_stores = fact_stores

    def save_batch(
        self, ctx: RequestContext, facts: list[Fact], reason: str = "", source: str = ""
    ) -> int:
        """Store new facts as one batch and record a creation version for each.

        Returns:
            Number of facts saved.
        """
        if not facts:
            return 0
        with self.db.write_transaction():
            self.fact_stores(ctx.world_id).save_batch(facts)
            for fact in facts:
                self.db.record_version(fact.id, ChangeType.CREATION, fact, reason)
            self.db.log_action(
                "facts.save",
                details={"world": ctx.world_id, "count": len(facts), "source": source},
            )
        logger.info("Saved %d facts to %s", len(facts), ctx.world_id)
        return len(facts)

    def update(self, ctx: RequestContext, fact: Fact, reason: str = "") -> FactVersion:
        """Replace a stored fact and record an update version.

        Raises:
            NotFoundError: If the fact is not in the store.
        """
        store = self.fact_stores(ctx.world_id)
        if store.get(fact.id) is None:
            raise NotFoundError("fact", fact.id)
        updated = fact.model_copy(update={"updated_at": datetime.now()})
        with self.db.write_transaction():
            store.save(updated)
            version = self.db.record_version(fact.id, ChangeType.UPDATE, updated, reason)
            self.db.log_action(
                "fact.update", fact_id=fact.id, details={"world": ctx.world_id, "reason": reason}
            )
        logger.info("Updated fact %s to version %d", fact.id, version.version)
        return version

    def delete(self, ctx: RequestContext, fact_id: str, reason: str = "") -> FactVersion:
        """Delete a fact and record a deletion version holding its last state.

        Raises:
            NotFoundError: If the fact is not in the store.
        """
        store = self.fact_stores(ctx.world_id)
        fact = store.get(fact_id)
        if fact is None:
            raise NotFoundError("fact", fact_id)
        with self.db.write_transaction():
            store.delete(fact_id)
            version = self.db.record_version(fact_id, ChangeType.DELETION, fact, reason)
            self.db.log_action(
                "fact.delete", fact_id=fact_id, details={"world": ctx.world_id, "reason": reason}
            )
        logger.info("Deleted fact %s (version %d)", fact_id, version.version)
        return version

    def history(self, fact_id: str, limit: int | None = None) -> list[FactVersion]:
        """Versions of a fact, most recent first."""
        return self.db.versions_of(fact_id, limit)
