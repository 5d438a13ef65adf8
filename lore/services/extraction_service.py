"""Extraction service - turns free text into facts and checks them against the store."""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from lore.memory.entities import ConsistencyIssue, Fact
from lore.memory.fact_store import FactStore
from lore.services.context import RequestContext
from lore.services.entity_type_service import EntityTypeService
from lore.utils.logging_config import log_performance

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 2000
DEFAULT_CHUNK_OVERLAP = 200


class FactExtractor(Protocol):
    def extract_facts(self, text: str, valid_types: str) -> list[Fact]: ...


class ConsistencyChecker(Protocol):
    def check_consistency(
        self, new: list[Fact], existing: list[Fact]
    ) -> list[ConsistencyIssue]: ...


class FactAnalyzer(FactExtractor, ConsistencyChecker, Protocol):
    """Both collaborator contracts; OllamaFactAnalyzer implements this."""


@dataclass
class ExtractionOptions:
    """Controls one extraction run.

    Attributes:
        check_consistency: Compare new facts against stored facts of the same types.
        check_only: Extract and compare but do not persist.
    """

    check_consistency: bool = True
    check_only: bool = False


@dataclass
class ExtractionResult:
    facts: list[Fact] = field(default_factory=list)
    issues: list[ConsistencyIssue] = field(default_factory=list)


def _overlap_tail(text: str, overlap: int) -> str:
    if overlap <= 0:
        return ""
    return text[-overlap:]


def chunk_text(
    text: str, size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_CHUNK_OVERLAP
) -> list[str]:
    """Split text into chunks of at most roughly *size* characters.

    Paragraphs (separated by blank lines) are packed into a chunk until the next one
    would overflow it; the following chunk starts with the last *overlap* characters
    of the previous one. A single paragraph longer than *size* is kept whole.
    """
    if len(text) <= size:
        return [text]

    chunks: list[str] = []
    current = ""
    for paragraph in text.split("\n\n"):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if current and len(current) + len(paragraph) + 2 > size:
            chunks.append(current)
            current = _overlap_tail(current, overlap)
        current = f"{current}\n\n{paragraph}" if current else paragraph

    if current:
        chunks.append(current)
    if not chunks and text:
        chunks.append(text)
    return chunks


class ExtractionService:
    """Extract facts from text chunk by chunk, then optionally check and store them."""

    def __init__(
        self,
        fact_stores: Callable[[str], FactStore],
        analyzer: FactAnalyzer,
        entity_types: EntityTypeService,
    ):
        self.fact_stores = fact_stores
        self.analyzer = analyzer
        self.entity_types = entity_types

    def _extract_chunks(self, ctx: RequestContext, text: str, source: str) -> list[Fact]:
        valid_types = self.entity_types.build_prompt_type_list()
        chunks = chunk_text(text, ctx.settings.chunk_size, ctx.settings.chunk_overlap)
        logger.debug("Extracting from %d chunk(s) of %r", len(chunks), source)

        facts: list[Fact] = []
        for chunk in chunks:
            now = datetime.now()
            for fact in self.analyzer.extract_facts(chunk, valid_types):
                facts.append(
                    fact.model_copy(
                        update={
                            "id": str(uuid.uuid4()),
                            "source_file": source,
                            "created_at": now,
                            "updated_at": now,
                        }
                    )
                )
        return facts

    def _existing_candidates(self, ctx: RequestContext, facts: list[Fact]) -> list[Fact]:
        """Stored facts sharing a type with any new fact, deduplicated by ID."""
        store = self.fact_stores(ctx.world_id)
        limit = ctx.settings.consistency_candidates_per_type
        new_ids = {fact.id for fact in facts}
        seen: set[str] = set()
        existing: list[Fact] = []
        for fact_type in dict.fromkeys(fact.type for fact in facts):
            for candidate in store.list_by_type(fact_type, limit):
                if candidate.id in seen or candidate.id in new_ids:
                    continue
                seen.add(candidate.id)
                existing.append(candidate)
        return existing

    def extract(
        self,
        ctx: RequestContext,
        text: str,
        source: str,
        options: ExtractionOptions | None = None,
    ) -> ExtractionResult:
        """Extract facts from *text* attributed to *source*.

        Consistency checking also requires `consistency_check_enabled` in settings.

        Raises:
            LLMError: If extraction or the consistency call fails.
        """
        options = options or ExtractionOptions()
        with log_performance(logger, "extract"):
            facts = self._extract_chunks(ctx, text, source)
            if not facts:
                logger.info("No facts extracted from %r", source)
                return ExtractionResult()

            result = ExtractionResult(facts=facts)
            if options.check_consistency and ctx.settings.consistency_check_enabled:
                existing = self._existing_candidates(ctx, facts)
                if existing:
                    result.issues = self.analyzer.check_consistency(facts, existing)
                logger.debug(
                    "Checked %d new facts against %d existing: %d issue(s)",
                    len(facts),
                    len(existing),
                    len(result.issues),
                )

            if not options.check_only:
                self.fact_stores(ctx.world_id).save_batch(facts)

        logger.info("Extracted %d facts from %r", len(facts), source)
        return result
