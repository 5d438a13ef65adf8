"""Models for the lore knowledge base: graph records, history records and facts."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class RelationType(StrEnum):
    """Fixed vocabulary of relationship types between entities."""

    PARENT = "parent"
    CHILD = "child"
    SIBLING = "sibling"
    SPOUSE = "spouse"
    ALLY = "ally"
    ENEMY = "enemy"
    LOCATED_IN = "located_in"
    OWNS = "owns"
    MEMBER_OF = "member_of"
    CREATED = "created"


VALID_RELATION_TYPES: list[str] = [t.value for t in RelationType]


class ChangeType(StrEnum):
    """Kind of change recorded in the fact version ledger."""

    CREATION = "creation"
    UPDATE = "update"
    DELETION = "deletion"


class Severity(StrEnum):
    """Severity of a consistency issue, lowest to highest."""

    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


def normalize_name(name: str) -> str:
    """Return the identity key used to match entity names within a world."""
    return name.strip().lower()


class Entity(BaseModel):
    """A named thing in a world (person, place, faction) that relationships connect."""

    id: str
    world_id: str
    name: str  # caller casing from first mention
    normalized_name: str
    created_at: datetime = Field(default_factory=datetime.now)


class Relationship(BaseModel):
    """A typed edge between two entities."""

    id: str
    source_entity_id: str
    target_entity_id: str
    type: RelationType
    bidirectional: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class RelationshipView(BaseModel):
    """A relationship with its endpoint entities resolved for display.

    An endpoint is None only if its entity row disappeared underneath the edge.
    """

    relationship: Relationship
    source: Entity | None = None
    target: Entity | None = None

    def describe(self) -> str:
        """One-line rendering such as ``Frodo --ally--> Sam``."""
        source = self.source.name if self.source else self.relationship.source_entity_id
        target = self.target.name if self.target else self.relationship.target_entity_id
        arrow = "<->" if self.relationship.bidirectional else "-->"
        return f"{source} --{self.relationship.type.value}{arrow} {target}"


class EntityType(BaseModel):
    """A registered fact/entity type name."""

    name: str
    description: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


class FactVersion(BaseModel):
    """An immutable snapshot of a fact at one committed change."""

    id: str
    fact_id: str
    version: int
    change_type: ChangeType
    data_snapshot: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


class AuditEntry(BaseModel):
    """A single entry of the append-only audit log."""

    id: int
    action: str
    fact_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class Fact(BaseModel):
    """An atomic subject-predicate-object statement about a world."""

    id: str = ""
    type: str
    subject: str
    predicate: str
    object: str
    context: str = ""
    source_file: str = ""
    source_line: int = 0
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def as_text(self) -> str:
        """Render the fact as a sentence for prompts and listings."""
        text = f"{self.subject} {self.predicate} {self.object}"
        if self.context:
            text += f" ({self.context})"
        return text


class ConsistencyIssue(BaseModel):
    """A conflict between a newly extracted fact and a persisted one."""

    new_fact_index: int
    existing_fact_index: int
    new_fact: Fact
    existing_fact: Fact
    description: str
    severity: Severity

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL
