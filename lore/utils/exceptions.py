"""Centralized exception hierarchy for Lore.

Exception Hierarchy:

    LoreError (base for all application errors)
    ├── ValidationError (input validation failures)
    │   ├── InvalidRelationshipTypeError (relation type outside the vocabulary)
    │   ├── InvalidDepthError (traversal depth outside 1-5)
    │   └── InvalidNameError (entity type name fails the naming rule)
    ├── NotFoundError (relationship/entity type lookup miss)
    ├── AlreadyExistsError (duplicate entity type)
    ├── ProtectedDefaultError (removal of a default entity type)
    ├── BusyError (database lock contention past the busy timeout)
    ├── DatabaseClosedError (database accessed after close)
    ├── LLMError (LLM/Ollama related errors)
    └── ConfigError (configuration parsing/validation failures)

Usage:
    from lore.utils.exceptions import LoreError, NotFoundError

    try:
        relationships.delete(ctx, rel_id)
    except NotFoundError:
        logger.warning("Relationship already gone")
    except LoreError as e:
        print(f"Error: {e}")
"""

import logging

logger = logging.getLogger(__name__)


class LoreError(Exception):
    """Base exception for all Lore errors.

    All custom exceptions inherit from this class so command handlers can
    surface any application error with a single except clause.
    """

    pass


class ValidationError(LoreError):
    """Base exception for validation errors.

    Raised when caller input fails validation.
    """

    pass


class InvalidRelationshipTypeError(ValidationError):
    """Raised when a relationship type is not part of the fixed vocabulary.

    Attributes:
        relation_type: The rejected type.
        valid_types: The accepted vocabulary, in display order.
    """

    def __init__(self, relation_type: str, valid_types: list[str]):
        super().__init__(
            f"invalid relationship type: {relation_type} (valid: {', '.join(valid_types)})"
        )
        self.relation_type = relation_type
        self.valid_types = valid_types
        logger.debug("InvalidRelationshipTypeError initialized: relation_type=%s", relation_type)


class InvalidDepthError(ValidationError):
    """Raised when a traversal depth is outside the supported range."""

    def __init__(self, depth: int, min_depth: int = 1, max_depth: int = 5):
        super().__init__(f"depth must be between {min_depth} and {max_depth}")
        self.depth = depth
        self.min_depth = min_depth
        self.max_depth = max_depth


class InvalidNameError(ValidationError):
    """Raised when an entity type name fails the naming rule.

    Names must be lowercase letters, digits and underscores, starting with a letter.
    """

    def __init__(self, name: str):
        super().__init__(
            f"invalid type name {name!r}: must be lowercase, start with a letter, "
            "and contain only letters, digits and underscores"
        )
        self.name = name


class NotFoundError(LoreError):
    """Raised when a relationship or entity type does not exist.

    Attributes:
        kind: What was looked up ("relationship", "entity type", ...).
        key: The identifier or name that missed.
    """

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class AlreadyExistsError(LoreError):
    """Raised when creating something that already exists."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} already exists: {key}")
        self.kind = kind
        self.key = key


class ProtectedDefaultError(LoreError):
    """Raised when removing one of the built-in default entity types."""

    def __init__(self, name: str):
        super().__init__(f"cannot remove default type: {name}")
        self.name = name


class BusyError(LoreError):
    """Raised when the database stays locked by another writer past the busy timeout.

    The operation did not take effect and may be retried by the caller.
    """

    pass


class DatabaseClosedError(LoreError):
    """Raised when a database operation is attempted on a closed connection.

    This indicates a caller kept a LoreDatabase reference past close().
    """

    pass


class LLMError(LoreError):
    """Raised when an LLM operation fails.

    Covers Ollama response errors and structured output that could not be
    validated after all retries.
    """

    pass


class ConfigError(LoreError):
    """Raised when configuration parsing or validation fails."""

    pass
