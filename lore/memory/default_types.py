"""Built-in entity types seeded into every database.

These names are protected: they can be described and listed like any other
type but never removed.
"""

import re

# Lowercase letters, digits and underscores; must start with a letter
TYPE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

DEFAULT_ENTITY_TYPES: dict[str, str] = {
    "character": "People, beings, named entities in the world",
    "location": "Places, regions, buildings, geographical features",
    "event": "Historical events, battles, ceremonies, occurrences",
    "relationship": "Connections between entities (ally, enemy, family)",
    "rule": "Laws, customs, magic rules, world mechanics",
    "timeline": "Temporal facts, dates, sequences, eras",
}


def is_default_type(name: str) -> bool:
    """Check whether a type name is one of the protected defaults."""
    return name in DEFAULT_ENTITY_TYPES


def is_valid_type_name(name: str) -> bool:
    """Check a (normalized) type name against the naming rule."""
    return bool(TYPE_NAME_PATTERN.fullmatch(name))
