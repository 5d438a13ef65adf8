"""Validation functions for Settings."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from lore.utils.logging_config import LOG_LEVELS

if TYPE_CHECKING:
    from lore.settings._settings import Settings

logger = logging.getLogger(__name__)

_WORLD_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def validate(settings: Settings) -> bool:
    """Validate all settings fields.

    Returns:
        True if any settings were normalized in place, False otherwise.

    Raises:
        ValueError: If any field contains an invalid value.
    """
    changed = _normalize_log_level(settings)
    _validate_log_level(settings)
    _validate_url(settings)
    _validate_world(settings)
    _validate_database(settings)
    _validate_llm(settings)
    _validate_extraction(settings)
    _validate_watch(settings)
    return changed


def _normalize_log_level(settings: Settings) -> bool:
    """Upper-case log_level so "debug" and "DEBUG" are equivalent."""
    if isinstance(settings.log_level, str) and settings.log_level != settings.log_level.upper():
        logger.info("Normalizing log_level %r to upper case", settings.log_level)
        settings.log_level = settings.log_level.upper()
        return True
    return False


def _validate_log_level(settings: Settings) -> None:
    """Validate log_level is a known logging level."""
    if settings.log_level not in LOG_LEVELS:
        raise ValueError(f"log_level must be one of {list(LOG_LEVELS)}, got {settings.log_level}")


def _validate_url(settings: Settings) -> None:
    """Validate URL format for ollama_url."""
    try:
        parsed = urlparse(settings.ollama_url)
    except (AttributeError, TypeError) as e:
        raise ValueError(f"Invalid ollama_url: {settings.ollama_url} - {e}") from e
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"Invalid URL scheme in ollama_url: {settings.ollama_url}")
    if not parsed.netloc:
        raise ValueError(f"Invalid URL (missing host) in ollama_url: {settings.ollama_url}")


def _validate_world(settings: Settings) -> None:
    """Validate the default world name."""
    if not _WORLD_NAME_PATTERN.fullmatch(settings.default_world or ""):
        raise ValueError(
            "default_world must start with a letter or digit and contain only letters, "
            f"digits, '_', '.' or '-', got {settings.default_world!r}"
        )


def _validate_database(settings: Settings) -> None:
    """Validate database path and lock handling."""
    if not settings.database_path:
        raise ValueError("database_path must not be empty")
    if not 0 < settings.busy_timeout_seconds <= 60:
        raise ValueError(
            f"busy_timeout_seconds must be between 0 and 60, got {settings.busy_timeout_seconds}"
        )
    if not 1 <= settings.default_traversal_depth <= 5:
        raise ValueError(
            f"default_traversal_depth must be between 1 and 5, "
            f"got {settings.default_traversal_depth}"
        )
    if not 1 <= settings.audit_list_limit <= 1000:
        raise ValueError(
            f"audit_list_limit must be between 1 and 1000, got {settings.audit_list_limit}"
        )


def _validate_llm(settings: Settings) -> None:
    """Validate Ollama client and generation settings."""
    if not settings.extraction_model:
        raise ValueError("extraction_model must not be empty")
    if not 1 <= settings.ollama_timeout <= 3600:
        raise ValueError(
            f"ollama_timeout must be between 1 and 3600, got {settings.ollama_timeout}"
        )
    if not 1024 <= settings.context_size <= 128000:
        raise ValueError(
            f"context_size must be between 1024 and 128000, got {settings.context_size}"
        )
    if not 0.0 <= settings.extraction_temperature <= 2.0:
        raise ValueError(
            f"extraction_temperature must be between 0.0 and 2.0, "
            f"got {settings.extraction_temperature}"
        )
    if not 1 <= settings.llm_max_retries <= 10:
        raise ValueError(
            f"llm_max_retries must be between 1 and 10, got {settings.llm_max_retries}"
        )
    if not 1 <= settings.stream_inter_chunk_timeout <= settings.stream_wall_clock_timeout:
        raise ValueError(
            "stream_inter_chunk_timeout must be at least 1 and not exceed "
            f"stream_wall_clock_timeout, got {settings.stream_inter_chunk_timeout} "
            f"(wall clock {settings.stream_wall_clock_timeout})"
        )


def _validate_extraction(settings: Settings) -> None:
    """Validate chunking and consistency-check settings."""
    if not 100 <= settings.chunk_size <= 100000:
        raise ValueError(f"chunk_size must be between 100 and 100000, got {settings.chunk_size}")
    if not 0 <= settings.chunk_overlap < settings.chunk_size:
        raise ValueError(
            f"chunk_overlap must be between 0 and chunk_size ({settings.chunk_size}), "
            f"got {settings.chunk_overlap}"
        )
    if not 1 <= settings.consistency_candidates_per_type <= 200:
        raise ValueError(
            f"consistency_candidates_per_type must be between 1 and 200, "
            f"got {settings.consistency_candidates_per_type}"
        )


def _validate_watch(settings: Settings) -> None:
    """Validate interactive watch session defaults."""
    if not settings.watch_source.strip():
        raise ValueError("watch_source must not be empty")
