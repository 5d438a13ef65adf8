"""Logging configuration for Lore.

Every record carries the world it concerns and a correlation ID. Commands run
under one ID each; a watch session switches to a per-batch ID while a batch is
extracted and checked, so all lines of one batch can be grepped together.
"""

import logging
import sys
import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Default log file location
DEFAULT_LOG_FILE = Path(__file__).parent.parent.parent / "logs" / "lore.log"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(world_id)s:%(correlation_id)s] %(name)s: %(message)s"

# Rotate at 10MB, keep 5 backups
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Libraries whose INFO chatter (one line per HTTP request) drowns out ours
QUIET_LOGGERS = ("httpx", "httpcore", "ollama")


class ContextFilter(logging.Filter):
    """Stamp the current world and correlation ID onto log records."""

    def __init__(self) -> None:
        super().__init__()
        self.correlation_id: str | None = None
        self.world_id: str | None = None

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = self.correlation_id or "-"
        record.world_id = self.world_id or "-"
        return True


class FlushingRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that flushes immediately after each log."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


# Global context filter instance
_context_filter = ContextFilter()


def _resolve_log_path(log_file: str | None) -> Path | None:
    if log_file == "default":
        return DEFAULT_LOG_FILE
    return Path(log_file) if log_file else None


def setup_logging(level: str = "INFO", log_file: str | None = "default") -> None:
    """Configure the root logger for a CLI run.

    Console output goes to stderr so that command output on stdout stays
    parseable. Calling this again replaces the previous handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR); unknown names mean INFO.
        log_file: File path for logs. "default" uses logs/lore.log,
                  None disables file logging.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    log_path = _resolve_log_path(log_file)
    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            FlushingRotatingFileHandler(
                log_path,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )

    # Filter must be on HANDLERS, not logger, for child logger records
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        handler.addFilter(_context_filter)
        root_logger.addHandler(handler)

    if log_path:
        root_logger.debug("Logging to file: %s", log_path)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(
    correlation_id: str | None = None,
    world_id: str | None = None,
    prefix: str | None = None,
) -> Generator[str]:
    """Set the correlation ID (and optionally the world) for records logged in the block.

    Args:
        correlation_id: ID to use. If not provided, a short random one is generated.
        world_id: World to stamp on records; None keeps the enclosing one.
        prefix: Prepended to a generated ID, e.g. "relate" gives "relate-1a2b3c4d".

    Yields:
        The correlation ID being used.

    Example:
        with log_context(prefix="watch", world_id="middle-earth"):
            logger.info("Session started")
    """
    if correlation_id is None:
        correlation_id = uuid.uuid4().hex[:8]
        if prefix:
            correlation_id = f"{prefix}-{correlation_id}"

    old_id = _context_filter.correlation_id
    old_world = _context_filter.world_id
    _context_filter.correlation_id = correlation_id
    if world_id is not None:
        _context_filter.world_id = world_id
    try:
        yield correlation_id
    finally:
        _context_filter.correlation_id = old_id
        _context_filter.world_id = old_world


@contextmanager
def log_performance(logger: logging.Logger, operation: str) -> Generator[None]:
    """Log the start, duration and outcome of an operation.

    Example:
        with log_performance(logger, "extract"):
            analyzer.extract_facts(text, types)
    """
    start_time = time.perf_counter()
    logger.info("%s: Starting", operation)
    try:
        yield
    except Exception as e:
        logger.error(
            "%s: Failed after %.2fs - %s", operation, time.perf_counter() - start_time, e
        )
        raise
    logger.info("%s: Completed in %.2fs", operation, time.perf_counter() - start_time)
