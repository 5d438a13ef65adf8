"""Streaming helpers for Ollama chat responses.

Extraction and consistency prompts are sent with stream=True so that a slow
model does not hit the HTTP read timeout; the chunks are folded back into a
single response dict here. A watchdog aborts the stream when chunks stop
arriving or the whole response takes too long.
"""

import logging
import threading
import time
from collections.abc import Iterator
from typing import Any

import httpcore

logger = logging.getLogger(__name__)

_DEFAULT_INTER_CHUNK_TIMEOUT = 120  # seconds between chunks
_DEFAULT_WALL_CLOCK_TIMEOUT = 600  # 10 minutes absolute max


class StreamTimeoutError(TimeoutError):
    """Raised when a streaming response exceeds the configured timeout.

    Attributes:
        partial_content_length: Number of characters received before timeout.
        elapsed_seconds: Wall-clock time elapsed before timeout.
        timeout_type: Either "inter_chunk" or "wall_clock".
    """

    def __init__(
        self,
        message: str,
        *,
        partial_content_length: int = 0,
        elapsed_seconds: float = 0.0,
        timeout_type: str = "inter_chunk",
    ):
        super().__init__(message)
        self.partial_content_length = partial_content_length
        self.elapsed_seconds = elapsed_seconds
        self.timeout_type = timeout_type


def consume_stream(
    stream: Iterator[Any],
    *,
    inter_chunk_timeout: int | None = None,
    wall_clock_timeout: int | None = None,
) -> dict[str, Any]:
    """Fold a streaming Ollama chat response into a single response dict.

    Args:
        stream: Iterator of ChatResponse chunks from client.chat(stream=True).
        inter_chunk_timeout: Max seconds between chunks (None = default 120s).
        wall_clock_timeout: Max total seconds for the stream (None = default 600s).

    Returns:
        Dict with 'message.content', 'prompt_eval_count' and 'eval_count'.

    Raises:
        StreamTimeoutError: If inter-chunk or wall-clock timeout is exceeded.
        ConnectionError: If the stream is interrupted by a network error.
    """
    inter_chunk = (
        inter_chunk_timeout if inter_chunk_timeout is not None else _DEFAULT_INTER_CHUNK_TIMEOUT
    )
    wall_clock = (
        wall_clock_timeout if wall_clock_timeout is not None else _DEFAULT_WALL_CLOCK_TIMEOUT
    )

    content_parts: list[str] = []
    prompt_eval_count: int | None = None
    eval_count: int | None = None

    stalled = threading.Event()
    timer: threading.Timer | None = None

    def _rearm() -> None:
        nonlocal timer
        if timer is not None:
            timer.cancel()
        timer = threading.Timer(inter_chunk, stalled.set)
        timer.daemon = True
        timer.start()

    start_time = time.monotonic()
    _rearm()

    try:
        for chunk in stream:
            elapsed = time.monotonic() - start_time
            received = sum(len(p) for p in content_parts)
            if elapsed > wall_clock:
                logger.error(
                    "Stream wall-clock timeout after %.1fs (limit=%ds, partial_content=%d chars)",
                    elapsed,
                    wall_clock,
                    received,
                )
                raise StreamTimeoutError(
                    f"Stream exceeded wall-clock timeout of {wall_clock}s",
                    partial_content_length=received,
                    elapsed_seconds=elapsed,
                    timeout_type="wall_clock",
                )
            if stalled.is_set():
                logger.error(
                    "Stream inter-chunk timeout: no chunk for %ds (partial_content=%d chars)",
                    inter_chunk,
                    received,
                )
                raise StreamTimeoutError(
                    f"No stream chunk received for {inter_chunk}s",
                    partial_content_length=received,
                    elapsed_seconds=elapsed,
                    timeout_type="inter_chunk",
                )

            _rearm()

            if chunk.message and chunk.message.content:
                content_parts.append(chunk.message.content)
            if chunk.done:
                prompt_eval_count = getattr(chunk, "prompt_eval_count", None)
                eval_count = getattr(chunk, "eval_count", None)
    except (
        httpcore.RemoteProtocolError,
        httpcore.ReadError,
        httpcore.NetworkError,
    ) as e:
        logger.error("Ollama stream interrupted mid-response: %s", e)
        raise ConnectionError(f"Ollama stream interrupted: {e}") from e
    finally:
        if timer is not None:
            timer.cancel()

    content = "".join(content_parts)
    logger.debug(
        "Stream consumed: %d chunks, %d chars, %.2fs",
        len(content_parts),
        len(content),
        time.monotonic() - start_time,
    )

    return {
        "message": {"content": content},
        "prompt_eval_count": prompt_eval_count,
        "eval_count": eval_count,
    }
