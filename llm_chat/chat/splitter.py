"""Tee an upstream byte stream to the client and to a token accumulator."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from llm_chat.chat.inference import ByteStream
    from llm_chat.core.sse import TokenAccumulator

LOGGER = logging.getLogger(__name__)


def _safe_feed(accumulator: TokenAccumulator, chunk: bytes) -> None:
    try:
        accumulator.feed(chunk)
    except Exception:
        LOGGER.exception("Failed to accumulate stream chunk")


async def tee_stream(
    source: ByteStream,
    accumulator: TokenAccumulator,
    on_complete: Callable[[str], None],
) -> AsyncGenerator[bytes, None]:
    """Yield every upstream chunk unchanged, accumulating it after forwarding.

    ``on_complete`` receives the accumulated text exactly once, whether the
    stream ends normally, the upstream fails, or the client goes away.
    """
    stream_start = perf_counter()
    unparsed: bytes | None = None
    try:
        async for chunk in source:
            unparsed = chunk
            yield chunk
            unparsed = None
            _safe_feed(accumulator, chunk)
    except Exception:
        LOGGER.exception("Upstream stream failed after %d line(s)", accumulator.lines_seen)
        raise
    finally:
        # The client may have disconnected while a chunk was in flight.
        if unparsed is not None:
            _safe_feed(accumulator, unparsed)
        try:
            accumulator.finish()
        except Exception:
            LOGGER.exception("Failed to flush stream accumulator")
        text = accumulator.text
        LOGGER.info(
            "Streaming response finished in %.1f ms (%d chars)",
            (perf_counter() - stream_start) * 1000,
            len(text),
        )
        try:
            on_complete(text)
        except Exception:
            LOGGER.exception("Stream completion callback failed")
        await source.aclose()
