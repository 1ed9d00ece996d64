"""Server-Sent Events helpers for token streams.

The inference endpoint emits one JSON payload per event, e.g.::

    data: {"response": "Hel"}

    data: {"response": "lo"}

    data: [DONE]

``SSELineDecoder`` turns arbitrary byte chunks into complete lines and
``TokenAccumulator`` rebuilds the reply text from those lines.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from llm_chat.constants import SSE_DATA_PREFIX, SSE_DONE_LINE

LOGGER = logging.getLogger(__name__)


class SSELineDecoder:
    """Incremental splitter of a byte stream into newline-terminated lines."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return the lines it completed."""
        self._buffer += self._decoder.decode(chunk)
        *complete, self._buffer = self._buffer.split("\n")
        return [line for line in map(_strip_cr, complete) if _is_candidate(line)]

    def flush(self) -> list[str]:
        """Return the unterminated remainder as a final line, if any."""
        remainder = _strip_cr(self._buffer + self._decoder.decode(b"", final=True))
        self._buffer = ""
        return [remainder] if _is_candidate(remainder) else []


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def _is_candidate(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not is_done_line(stripped)


def is_done_line(line: str) -> bool:
    """Return True for the end-of-stream marker, with or without a space."""
    payload = line.strip()
    if not payload.startswith(SSE_DATA_PREFIX):
        return False
    return payload[len(SSE_DATA_PREFIX) :].strip() == "[DONE]"


def parse_chunk(line: str) -> dict[str, Any] | None:
    """Decode the JSON payload of one SSE line, or None if there is none."""
    payload = line.strip()
    if payload.startswith(SSE_DATA_PREFIX):
        payload = payload[len(SSE_DATA_PREFIX) :].strip()
    if not payload or payload == "[DONE]":
        return None
    try:
        parsed = json.loads(payload)
    except ValueError:
        LOGGER.debug("Skipping malformed SSE line: %r", line)
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_response_token(chunk: dict[str, Any]) -> str:
    """Return the incremental text of a native ``{"response": ...}`` event."""
    token = chunk.get("response")
    return token if isinstance(token, str) else ""


def extract_openai_delta(chunk: dict[str, Any]) -> str:
    """Return the incremental text of an OpenAI chat-completion chunk."""
    choices = chunk.get("choices") or [{}]
    delta = choices[0].get("delta") or {}
    piece = delta.get("content") or delta.get("text") or ""
    return piece if isinstance(piece, str) else ""


def format_event(token: str) -> str:
    """Encode a token as one native SSE event."""
    return f"data: {json.dumps({'response': token})}\n\n"


def format_done() -> str:
    """Encode the end-of-stream marker."""
    return f"{SSE_DONE_LINE}\n\n"


@dataclass
class TokenAccumulator:
    """Rebuilds the full reply from a token stream."""

    text_chunks: list[str] = field(default_factory=list)
    lines_seen: int = 0
    decoder: SSELineDecoder = field(default_factory=SSELineDecoder, repr=False)

    def feed_line(self, line: str) -> None:
        """Parse one SSE line and append its token, if it carries one."""
        self.lines_seen += 1
        chunk = parse_chunk(line)
        if chunk is None:
            return
        token = extract_response_token(chunk)
        if token:
            self.text_chunks.append(token)

    def feed(self, chunk: bytes) -> None:
        """Run a raw byte chunk through the line decoder."""
        for line in self.decoder.feed(chunk):
            self.feed_line(line)

    def finish(self) -> None:
        """Consume whatever is left in the line decoder."""
        for line in self.decoder.flush():
            self.feed_line(line)

    @property
    def text(self) -> str:
        return "".join(self.text_chunks)
