"""Multi-conversation LLM chat service with streamed replies and key-value persistence."""

from __future__ import annotations

__version__ = "0.1.0"
