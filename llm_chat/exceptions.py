"""Error taxonomy shared by the HTTP layer and the chat core."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for llm-chat errors."""


class ChatValidationError(ChatError):
    """The request is missing a required field or has the wrong shape."""


class UpstreamError(ChatError):
    """The inference endpoint failed or returned a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageReadError(ChatError):
    """A stored record could not be read or decoded."""


class StorageWriteError(ChatError):
    """A record could not be written to the key-value store."""
