"""Shared test fixtures and configuration."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

import pytest

from llm_chat.chat.api import create_app
from llm_chat.core.tasks import BackgroundTaskRunner
from llm_chat.exceptions import UpstreamError
from llm_chat.kv import MemoryKVStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Coroutine, Sequence

    from fastapi import FastAPI

    from llm_chat.chat.models import Message

FOUR_CHUNKS = [b'data: {"response":"4"}\n\n', b"data: [DONE]\n\n"]


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Set default timeout for all tests."""
    for item in items:
        with contextlib.suppress(AttributeError):
            item.add_marker(pytest.mark.timeout(3))


class StubByteStream:
    """Replays canned chunks, optionally failing part way through."""

    def __init__(self, chunks: list[bytes], *, fail_after: int | None = None) -> None:
        self.chunks = chunks
        self.fail_after = fail_after
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                msg = "connection reset"
                raise UpstreamError(msg)
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class StubInferenceClient:
    """Records every request and answers with ``chunks``."""

    model = "stub-model"

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        *,
        error: Exception | None = None,
        fail_after: int | None = None,
    ) -> None:
        self.chunks = FOUR_CHUNKS if chunks is None else chunks
        self.error = error
        self.fail_after = fail_after
        self.calls: list[tuple[list[Message], int]] = []
        self.streams: list[StubByteStream] = []
        self.closed = False

    async def open_stream(self, messages: Sequence[Message], *, max_tokens: int) -> StubByteStream:
        self.calls.append((list(messages), max_tokens))
        if self.error is not None:
            raise self.error
        stream = StubByteStream(list(self.chunks), fail_after=self.fail_after)
        self.streams.append(stream)
        return stream

    async def aclose(self) -> None:
        self.closed = True


class RecordingScheduler:
    """Collects background work so a test can run it explicitly."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[str, Coroutine[Any, Any, Any]]] = []

    def run_in_background(self, coro: Coroutine[Any, Any, Any], *, label: str) -> None:
        self.scheduled.append((label, coro))

    async def run_all(self) -> list[Any]:
        results = [await coro for _label, coro in self.scheduled]
        self.scheduled.clear()
        return results


@pytest.fixture
def kv() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture
def inference() -> StubInferenceClient:
    return StubInferenceClient()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def app(kv: MemoryKVStore, inference: StubInferenceClient) -> FastAPI:
    """Chat service wired to in-memory collaborators."""
    return create_app(inference_client=inference, kv=kv, scheduler=BackgroundTaskRunner())


@pytest.fixture
def make_stream() -> type[StubByteStream]:
    """Factory for canned upstream byte streams."""
    return StubByteStream
