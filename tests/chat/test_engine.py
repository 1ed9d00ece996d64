"""Unit coverage for chat request orchestration."""

from __future__ import annotations

from typing import Any

import pytest

from llm_chat.chat.engine import process_chat_request
from llm_chat.chat.history import ConversationStore
from llm_chat.chat.models import ChatRequest, Conversation, Message
from llm_chat.exceptions import UpstreamError
from llm_chat.kv import MemoryKVStore

SYSTEM_PROMPT = "You are a test assistant."


def _request(messages: list[Any], chat_id: str = "c1") -> ChatRequest:
    return ChatRequest.model_validate({"userId": "u1", "chatId": chat_id, "messages": messages})


async def _run(
    request: ChatRequest,
    store: ConversationStore,
    inference: Any,
    scheduler: Any,
) -> bytes:
    response = await process_chat_request(
        request,
        store=store,
        inference=inference,
        scheduler=scheduler,
        system_prompt=SYSTEM_PROMPT,
        max_tokens=256,
    )
    assert response.media_type == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache"
    body = b""
    async for chunk in response.body_iterator:
        body += chunk if isinstance(chunk, bytes) else chunk.encode()
    return body


@pytest.mark.asyncio
async def test_new_chat_is_streamed_and_persisted(kv: Any, inference: Any, scheduler: Any) -> None:
    store = ConversationStore(kv)

    body = await _run(_request([{"role": "user", "content": "2+2?"}]), store, inference, scheduler)

    assert body == b'data: {"response":"4"}\n\ndata: [DONE]\n\n'
    sent, max_tokens = inference.calls[0]
    assert max_tokens == 256
    assert sent == [
        Message(role="system", content=SYSTEM_PROMPT),
        Message(role="user", content="2+2?"),
    ]

    assert await store.load("u1") == {}
    assert [label for label, _ in scheduler.scheduled] == ["save-history-u1-c1"]
    assert await scheduler.run_all() == [True]

    chats = await store.load("u1")
    assert chats["c1"].name == "Chat 1"
    assert chats["c1"].messages[-1] == Message(role="assistant", content="4")


@pytest.mark.asyncio
async def test_history_is_merged_before_new_messages(kv: Any, inference: Any, scheduler: Any) -> None:
    store = ConversationStore(kv)
    previous = [
        Message(role="system", content="Custom prompt"),
        Message(role="user", content="hi"),
        Message(role="assistant", content="hello"),
    ]
    await store.save("u1", {"c1": Conversation(name="Chat 1", messages=previous)})

    await _run(_request(["and now?"]), store, inference, scheduler)

    sent, _ = inference.calls[0]
    assert sent == [*previous, Message(role="user", content="and now?")]
    assert sum(m.role == "system" for m in sent) == 1

    await scheduler.run_all()
    history = await store.get_history("u1", "c1")
    assert history == [*sent, Message(role="assistant", content="4")]


@pytest.mark.asyncio
async def test_new_chat_takes_first_free_name(kv: Any, inference: Any, scheduler: Any) -> None:
    store = ConversationStore(kv)
    await store.save("u1", {"a": Conversation(name="Chat 1"), "b": Conversation(name="Chat 3")})

    await _run(_request(["hi"], chat_id="c-new"), store, inference, scheduler)
    await scheduler.run_all()

    chats = await store.load("u1")
    assert chats["c-new"].name == "Chat 2"
    assert set(chats) == {"a", "b", "c-new"}


@pytest.mark.asyncio
async def test_empty_reply_is_not_persisted(kv: Any, inference: Any, scheduler: Any) -> None:
    inference.chunks = [b"data: [DONE]\n\n"]
    store = ConversationStore(kv)

    body = await _run(_request(["hi"]), store, inference, scheduler)

    assert body == b"data: [DONE]\n\n"
    assert scheduler.scheduled == []
    assert await store.load("u1") == {}


@pytest.mark.asyncio
async def test_upstream_error_before_streaming(kv: Any, inference: Any, scheduler: Any) -> None:
    inference.error = UpstreamError("Upstream error 503: overloaded", status_code=503)
    store = ConversationStore(kv)

    with pytest.raises(UpstreamError, match="503"):
        await _run(_request(["hi"]), store, inference, scheduler)

    assert scheduler.scheduled == []


@pytest.mark.asyncio
async def test_partial_reply_is_saved_after_midstream_failure(
    kv: Any,
    inference: Any,
    scheduler: Any,
) -> None:
    inference.chunks = [b'data: {"response":"par"}\n\n', b'data: {"response":"tial"}\n\n']
    inference.fail_after = 1
    store = ConversationStore(kv)

    with pytest.raises(UpstreamError):
        await _run(_request(["hi"]), store, inference, scheduler)

    await scheduler.run_all()
    history = await store.get_history("u1", "c1")
    assert history[-1] == Message(role="assistant", content="par")


class _FlakyKV(MemoryKVStore):
    """Fails the next ``failures`` reads, then behaves normally."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures

    async def get(self, key: str) -> str | None:
        if self.failures:
            self.failures -= 1
            msg = "store unreachable"
            raise OSError(msg)
        return await super().get(key)


@pytest.mark.asyncio
async def test_unreadable_history_is_not_overwritten(inference: Any, scheduler: Any) -> None:
    kv = _FlakyKV(failures=0)
    store = ConversationStore(kv)
    await store.save("u1", {"old": Conversation(name="Chat 1", messages=[Message(role="user", content="a")])})
    kv.failures = 1

    body = await _run(_request(["hi"], chat_id="c2"), store, inference, scheduler)

    assert body.startswith(b'data: {"response":"4"}')
    sent, _ = inference.calls[0]
    assert sent == [Message(role="system", content=SYSTEM_PROMPT), Message(role="user", content="hi")]
    assert scheduler.scheduled == []
    assert set(await store.read("u1")) == {"old"}
