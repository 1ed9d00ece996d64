"""Tests for conversation persistence."""

from __future__ import annotations

import json

import pytest

from llm_chat.chat.history import (
    ConversationStore,
    ensure_system_prompt,
    history_key,
    next_chat_name,
)
from llm_chat.chat.models import Conversation, Message
from llm_chat.constants import HISTORY_TTL_SECONDS
from llm_chat.exceptions import StorageReadError, StorageWriteError
from llm_chat.kv import MemoryKVStore


class _BrokenKV:
    """Store whose reads and writes always fail."""

    async def get(self, key: str) -> str | None:
        msg = f"cannot read {key}"
        raise OSError(msg)

    async def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None:  # noqa: ARG002
        msg = f"cannot write {key}"
        raise OSError(msg)

    async def delete(self, key: str) -> None:
        pass


class _RecordingKV(MemoryKVStore):
    def __init__(self) -> None:
        super().__init__()
        self.ttls: list[int | None] = []

    async def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None:
        self.ttls.append(expiration_ttl)
        await super().put(key, value, expiration_ttl=expiration_ttl)


def _chats() -> dict[str, Conversation]:
    return {
        "c1": Conversation(
            name="Chat 1",
            messages=[
                Message(role="system", content="Be brief."),
                Message(role="user", content="2+2?"),
                Message(role="assistant", content="4"),
            ],
        ),
        "c2": Conversation(name="Groceries"),
    }


def test_history_key() -> None:
    assert history_key("u1") == "history:u1"


@pytest.mark.parametrize(
    ("names", "expected"),
    [
        ([], "Chat 1"),
        (["Chat 1"], "Chat 2"),
        (["Chat 1", "Chat 3"], "Chat 2"),
        (["Chat 2", "Chat 3"], "Chat 1"),
        (["Groceries", "Chat 1"], "Chat 2"),
        (["Old Chat 1 notes"], "Chat 1"),
        (["Chat 1b", "Chat 2 (copy)"], "Chat 1"),
    ],
)
def test_next_chat_name_fills_first_gap(names: list[str], expected: str) -> None:
    assert next_chat_name(names) == expected


def test_ensure_system_prompt_prepends_when_missing() -> None:
    messages = [Message(role="user", content="hi")]
    result = ensure_system_prompt(messages, "Be nice.")
    assert result[0] == Message(role="system", content="Be nice.")
    assert result[1:] == messages
    assert sum(m.role == "system" for m in result) == 1


def test_ensure_system_prompt_keeps_existing() -> None:
    messages = [Message(role="system", content="Custom"), Message(role="user", content="hi")]
    assert ensure_system_prompt(messages, "Default") == messages


def test_ensure_system_prompt_on_empty_list() -> None:
    assert ensure_system_prompt([], "Default") == [Message(role="system", content="Default")]


@pytest.mark.asyncio
async def test_save_then_load_roundtrips() -> None:
    store = ConversationStore(MemoryKVStore())
    assert await store.save("u1", _chats())
    assert await store.load("u1") == _chats()
    assert await store.get_history("u1", "c1") == _chats()["c1"].messages
    assert await store.get_history("u1", "nope") == []
    assert await store.load("someone-else") == {}


@pytest.mark.asyncio
async def test_write_refreshes_ttl() -> None:
    kv = _RecordingKV()
    store = ConversationStore(kv)
    await store.write("u1", _chats())
    await store.write("u1", _chats())
    assert kv.ttls == [HISTORY_TTL_SECONDS, HISTORY_TTL_SECONDS]


@pytest.mark.asyncio
async def test_stored_record_shape() -> None:
    kv = MemoryKVStore()
    await ConversationStore(kv).write("u1", _chats())
    record = json.loads(await kv.get("history:u1") or "")
    assert record["c2"] == {"name": "Groceries", "messages": []}
    assert record["c1"]["messages"][-1] == {"role": "assistant", "content": "4"}


@pytest.mark.asyncio
async def test_corrupt_record_loads_as_empty() -> None:
    kv = MemoryKVStore()
    await kv.put("history:u1", "{not json")
    store = ConversationStore(kv)
    assert await store.load("u1") == {}
    with pytest.raises(StorageReadError):
        await store.read("u1")


@pytest.mark.asyncio
async def test_unreadable_store_loads_as_empty() -> None:
    store = ConversationStore(_BrokenKV())
    assert await store.load("u1") == {}
    assert await store.get_history("u1", "c1") == []


@pytest.mark.asyncio
async def test_save_failure_is_reported_not_raised() -> None:
    store = ConversationStore(_BrokenKV())
    assert await store.save("u1", _chats()) is False
    with pytest.raises(StorageWriteError):
        await store.write("u1", _chats())


@pytest.mark.asyncio
async def test_delete_is_idempotent() -> None:
    store = ConversationStore(MemoryKVStore())
    await store.save("u1", _chats())

    await store.delete("u1", "c1")
    once = await store.load("u1")
    await store.delete("u1", "c1")
    twice = await store.load("u1")

    assert once == twice == {"c2": _chats()["c2"]}


@pytest.mark.asyncio
async def test_delete_does_not_wipe_unreadable_record() -> None:
    kv = MemoryKVStore()
    await kv.put("history:u1", "{not json")
    with pytest.raises(StorageReadError):
        await ConversationStore(kv).delete("u1", "c1")
    assert await kv.get("history:u1") == "{not json"


@pytest.mark.asyncio
async def test_create_names_new_chat_and_keeps_existing() -> None:
    store = ConversationStore(MemoryKVStore())
    await store.save("u1", {"a": Conversation(name="Chat 1"), "b": Conversation(name="Chat 3")})

    chat_id, conversation = await store.create("u1", "c-new")
    assert chat_id == "c-new"
    assert conversation == Conversation(name="Chat 2")

    again_id, again = await store.create("u1", "c-new", "Renamed")
    assert again_id == "c-new"
    assert again.name == "Chat 2"

    generated_id, named = await store.create("u1", name="Groceries")
    assert generated_id not in {"a", "b", "c-new"}
    assert named.name == "Groceries"
    assert len(await store.load("u1")) == 4
