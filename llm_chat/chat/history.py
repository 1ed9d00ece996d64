"""Per-user conversation persistence on top of a key-value store.

All conversations of a user live in one record (``history:<userId>``) that is
rewritten whole on every save. Two concurrent requests for the same user
therefore race and the last write wins, even when they touch different chats.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from llm_chat.chat.models import Conversation, Message, UserChats
from llm_chat.constants import CHAT_NAME_PREFIX, HISTORY_KEY_PREFIX, HISTORY_TTL_SECONDS
from llm_chat.exceptions import StorageReadError, StorageWriteError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from llm_chat.kv import KVStore

LOGGER = logging.getLogger(__name__)

_USER_CHATS_ADAPTER: TypeAdapter[UserChats] = TypeAdapter(UserChats)
_CHAT_NAME_RE = re.compile(rf"{CHAT_NAME_PREFIX} (\d+)")


def history_key(user_id: str) -> str:
    return f"{HISTORY_KEY_PREFIX}{user_id}"


def next_chat_name(names: Iterable[str]) -> str:
    """Return ``"Chat N"`` for the smallest N not already taken."""
    used = set()
    for name in names:
        match = _CHAT_NAME_RE.fullmatch(name.strip())
        if match:
            used.add(int(match.group(1)))
    number = 1
    while number in used:
        number += 1
    return f"{CHAT_NAME_PREFIX} {number}"


def ensure_system_prompt(messages: list[Message], prompt: str) -> list[Message]:
    """Prepend ``prompt`` as a system message unless one is already present."""
    if any(message.role == "system" for message in messages):
        return list(messages)
    return [Message(role="system", content=prompt), *messages]


class ConversationStore:
    """Reads and writes a user's conversation set."""

    def __init__(self, kv: KVStore, ttl_seconds: int = HISTORY_TTL_SECONDS) -> None:
        self.kv = kv
        self.ttl_seconds = ttl_seconds

    async def read(self, user_id: str) -> UserChats:
        """Load the user's conversations, raising if the record is unusable."""
        try:
            stored = await self.kv.get(history_key(user_id))
        except Exception as exc:
            msg = f"Failed to read {history_key(user_id)}: {exc}"
            raise StorageReadError(msg) from exc
        if not stored:
            return {}
        try:
            return _USER_CHATS_ADAPTER.validate_json(stored)
        except ValidationError as exc:
            msg = f"Malformed record {history_key(user_id)}"
            raise StorageReadError(msg) from exc

    async def load(self, user_id: str) -> UserChats:
        """Load the user's conversations; unreadable records count as empty."""
        try:
            return await self.read(user_id)
        except StorageReadError:
            LOGGER.warning("Treating history of %s as empty", user_id, exc_info=True)
            return {}

    async def write(self, user_id: str, chats: UserChats) -> None:
        """Persist the whole set with a refreshed expiry, raising on failure."""
        payload = json.dumps(
            {chat_id: chat.model_dump() for chat_id, chat in chats.items()},
            ensure_ascii=False,
        )
        try:
            await self.kv.put(history_key(user_id), payload, expiration_ttl=self.ttl_seconds)
        except Exception as exc:
            msg = f"Failed to write {history_key(user_id)}: {exc}"
            raise StorageWriteError(msg) from exc

    async def save(self, user_id: str, chats: UserChats) -> bool:
        """Persist the set; failures are logged and reported as False."""
        try:
            await self.write(user_id, chats)
        except StorageWriteError:
            LOGGER.exception("Failed to save chat history for %s", user_id)
            return False
        LOGGER.debug("Saved %d conversation(s) for %s", len(chats), user_id)
        return True

    async def get_history(self, user_id: str, chat_id: str) -> list[Message]:
        chat = (await self.load(user_id)).get(chat_id)
        return list(chat.messages) if chat else []

    async def delete(self, user_id: str, chat_id: str) -> None:
        """Remove one conversation. Deleting an unknown id is a no-op rewrite."""
        chats = await self.read(user_id)
        if chats.pop(chat_id, None) is None:
            LOGGER.debug("Chat %s of %s already absent", chat_id, user_id)
        await self.write(user_id, chats)

    async def create(
        self,
        user_id: str,
        chat_id: str | None = None,
        name: str | None = None,
    ) -> tuple[str, Conversation]:
        """Create an empty conversation, or return the existing one with that id."""
        chats = await self.read(user_id)
        chat_id = chat_id or str(uuid.uuid4())
        existing = chats.get(chat_id)
        if existing is not None:
            return chat_id, existing
        conversation = Conversation(
            name=name or next_chat_name(c.name for c in chats.values()),
        )
        chats[chat_id] = conversation
        await self.write(user_id, chats)
        LOGGER.info("Created %s (%s) for %s", chat_id, conversation.name, user_id)
        return chat_id, conversation
