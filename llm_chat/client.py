"""HTTP client for a running chat service."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any, Self

import httpx

from llm_chat.chat.models import ChatSummary, Message
from llm_chat.constants import DEFAULT_REQUEST_TIMEOUT
from llm_chat.core.sse import SSELineDecoder, extract_response_token, parse_chunk

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

LOGGER = logging.getLogger(__name__)


def load_or_create_user_id(path: Path) -> str:
    """Return the user id stored at ``path``, creating one on first use."""
    if path.exists():
        user_id = path.read_text(encoding="utf-8").strip()
        if user_id:
            return user_id
    user_id = str(uuid.uuid4())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(user_id + "\n", encoding="utf-8")
    LOGGER.info("Created user id %s at %s", user_id, path)
    return user_id


class ChatAPIClient:
    """Thin async wrapper around the ``/api`` endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_chats(self, user_id: str) -> list[ChatSummary]:
        response = await self._client.get("/api/conversations", params={"userId": user_id})
        response.raise_for_status()
        return [ChatSummary.model_validate(chat) for chat in response.json().get("chats", [])]

    async def create_chat(self, user_id: str, chat_id: str, name: str) -> ChatSummary:
        response = await self._client.post(
            "/api/conversations",
            json={"userId": user_id, "chatId": chat_id, "name": name},
        )
        response.raise_for_status()
        return ChatSummary.model_validate(response.json())

    async def get_history(self, user_id: str, chat_id: str) -> list[Message]:
        response = await self._client.get(
            "/api/history",
            params={"userId": user_id, "chatId": chat_id},
        )
        response.raise_for_status()
        return [Message.model_validate(m) for m in response.json().get("history", [])]

    async def delete_chat(self, user_id: str, chat_id: str) -> None:
        response = await self._client.delete(
            "/api/history",
            params={"userId": user_id, "chatId": chat_id},
        )
        response.raise_for_status()

    async def stream_reply(
        self,
        user_id: str,
        chat_id: str,
        messages: list[dict[str, Any]],
    ) -> AsyncGenerator[str, None]:
        """Send new messages and yield the reply tokens as they arrive."""
        payload = {"userId": user_id, "chatId": chat_id, "messages": messages}
        decoder = SSELineDecoder()
        async with self._client.stream("POST", "/api/chat", json=payload) as response:
            if response.status_code != 200:  # noqa: PLR2004
                await response.aread()
                response.raise_for_status()
            async for chunk in response.aiter_bytes():
                for line in decoder.feed(chunk):
                    token = _token_from_line(line)
                    if token:
                        yield token
            for line in decoder.flush():
                token = _token_from_line(line)
                if token:
                    yield token


def _token_from_line(line: str) -> str:
    chunk = parse_chunk(line)
    return extract_response_token(chunk) if chunk else ""
