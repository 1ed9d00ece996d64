"""Chat request orchestration: history, inference, streaming and persistence."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import TYPE_CHECKING

from fastapi.responses import StreamingResponse

from llm_chat.chat.history import ensure_system_prompt, next_chat_name
from llm_chat.chat.models import Conversation, Message, normalize_messages
from llm_chat.chat.splitter import tee_stream
from llm_chat.core.sse import TokenAccumulator
from llm_chat.exceptions import StorageReadError

if TYPE_CHECKING:
    from llm_chat.chat.history import ConversationStore
    from llm_chat.chat.inference import InferenceClient
    from llm_chat.chat.models import ChatRequest
    from llm_chat.core.tasks import Scheduler

LOGGER = logging.getLogger(__name__)

SSE_HEADERS = {
    "cache-control": "no-cache",
    "connection": "keep-alive",
}


def _elapsed_ms(start: float) -> float:
    """Return elapsed milliseconds since start."""
    return (perf_counter() - start) * 1000


async def process_chat_request(
    request: ChatRequest,
    *,
    store: ConversationStore,
    inference: InferenceClient,
    scheduler: Scheduler,
    system_prompt: str,
    max_tokens: int,
) -> StreamingResponse:
    """Stream a completion for one chat turn and persist it afterwards.

    The request must already be validated. ``UpstreamError`` propagates if the
    completion can not be started, before any byte is sent to the client.
    """
    overall_start = perf_counter()
    user_id, chat_id = request.user_id, request.chat_id
    incoming = normalize_messages(request.messages)

    try:
        user_chats = await store.read(user_id)
        history_readable = True
    except StorageReadError:
        LOGGER.warning("History of %s unreadable, answering without it", user_id, exc_info=True)
        user_chats = {}
        history_readable = False
    conversation = user_chats.get(chat_id)
    if conversation is None:
        conversation = Conversation(name=next_chat_name(c.name for c in user_chats.values()))
        user_chats[chat_id] = conversation
        LOGGER.info("Starting new chat %s (%s) for %s", chat_id, conversation.name, user_id)

    messages = ensure_system_prompt([*conversation.messages, *incoming], system_prompt)
    LOGGER.info(
        "Forwarding chat (user=%s, chat=%s, messages=%d, model=%s)",
        user_id,
        chat_id,
        len(messages),
        inference.model,
    )
    upstream = await inference.open_stream(messages, max_tokens=max_tokens)
    LOGGER.debug("Upstream stream opened in %.1f ms", _elapsed_ms(overall_start))

    def finalize(reply: str) -> None:
        if not reply:
            LOGGER.warning("Empty reply for chat %s of %s, nothing saved", chat_id, user_id)
            return
        if not history_readable:
            LOGGER.warning("Not saving chat %s of %s over an unreadable history", chat_id, user_id)
            return
        user_chats[chat_id] = conversation.model_copy(
            update={"messages": [*messages, Message(role="assistant", content=reply)]},
        )
        scheduler.run_in_background(
            store.save(user_id, user_chats),
            label=f"save-history-{user_id}-{chat_id}",
        )

    return StreamingResponse(
        tee_stream(upstream, TokenAccumulator(), finalize),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
