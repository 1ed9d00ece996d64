"""Chat session state and slash command handling.

This module owns the state of one terminal chat session (which user, which
conversations, which one is selected, and a cache of loaded histories) and
handles slash commands like /new, /chats, /switch, /delete, /help.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from llm_chat.chat.history import next_chat_name
from llm_chat.chat.models import ChatSummary, Message
from llm_chat.constants import GREETING

if TYPE_CHECKING:
    from llm_chat.client import ChatAPIClient


@dataclass
class ChatSessionState:
    """Runtime state for an interactive chat session."""

    user_id: str
    chats: list[ChatSummary] = field(default_factory=list)
    current_chat_id: str | None = None
    history_cache: dict[str, list[Message]] = field(default_factory=dict)
    should_exit: bool = False

    @property
    def current_chat(self) -> ChatSummary | None:
        return next((c for c in self.chats if c.chat_id == self.current_chat_id), None)

    @property
    def current_history(self) -> list[Message]:
        if self.current_chat_id is None:
            return []
        return self.history_cache.get(self.current_chat_id, [])

    def new_chat(self) -> ChatSummary:
        """Add an unsaved chat named after the first free number and select it."""
        chat = ChatSummary(
            chat_id=str(uuid.uuid4()),
            name=next_chat_name(c.name for c in self.chats),
        )
        self.chats.append(chat)
        self.current_chat_id = chat.chat_id
        self.history_cache[chat.chat_id] = [Message(role="assistant", content=GREETING)]
        return chat

    def find_chat(self, ref: str) -> ChatSummary | None:
        """Look a chat up by 1-based position, id, or name."""
        if ref.isdigit():
            index = int(ref) - 1
            return self.chats[index] if 0 <= index < len(self.chats) else None
        return next((c for c in self.chats if ref in (c.chat_id, c.name)), None)

    def cache_history(self, chat_id: str, history: list[Message]) -> list[Message]:
        """Remember a loaded history; an empty one shows the greeting."""
        if not history:
            history = [Message(role="assistant", content=GREETING)]
        self.history_cache[chat_id] = history
        return history

    def record_turn(self, user_message: str, reply: str) -> None:
        history = self.history_cache.setdefault(self.current_chat_id or "", [])
        history.append(Message(role="user", content=user_message))
        history.append(Message(role="assistant", content=reply))

    def forget_chat(self, chat_id: str) -> None:
        """Drop a chat; if it was selected, select the first remaining one."""
        self.chats = [c for c in self.chats if c.chat_id != chat_id]
        self.history_cache.pop(chat_id, None)
        if self.current_chat_id == chat_id:
            self.current_chat_id = self.chats[0].chat_id if self.chats else None


def parse_slash_command(text: str) -> tuple[str, list[str]] | None:
    """Parse a slash command from text.

    Args:
        text: The input text to parse

    Returns:
        Tuple of (command, args) if it's a slash command, None otherwise

    """
    text = text.strip()
    if not text.startswith("/"):
        return None

    parts = text[1:].split()
    if not parts:
        return None

    command = parts[0].lower()
    args = parts[1:]
    return command, args


async def handle_slash_command(
    command: str,
    args: list[str],
    state: ChatSessionState,
    client: ChatAPIClient,
) -> str:
    """Execute a slash command and return a response message.

    Args:
        command: The command name (without slash)
        args: Command arguments
        state: The chat session state
        client: Client of the chat service

    Returns:
        Response message to display to the user

    """
    if command == "help":
        return _handle_help()

    if command == "new":
        return await _handle_new(state, client)

    if command == "chats":
        return _handle_chats(state)

    if command == "switch":
        return await _handle_switch(args, state, client)

    if command == "delete":
        return await _handle_delete(args, state, client)

    if command in ("quit", "exit"):
        state.should_exit = True
        return "Goodbye!"

    return f"Unknown command: /{command}. Type /help for available commands."


def _handle_help() -> str:
    """Show help message."""
    return """\
Available commands:
  /new           Start a new chat
  /chats         List your chats
  /switch <n>    Switch to chat number n (or by name or id)
  /delete [n]    Delete chat n (default: the current chat)
  /quit          Leave the session
  /help          Show this help message"""


async def _handle_new(state: ChatSessionState, client: ChatAPIClient) -> str:
    chat = state.new_chat()
    await client.create_chat(state.user_id, chat.chat_id, chat.name)
    return f"Started {chat.name}"


def _handle_chats(state: ChatSessionState) -> str:
    if not state.chats:
        return "No chats yet. Use /new to start one."
    lines = ["Your chats:"]
    for index, chat in enumerate(state.chats, start=1):
        marker = "▶" if chat.chat_id == state.current_chat_id else " "
        lines.append(f"  {marker} {index}. {chat.name}")
    return "\n".join(lines)


async def select_chat(state: ChatSessionState, client: ChatAPIClient, chat_id: str) -> list[Message]:
    """Select a chat, loading its history unless it is cached."""
    state.current_chat_id = chat_id
    if chat_id in state.history_cache:
        return state.history_cache[chat_id]
    history = await client.get_history(state.user_id, chat_id)
    return state.cache_history(chat_id, history)


async def _handle_switch(args: list[str], state: ChatSessionState, client: ChatAPIClient) -> str:
    if not args:
        return "Usage: /switch <n>"
    chat = state.find_chat(" ".join(args))
    if chat is None:
        return f"Unknown chat: {' '.join(args)}. Use /chats to see your chats."
    await select_chat(state, client, chat.chat_id)
    return f"Switched to {chat.name}"


async def _handle_delete(args: list[str], state: ChatSessionState, client: ChatAPIClient) -> str:
    chat = state.find_chat(" ".join(args)) if args else state.current_chat
    if chat is None:
        return "No such chat. Use /chats to see your chats."
    await client.delete_chat(state.user_id, chat.chat_id)
    state.forget_chat(chat.chat_id)
    if not state.chats:
        await _handle_new(state, client)
    elif state.current_chat_id is not None:
        await select_chat(state, client, state.current_chat_id)
    current = state.current_chat
    return f"Deleted {chat.name}" + (f", now in {current.name}" if current else "")
