"""The ``chat`` command: an interactive terminal client for a running service.

It keeps the session state (user, chats, selected chat, loaded histories)
in one ``ChatSessionState``, sends each new user message to ``/api/chat``
and prints the reply tokens as they stream in.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

import httpx
import typer

from llm_chat.cli import app
from llm_chat.client import ChatAPIClient, load_or_create_user_id
from llm_chat.commands import _cli_options as opts
from llm_chat.config import USER_ID_PATH
from llm_chat.core.chat_state import (
    ChatSessionState,
    handle_slash_command,
    parse_slash_command,
    select_chat,
)
from llm_chat.core.utils import (
    console,
    print_command_line_args,
    print_error_message,
    setup_logging,
)

LOGGER = logging.getLogger(__name__)

ERROR_REPLY = "Sorry, there was an error processing your request."

_ROLE_STYLES = {
    "user": "[bold cyan]You:[/bold cyan]",
    "assistant": "[bold green]Assistant:[/bold green]",
}


def _print_history(state: ChatSessionState) -> None:
    chat = state.current_chat
    if chat is not None:
        console.rule(f"[bold]{chat.name}[/bold]")
    for message in state.current_history:
        label = _ROLE_STYLES.get(message.role)
        if label is None:
            continue
        console.print(f"{label} {message.content}")


async def _start_session(state: ChatSessionState, client: ChatAPIClient) -> None:
    """Load the user's chats and select the first one, creating it if needed."""
    state.chats = await client.list_chats(state.user_id)
    if not state.chats:
        chat = state.new_chat()
        await client.create_chat(state.user_id, chat.chat_id, chat.name)
        return
    await select_chat(state, client, state.chats[0].chat_id)


async def _send_message(state: ChatSessionState, client: ChatAPIClient, text: str) -> None:
    chat_id = state.current_chat_id
    if chat_id is None:
        chat = state.new_chat()
        await client.create_chat(state.user_id, chat.chat_id, chat.name)
        chat_id = chat.chat_id

    console.print(_ROLE_STYLES["assistant"], end=" ")
    tokens: list[str] = []
    try:
        async for token in client.stream_reply(
            state.user_id,
            chat_id,
            [{"role": "user", "content": text}],
        ):
            tokens.append(token)
            console.print(token, end="", markup=False, highlight=False)
    except httpx.HTTPError:
        LOGGER.exception("Chat request failed")
        console.print(f"\n[red]{ERROR_REPLY}[/red]")
        return
    console.print()
    state.record_turn(text, "".join(tokens))


async def _handle_input(state: ChatSessionState, client: ChatAPIClient, text: str) -> None:
    parsed = parse_slash_command(text)
    if parsed is None:
        await _send_message(state, client, text)
        return
    command, args = parsed
    previous_chat_id = state.current_chat_id
    try:
        response = await handle_slash_command(command, args, state, client)
    except httpx.HTTPError as exc:
        LOGGER.debug("Slash command failed", exc_info=True)
        print_error_message(f"/{command} failed: {exc}")
        return
    console.print(f"[yellow]{response}[/yellow]")
    if state.current_chat_id != previous_chat_id and not state.should_exit:
        _print_history(state)


async def _async_main(server_url: str, user_id: str) -> None:
    async with ChatAPIClient(server_url) as client:
        state = ChatSessionState(user_id=user_id)
        try:
            await _start_session(state, client)
        except httpx.HTTPError as exc:
            print_error_message(
                f"Could not reach the chat service at {server_url}: {exc}",
                "Start it with `llm-chat serve` or pass --server-url.",
            )
            raise typer.Exit(1) from exc

        console.print("[dim]Type /help for commands.[/dim]")
        _print_history(state)
        while not state.should_exit:
            try:
                text = await asyncio.to_thread(console.input, f"{_ROLE_STYLES['user']} ")
            except EOFError:
                break
            text = text.strip()
            if text:
                await _handle_input(state, client, text)


@app.command("chat")
def chat(
    server_url: str = opts.SERVER_URL,
    user_id: str | None = typer.Option(
        None,
        "--user-id",
        help="User id to chat as. Defaults to the one stored in ~/.config/llm-chat/user_id.",
    ),
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Set the log level (e.g., DEBUG, INFO, WARNING).",
    ),
    log_file: str | None = opts.LOG_FILE,
    config_file: str | None = opts.CONFIG_FILE,  # noqa: ARG001
    print_args: bool = opts.PRINT_ARGS,
) -> None:
    """Chat with a running llm-chat service from the terminal."""
    if print_args:
        print_command_line_args(locals())
    setup_logging(log_level, log_file=log_file)
    resolved_user_id = user_id or load_or_create_user_id(USER_ID_PATH)
    with suppress(KeyboardInterrupt):
        asyncio.run(_async_main(server_url, resolved_user_id))
