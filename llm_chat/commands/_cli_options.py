"""Shared CLI options for llm-chat commands."""

from __future__ import annotations

import os

import typer

from llm_chat import constants


def _conf_callback(ctx: typer.Context, _param: typer.CallbackParam, value: str | None) -> str | None:
    """Load the config file before the other options are resolved."""
    from llm_chat.cli import set_config_defaults  # noqa: PLC0415

    set_config_defaults(ctx, value)
    return value


# --- Inference Options ---
PROVIDER = typer.Option(
    constants.DEFAULT_PROVIDER,
    "--provider",
    help='Inference provider ("workers-ai" or "openai").',
    rich_help_panel="Inference Configuration",
)
MODEL = typer.Option(
    constants.DEFAULT_MODEL_ID,
    "--model",
    help="Model id passed to the inference provider.",
    rich_help_panel="Inference Configuration",
)
MAX_TOKENS = typer.Option(
    constants.DEFAULT_MAX_TOKENS,
    "--max-tokens",
    help="Maximum number of tokens per reply.",
    rich_help_panel="Inference Configuration",
)
SYSTEM_PROMPT = typer.Option(
    constants.DEFAULT_SYSTEM_PROMPT,
    "--system-prompt",
    help="System prompt prepended to conversations that have none.",
    rich_help_panel="Inference Configuration",
)
CLOUDFLARE_ACCOUNT_ID = typer.Option(
    None,
    "--cloudflare-account-id",
    envvar="CLOUDFLARE_ACCOUNT_ID",
    help="Cloudflare account id for Workers AI.",
    rich_help_panel="Inference Configuration",
)
CLOUDFLARE_API_TOKEN = typer.Option(
    None,
    "--cloudflare-api-token",
    envvar="CLOUDFLARE_API_TOKEN",
    help="Cloudflare API token for Workers AI.",
    rich_help_panel="Inference Configuration",
)
OPENAI_BASE_URL = typer.Option(
    os.getenv("OPENAI_BASE_URL", constants.DEFAULT_OPENAI_BASE_URL),
    "--openai-base-url",
    help="Base URL of an OpenAI-compatible API.",
    rich_help_panel="Inference Configuration",
)
OPENAI_API_KEY = typer.Option(
    os.getenv("OPENAI_API_KEY"),
    "--openai-api-key",
    help="OpenAI API key.",
    rich_help_panel="Inference Configuration",
)

# --- Storage Options ---
STORE = typer.Option(
    "memory",
    "--store",
    help='Conversation store backend ("memory" or "file").',
    rich_help_panel="Storage Configuration",
)
STORE_PATH = typer.Option(
    constants.DEFAULT_STORE_PATH,
    "--store-path",
    help="Directory of the file store.",
    rich_help_panel="Storage Configuration",
)

# --- Server Options ---
SERVER_HOST = typer.Option(
    constants.DEFAULT_HOST,
    "--host",
    help="Host to bind the server to.",
    rich_help_panel="Server Configuration",
)
SERVER_PORT = typer.Option(
    constants.DEFAULT_PORT,
    "--port",
    help="Port to bind the server to.",
    rich_help_panel="Server Configuration",
)
STATIC_DIR = typer.Option(
    None,
    "--static-dir",
    help="Directory with front-end assets served on non-API paths.",
    rich_help_panel="Server Configuration",
)
SERVER_URL = typer.Option(
    constants.DEFAULT_SERVER_URL,
    "--server-url",
    help="Base URL of a running llm-chat server.",
)

# --- General Options ---
LOG_LEVEL = typer.Option(
    "INFO",
    "--log-level",
    help="Set the log level (e.g., DEBUG, INFO, WARNING).",
)
LOG_FILE = typer.Option(
    None,
    "--log-file",
    help="Path to a file to write logs to.",
)
CONFIG_FILE = typer.Option(
    None,
    "--config",
    help="Path to a custom config file.",
    callback=_conf_callback,
    is_eager=True,
)
PRINT_ARGS = typer.Option(
    False,  # noqa: FBT003
    "--print-args",
    help="Print the command line arguments, including variables taken from the configuration file.",
)
