"""The ``serve`` command: run the chat service over HTTP."""

from __future__ import annotations

from pathlib import Path  # noqa: TC003

import typer
from pydantic import ValidationError

from llm_chat import constants
from llm_chat.cli import app
from llm_chat.commands import _cli_options as opts
from llm_chat.config import InferenceConfig, StorageConfig
from llm_chat.core.utils import (
    console,
    print_command_line_args,
    print_error_message,
    setup_logging,
)


@app.command("serve")
def serve(
    provider: str = opts.PROVIDER,
    model: str = opts.MODEL,
    max_tokens: int = opts.MAX_TOKENS,
    system_prompt: str = opts.SYSTEM_PROMPT,
    cloudflare_account_id: str | None = opts.CLOUDFLARE_ACCOUNT_ID,
    cloudflare_api_token: str | None = opts.CLOUDFLARE_API_TOKEN,
    openai_base_url: str = opts.OPENAI_BASE_URL,
    openai_api_key: str | None = opts.OPENAI_API_KEY,
    store: str = opts.STORE,
    store_path: Path = opts.STORE_PATH,
    ttl_seconds: int = typer.Option(
        constants.HISTORY_TTL_SECONDS,
        "--ttl-seconds",
        help="Seconds a user's conversations live after their last write.",
        rich_help_panel="Storage Configuration",
    ),
    host: str = opts.SERVER_HOST,
    port: int = opts.SERVER_PORT,
    static_dir: Path | None = opts.STATIC_DIR,
    log_level: str = opts.LOG_LEVEL,
    log_file: str | None = opts.LOG_FILE,
    config_file: str | None = opts.CONFIG_FILE,  # noqa: ARG001
    print_args: bool = opts.PRINT_ARGS,
) -> None:
    """Start the chat service.

    Serves the ``/api`` endpoints, streams model replies as server-sent
    events and keeps each user's conversations for a week after their
    last message. With ``--static-dir`` the front-end assets are served
    from every other path.
    """
    if print_args:
        print_command_line_args(locals())
    setup_logging(log_level, log_file=log_file)

    import uvicorn  # noqa: PLC0415

    from llm_chat.chat.api import create_app  # noqa: PLC0415

    if model == constants.DEFAULT_MODEL_ID and provider == "openai":
        model = constants.DEFAULT_OPENAI_MODEL

    try:
        inference_config = InferenceConfig(
            provider=provider,
            model=model,
            max_tokens=max_tokens,
            system_prompt=system_prompt,
            cloudflare_account_id=cloudflare_account_id,
            cloudflare_api_token=cloudflare_api_token,
            openai_base_url=openai_base_url,
            openai_api_key=openai_api_key,
        )
        storage_config = StorageConfig(
            store=store,
            store_path=store_path,
            ttl_seconds=ttl_seconds,
        )
        fastapi_app = create_app(inference_config, storage_config, static_dir)
    except ValidationError as exc:
        print_error_message(f"Invalid configuration: {exc}")
        raise typer.Exit(1) from exc
    except ValueError as exc:
        print_error_message(
            str(exc),
            "Set CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN, or use --provider openai.",
        )
        raise typer.Exit(1) from exc

    console.print(f"[bold green]Starting LLM chat service on {host}:{port}[/bold green]")
    console.print(f"  🤖 Provider: [blue]{inference_config.provider}[/blue]")
    console.print(f"  🧠 Model: [blue]{inference_config.model}[/blue]")
    if storage_config.store == "file":
        console.print(f"  💾 Store: [blue]file ({storage_config.store_path})[/blue]")
    else:
        console.print("  💾 Store: [blue]memory[/blue]")
    if static_dir is not None:
        console.print(f"  📂 Static: [blue]{static_dir}[/blue]")

    uvicorn.run(fastapi_app, host=host, port=port, log_config=None)
