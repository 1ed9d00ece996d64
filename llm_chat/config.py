"""Pydantic models for service configuration and config file loading."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from llm_chat import constants
from llm_chat.core.utils import console

# --- Config File Loading ---

CONFIG_PATH = Path.home() / ".config" / "llm-chat" / "config.toml"
CONFIG_PATH_2 = Path("llm-chat-config.toml")
USER_ID_PATH = Path.home() / ".config" / "llm-chat" / "user_id"


def _replace_dashed_keys_recursive(d: dict[str, Any]) -> dict[str, Any]:
    """Recursively replace dashed keys with underscores in a dictionary."""
    new_dict = {}
    for k, v in d.items():
        new_key = k.replace("-", "_")
        if isinstance(v, dict):
            new_dict[new_key] = _replace_dashed_keys_recursive(v)
        else:
            new_dict[new_key] = v
    return new_dict


def load_config(config_path_str: str | None = None) -> dict[str, Any]:
    """Load the TOML configuration file and process it for nested structures."""
    if config_path_str:
        config_path = Path(config_path_str)
    elif CONFIG_PATH.exists():
        config_path = CONFIG_PATH
    elif CONFIG_PATH_2.exists():
        config_path = CONFIG_PATH_2
    else:
        return {}

    if config_path.exists():
        try:
            with config_path.open("rb") as f:
                cfg = tomllib.load(f)
                return _replace_dashed_keys_recursive(cfg)
        except tomllib.TOMLDecodeError as e:
            console.print(
                f"[bold red]Error parsing config file {config_path}: {e}[/bold red]",
            )
            return {}

    # Report error only if an explicit path was given
    if config_path_str:
        console.print(
            f"[bold red]Config file not found at {config_path_str}[/bold red]",
        )
    return {}


# --- Pydantic Models for Configuration ---


class InferenceConfig(BaseModel):
    """Configuration for the inference provider."""

    provider: Literal["workers-ai", "openai"] = constants.DEFAULT_PROVIDER
    model: str = constants.DEFAULT_MODEL_ID
    max_tokens: int = Field(default=constants.DEFAULT_MAX_TOKENS, gt=0)
    system_prompt: str = constants.DEFAULT_SYSTEM_PROMPT
    request_timeout: float = constants.DEFAULT_REQUEST_TIMEOUT

    cloudflare_account_id: str | None = None
    cloudflare_api_token: str | None = None
    workers_ai_base_url: str = constants.WORKERS_AI_BASE_URL

    openai_base_url: str = constants.DEFAULT_OPENAI_BASE_URL
    openai_api_key: str | None = None


class StorageConfig(BaseModel):
    """Configuration for conversation persistence."""

    store: Literal["memory", "file"] = "memory"
    store_path: Path = Path(constants.DEFAULT_STORE_PATH)
    ttl_seconds: int = Field(default=constants.HISTORY_TTL_SECONDS, gt=0)

    @field_validator("store_path", mode="before")
    @classmethod
    def _expand_path(cls, v: Any) -> Any:
        return Path(v).expanduser() if isinstance(v, str) else v
