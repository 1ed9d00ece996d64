"""Default configuration settings for the llm-chat package."""

from __future__ import annotations

# --- Inference ---
DEFAULT_PROVIDER = "workers-ai"
DEFAULT_MODEL_ID = "@cf/meta/llama-3.3-70b-instruct-fp8-fast"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
WORKERS_AI_BASE_URL = "https://api.cloudflare.com/client/v4"
DEFAULT_REQUEST_TIMEOUT = 120.0

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, friendly assistant. Provide concise and accurate responses."
)

# --- Storage ---
HISTORY_KEY_PREFIX = "history:"
HISTORY_TTL_SECONDS = 60 * 60 * 24 * 7
DEFAULT_STORE_PATH = "./chat_store"

# --- SSE ---
SSE_DATA_PREFIX = "data:"
SSE_DONE_LINE = "data: [DONE]"

# --- Server ---
DEFAULT_HOST = "0.0.0.0"  # noqa: S104
DEFAULT_PORT = 8787

# --- Terminal client ---
DEFAULT_SERVER_URL = "http://localhost:8787"
CHAT_NAME_PREFIX = "Chat"
GREETING = "Hello! I'm an LLM chat app. How can I help you today?"
