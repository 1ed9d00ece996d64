"""FastAPI application factory for the chat service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from llm_chat.chat.engine import process_chat_request
from llm_chat.chat.history import ConversationStore
from llm_chat.chat.inference import create_inference_client
from llm_chat.chat.models import (
    ChatRequest,
    ChatSummary,
    ConversationsResponse,
    CreateConversationRequest,
    HistoryResponse,
)
from llm_chat.config import InferenceConfig, StorageConfig
from llm_chat.core.tasks import BackgroundTaskRunner
from llm_chat.exceptions import (
    ChatValidationError,
    StorageReadError,
    StorageWriteError,
    UpstreamError,
)
from llm_chat.kv import FileKVStore, create_kv_store

if TYPE_CHECKING:
    from pathlib import Path

    from llm_chat.chat.inference import InferenceClient
    from llm_chat.core.tasks import Scheduler
    from llm_chat.kv import KVStore

LOGGER = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FIELD_ERRORS = {
    "userId": "Missing or invalid userId",
    "chatId": "Missing or invalid chatId",
    "messages": "Invalid messages",
    "name": "Invalid name",
}


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        msg = "Invalid JSON body"
        raise ChatValidationError(msg) from exc
    if not isinstance(body, dict):
        msg = "Invalid JSON body"
        raise ChatValidationError(msg)
    return body


def _validate_body(model: type[ModelT], body: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        errors = exc.errors()
        field = str(errors[0]["loc"][0]) if errors and errors[0]["loc"] else ""
        raise ChatValidationError(_FIELD_ERRORS.get(field, "Invalid request body")) from exc


def _require_param(value: str | None, name: str) -> str:
    if not value:
        msg = f"Missing {name} parameter"
        raise ChatValidationError(msg)
    return value


def _error(status_code: int, error: str, message: str | None = None) -> JSONResponse:
    content = {"error": error}
    if message is not None:
        content["message"] = message
    return JSONResponse(content, status_code=status_code)


def create_app(
    inference_config: InferenceConfig | None = None,
    storage_config: StorageConfig | None = None,
    static_dir: Path | None = None,
    *,
    inference_client: InferenceClient | None = None,
    kv: KVStore | None = None,
    scheduler: Scheduler | None = None,
) -> FastAPI:
    """Create the FastAPI app for the chat service.

    The keyword-only collaborators replace the ones built from configuration,
    which is how tests run the service without network or disk.
    """
    inference_config = inference_config or InferenceConfig()
    storage_config = storage_config or StorageConfig()

    if kv is None:
        kv = create_kv_store(storage_config.store, storage_config.store_path)
    if inference_client is None:
        inference_client = create_inference_client(inference_config)
    runner = scheduler or BackgroundTaskRunner()
    store = ConversationStore(kv, ttl_seconds=storage_config.ttl_seconds)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):  # noqa: ANN202
        if isinstance(kv, FileKVStore):
            removed = kv.purge_expired()
            LOGGER.info("Removed %d expired record(s) from %s", removed, kv.root)
        yield
        if isinstance(runner, BackgroundTaskRunner):
            await runner.drain()
        await inference_client.aclose()
        LOGGER.info("Chat service stopped")

    app = FastAPI(title="LLM Chat", lifespan=lifespan)
    app.state.store = store
    app.state.inference = inference_client
    app.state.scheduler = runner

    @app.exception_handler(ChatValidationError)
    async def _validation_error(_request: Request, exc: ChatValidationError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(UpstreamError)
    async def _upstream_error(_request: Request, exc: UpstreamError) -> JSONResponse:
        LOGGER.error("Error processing chat request: %s", exc)
        return _error(500, "Failed to process request", str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _unexpected_error(_request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unhandled error")
        return _error(500, "Internal server error", str(exc))

    @app.get("/api/history")
    async def get_history(
        user_id: str | None = Query(None, alias="userId"),
        chat_id: str | None = Query(None, alias="chatId"),
    ) -> dict[str, Any]:
        user_id = _require_param(user_id, "userId")
        chat_id = _require_param(chat_id, "chatId")
        history = await store.get_history(user_id, chat_id)
        return HistoryResponse(history=history).model_dump()

    @app.delete("/api/history")
    async def delete_history(
        user_id: str | None = Query(None, alias="userId"),
        chat_id: str | None = Query(None, alias="chatId"),
    ) -> Any:
        user_id = _require_param(user_id, "userId")
        chat_id = _require_param(chat_id, "chatId")
        try:
            await store.delete(user_id, chat_id)
        except (StorageReadError, StorageWriteError):
            LOGGER.exception("Failed to delete chat %s of %s", chat_id, user_id)
            return _error(500, "Failed to delete chat")
        return {"message": "Chat deleted"}

    @app.get("/api/conversations")
    async def list_conversations(
        user_id: str | None = Query(None, alias="userId"),
    ) -> dict[str, Any]:
        user_id = _require_param(user_id, "userId")
        chats = await store.load(user_id)
        response = ConversationsResponse(
            chats=[ChatSummary(chat_id=chat_id, name=chat.name) for chat_id, chat in chats.items()],
        )
        return response.model_dump(by_alias=True)

    @app.post("/api/conversations", status_code=201)
    async def create_conversation(request: Request) -> Any:
        body = _validate_body(CreateConversationRequest, await _read_json_object(request))
        try:
            chat_id, conversation = await store.create(body.user_id, body.chat_id, body.name)
        except (StorageReadError, StorageWriteError):
            LOGGER.exception("Failed to create chat for %s", body.user_id)
            return _error(500, "Failed to create chat")
        return ChatSummary(chat_id=chat_id, name=conversation.name).model_dump(by_alias=True)

    @app.post("/api/chat")
    async def chat(request: Request) -> Any:
        chat_request = _validate_body(ChatRequest, await _read_json_object(request))
        return await process_chat_request(
            chat_request,
            store=store,
            inference=inference_client,
            scheduler=runner,
            system_prompt=inference_config.system_prompt,
            max_tokens=inference_config.max_tokens,
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {
            "status": "ok",
            "provider": inference_config.provider,
            "model": inference_client.model,
            "store": storage_config.store,
        }

    if static_dir is not None:
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app
