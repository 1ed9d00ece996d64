"""Streaming clients for the hosted inference endpoint.

Every client returns the upstream body as raw bytes in the native event
format (``data: {"response": "<token>"}`` ... ``data: [DONE]``). Workers AI
already speaks it; OpenAI-compatible streams are re-encoded line by line.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from llm_chat.core.sse import (
    extract_openai_delta,
    format_done,
    format_event,
    is_done_line,
    parse_chunk,
)
from llm_chat.exceptions import UpstreamError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from llm_chat.chat.models import Message
    from llm_chat.config import InferenceConfig

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ByteStream(Protocol):
    """An open upstream body."""

    def __aiter__(self) -> AsyncIterator[bytes]:
        """Yield body chunks as they arrive."""

    async def aclose(self) -> None:
        """Release the underlying connection."""


@runtime_checkable
class InferenceClient(Protocol):
    """Anything that can open a token stream for a message list."""

    model: str

    async def open_stream(self, messages: Sequence[Message], *, max_tokens: int) -> ByteStream:
        """Start a completion; raise ``UpstreamError`` if it can not start."""

    async def aclose(self) -> None:
        """Close pooled connections."""


class UpstreamStream:
    """Raw pass-through of an httpx streaming response."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as exc:
            msg = f"Upstream stream failed: {exc}"
            raise UpstreamError(msg) from exc

    async def aclose(self) -> None:
        await self.response.aclose()


class OpenAIUpstreamStream(UpstreamStream):
    """Translates OpenAI chat-completion chunks into native events."""

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for line in self.response.aiter_lines():
                if is_done_line(line):
                    yield format_done().encode()
                    continue
                chunk = parse_chunk(line)
                if chunk is None:
                    continue
                piece = extract_openai_delta(chunk)
                if piece:
                    yield format_event(piece).encode()
        except httpx.HTTPError as exc:
            msg = f"Upstream stream failed: {exc}"
            raise UpstreamError(msg) from exc


class _HTTPInferenceClient:
    stream_class: type[UpstreamStream] = UpstreamStream

    def __init__(
        self,
        model: str,
        *,
        request_timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self._client = httpx.AsyncClient(timeout=request_timeout, transport=transport)

    async def _open(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None,
    ) -> UpstreamStream:
        request = self._client.build_request("POST", url, json=payload, headers=headers)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            msg = f"Inference request failed: {exc}"
            raise UpstreamError(msg) from exc

        if response.status_code != 200:  # noqa: PLR2004
            error_text = (await response.aread()).decode(errors="ignore")
            await response.aclose()
            LOGGER.error("Upstream error %s: %s", response.status_code, error_text)
            msg = f"Upstream error {response.status_code}: {error_text}"
            raise UpstreamError(msg, status_code=response.status_code)
        return self.stream_class(response)

    async def aclose(self) -> None:
        await self._client.aclose()


class WorkersAIClient(_HTTPInferenceClient):
    """Cloudflare Workers AI REST endpoint."""

    def __init__(
        self,
        *,
        account_id: str,
        api_token: str,
        model: str,
        base_url: str,
        request_timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(model, request_timeout=request_timeout, transport=transport)
        self.url = f"{base_url.rstrip('/')}/accounts/{account_id}/ai/run/{model}"
        self._headers = {"Authorization": f"Bearer {api_token}"}

    async def open_stream(self, messages: Sequence[Message], *, max_tokens: int) -> ByteStream:
        payload = {
            "messages": [m.model_dump() for m in messages],
            "max_tokens": max_tokens,
            "stream": True,
        }
        return await self._open(self.url, payload, self._headers)


class OpenAICompatibleClient(_HTTPInferenceClient):
    """Any ``/chat/completions`` endpoint (OpenAI, llama.cpp, Ollama, ...)."""

    stream_class = OpenAIUpstreamStream

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: str | None,
        request_timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(model, request_timeout=request_timeout, transport=transport)
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else None

    async def open_stream(self, messages: Sequence[Message], *, max_tokens: int) -> ByteStream:
        payload = {
            "model": self.model,
            "messages": [m.model_dump() for m in messages],
            "max_tokens": max_tokens,
            "stream": True,
        }
        return await self._open(self.url, payload, self._headers)


def create_inference_client(
    config: InferenceConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> InferenceClient:
    """Get the inference client for the configured provider."""
    if config.provider == "openai":
        return OpenAICompatibleClient(
            base_url=config.openai_base_url,
            model=config.model,
            api_key=config.openai_api_key,
            request_timeout=config.request_timeout,
            transport=transport,
        )
    if not config.cloudflare_account_id or not config.cloudflare_api_token:
        msg = "Workers AI needs both a Cloudflare account id and an API token"
        raise ValueError(msg)
    return WorkersAIClient(
        account_id=config.cloudflare_account_id,
        api_token=config.cloudflare_api_token,
        model=config.model,
        base_url=config.workers_ai_base_url,
        request_timeout=config.request_timeout,
        transport=transport,
    )
