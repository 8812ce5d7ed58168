"""Upstream provider routing and the shared HTTP plumbing of provider adapters."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from config import AppConfig
from models import ChatMessage, UIChunk, error_chunk
from sse_handler import MalformedStreamError, iter_sse_json

log = logging.getLogger("chatbot_proxy")


class Provider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def api_key_env(self) -> str:
        return _API_KEY_ENVS[self]


_DISPLAY_NAMES = {
    Provider.OPENAI: "OpenAI",
    Provider.GEMINI: "Gemini",
    Provider.ANTHROPIC: "Anthropic",
}

_API_KEY_ENVS = {
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.GEMINI: "GOOGLE_AI_API_KEY",
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
}


def provider_for_model(model: str) -> Provider:
    """Pick the upstream by model-name prefix; anything unrecognized goes to OpenAI."""
    if model.startswith("gemini") or model.startswith("models/gemini"):
        return Provider.GEMINI
    if model.startswith("claude"):
        return Provider.ANTHROPIC
    return Provider.OPENAI


class ProviderError(Exception):
    """Upstream call failed: transport error, non-2xx status or unusable body."""

    def __init__(self, provider: Provider, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status_code = status_code

    def to_error_body(self) -> Dict[str, Any]:
        """OpenAI-style error envelope returned to the client."""
        return {
            "error": {
                "message": f"{self.provider.display_name} API error: {self.message}",
                "type": "api_error",
                "code": f"{self.provider.value}_error",
            }
        }


class UpstreamStream:
    """
    UI chunks of one upstream stream.

    Owns the upstream client and response: `aclose()` releases them even when the
    stream was never iterated.
    """

    def __init__(
        self, chunks: AsyncGenerator[UIChunk, None], client: httpx.AsyncClient, response: httpx.Response
    ) -> None:
        self._chunks = chunks
        self.client = client
        self.response = response

    def __aiter__(self) -> UpstreamStream:
        return self

    async def __anext__(self) -> UIChunk:
        return await self._chunks.__anext__()

    async def aclose(self) -> None:
        try:
            await self._chunks.aclose()
        finally:
            await self.response.aclose()
            await self.client.aclose()


class UpstreamProvider:
    """
    Base class for provider adapters.

    Subclasses build the provider-specific request bodies and translate responses;
    this class owns the httpx client lifecycle, status checks and error mapping.
    """

    provider: Provider
    MODEL_OPTIONS: Tuple[str, ...] = ()

    def __init__(
        self,
        config: AppConfig,
        *,
        api_key: str,
        base_url: str,
        default_model: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self.default_model = default_model
        self._transport = transport

    @classmethod
    def model_options(cls) -> List[str]:
        return list(cls.MODEL_OPTIONS)

    def get_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "User-Agent": self._config.user_agent}

    def _client(self, *, stream: bool = False) -> httpx.AsyncClient:
        t = float(self._config.request_timeout_s)
        if stream:
            connect_timeout = min(30.0, t)
            timeout = httpx.Timeout(connect=connect_timeout, write=connect_timeout, pool=connect_timeout, read=t)
        else:
            timeout = httpx.Timeout(t)
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def _error(self, message: str, status_code: int | None = None) -> ProviderError:
        return ProviderError(self.provider, message, status_code)

    async def post_json(self, url: str, payload: Dict[str, Any], model: str) -> Dict[str, Any]:
        """POST a JSON body and return the decoded JSON object, or raise ProviderError."""
        async with self._client() as client:
            t0 = time.time()
            try:
                r = await client.post(url, headers=self.get_headers(), json=payload)
            except httpx.HTTPError as e:
                log.warning("Upstream %s request failed model=%s err=%r", self.provider.value, model, e)
                raise self._error(f"Request error: {e}") from e
            dt = (time.time() - t0) * 1000
            log.info("Upstream %s chat model=%s status=%s ms=%.1f", self.provider.value, model, r.status_code, dt)

            if not r.is_success:
                raise self._error(f"{r.status_code} - {r.text[:2000]}", r.status_code)
            try:
                data = r.json()
            except ValueError as e:
                raise self._error("Invalid JSON in upstream response") from e
        if not isinstance(data, dict):
            raise self._error("Invalid upstream response: expected object")
        return data

    async def open_sse(self, url: str, payload: Dict[str, Any], model: str) -> Tuple[httpx.AsyncClient, httpx.Response]:
        """
        Send a streaming request and check its status before anything is forwarded.

        The caller owns (and must close) the returned client and response.
        """
        client = self._client(stream=True)
        req = client.build_request("POST", url, headers=self.get_headers(), json=payload)
        t0 = time.time()
        try:
            resp = await client.send(req, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            log.warning("Upstream %s stream request failed model=%s err=%r", self.provider.value, model, e)
            raise self._error(f"Request error: {e}") from e

        dt = (time.time() - t0) * 1000
        log.info("Upstream %s stream model=%s status=%s ms=%.1f", self.provider.value, model, resp.status_code, dt)

        if not resp.is_success:
            snippet = await self.read_error_snippet(resp)
            await resp.aclose()
            await client.aclose()
            raise self._error(f"{resp.status_code} - {snippet}", resp.status_code)
        return client, resp

    @staticmethod
    async def read_error_snippet(
        resp: httpx.Response, limit: int = 2000, timeout_s: float = 2.0
    ) -> str:
        """Best-effort: read small error body without risking a hang."""
        try:
            raw = await asyncio.wait_for(resp.aread(), timeout=timeout_s)
        except (asyncio.TimeoutError, httpx.HTTPError):
            return ""
        return raw.decode("utf-8", errors="replace")[:limit]

    async def open_stream(
        self,
        messages: List[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> UpstreamStream:
        """
        Start a streaming completion and return its UI message chunks.

        Raises ProviderError if the upstream refuses the request; failures after
        that surface as a single error chunk that ends the stream.
        """
        model_name = model or self.default_model
        url, payload = self.build_stream_request(messages, model_name, temperature, max_tokens)
        client, resp = await self.open_sse(url, payload, model_name)
        return UpstreamStream(self._relay(client, resp, model_name), client, resp)

    async def _relay(
        self, client: httpx.AsyncClient, resp: httpx.Response, model: str
    ) -> AsyncGenerator[UIChunk, None]:
        try:
            async for chunk in self.translate_stream(iter_sse_json(resp.aiter_lines()), model):
                yield chunk
        except (httpx.HTTPError, MalformedStreamError) as e:
            log.warning("Upstream %s stream broke model=%s err=%r", self.provider.value, model, e)
            yield error_chunk(f"Stream error: {e}")
        except Exception as e:
            log.exception("Upstream %s stream payload not understood model=%s", self.provider.value, model)
            yield error_chunk(f"Stream error: {e!r}")
        finally:
            await resp.aclose()
            await client.aclose()

    # --- provider-specific hooks ---------------------------------------------

    async def chat_completion(
        self,
        messages: List[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatMessage:
        raise NotImplementedError

    def build_stream_request(
        self,
        messages: List[ChatMessage],
        model: str,
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Tuple[str, Dict[str, Any]]:
        raise NotImplementedError

    def translate_stream(
        self, events: AsyncIterator[Dict[str, Any] | None], model: str
    ) -> AsyncIterator[UIChunk]:
        raise NotImplementedError
