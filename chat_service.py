"""
Chatbot proxy service (AI SDK compatible) -> OpenAI / Gemini / Anthropic as upstream.

Routes:
  POST /api/v1/chat/completions   AI SDK chat endpoint (JSON or UI message stream SSE)
  POST /api/chat                  legacy {role, content} endpoint used by older frontends
  GET  /api/v1/models             model options of every provider
  GET  /healthz                   liveness

The upstream is picked by model-name prefix (gemini*, models/gemini* -> Gemini,
claude* -> Anthropic, anything else -> OpenAI). Providers without an API key, and
failed upstream calls, are answered with canned fallback responses.
"""

from __future__ import annotations

import json
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from config import load_config
from fallback import fallback_message, fallback_stream, generate_mock_response
from logger import setup_logging
from models import ChatCompletionRequest, ChatMessage, RequestValidationError, UIChunk
from providers import ProviderRegistry
from sse_handler import SSE_HEADERS, SSEStreamer
from upstream import Provider, ProviderError, provider_for_model
from utils import dump_config, load_env_files

# Load environment
load_env_files()

# Load configuration
config = load_config()
config.validate()

# Initialize logging
log = setup_logging(config.log_path, config.log_level, config.log_color)
dump_config(config)

registry = ProviderRegistry.from_config(config)
sse_streamer = SSEStreamer()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log which providers are live; nothing to warm up or tear down."""
    configured = [p.value for p in Provider if registry.is_configured(p)]
    log.info("Providers configured: %s", configured or "none (fallback only)")
    yield
    log.info("Chatbot proxy shutting down")


app = FastAPI(
    title="chatbot-proxy",
    version="0.1.0",
    lifespan=lifespan,
)

# The desktop webview calls from its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _request_id(request: Request) -> str:
    return (
        (request.headers.get("x-request-id") or "").strip()
        or (request.headers.get("x-correlation-id") or "").strip()
        or (request.headers.get("x-trace-id") or "").strip()
        or uuid.uuid4().hex
    )


async def _read_json_body(request: Request) -> Any:
    # Basic request size guard (prevents trivial DoS via huge JSON bodies).
    cl = request.headers.get("content-length")
    if cl:
        try:
            n = int(cl)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid Content-Length header: {cl!r}")
        if n < 0:
            raise HTTPException(status_code=400, detail="Invalid Content-Length: must be non-negative")
        if n > config.max_request_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"Request too large: {n} bytes (max {config.max_request_bytes})",
            )

    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON body")


def _sse_response(chunks: AsyncIterator[UIChunk], req_id: str) -> StreamingResponse:
    # Closes the source even when the body is never iterated.
    cleanup = BackgroundTasks()
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        cleanup.add_task(aclose)
    return StreamingResponse(
        sse_streamer.stream_with_keepalive(chunks, config.sse_keepalive_s, req_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=cleanup,
    )


def _fallback_response(
    chat_req: ChatCompletionRequest,
    provider: Provider,
    req_id: str,
    error: ProviderError | None = None,
) -> Response:
    if chat_req.stream:
        return _sse_response(fallback_stream(chat_req.messages, provider), req_id)
    msg = fallback_message(chat_req.messages, provider, None if error is None else str(error))
    return JSONResponse(msg.to_dict())


def _upstream_failure(
    chat_req: ChatCompletionRequest,
    provider: Provider,
    err: ProviderError,
    req_id: str,
) -> Response:
    log.warning(
        "Upstream failure req_id=%s provider=%s status=%s err=%s",
        req_id,
        provider.value,
        err.status_code,
        err.message[:500],
    )
    if config.fallback_on_upstream_error:
        return _fallback_response(chat_req, provider, req_id, error=err)
    return JSONResponse(status_code=500, content=err.to_error_body())


@app.get("/healthz")
async def healthz() -> Dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/api/v1/models")
async def list_models() -> Dict[str, Any]:
    """List model options of every provider, flagging which ones are configured."""
    return {"object": "list", "data": registry.list_models()}


@app.post("/api/v1/chat/completions")
async def chat_completions(request: Request) -> Response:
    """Handle AI SDK chat completion requests (streaming and non-streaming)."""
    req_id = _request_id(request)
    body = await _read_json_body(request)
    try:
        chat_req = ChatCompletionRequest.from_dict(body)
    except RequestValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    model = chat_req.model or config.default_model
    provider = provider_for_model(model)
    adapter = registry.get(provider)

    client_ip = request.client.host if request.client else "unknown"
    log.info(
        "Incoming chat req_id=%s from=%s model=%r provider=%s stream=%s messages=%d",
        req_id,
        client_ip,
        model,
        provider.value,
        chat_req.stream,
        len(chat_req.messages),
    )

    if adapter is None:
        log.info("Provider %s not configured; fallback response req_id=%s", provider.value, req_id)
        return _fallback_response(chat_req, provider, req_id)

    if chat_req.stream:
        try:
            chunks = await adapter.open_stream(
                chat_req.messages, model, chat_req.temperature, chat_req.max_tokens
            )
        except ProviderError as e:
            return _upstream_failure(chat_req, provider, e, req_id)
        return _sse_response(chunks, req_id)

    try:
        reply = await adapter.chat_completion(
            chat_req.messages, model, chat_req.temperature, chat_req.max_tokens
        )
    except ProviderError as e:
        return _upstream_failure(chat_req, provider, e, req_id)
    return JSONResponse(reply.to_dict())


def _parse_legacy_messages(body: Any) -> List[ChatMessage]:
    if not isinstance(body, dict):
        raise RequestValidationError("Invalid JSON body: expected object")
    raw = body.get("messages")
    if not isinstance(raw, list) or not raw:
        raise RequestValidationError("Invalid request: 'messages' must be a non-empty array")
    return [ChatMessage.from_dict(m) for m in raw]


@app.post("/api/chat")
async def legacy_chat(request: Request) -> Dict[str, Any]:
    """Legacy endpoint: always OpenAI with default model settings, never streams."""
    req_id = _request_id(request)
    body = await _read_json_body(request)
    try:
        messages = _parse_legacy_messages(body)
    except RequestValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    adapter = registry.get(Provider.OPENAI)
    if adapter is None:
        log.info("Legacy chat req_id=%s: OpenAI not configured, fallback", req_id)
        return {
            "role": "assistant",
            "content": generate_mock_response(),
            "warning": "OpenAI API not configured, using fallback response",
        }

    try:
        reply = await adapter.chat_completion(messages)
    except ProviderError as e:
        log.warning("Legacy chat req_id=%s upstream error: %s", req_id, e.message[:500])
        return {
            "role": "assistant",
            "content": generate_mock_response(),
            "error": f"OpenAI API error, using fallback: {e}",
        }
    return {"role": "assistant", "content": reply.content}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.host, port=config.port, reload=False)
