"""Server-Sent Events (SSE) handling for streaming responses."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List

from models import (
    UIChunk,
    Usage,
    error_chunk,
    finish_chunk,
    text_delta_chunk,
    text_finish_chunk,
    text_start_chunk,
)

log = logging.getLogger("chatbot_proxy")

SSEEventLines = List[str]

KEEPALIVE_COMMENT = b": keep-alive-text\n\n"

# Headers the AI SDK UI message stream client expects.
SSE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Vercel-AI-UI-Message-Stream": "v1",
    "X-Accel-Buffering": "no",
}


def sse_data(obj: Any) -> bytes:
    """Encode an object as a single SSE data event (compact JSON)."""
    return f"data: {json.dumps(obj, ensure_ascii=False, separators=(',', ':'))}\n\n".encode("utf-8")


def sse_event_data_text(lines: SSEEventLines) -> str:
    """
    Join all `data:` lines in an SSE event into a single payload.

    SSE spec concatenates multiple data lines with '\n'.
    """
    parts: List[str] = []
    for ln in lines:
        if ln.startswith("data:"):
            parts.append(ln[len("data:"):].lstrip())
    return "\n".join(parts)


def is_sse_activity_line(line: str) -> bool:
    """
    True for SSE fields (data, event, id, retry), comments (":") and continuation lines.
    """
    return (
        line.startswith("data:")
        or line.startswith("event:")
        or line.startswith("id:")
        or line.startswith("retry:")
        or line.startswith(":")
        or line.startswith(" ")
    )


class MalformedStreamError(ValueError):
    """Upstream injected a non-SSE line (e.g. a raw JSON error body) into a stream."""


async def read_next_sse_event(aiter: AsyncIterator[str]) -> SSEEventLines | None:
    """
    Read one SSE event (blank-line delimited) from an async line iterator.

    Returns:
    - list[str]: event lines excluding the terminating blank line (may be empty for keepalive)
    - None: EOF (no more data)
    """
    lines: SSEEventLines = []
    async for raw in aiter:
        line = raw.rstrip("\r\n")
        if line == "":
            return lines
        lines.append(line)
    return lines or None


async def iter_sse_json(aiter: AsyncIterator[str]) -> AsyncGenerator[Dict[str, Any] | None, None]:
    """
    Yield the JSON payload of every SSE data event from an upstream line iterator.

    `None` is yielded for `[DONE]`; comments, keepalives and non-JSON payloads are skipped.
    Raises MalformedStreamError on a line that is not an SSE field or comment.
    """
    while True:
        event_lines = await read_next_sse_event(aiter)
        if event_lines is None:
            return
        if not event_lines:
            continue
        bad = next((ln for ln in event_lines if not is_sse_activity_line(ln)), None)
        if bad is not None:
            raise MalformedStreamError(f"non-SSE line in upstream stream: {bad[:200]!r}")
        data = sse_event_data_text(event_lines).strip()
        if not data:
            continue
        if data == "[DONE]":
            yield None
            continue
        try:
            obj = json.loads(data)
        except json.JSONDecodeError:
            log.debug("Skipping non-JSON SSE payload: %r", data[:200])
            continue
        if isinstance(obj, dict):
            yield obj


def split_words(content: str) -> List[str]:
    """Split text on whitespace, keeping a trailing space on every word."""
    return [w + " " for w in content.split()]


async def fallback_chunks(content: str) -> AsyncGenerator[UIChunk, None]:
    """UI message stream for a canned response: start, one delta per word, finish."""
    yield text_start_chunk()
    for word in split_words(content):
        yield text_delta_chunk(word)
    yield text_finish_chunk()
    yield finish_chunk(Usage())


class SSEStreamer:
    """Encode UI chunks as SSE with keep-alive comments while the upstream is quiet."""

    @staticmethod
    async def stream_with_keepalive(
        chunks: AsyncIterator[UIChunk],
        keepalive_s: float,
        req_id: str,
    ) -> AsyncGenerator[bytes, None]:
        """
        Forward chunks as `data:` events; emit a keep-alive comment after each
        `keepalive_s` seconds without a chunk.

        A failing source ends the stream with one `error` event; nothing is raised
        to the client.
        """
        pending: asyncio.Future[UIChunk] | None = None
        sent = 0
        try:
            while True:
                if pending is None:
                    pending = asyncio.ensure_future(chunks.__anext__())
                done, _ = await asyncio.wait({pending}, timeout=keepalive_s)
                if not done:
                    yield KEEPALIVE_COMMENT
                    continue

                fut, pending = pending, None
                try:
                    chunk = fut.result()
                except StopAsyncIteration:
                    break
                sent += 1
                yield sse_data(chunk)
        except asyncio.CancelledError:
            log.info("Client disconnected req_id=%s chunks_sent=%d", req_id, sent)
            raise
        except Exception as e:
            log.warning("SSE stream ended with error req_id=%s err=%r", req_id, e)
            yield sse_data(error_chunk(f"Stream error: {e}"))
        finally:
            if pending is not None and not pending.done():
                pending.cancel()
                with contextlib.suppress(BaseException):
                    await pending
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()
            log.debug("SSE stream closed req_id=%s chunks_sent=%d", req_id, sent)
