"""Chat data model and AI SDK UI message stream chunks."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class RequestValidationError(ValueError):
    """Raised when a chat request body does not match the expected shape."""


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: Any) -> ChatRole:
        if not isinstance(value, str):
            raise RequestValidationError("Missing role")
        try:
            return cls(value)
        except ValueError:
            raise RequestValidationError(f"Invalid role: {value}") from None


def random_message_id(prefix: str = "msg") -> str:
    """Short random message id like msg_4821."""
    return f"{prefix}_{random.randint(1000, 9998)}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Attachment:
    """File or image attached to a chat message."""

    type: str
    url: str
    media_type: Optional[str] = None
    filename: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Attachment:
        if not isinstance(data, dict):
            raise RequestValidationError("Invalid attachment: expected object")
        att_type = data.get("type")
        url = data.get("url")
        if not isinstance(att_type, str) or not isinstance(url, str):
            raise RequestValidationError("Invalid attachment: 'type' and 'url' must be strings")
        media_type = data.get("media_type")
        filename = data.get("filename")
        return cls(
            type=att_type,
            url=url,
            media_type=media_type if isinstance(media_type, str) else None,
            filename=filename if isinstance(filename, str) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "url": self.url}
        if self.media_type is not None:
            out["media_type"] = self.media_type
        if self.filename is not None:
            out["filename"] = self.filename
        return out


@dataclass
class ChatMessage:
    """Chat message compatible with the AI SDK message shape."""

    id: str
    role: ChatRole
    content: str
    created_at: Optional[str] = None
    attachments: Optional[List[Attachment]] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Any) -> ChatMessage:
        """
        Parse a message from request JSON.

        `id` is optional and generated when missing; `role` and `content` are required.
        """
        if not isinstance(data, dict):
            raise RequestValidationError("Invalid message: expected object")

        role = ChatRole.parse(data.get("role"))
        content = data.get("content")
        if not isinstance(content, str):
            raise RequestValidationError("Missing content")

        msg_id = data.get("id")
        if not isinstance(msg_id, str) or not msg_id:
            msg_id = random_message_id()

        attachments = None
        raw_attachments = data.get("attachments")
        if isinstance(raw_attachments, list):
            attachments = [Attachment.from_dict(a) for a in raw_attachments]

        created_at = data.get("created_at")
        metadata = data.get("metadata")
        return cls(
            id=msg_id,
            role=role,
            content=content,
            created_at=created_at if isinstance(created_at, str) else None,
            attachments=attachments,
            metadata=metadata if isinstance(metadata, dict) else None,
        )

    @classmethod
    def assistant(cls, content: str, *, msg_id: str | None = None, metadata: Dict[str, Any] | None = None) -> ChatMessage:
        return cls(
            id=msg_id or random_message_id(),
            role=ChatRole.ASSISTANT,
            content=content,
            created_at=utc_now_iso(),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON, omitting unset optional fields."""
        out: Dict[str, Any] = {"id": self.id, "role": self.role.value, "content": self.content}
        if self.created_at is not None:
            out["created_at"] = self.created_at
        if self.attachments is not None:
            out["attachments"] = [a.to_dict() for a in self.attachments]
        if self.metadata is not None:
            out["metadata"] = self.metadata
        return out


def last_user_content(messages: List[ChatMessage]) -> Optional[str]:
    """Content of the last message if it was sent by the user."""
    if messages and messages[-1].role is ChatRole.USER:
        return messages[-1].content
    return None


def _opt_float(data: Dict[str, Any], key: str) -> Optional[float]:
    v = data.get(key)
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise RequestValidationError(f"Invalid request: '{key}' must be a number")
    return float(v)


def _opt_int(data: Dict[str, Any], key: str) -> Optional[int]:
    v = data.get(key)
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise RequestValidationError(f"Invalid request: '{key}' must be a non-negative integer")
    return v


@dataclass
class ChatCompletionRequest:
    """Chat completion request in AI SDK format."""

    messages: List[ChatMessage]
    model: Optional[str] = None
    stream: bool = False
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: Optional[List[str]] = None
    user: Optional[str] = None
    logit_bias: Optional[Dict[str, int]] = None

    @classmethod
    def from_dict(cls, data: Any) -> ChatCompletionRequest:
        if not isinstance(data, dict):
            raise RequestValidationError("Invalid JSON body: expected object")

        raw_messages = data.get("messages")
        if not isinstance(raw_messages, list):
            raise RequestValidationError("Invalid request: 'messages' field must be an array")
        if not raw_messages:
            raise RequestValidationError("Invalid request: 'messages' array cannot be empty")
        messages = [ChatMessage.from_dict(m) for m in raw_messages]

        model = data.get("model")
        if model is not None and not isinstance(model, str):
            raise RequestValidationError("Invalid request: 'model' must be a string")

        stop = data.get("stop")
        if isinstance(stop, str):
            stop = [stop]
        elif stop is not None and not (isinstance(stop, list) and all(isinstance(s, str) for s in stop)):
            raise RequestValidationError("Invalid request: 'stop' must be a string or an array of strings")

        stream = data.get("stream")
        if stream is not None and not isinstance(stream, bool):
            raise RequestValidationError("Invalid request: 'stream' must be a boolean")

        user = data.get("user")
        logit_bias = data.get("logit_bias")
        return cls(
            messages=messages,
            model=(model or "").strip() or None,
            stream=bool(stream),
            max_tokens=_opt_int(data, "max_tokens"),
            temperature=_opt_float(data, "temperature"),
            top_p=_opt_float(data, "top_p"),
            frequency_penalty=_opt_float(data, "frequency_penalty"),
            presence_penalty=_opt_float(data, "presence_penalty"),
            stop=stop,
            user=user if isinstance(user, str) else None,
            logit_bias=logit_bias if isinstance(logit_bias, dict) else None,
        )


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, prompt: Any, completion: Any, total: Any = None) -> Usage:
        p = prompt if isinstance(prompt, int) else 0
        c = completion if isinstance(completion, int) else 0
        t = total if isinstance(total, int) else p + c
        return cls(prompt_tokens=p, completion_tokens=c, total_tokens=t)

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


# --- UI message stream chunks -------------------------------------------------
# Chunks are plain dicts tagged by "type"; field names follow the AI SDK (camelCase).

UIChunk = Dict[str, Any]


def text_start_chunk() -> UIChunk:
    return {"type": "text-start"}


def text_delta_chunk(text: str) -> UIChunk:
    return {"type": "text-delta", "textDelta": text}


def text_finish_chunk() -> UIChunk:
    return {"type": "text-finish"}


def tool_call_chunk(tool_call_id: str, tool_name: str, args: Any) -> UIChunk:
    return {"type": "tool-call", "toolCallId": tool_call_id, "toolName": tool_name, "args": args}


def tool_result_chunk(tool_call_id: str, result: Any) -> UIChunk:
    return {"type": "tool-result", "toolCallId": tool_call_id, "result": result}


def step_finish_chunk(is_continued: bool = False) -> UIChunk:
    return {"type": "step-finish", "isContinued": is_continued}


def finish_chunk(
    usage: Usage | None = None,
    *,
    reasoning: str | None = None,
    sources: List[Any] | None = None,
    logprobs: Any = None,
) -> UIChunk:
    out: UIChunk = {"type": "finish"}
    if reasoning is not None:
        out["reasoning"] = reasoning
    if sources is not None:
        out["sources"] = sources
    if usage is not None:
        out["usage"] = usage.to_dict()
    if logprobs is not None:
        out["logprobs"] = logprobs
    return out


def error_chunk(message: str) -> UIChunk:
    return {"type": "error", "error": message}


def data_chunk(data: Any) -> UIChunk:
    return {"type": "data", "data": data}


@dataclass
class StreamFinisher:
    """Emit text-finish + finish exactly once per stream."""

    done: bool = False
    usage: Optional[Usage] = field(default=None)

    def finish(self) -> List[UIChunk]:
        if self.done:
            return []
        self.done = True
        return [text_finish_chunk(), finish_chunk(self.usage)]
