"""Anthropic Messages API adapter."""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from models import (
    ChatMessage,
    ChatRole,
    StreamFinisher,
    UIChunk,
    Usage,
    error_chunk,
    random_message_id,
    text_delta_chunk,
    text_start_chunk,
)
from upstream import Provider, UpstreamProvider

ANTHROPIC_VERSION = "2023-06-01"


def extract_system_message(messages: List[ChatMessage]) -> Tuple[Optional[str], List[ChatMessage]]:
    """Split off the first system message; Anthropic takes it as a top-level field."""
    system_msg = next((m.content for m in messages if m.role is ChatRole.SYSTEM), None)
    return system_msg, [m for m in messages if m.role is not ChatRole.SYSTEM]


def convert_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    return [
        {"role": m.role.value, "content": [{"type": "text", "text": m.content}]}
        for m in messages
        if m.role is not ChatRole.SYSTEM
    ]


class AnthropicProvider(UpstreamProvider):
    """Talks to the Anthropic /v1/messages endpoint."""

    provider = Provider.ANTHROPIC
    MODEL_OPTIONS = (
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    )

    def get_headers(self) -> Dict[str, str]:
        headers = super().get_headers()
        headers["x-api-key"] = self._api_key
        headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    def _payload(
        self,
        messages: List[ChatMessage],
        model: str,
        temperature: Optional[float],
        max_tokens: Optional[int],
        stream: bool,
    ) -> Dict[str, Any]:
        system_msg, filtered = extract_system_message(messages)
        if not filtered:
            raise self._error("No valid messages to process")

        payload: Dict[str, Any] = {
            "model": model,
            "messages": convert_messages(filtered),
            "max_tokens": max_tokens or self._config.anthropic_max_tokens,
            "temperature": self._config.default_temperature if temperature is None else temperature,
            "stream": stream,
        }
        if system_msg is not None:
            payload["system"] = system_msg
        return payload

    async def chat_completion(
        self,
        messages: List[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatMessage:
        model_name = model or self.default_model
        payload = self._payload(messages, model_name, temperature, max_tokens, stream=False)
        data = await self.post_json(f"{self._base_url}/v1/messages", payload, model_name)

        blocks = data.get("content")
        text = None
        if isinstance(blocks, list) and blocks and isinstance(blocks[0], dict):
            text = blocks[0].get("text")
        if not isinstance(text, str):
            raise self._error("No valid response from Anthropic API")

        metadata: Dict[str, Any] = {"model": model_name, "provider": "anthropic"}
        usage = data.get("usage")
        if isinstance(usage, dict):
            metadata["usage"] = Usage.from_counts(usage.get("input_tokens"), usage.get("output_tokens")).to_dict()
        if data.get("stop_reason"):
            metadata["finish_reason"] = data["stop_reason"]
        return ChatMessage.assistant(text, msg_id=random_message_id("claude"), metadata=metadata)

    def build_stream_request(
        self,
        messages: List[ChatMessage],
        model: str,
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Tuple[str, Dict[str, Any]]:
        payload = self._payload(messages, model, temperature, max_tokens, stream=True)
        return f"{self._base_url}/v1/messages", payload

    async def translate_stream(
        self, events: AsyncIterator[Dict[str, Any] | None], model: str
    ) -> AsyncIterator[UIChunk]:
        """
        message_start/message_delta carry usage, content_block_delta carries text,
        message_stop ends the message and an error event ends the stream.
        """
        finisher = StreamFinisher()
        input_tokens: Any = None
        output_tokens: Any = None
        yield text_start_chunk()
        async for obj in events:
            if obj is None:
                break
            event_type = obj.get("type")

            if event_type == "content_block_delta":
                delta = obj.get("delta") or {}
                if isinstance(delta, dict) and delta.get("type") == "text_delta":
                    text = delta.get("text")
                    if isinstance(text, str) and text:
                        yield text_delta_chunk(text)

            elif event_type == "message_start":
                start_msg = obj.get("message")
                usage = start_msg.get("usage") if isinstance(start_msg, dict) else None
                if isinstance(usage, dict):
                    input_tokens = usage.get("input_tokens", input_tokens)
                    output_tokens = usage.get("output_tokens", output_tokens)

            elif event_type == "message_delta":
                usage = obj.get("usage")
                if isinstance(usage, dict):
                    output_tokens = usage.get("output_tokens", output_tokens)

            elif event_type == "message_stop":
                break

            elif event_type == "error":
                err = obj.get("error") or {}
                message = err.get("message") if isinstance(err, dict) else None
                yield error_chunk(f"Anthropic API error: {message or 'stream error'}")
                return

        if input_tokens is not None or output_tokens is not None:
            finisher.usage = Usage.from_counts(input_tokens, output_tokens)
        for chunk in finisher.finish():
            yield chunk
