"""OpenAI chat completions adapter."""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from models import ChatMessage, StreamFinisher, UIChunk, Usage, text_delta_chunk, text_start_chunk
from upstream import Provider, UpstreamProvider


class OpenAIProvider(UpstreamProvider):
    """Talks to an OpenAI-compatible /chat/completions endpoint."""

    provider = Provider.OPENAI
    MODEL_OPTIONS = (
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
    )

    def get_headers(self) -> Dict[str, str]:
        headers = super().get_headers()
        headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @staticmethod
    def convert_messages(messages: List[ChatMessage]) -> List[Dict[str, str]]:
        return [{"role": m.role.value, "content": m.content} for m in messages]

    def _payload(
        self,
        messages: List[ChatMessage],
        model: str,
        temperature: Optional[float],
        max_tokens: Optional[int],
        stream: bool,
    ) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": self.convert_messages(messages),
            "temperature": self._config.default_temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self._config.openai_max_tokens,
            "stream": stream,
        }

    async def chat_completion(
        self,
        messages: List[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatMessage:
        model_name = model or self.default_model
        payload = self._payload(messages, model_name, temperature, max_tokens, stream=False)
        data = await self.post_json(f"{self._base_url}/chat/completions", payload, model_name)
        return self.convert_response(data)

    def convert_response(self, data: Dict[str, Any]) -> ChatMessage:
        """Map an OpenAI chat.completion object to an assistant ChatMessage."""
        choices = data.get("choices")
        if choices is not None and not isinstance(choices, list):
            raise self._error("Invalid upstream response: 'choices' must be an array")
        choice = choices[0] if choices else None
        if choice is not None and not isinstance(choice, dict):
            raise self._error("Invalid upstream response: choice must be an object")

        content = None
        finish_reason = None
        if choice is not None:
            message = choice.get("message")
            if isinstance(message, dict):
                content = message.get("content")
            finish_reason = choice.get("finish_reason")
        if not isinstance(content, str):
            content = "No response generated"

        usage = data.get("usage")
        return ChatMessage.assistant(
            content,
            msg_id=str(data.get("id") or "") or None,
            metadata={
                "model": data.get("model"),
                "usage": usage if isinstance(usage, dict) else None,
                "finish_reason": finish_reason if isinstance(finish_reason, str) else "unknown",
            },
        )

    def build_stream_request(
        self,
        messages: List[ChatMessage],
        model: str,
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Tuple[str, Dict[str, Any]]:
        payload = self._payload(messages, model, temperature, max_tokens, stream=True)
        return f"{self._base_url}/chat/completions", payload

    async def translate_stream(
        self, events: AsyncIterator[Dict[str, Any] | None], model: str
    ) -> AsyncIterator[UIChunk]:
        """
        chat.completion.chunk events -> text-delta; a finish_reason, [DONE] or EOF
        closes the message. Usage is attached when reported before that point.
        """
        finisher = StreamFinisher()
        yield text_start_chunk()
        async for obj in events:
            if obj is None:  # [DONE]
                break
            usage = obj.get("usage")
            if isinstance(usage, dict):
                finisher.usage = Usage.from_counts(
                    usage.get("prompt_tokens"), usage.get("completion_tokens"), usage.get("total_tokens")
                )

            choices = obj.get("choices")
            if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
                continue
            choice = choices[0]
            delta = choice.get("delta")
            if isinstance(delta, dict):
                content = delta.get("content")
                if isinstance(content, str) and content:
                    yield text_delta_chunk(content)
            if choice.get("finish_reason"):
                break
        for chunk in finisher.finish():
            yield chunk
