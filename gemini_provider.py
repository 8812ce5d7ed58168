"""Google Gemini generateContent adapter."""

from __future__ import annotations

import copy
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from models import (
    ChatMessage,
    ChatRole,
    StreamFinisher,
    UIChunk,
    Usage,
    random_message_id,
    text_delta_chunk,
    text_start_chunk,
)
from upstream import Provider, UpstreamProvider

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


def default_safety_settings() -> List[Dict[str, str]]:
    return [{"category": c, "threshold": "BLOCK_MEDIUM_AND_ABOVE"} for c in SAFETY_CATEGORIES]


def extract_system_message(messages: List[ChatMessage]) -> Tuple[Optional[str], List[ChatMessage]]:
    """
    Drop system messages; the first one is prepended to the first remaining message.

    Gemini has no system role in `contents`.
    """
    system_msg = next((m.content for m in messages if m.role is ChatRole.SYSTEM), None)
    filtered = [copy.copy(m) for m in messages if m.role is not ChatRole.SYSTEM]
    if system_msg is not None and filtered:
        filtered[0].content = f"{system_msg}\n\n{filtered[0].content}"
    return system_msg, filtered


def convert_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    contents: List[Dict[str, Any]] = []
    for m in messages:
        if m.role is ChatRole.SYSTEM:
            continue
        role = "model" if m.role is ChatRole.ASSISTANT else "user"
        contents.append({"role": role, "parts": [{"text": m.content}]})
    return contents


def _first_candidate(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return None


def _candidate_texts(candidate: Dict[str, Any]) -> List[str]:
    content = candidate.get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]


def _usage(data: Dict[str, Any]) -> Optional[Usage]:
    meta = data.get("usageMetadata")
    if not isinstance(meta, dict):
        return None
    return Usage.from_counts(
        meta.get("promptTokenCount"), meta.get("candidatesTokenCount"), meta.get("totalTokenCount")
    )


class GeminiProvider(UpstreamProvider):
    """Talks to the Generative Language API (v1beta)."""

    provider = Provider.GEMINI
    MODEL_OPTIONS = (
        "gemini-1.5-flash",
        "gemini-1.5-pro",
        "gemini-1.5-flash-8b",
        "gemini-pro",
        "gemini-pro-vision",
    )

    def get_headers(self) -> Dict[str, str]:
        headers = super().get_headers()
        headers["x-goog-api-key"] = self._api_key
        return headers

    def _model_url(self, model: str, method: str) -> str:
        if model.startswith("models/"):
            model = model[len("models/"):]
        return f"{self._base_url}/v1beta/models/{model}:{method}"

    def _payload(
        self,
        messages: List[ChatMessage],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        _, filtered = extract_system_message(messages)
        if not filtered:
            raise self._error("No valid messages to process")

        generation_config: Dict[str, Any] = {"candidateCount": 1}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens

        return {
            "contents": convert_messages(filtered),
            "generationConfig": generation_config,
            "safetySettings": default_safety_settings(),
        }

    async def chat_completion(
        self,
        messages: List[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatMessage:
        model_name = model or self.default_model
        payload = self._payload(messages, temperature, max_tokens)
        data = await self.post_json(self._model_url(model_name, "generateContent"), payload, model_name)

        candidate = _first_candidate(data)
        texts = _candidate_texts(candidate) if candidate else []
        if not texts:
            raise self._error("No valid response from Gemini API")

        metadata: Dict[str, Any] = {"model": model_name, "provider": "gemini"}
        usage = _usage(data)
        if usage is not None:
            metadata["usage"] = usage.to_dict()
        return ChatMessage.assistant(texts[0], msg_id=random_message_id("gemini"), metadata=metadata)

    def build_stream_request(
        self,
        messages: List[ChatMessage],
        model: str,
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Tuple[str, Dict[str, Any]]:
        payload = self._payload(messages, temperature, max_tokens)
        return self._model_url(model, "streamGenerateContent") + "?alt=sse", payload

    async def translate_stream(
        self, events: AsyncIterator[Dict[str, Any] | None], model: str
    ) -> AsyncIterator[UIChunk]:
        finisher = StreamFinisher()
        yield text_start_chunk()
        async for obj in events:
            if obj is None:
                break
            usage = _usage(obj)
            if usage is not None:
                finisher.usage = usage
            candidate = _first_candidate(obj)
            if candidate is None:
                continue
            for text in _candidate_texts(candidate):
                if text:
                    yield text_delta_chunk(text)
            if candidate.get("finishReason"):
                break
        for chunk in finisher.finish():
            yield chunk
