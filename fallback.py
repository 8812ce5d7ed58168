"""Canned responses used when a provider is not configured or its call fails."""

from __future__ import annotations

import random
from typing import AsyncGenerator, List

from models import ChatMessage, UIChunk, last_user_content, random_message_id
from sse_handler import fallback_chunks
from upstream import Provider

MOCK_RESPONSES = (
    "That's interesting! Tell me more about that.",
    "I understand. How can I help you with that?",
    "Thanks for sharing! What else would you like to discuss?",
    "I see your point. Let me think about that for a moment.",
    "That's a great question! Here's what I think about it.",
    "I appreciate you sharing that with me.",
    "That makes sense. What are your thoughts on this?",
    "Interesting perspective! Have you considered other angles?",
    "I'd love to help you explore that idea further.",
    "That's a fascinating topic! Let me share what I know about it.",
)


def generate_mock_response() -> str:
    return random.choice(MOCK_RESPONSES)


def not_configured_greeting(provider: Provider) -> str:
    return (
        "Hello! How can I help you today? "
        f"{provider.display_name} API is not configured. "
        f"Please set {provider.api_key_env} environment variable."
    )


def fallback_content(messages: List[ChatMessage], provider: Provider) -> str:
    """Random filler when the user spoke last, otherwise a configuration hint."""
    if last_user_content(messages) is not None:
        return generate_mock_response()
    return not_configured_greeting(provider)


def fallback_message(
    messages: List[ChatMessage],
    provider: Provider,
    error: str | None = None,
) -> ChatMessage:
    """
    Non-streaming fallback reply.

    metadata.warning says why the fallback was used; metadata.error carries the
    upstream error when there was one.
    """
    if error is None:
        metadata = {"warning": f"{provider.display_name} API not configured, using fallback response"}
    else:
        metadata = {
            "warning": f"{provider.display_name} API error, using fallback response",
            "error": error,
        }
    return ChatMessage.assistant(
        fallback_content(messages, provider),
        msg_id=random_message_id("msg_fallback"),
        metadata=metadata,
    )


def fallback_stream(messages: List[ChatMessage], provider: Provider) -> AsyncGenerator[UIChunk, None]:
    return fallback_chunks(fallback_content(messages, provider))
