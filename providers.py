"""Registry of configured provider adapters."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type

import httpx

from anthropic_provider import AnthropicProvider
from config import AppConfig
from gemini_provider import GeminiProvider
from openai_provider import OpenAIProvider
from upstream import Provider, UpstreamProvider

log = logging.getLogger("chatbot_proxy")

ADAPTER_CLASSES: Dict[Provider, Type[UpstreamProvider]] = {
    Provider.OPENAI: OpenAIProvider,
    Provider.GEMINI: GeminiProvider,
    Provider.ANTHROPIC: AnthropicProvider,
}


class ProviderRegistry:
    """One optional adapter per provider; an adapter exists only when its key is set."""

    def __init__(self, adapters: Dict[Provider, UpstreamProvider]) -> None:
        self._adapters = dict(adapters)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ProviderRegistry:
        settings = {
            Provider.OPENAI: (config.openai_api_key, config.openai_base_url, config.openai_default_model),
            Provider.GEMINI: (config.gemini_api_key, config.gemini_base_url, config.gemini_default_model),
            Provider.ANTHROPIC: (
                config.anthropic_api_key,
                config.anthropic_base_url,
                config.anthropic_default_model,
            ),
        }
        adapters: Dict[Provider, UpstreamProvider] = {}
        for provider, (api_key, base_url, default_model) in settings.items():
            if not api_key:
                log.info("%s not set; %s requests use fallback responses", provider.api_key_env, provider.value)
                continue
            adapters[provider] = ADAPTER_CLASSES[provider](
                config,
                api_key=api_key,
                base_url=base_url,
                default_model=default_model,
                transport=transport,
            )
        return cls(adapters)

    def get(self, provider: Provider) -> Optional[UpstreamProvider]:
        return self._adapters.get(provider)

    def is_configured(self, provider: Provider) -> bool:
        return provider in self._adapters

    def list_models(self) -> List[Dict[str, Any]]:
        """Model options of every provider, configured or not."""
        out: List[Dict[str, Any]] = []
        for provider, adapter_cls in ADAPTER_CLASSES.items():
            configured = self.is_configured(provider)
            for model_id in adapter_cls.model_options():
                out.append(
                    {
                        "id": model_id,
                        "object": "model",
                        "owned_by": provider.value,
                        "configured": configured,
                    }
                )
        return out
