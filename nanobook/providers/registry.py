"""
ProviderRegistry: per-run container of vendor backends.

Providers are constructed lazily on first request and memoized per provider
id. Concurrent first requests for the same id share one construction. A
failed construction is forgotten so a later call can retry.
"""

import asyncio
import importlib
import logging
from typing import Callable, Dict, Optional

from nanobook.config import Credentials
from nanobook.errors import ProviderNotConfiguredError, UnknownProviderError
from nanobook.providers import catalog
from nanobook.providers.base import LLMProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], LLMProvider]

# provider id -> (module, class); imported on first use
_DEFAULT_BACKENDS = {
    "google": ("nanobook.providers.gemini_provider", "GeminiProvider"),
    "anthropic": ("nanobook.providers.anthropic_provider", "AnthropicProvider"),
    "openai": ("nanobook.providers.openai_provider", "OpenAIProvider"),
}


def _default_factory(provider_id: str, base_url: Optional[str] = None) -> ProviderFactory:
    module_name, class_name = _DEFAULT_BACKENDS[provider_id]

    def build(api_key: str) -> LLMProvider:
        cls = getattr(importlib.import_module(module_name), class_name)
        return cls(api_key, base_url=base_url)

    return build


class ProviderRegistry:
    def __init__(self, credentials: Credentials,
                 factories: Optional[Dict[str, ProviderFactory]] = None,
                 base_urls: Optional[Dict[str, str]] = None):
        self.credentials = credentials
        base_urls = base_urls or {}
        self._factories: Dict[str, ProviderFactory] = {
            pid: _default_factory(pid, base_urls.get(pid)) for pid in _DEFAULT_BACKENDS
        }
        if factories:
            self._factories.update(factories)
        self._providers: Dict[str, LLMProvider] = {}
        self._loading: Dict[str, asyncio.Future] = {}

    async def _construct(self, provider_id: str) -> LLMProvider:
        api_key = self.credentials.key_for(provider_id)
        if not api_key:
            raise ProviderNotConfiguredError(provider_id)
        provider = self._factories[provider_id](api_key)
        logger.info("Provider '%s' initialized", provider_id)
        return provider

    async def get_provider(self, provider_id: str) -> LLMProvider:
        cached = self._providers.get(provider_id)
        if cached is not None:
            return cached
        if provider_id not in self._factories:
            raise UnknownProviderError(provider_id)

        pending = self._loading.get(provider_id)
        if pending is None:
            pending = asyncio.ensure_future(self._construct(provider_id))
            self._loading[provider_id] = pending
        try:
            provider = await asyncio.shield(pending)
        finally:
            if self._loading.get(provider_id) is pending and pending.done():
                del self._loading[provider_id]

        self._providers.setdefault(provider_id, provider)
        return self._providers[provider_id]

    async def provider_for_model(self, model_id: str) -> LLMProvider:
        """Resolve ``model_id`` through the catalog; UnknownModelError for uncatalogued ids."""
        model = catalog.require_model(model_id)
        return await self.get_provider(model.provider)

    def is_provider_available(self, provider_id: str) -> bool:
        if provider_id in self._providers:
            return True
        return provider_id in self._factories and bool(self.credentials.key_for(provider_id))

    def register_provider(self, provider_id: str, provider: LLMProvider) -> None:
        self._providers[provider_id] = provider
        self._loading.pop(provider_id, None)

    async def aclose(self) -> None:
        for provider in list(self._providers.values()):
            await provider.aclose()
        self._providers.clear()
