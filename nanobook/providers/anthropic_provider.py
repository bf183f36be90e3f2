"""Anthropic backend over the Messages REST API (httpx). No image generation."""

import logging
from typing import Optional

import httpx

from nanobook.config import ANTHROPIC_BASE_URL, ANTHROPIC_VERSION, LLM_TIMEOUT
from nanobook.providers.base import GenerationOptions, LLMProvider, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
JSON_MODE_DIRECTIVE = "\n\nCRITICAL: Return ONLY valid JSON."


class AnthropicProvider(LLMProvider):
    provider_id = "anthropic"

    def __init__(self, api_key: Optional[str], base_url: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key, base_url or ANTHROPIC_BASE_URL)
        self.client = client or httpx.AsyncClient(timeout=LLM_TIMEOUT)

    async def generate_text(self, model_id: str, prompt: str,
                            options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()

        if options.images:
            content = [
                {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": img}}
                for img in options.images
            ]
            content.append({"type": "text", "text": prompt})
        else:
            content = prompt

        body = {
            "model": model_id,
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": [{"role": "user", "content": content}],
        }
        if options.temperature is not None:
            body["temperature"] = options.temperature
        system = options.system_prompt or ""
        if options.json_mode:
            # no native JSON mode; instruct through the system prompt
            system += JSON_MODE_DIRECTIVE
        if system:
            body["system"] = system

        async def _call():
            resp = await self.client.post(
                f"{self.base_url.rstrip('/')}/v1/messages",
                json=body,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "content-type": "application/json",
                },
            )
            resp.raise_for_status()
            return resp.json()

        data = await call_with_retry(_call, provider_id=self.provider_id, model_id=model_id)
        for block in data.get("content") or []:
            if block.get("type") == "text":
                return block.get("text", "")
        return ""

    async def aclose(self) -> None:
        await self.client.aclose()
