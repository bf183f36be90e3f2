"""OpenAI backend: chat completions (JSON mode, vision) and DALL-E images."""

import logging
from typing import List, Optional, Union

from openai import AsyncOpenAI

from nanobook.config import LLM_TIMEOUT, OPENAI_BASE_URL
from nanobook.errors import GenerationFailedError
from nanobook.providers.base import GenerationOptions, LLMProvider, call_with_retry

logger = logging.getLogger(__name__)


def image_size_for(width: Optional[int], height: Optional[int]) -> str:
    """Map a requested size onto the three sizes DALL-E 3 accepts."""
    if width and height:
        if width > height:
            return "1792x1024"
        if height > width:
            return "1024x1792"
    return "1024x1024"


class OpenAIProvider(LLMProvider):
    provider_id = "openai"

    def __init__(self, api_key: Optional[str], base_url: Optional[str] = None,
                 client: Optional[AsyncOpenAI] = None):
        super().__init__(api_key, base_url or OPENAI_BASE_URL or None)
        # SDK retries disabled; call_with_retry owns the backoff policy
        self.client = client or AsyncOpenAI(
            api_key=api_key, base_url=self.base_url, timeout=LLM_TIMEOUT, max_retries=0,
        )

    @staticmethod
    def _user_content(prompt: str, images: List[str]) -> Union[str, list]:
        if not images:
            return prompt
        parts = [{"type": "text", "text": prompt}]
        for b64 in images:
            parts.append({"type": "image_url", "image_url": {"url": f"data:image/png;base64,{b64}"}})
        return parts

    async def generate_text(self, model_id: str, prompt: str,
                            options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()
        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": self._user_content(prompt, options.images)})

        create_kwargs = dict(model=model_id, messages=messages)
        if options.temperature is not None:
            create_kwargs["temperature"] = options.temperature
        if options.max_tokens:
            create_kwargs["max_tokens"] = options.max_tokens
        if options.json_mode:
            create_kwargs["response_format"] = {"type": "json_object"}

        async def _call():
            resp = await self.client.chat.completions.create(**create_kwargs)
            if not resp.choices:
                return ""
            return resp.choices[0].message.content or ""

        return await call_with_retry(_call, provider_id=self.provider_id, model_id=model_id)

    async def generate_image(self, model_id: str, prompt: str,
                             width: Optional[int] = None, height: Optional[int] = None) -> str:
        size = image_size_for(width, height)

        async def _call():
            return await self.client.images.generate(
                model=model_id or "dall-e-3",
                prompt=prompt,
                n=1,
                size=size,
                response_format="b64_json",
            )

        resp = await call_with_retry(_call, provider_id=self.provider_id, model_id=model_id)
        if not resp.data:
            raise GenerationFailedError("No image generated", provider_id=self.provider_id, model_id=model_id)
        img = resp.data[0]
        if img.b64_json:
            return f"data:image/png;base64,{img.b64_json}"
        if img.url:
            return img.url
        raise GenerationFailedError("No image generated", provider_id=self.provider_id, model_id=model_id)

    async def aclose(self) -> None:
        await self.client.close()
