"""
Google backend over the Generative Language REST API (httpx).

Text via ``models/{id}:generateContent``, Imagen via ``models/{id}:predict``,
multi-speaker TTS via ``generateContent`` with an AUDIO response modality.
"""

import base64
import binascii
import logging
from typing import Dict, Optional

import httpx

from nanobook.config import GEMINI_BASE_URL, LLM_TIMEOUT
from nanobook.errors import GenerationFailedError
from nanobook.providers.base import GenerationOptions, LLMProvider, call_with_retry

logger = logging.getLogger(__name__)


def aspect_ratio_for(width: Optional[int], height: Optional[int]) -> str:
    if width and height:
        if width > height:
            return "16:9"
        if height > width:
            return "9:16"
    return "1:1"


class GeminiProvider(LLMProvider):
    provider_id = "google"

    def __init__(self, api_key: Optional[str], base_url: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key, base_url or GEMINI_BASE_URL)
        self.client = client or httpx.AsyncClient(timeout=LLM_TIMEOUT)

    def _url(self, model_id: str, method: str) -> str:
        return f"{self.base_url.rstrip('/')}/models/{model_id}:{method}"

    async def _post(self, model_id: str, method: str, body: dict) -> dict:
        async def _call():
            resp = await self.client.post(
                self._url(model_id, method),
                json=body,
                headers={"x-goog-api-key": self.api_key},
            )
            resp.raise_for_status()
            return resp.json()

        return await call_with_retry(_call, provider_id=self.provider_id, model_id=model_id)

    @staticmethod
    def _first_parts(data: dict) -> list:
        candidates = data.get("candidates") or []
        if not candidates:
            return []
        return (candidates[0].get("content") or {}).get("parts") or []

    async def generate_text(self, model_id: str, prompt: str,
                            options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()
        parts = [{"inlineData": {"mimeType": "image/png", "data": img}} for img in options.images]
        parts.append({"text": prompt})

        generation_config = {
            "responseMimeType": "application/json" if options.json_mode else "text/plain",
        }
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if options.max_tokens:
            generation_config["maxOutputTokens"] = options.max_tokens
        if options.thinking_budget is not None:
            generation_config["thinkingConfig"] = {"thinkingBudget": options.thinking_budget}

        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        if options.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": options.system_prompt}]}

        data = await self._post(model_id, "generateContent", body)
        # thought parts carry reasoning, not the answer
        return "".join(
            p.get("text", "") for p in self._first_parts(data) if not p.get("thought")
        )

    async def generate_image(self, model_id: str, prompt: str,
                             width: Optional[int] = None, height: Optional[int] = None) -> str:
        body = {
            "instances": [{"prompt": prompt}],
            "parameters": {"sampleCount": 1, "aspectRatio": aspect_ratio_for(width, height)},
        }
        data = await self._post(model_id, "predict", body)
        predictions = data.get("predictions") or []
        if not predictions or not predictions[0].get("bytesBase64Encoded"):
            raise GenerationFailedError("No image generated", provider_id=self.provider_id, model_id=model_id)
        mime = predictions[0].get("mimeType", "image/png")
        return f"data:{mime};base64,{predictions[0]['bytesBase64Encoded']}"

    async def generate_speech(self, model_id: str, text: str, voices: Dict[str, str]) -> bytes:
        body = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "multiSpeakerVoiceConfig": {
                        "speakerVoiceConfigs": [
                            {
                                "speaker": speaker,
                                "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
                            }
                            for speaker, voice in voices.items()
                        ]
                    }
                },
            },
        }
        data = await self._post(model_id, "generateContent", body)
        for part in self._first_parts(data):
            inline = part.get("inlineData") or {}
            if inline.get("data"):
                try:
                    return base64.b64decode(inline["data"])
                except (binascii.Error, ValueError) as e:
                    raise GenerationFailedError(
                        f"Audio payload is not valid base64: {e}",
                        provider_id=self.provider_id, model_id=model_id,
                    ) from e
        raise GenerationFailedError("No audio data generated.", provider_id=self.provider_id, model_id=model_id)

    async def aclose(self) -> None:
        await self.client.aclose()
