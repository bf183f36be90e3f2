"""
Provider interface shared by every LLM vendor backend, plus the retry policy
all vendor calls go through.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx
import openai

from nanobook.config import LLM_MAX_RETRIES
from nanobook.errors import GenerationFailedError, ProviderNotConfiguredError
from nanobook.providers import catalog

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class GenerationOptions:
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    system_prompt: Optional[str] = None
    json_mode: bool = False
    images: List[str] = field(default_factory=list)   # raw base64 PNG
    thinking_budget: Optional[int] = None             # honoured by Gemini only


class LLMProvider(ABC):
    """One vendor backend. Constructed only with a credential; safe to share across tasks."""

    provider_id: str = ""

    def __init__(self, api_key: Optional[str], base_url: Optional[str] = None):
        if not api_key:
            raise ProviderNotConfiguredError(self.provider_id)
        self.api_key = api_key
        self.base_url = base_url

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    async def generate_text(self, model_id: str, prompt: str,
                            options: Optional[GenerationOptions] = None) -> str:
        ...

    async def generate_image(self, model_id: str, prompt: str,
                             width: Optional[int] = None, height: Optional[int] = None) -> str:
        raise GenerationFailedError(
            f"{self.provider_id} does not support image generation",
            provider_id=self.provider_id, model_id=model_id,
        )

    async def generate_speech(self, model_id: str, text: str, voices: Dict[str, str]) -> bytes:
        """Multi-speaker speech; returns raw 16-bit little-endian PCM."""
        raise GenerationFailedError(
            f"{self.provider_id} does not support speech generation",
            provider_id=self.provider_id, model_id=model_id,
        )

    def calculate_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float:
        return catalog.estimate_cost(model_id, input_tokens, output_tokens)

    async def aclose(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------
_TRANSIENT = (
    ConnectionError, TimeoutError,
    httpx.TransportError,
    openai.APIConnectionError, openai.APITimeoutError,
    openai.InternalServerError, openai.RateLimitError,
)
_FATAL = (openai.BadRequestError, openai.AuthenticationError, openai.PermissionDeniedError)


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, _FATAL):
        return False
    if isinstance(exc, _TRANSIENT):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    provider_id: str,
    model_id: str,
    max_retries: int = LLM_MAX_RETRIES,
) -> T:
    """Await ``call()`` with exponential backoff (5, 10, 20s +/-30% jitter) on transient errors.

    Non-transient errors fast-fail. Every vendor exception leaves this function
    as GenerationFailedError with the original chained as ``__cause__``.
    """
    for attempt in range(max_retries + 1):
        try:
            return await call()
        except GenerationFailedError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not is_transient(e):
                logger.error("%s/%s call failed (%s): %s", provider_id, model_id, type(e).__name__, e)
                raise GenerationFailedError(
                    f"{provider_id} generation failed: {e}", provider_id=provider_id, model_id=model_id,
                ) from e
            if attempt < max_retries:
                base_wait = 5 * (2 ** attempt)  # 5, 10, 20
                jitter = random.uniform(-base_wait * 0.3, base_wait * 0.3)
                wait = base_wait + jitter
                logger.warning(
                    "%s/%s attempt %d/%d failed (%s), retrying in %.1fs...",
                    provider_id, model_id, attempt + 1, max_retries + 1, type(e).__name__, wait,
                )
                await asyncio.sleep(wait)
            else:
                logger.error("%s/%s failed after %d attempts: %s",
                             provider_id, model_id, max_retries + 1, e)
                raise GenerationFailedError(
                    f"{provider_id} generation failed after {max_retries + 1} attempts: {e}",
                    provider_id=provider_id, model_id=model_id,
                ) from e
