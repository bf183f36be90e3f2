"""Centralized configuration for the nanobook pipeline."""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# --- Service URLs (API keys are read by Credentials.from_env) ---
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "")
GEMINI_BASE_URL = os.environ.get("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
ANTHROPIC_BASE_URL = os.environ.get("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
ANTHROPIC_VERSION = "2023-06-01"

# --- Model Configuration ---
RESEARCH_MODEL = os.environ.get("RESEARCH_MODEL", "gemini-2.5-flash")
WRITING_MODEL = os.environ.get("WRITING_MODEL", "gemini-2.5-flash")
PODCAST_MODEL = os.environ.get("PODCAST_MODEL", "gemini-2.5-flash")
IMAGE_MODEL = os.environ.get("IMAGE_MODEL", "dall-e-3")
TTS_MODEL = os.environ.get("TTS_MODEL", "gemini-2.5-flash-preview-tts")

# --- Timeouts (seconds) / retries ---
LLM_TIMEOUT = float(os.environ.get("LLM_TIMEOUT", "300"))
LLM_MAX_RETRIES = int(os.environ.get("LLM_MAX_RETRIES", "3"))

# --- Pipeline limits ---
NORMALIZE_MAX_CHARS = 20000
OUTLINE_STAT_LIMIT = 5
BOOK_CONTEXT_CHARS = 500
CHAPTER_CONCURRENCY = int(os.environ.get("CHAPTER_CONCURRENCY", "1"))

# --- Research cache ---
RESEARCH_CACHE_PATH = os.environ.get(
    "RESEARCH_CACHE_PATH", os.path.expanduser("~/.cache/nanobook/research_cache.db")
)
RESEARCH_CACHE_MAX_ENTRIES = 5

# --- Podcast audio ---
PODCAST_SAMPLE_RATE = 24000
PODCAST_CHANNELS = 1


@dataclass(frozen=True)
class Credentials:
    """API keys available to the provider registry. Empty string = not configured."""
    google: str = ""
    anthropic: str = ""
    openai: str = ""

    @classmethod
    def from_env(cls) -> "Credentials":
        return cls(
            google=os.environ.get("GEMINI_API_KEY", os.environ.get("GOOGLE_API_KEY", "")),
            anthropic=os.environ.get("ANTHROPIC_API_KEY", ""),
            openai=os.environ.get("OPENAI_API_KEY", ""),
        )

    def key_for(self, provider_id: str) -> Optional[str]:
        keys = {"google": self.google, "anthropic": self.anthropic, "openai": self.openai}
        return keys.get(provider_id) or None
