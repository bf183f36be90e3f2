"""
Two-host podcast episode generation: a validated dialogue script, then
multi-speaker speech framed as WAV.

Failures raise PodcastGenerationFailedError; they never touch the book.
"""

import json
import logging
from typing import Optional

from nanobook.config import (
    BOOK_CONTEXT_CHARS,
    PODCAST_CHANNELS,
    PODCAST_MODEL,
    PODCAST_SAMPLE_RATE,
    TTS_MODEL,
)
from nanobook.errors import ConfigurationError, PodcastGenerationFailedError
from nanobook.json_extract import extract_json
from nanobook.models import Book, PodcastAudio, PodcastScript, PodcastSettings, ResearchRecord
from nanobook.podcast.audio import dialogue_prompt, frame_wav
from nanobook.providers.base import GenerationOptions
from nanobook.providers.registry import ProviderRegistry
from nanobook.schema import validate

logger = logging.getLogger(__name__)

HOST_1 = "Host 1"
HOST_2 = "Host 2"

PODCAST_PRODUCER_PROMPT = """You are the Executive Producer of "The Reality Check", a podcast that exposes side hustles.
Your job is to take raw research data and convert it into a dynamic, two-person dialogue script.

**CHARACTERS:**
- HOST 1: The skeptic, the journalist. Drives the facts. (Speaker Name: "Host 1")
- HOST 2: The curious learner, or the "devil's advocate". Asks the questions the audience is thinking. (Speaker Name: "Host 2")

**FORMAT:**
Return ONLY a JSON object: {"title": "string", "lines": [{"speaker": "Host 1" | "Host 2", "text": "string"}]}
The script should be conversational, using natural language, interruptions, and "aha" moments.
Do not use sound effects in the text.
Use the Research Data provided to fuel the arguments."""


def length_tier(length_level: int) -> str:
    if length_level == 1:
        return "Short (2 minutes)"
    if length_level == 3:
        return "Deep Dive (10 minutes)"
    return "Standard (5 minutes)"


def book_context(book: Optional[Book]) -> str:
    """Chapter-by-chapter excerpt of an assembled book for the script prompt; '' without a book."""
    if book is None:
        return ""
    summaries = "\n".join(
        f"Chapter {c.number} ({c.title}): {c.content[:BOOK_CONTEXT_CHARS]}..."
        for c in book.chapters
    )
    return (
        "THE BOOK BEING DISCUSSED:\n"
        f"Title: {book.title}\n"
        f"Subtitle: {book.subtitle}\n\n"
        "KEY NARRATIVE POINTS (Discuss these):\n"
        f"{summaries}\n\n"
        'INSTRUCTION: The hosts have read this book. They should discuss its specific "Lie", '
        '"Math", and "Hidden Killers". Quote the book\'s title directly.'
    )


class PodcastScriptGenerator:
    def __init__(self, registry: ProviderRegistry, model_id: str = PODCAST_MODEL,
                 tts_model: str = TTS_MODEL):
        self.registry = registry
        self.model_id = model_id
        self.tts_model = tts_model

    async def generate_script(self, topic: str, research: ResearchRecord,
                              settings: PodcastSettings, book: Optional[Book] = None) -> PodcastScript:
        prompt = (
            f"Topic: {topic}\n"
            f"Research Data: {json.dumps(research.to_json_dict())}\n"
            f"{book_context(book)}\n\n"
            "Configuration:\n"
            f"- Style: {settings.conversation_style}\n"
            f"- Length: {length_tier(settings.length_level)}\n"
            f"- Host 1 is called {settings.host1_name}; Host 2 is called {settings.host2_name}.\n\n"
            "Create a podcast script dialogue between Host 1 and Host 2.\n"
            "If a Book is provided, structure the episode as a review/reaction to that specific book.\n"
            "If no Book is provided, structure it as an investigative report on the topic."
        )
        options = GenerationOptions(
            system_prompt=PODCAST_PRODUCER_PROMPT,
            json_mode=True,
            thinking_budget=2048 if settings.length_level == 3 else 0,
        )
        try:
            provider = await self.registry.provider_for_model(self.model_id)
            text = await provider.generate_text(self.model_id, prompt, options)
            script = validate("podcast_script", extract_json(text))
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("Podcast script generation failed: %s", e)
            raise PodcastGenerationFailedError(f"Podcast script generation failed: {e}") from e

        if not script.lines:
            raise PodcastGenerationFailedError("Podcast script generation failed: script has no lines")
        logger.info("Podcast script '%s': %d lines", script.title, len(script.lines))
        return script

    async def generate_audio(self, script: PodcastScript, settings: PodcastSettings) -> PodcastAudio:
        dialogue = dialogue_prompt(script)
        voices = {HOST_1: settings.host1_voice, HOST_2: settings.host2_voice}
        try:
            provider = await self.registry.provider_for_model(self.tts_model)
            pcm = await provider.generate_speech(self.tts_model, dialogue, voices)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("Podcast audio generation failed: %s", e)
            raise PodcastGenerationFailedError(f"Podcast audio generation failed: {e}") from e
        if not pcm:
            raise PodcastGenerationFailedError("No audio data generated.")

        audio = PodcastAudio(
            wav=frame_wav(pcm, PODCAST_SAMPLE_RATE, PODCAST_CHANNELS),
            sample_rate=PODCAST_SAMPLE_RATE,
            channels=PODCAST_CHANNELS,
        )
        logger.info("Podcast audio: %d PCM bytes (%.1fs)", len(pcm), audio.duration_seconds)
        return audio
