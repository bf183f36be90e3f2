"""
AuthorAgent: two-stage book generation.

Stage 1 (architect) produces an Outline with one brief per chapter; failure
there is fatal (OutlineGenerationFailedError). Stage 2 (ghostwriter) writes
each chapter from its brief; a failed chapter is replaced by a placeholder
carrying the brief's number and title, and the run continues. Chapters are
assembled in brief order whatever order they complete in.
"""

import asyncio
import json
import logging
from typing import List, Optional

from nanobook.config import OUTLINE_STAT_LIMIT, WRITING_MODEL
from nanobook.errors import (
    ConfigurationError,
    OutlineGenerationFailedError,
    PipelineCancelledError,
)
from nanobook.json_extract import extract_json
from nanobook.models import (
    Book,
    Chapter,
    ChapterBrief,
    ChapterContent,
    GenSettings,
    Outline,
    ResearchRecord,
)
from nanobook.progress import CancellationToken, ProgressObserver, check_cancelled, notify
from nanobook.providers import catalog
from nanobook.providers.base import GenerationOptions
from nanobook.providers.registry import ProviderRegistry
from nanobook.schema import validate

logger = logging.getLogger(__name__)

PLACEHOLDER_CONTENT = (
    "## Content Generation Failed\n\n"
    "We apologize, but the ghostwriter was intercepted by legal counsel. "
    "Please regenerate this chapter."
)

CHAPTER_THINKING_BUDGET = 1024

AUTHOR_OUTLINE_PROMPT = """You are the ARCHITECT of the Y-It Nano-Book.
Your job is to design the structure of a high-impact, satirical business book based on the provided Research Data.

**GOAL:**
Create a comprehensive JSON Outline.
For each chapter, you must provide a "Detailed Brief" that tells the Ghostwriter EXACTLY what to write.

**ARCHITECTURAL RULES:**
1. **Structure:** Follow the Y-It Structure (The Lie -> Roadmap -> Math -> Case Studies -> Killers -> Decision -> Alternatives -> Conclusion), condensed when fewer chapters are requested.
2. **Cohesion:** Ensure the narrative arc moves from "Destruction of the Myth" to "Constructive Reality".
3. **The Brief:** The `detailedBrief` for each chapter must be substantial (50-100 words). It must list:
   - The specific "Lie" being attacked in this chapter.
   - The specific data points (from research) to use.
   - The tone required (e.g., "Forensic", "Mocking", "Serious").
   - The visual elements to describe.

**OUTPUT:**
Return ONLY a JSON object of this shape:
{
  "title": "string",
  "subtitle": "string",
  "frontCover": {"titleText": "string", "subtitleText": "string", "visualDescription": "string"},
  "backCover": {"blurb": "string", "visualDescription": "string"},
  "chapterBriefs": [{"number": 1, "title": "string", "detailedBrief": "string"}]
}"""

AUTHOR_CHAPTER_PROMPT = """You are the Y-It Ghostwriter.
You are writing ONE specific chapter of a book, based on a specific "Chapter Brief" provided by the Architect.

**INPUTS:**
- **Topic:** The subject of the book.
- **Research Data:** The source of truth for facts/stats.
- **Chapter Brief:** Your specific instructions for THIS chapter.
- **Book Context:** Title and Tone.

**WRITING RULES:**
1. **Length:** Write a deep, substantial chapter (Target: 1000-1500 words). Do not write summaries. Write the full text.
2. **Formatting:** Use Markdown. Use H2 (##) and H3 (###) subheaders frequently to break up text.
3. **Voice:** Satirical, forensic, tough-love. Address the reader directly ("You thought it was easy...").
4. **PosiBot:** Insert "PosiBot" quotes if the brief asks for them. PosiBot is a toxic-positivity AI that interrupts the hard truths.
5. **Visuals:** Insert [Visual: ...] blocks as requested in the brief.

**OUTPUT:**
Return ONLY a JSON object of this shape:
{
  "content": "markdown string",
  "posiBotQuotes": [{"position": "LEFT" | "RIGHT", "text": "string"}],
  "visuals": [{"type": "HERO" | "CHART" | "CALLOUT" | "PORTRAIT" | "DIAGRAM", "description": "string", "caption": "string"}]
}"""


def chapter_tier(length_level: int) -> str:
    return "Condensed (4 Chapters)" if length_level == 1 else "Full Standard (8 Chapters)"


def placeholder_chapter(brief: ChapterBrief) -> Chapter:
    return Chapter(number=brief.number, title=brief.title, content=PLACEHOLDER_CONTENT)


class AuthorAgent:
    def __init__(self, registry: ProviderRegistry, default_model: str = WRITING_MODEL):
        self.registry = registry
        self.default_model = default_model

    def resolve_model(self, settings: GenSettings) -> str:
        model_id = settings.writing_model or self.default_model
        if catalog.get_model(model_id) is None:
            logger.warning("Model %s not found, falling back to %s", model_id, self.default_model)
            return self.default_model
        return model_id

    async def _generate_json(self, model_id: str, prompt: str, options: GenerationOptions):
        provider = await self.registry.provider_for_model(model_id)
        text = await provider.generate_text(model_id, prompt, options)
        return extract_json(text)

    # --- Stage 1: architect ---

    async def generate_outline(self, topic: str, research: ResearchRecord,
                               settings: GenSettings) -> Outline:
        model_id = self.resolve_model(settings)
        key_stats = [s.to_json_dict() for s in research.market_stats[:OUTLINE_STAT_LIMIT]]
        constraints = (
            f"Tone: {settings.tone or 'Default Y-It Satire'}\n"
            f"Structure: {chapter_tier(settings.length_level)}"
        )
        if settings.target_word_count:
            constraints += f"\nTarget Word Count: {settings.target_word_count}"
        if settings.case_study_count:
            constraints += f"\nCase Studies: {settings.case_study_count}"

        prompt = (
            f"Topic: {topic}\n"
            f"Research Data Summary: {json.dumps(research.summary)}\n"
            f"Key Stats: {json.dumps(key_stats)}\n\n"
            "USER MANIFEST (CRITICAL - FOLLOW THESE RULES):\n"
            f"{settings.custom_spec or 'No custom spec provided. Use defaults.'}\n\n"
            f"Global Constraints:\n{constraints}\n\n"
            "Task: Create the master outline and DETAILED CHAPTER BRIEFS for the ghostwriter.\n"
            "IMPORTANT: If the Manifest contains a [MANUSCRIPT OVERRIDE] for a chapter, "
            "the brief MUST instruct the ghostwriter to use that exact text."
        )
        try:
            data = await self._generate_json(
                model_id, prompt,
                GenerationOptions(system_prompt=AUTHOR_OUTLINE_PROMPT, json_mode=True),
            )
            outline = validate("outline", data)
        except (ConfigurationError, PipelineCancelledError):
            raise
        except Exception as e:
            logger.error("Outline generation failed: %s", e)
            raise OutlineGenerationFailedError(f"Outline generation failed: {e}") from e

        if not outline.chapter_briefs:
            raise OutlineGenerationFailedError("Outline generation failed: outline has no chapter briefs")
        logger.info("Outline: '%s' with %d chapter briefs", outline.title, len(outline.chapter_briefs))
        return outline

    # --- Stage 2: ghostwriter ---

    async def generate_chapter(self, topic: str, research: ResearchRecord, settings: GenSettings,
                               brief: ChapterBrief, book_title: str) -> ChapterContent:
        model_id = self.resolve_model(settings)
        prompt = (
            f"Book Title: {book_title}\n"
            f"Topic: {topic}\n"
            f"Research Data (Reference this for facts): {json.dumps(research.to_json_dict())}\n\n"
            "CHAPTER ASSIGNMENT:\n"
            f"Number: {brief.number}\n"
            f"Title: {brief.title}\n"
            f"BRIEFING INSTRUCTIONS: {brief.detailed_brief}\n\n"
            "MANIFEST / SPEC (Look here for specific PosiBot rules or Overrides):\n"
            f"{settings.custom_spec or ''}\n\n"
            f"Global Tone: {settings.tone}\n"
            f"Tech Level: {settings.tech_level}"
        )
        data = await self._generate_json(
            model_id, prompt,
            GenerationOptions(
                system_prompt=AUTHOR_CHAPTER_PROMPT,
                json_mode=True,
                thinking_budget=CHAPTER_THINKING_BUDGET,
            ),
        )
        return validate("chapter_content", data)

    async def _write_chapter(self, topic: str, research: ResearchRecord, settings: GenSettings,
                             brief: ChapterBrief, book_title: str,
                             on_progress: Optional[ProgressObserver],
                             cancel_token: Optional[CancellationToken]) -> Chapter:
        check_cancelled(cancel_token)
        notify(on_progress, f"Writing Chapter {brief.number}: {brief.title}...")
        try:
            content = await self.generate_chapter(topic, research, settings, brief, book_title)
        except PipelineCancelledError:
            raise
        except Exception as e:
            logger.error("Failed to generate chapter %d (%s): %s", brief.number, brief.title, e)
            return placeholder_chapter(brief)
        check_cancelled(cancel_token)
        return Chapter(
            number=brief.number,
            title=brief.title,
            content=content.content,
            posi_bot_quotes=content.posi_bot_quotes or [],
            visuals=content.visuals or [],
        )

    async def _write_chapters(self, topic: str, research: ResearchRecord, settings: GenSettings,
                              briefs: List[ChapterBrief], book_title: str,
                              on_progress: Optional[ProgressObserver],
                              cancel_token: Optional[CancellationToken]) -> List[Chapter]:
        """Work a queue of briefs with ``chapter_concurrency`` workers; result is in brief order."""
        results: List[Optional[Chapter]] = [None] * len(briefs)
        queue: asyncio.Queue = asyncio.Queue()
        for index, brief in enumerate(briefs):
            queue.put_nowait((index, brief))

        async def worker():
            while True:
                try:
                    index, brief = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[index] = await self._write_chapter(
                    topic, research, settings, brief, book_title, on_progress, cancel_token,
                )

        workers = max(1, min(settings.chapter_concurrency or 1, len(briefs)))
        tasks = [asyncio.ensure_future(worker()) for _ in range(workers)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        return results

    # --- Assembly ---

    async def generate_draft(self, topic: str, research: ResearchRecord, settings: GenSettings,
                             on_progress: Optional[ProgressObserver] = None,
                             cancel_token: Optional[CancellationToken] = None) -> Book:
        check_cancelled(cancel_token)
        notify(on_progress, "Architecting book structure and chapter briefs...")
        outline = await self.generate_outline(topic, research, settings)

        briefs = sorted(outline.chapter_briefs, key=lambda b: b.number)
        chapters = await self._write_chapters(
            topic, research, settings, briefs, outline.title, on_progress, cancel_token,
        )

        failed = sum(1 for c in chapters if c.content == PLACEHOLDER_CONTENT)
        if failed:
            logger.warning("%d/%d chapters degraded to placeholders", failed, len(chapters))

        notify(on_progress, "Finalizing manuscript...")
        book = Book(
            title=outline.title,
            subtitle=outline.subtitle,
            front_cover=outline.front_cover,
            back_cover=outline.back_cover,
            chapters=chapters,
        )
        return validate("book", book.to_json_dict())
