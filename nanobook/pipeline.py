"""
nanobook pipeline: research -> outline -> chapters -> (optional) podcast.

Library entry points are ``run_investigation`` and ``generate_podcast``; both
take an explicit ``Services`` container so tests can inject fake providers.
This is the one place fatal pipeline errors are caught and turned into a
failed result.

Usage:
    python -m nanobook --topic "Dropshipping"
    python -m nanobook --topic "Dropshipping" --research-file notes.md --podcast
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from nanobook.author import AuthorAgent
from nanobook.config import (
    CHAPTER_CONCURRENCY,
    PODCAST_MODEL,
    RESEARCH_MODEL,
    TTS_MODEL,
    WRITING_MODEL,
    Credentials,
)
from nanobook.errors import (
    ConfigurationError,
    PipelineAbortError,
    PipelineCancelledError,
    PodcastGenerationFailedError,
    SchemaValidationError,
)
from nanobook.manuscript import parse_manuscript
from nanobook.models import (
    Book,
    GenSettings,
    InvestigationResult,
    PodcastResult,
    PodcastSettings,
    ResearchRecord,
)
from nanobook.podcast.audio import write_episode
from nanobook.podcast.script import PodcastScriptGenerator
from nanobook.progress import CancellationToken, PhaseTracker, ProgressObserver
from nanobook.providers.registry import ProviderRegistry
from nanobook.research.cache import ResearchCache
from nanobook.research.coordinator import ResearchCoordinator
from nanobook.schema import validate

logger = logging.getLogger(__name__)

FATAL_ERRORS = (PipelineAbortError, PipelineCancelledError, ConfigurationError, SchemaValidationError)


@dataclass
class Services:
    """Everything a run needs, wired once per process (or per test)."""
    registry: ProviderRegistry
    coordinator: ResearchCoordinator
    author: AuthorAgent
    podcast: PodcastScriptGenerator
    cache: Optional[ResearchCache] = None

    async def aclose(self) -> None:
        await self.registry.aclose()
        if self.cache is not None:
            self.cache.close()


def build_services(credentials: Optional[Credentials] = None,
                   settings: Optional[GenSettings] = None,
                   registry: Optional[ProviderRegistry] = None,
                   cache: Optional[ResearchCache] = None) -> Services:
    settings = settings or GenSettings()
    registry = registry or ProviderRegistry(credentials or Credentials.from_env())
    return Services(
        registry=registry,
        coordinator=ResearchCoordinator(registry, settings.research_model or RESEARCH_MODEL),
        author=AuthorAgent(registry, WRITING_MODEL),
        podcast=PodcastScriptGenerator(registry, settings.podcast_model or PODCAST_MODEL, TTS_MODEL),
        cache=cache,
    )


async def _resolve_research(topic: str, services: Services, override: Any,
                            on_progress: Optional[ProgressObserver],
                            cancel_token: Optional[CancellationToken]):
    """Returns (record, source). Sources: upload, normalized, cache, agents."""
    if isinstance(override, ResearchRecord):
        return override, "upload"
    if isinstance(override, dict):
        return validate("research", override), "upload"
    if isinstance(override, str) and override.strip():
        record = await services.coordinator.normalize_log(override, cancel_token=cancel_token)
        return record, "normalized"

    if services.cache is not None:
        cached = services.cache.get(topic)
        if cached is not None:
            return cached, "cache"

    record = await services.coordinator.execute(topic, on_progress, cancel_token=cancel_token)
    if services.cache is not None:
        services.cache.put(topic, record)
    return record, "agents"


async def run_investigation(topic: str, settings: GenSettings, services: Services,
                            override: Any = None,
                            on_progress: Optional[ProgressObserver] = None,
                            cancel_token: Optional[CancellationToken] = None,
                            book: Optional[Book] = None) -> InvestigationResult:
    """Research (or accept supplied research) and write the book.

    ``override`` may be a ResearchRecord, a research dict (validated), or raw
    notes (normalized). An imported ``book`` replaces the authoring phase.
    Fatal errors come back as a failed result, never raised.
    """
    result = InvestigationResult(topic=topic)
    tracker = PhaseTracker(topic)
    tracker.start()
    try:
        tracker.phase_started("Research")
        result.research, result.research_source = await _resolve_research(
            topic, services, override, on_progress, cancel_token,
        )
        tracker.phase_completed()
        logger.info("Research ready (source: %s)", result.research_source)

        if book is not None:
            logger.info("Using imported manuscript '%s' (%d chapters)", book.title, len(book.chapters))
            result.book = book
        else:
            tracker.phase_started("Authoring")
            result.book = await services.author.generate_draft(
                topic, result.research, settings, on_progress=on_progress, cancel_token=cancel_token,
            )
            tracker.phase_completed()
    except FATAL_ERRORS as e:
        logger.error("Investigation failed for '%s': %s: %s", topic, type(e).__name__, e)
        result.status = "failed"
        result.error = str(e)
        tracker.finish("failed")
        return result

    tracker.finish()
    return result


async def generate_podcast(topic: str, research: ResearchRecord, settings: PodcastSettings,
                           services: Services, book: Optional[Book] = None,
                           include_audio: bool = True) -> PodcastResult:
    """Script (and audio); failures return a failed PodcastResult and leave the book alone."""
    result = PodcastResult()
    try:
        result.script = await services.podcast.generate_script(topic, research, settings, book=book)
        if include_audio:
            result.audio = await services.podcast.generate_audio(result.script, settings)
    except (PodcastGenerationFailedError, ConfigurationError) as e:
        logger.error("Podcast generation failed: %s", e)
        result.status = "failed"
        result.error = str(e)
    return result


# ================================================================
# CLI
# ================================================================

def setup_logging(output_dir: Path):
    """Configure logging to the run directory and stdout"""
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(output_dir / 'nanobook.log'),
            logging.StreamHandler(sys.stdout)
        ],
        force=True
    )
    # provider SDK request logs are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_timestamped_output_dir(base_dir: Path) -> Path:
    """Create a run folder: <base>/YYYY-MM-DD_HH-MM-SS/"""
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    run_dir = base_dir / timestamp
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def log_progress(payload):
    """CLI progress observer: agent snapshots or a status line."""
    if isinstance(payload, list):
        logger.info("Agents: %s", ", ".join(f"{s.name}={s.status.value}" for s in payload))
    else:
        logger.info("%s", payload)


def load_research_file(path: str):
    """.json -> research dict (validated later); anything else -> raw notes for normalization."""
    with open(path, encoding="utf-8") as f:
        text = f.read()
    if path.lower().endswith(".json"):
        return json.loads(text)
    return text


def write_json(path: Path, data) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    logger.info("Wrote %s", path)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description='Generate an illustrated nano-book (and optional podcast) on a topic.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m nanobook --topic "Dropshipping"
  python -m nanobook --topic "Dropshipping" --length-level 1 --podcast
  python -m nanobook --topic "Print on demand" --research-file notes.md --manifest manifest.txt

Environment variables:
  GEMINI_API_KEY, ANTHROPIC_API_KEY, OPENAI_API_KEY
  RESEARCH_MODEL, WRITING_MODEL, PODCAST_MODEL
        """
    )
    parser.add_argument('--topic', type=str, required=True, help='Topic to investigate')
    parser.add_argument(
        '--research-file',
        type=str,
        help='Skip the research agents: .json research record, or .md/.txt notes to normalize'
    )
    parser.add_argument('--manifest', type=str, help='File with free-form generation instructions')
    parser.add_argument(
        '--manuscript',
        type=str,
        help='Skip authoring: restore the book from a .json backup or markdown draft'
    )
    parser.add_argument('--tone', type=str, default='', help='Global tone for the book')
    parser.add_argument(
        '--length-level',
        type=int,
        choices=[1, 2, 3],
        default=2,
        help='1 = condensed (4 chapters), 2/3 = full (8 chapters)'
    )
    parser.add_argument('--research-model', type=str, help='Model id for research agents and synthesis')
    parser.add_argument('--writing-model', type=str, help='Model id for outline and chapters')
    parser.add_argument('--podcast-model', type=str, help='Model id for the podcast script')
    parser.add_argument(
        '--chapter-concurrency',
        type=int,
        default=CHAPTER_CONCURRENCY,
        help='Chapters written in parallel (1 = sequential)'
    )
    parser.add_argument('--podcast', action='store_true', help='Also produce a podcast episode')
    parser.add_argument('--no-cache', action='store_true', help='Do not read or write the research cache')
    parser.add_argument(
        '--output-dir',
        type=str,
        help='Run output directory (default: book_outputs/<timestamp>)'
    )
    return parser.parse_args(argv)


async def _run_cli(args, output_dir: Path) -> int:
    settings = GenSettings(
        tone=args.tone,
        length_level=args.length_level,
        research_model=args.research_model,
        writing_model=args.writing_model,
        podcast_model=args.podcast_model,
        chapter_concurrency=args.chapter_concurrency,
    )
    if args.manifest:
        with open(args.manifest, encoding="utf-8") as f:
            settings.custom_spec = f.read()
    try:
        override = load_research_file(args.research_file) if args.research_file else None
        book = None
        if args.manuscript:
            with open(args.manuscript, encoding="utf-8") as f:
                book = parse_manuscript(f.read())
    except (OSError, ValueError, SchemaValidationError) as e:
        logger.error("Could not load input file: %s: %s", type(e).__name__, e)
        return 1

    services = build_services(
        Credentials.from_env(), settings,
        cache=None if args.no_cache else ResearchCache(),
    )
    try:
        result = await run_investigation(args.topic, settings, services, override=override,
                                         on_progress=log_progress, book=book)
        if result.research is not None:
            write_json(output_dir / "research.json", result.research.to_json_dict())
        if not result.ok:
            logger.error("Book generation failed: %s", result.error)
            return 1
        write_json(output_dir / "book.json", result.book.to_json_dict())

        if args.podcast:
            episode = await generate_podcast(
                args.topic, result.research, PodcastSettings(length_level=args.length_level),
                services, book=result.book,
            )
            if episode.script is not None:
                write_json(output_dir / "podcast_script.json", episode.script.to_json_dict())
            if episode.audio is not None:
                write_episode(episode.audio, str(output_dir / "podcast.wav"))
            if episode.status != "completed":
                logger.warning("Podcast not produced: %s", episode.error)
    finally:
        await services.aclose()
    return 0


def main(argv=None) -> int:
    args = parse_arguments(argv)
    if args.output_dir:
        output_dir = Path(args.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
    else:
        output_dir = create_timestamped_output_dir(Path(os.getcwd()) / "book_outputs")
    setup_logging(output_dir)
    logger.info("OUTPUT DIRECTORY: %s", output_dir)
    return asyncio.run(_run_cli(args, output_dir))


if __name__ == "__main__":
    sys.exit(main())
