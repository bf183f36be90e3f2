"""
Restore a Book from an uploaded manuscript.

Accepts either a JSON book backup or a markdown draft:

    # Title
    ## Subtitle
    ## Chapter 1: The Lie
    body text...
    [Visual: HERO - A golden apple rotting from the inside]
    ![Burning wallet](https://example.com/wallet.png)
"""

import json
import logging
import re
from typing import List, Optional

from nanobook.models import Book, Chapter, Cover, Visual
from nanobook.schema import validate

logger = logging.getLogger(__name__)

TITLE_RE = re.compile(r'^#\s+(.+)')
CHAPTER_RE = re.compile(r'^##\s*Chapter\s*(\d+|One|Two|Three)?[:\s]*(.+)', re.IGNORECASE)
VISUAL_TAG_RE = re.compile(r'\[Visual:\s*([A-Z]+)?\s*[-–:]\s*(.+)\]', re.IGNORECASE)
MD_IMAGE_RE = re.compile(r'!\[(.*?)\]\((.*?)\)')

# header lines after this index no longer count as the subtitle
HEADER_SECTION_LINES = 5

_TAG_TYPES = ("HERO", "CHART", "CALLOUT", "PORTRAIT")


def _parse_json_backup(text: str) -> Optional[Book]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("chapters"), list):
        return None
    data = dict(data)
    data["title"] = data.get("title") or "Untitled Import"
    data["subtitle"] = data.get("subtitle") or "Restored Manuscript"
    book = validate("book", data)
    logger.info("Restored JSON book backup '%s' (%d chapters)", book.title, len(book.chapters))
    return book


class _ChapterDraft:
    def __init__(self, number: int, title: str):
        self.number = number
        self.title = title
        self.lines: List[str] = []
        self.visuals: List[Visual] = []

    def build(self) -> Chapter:
        return Chapter(
            number=self.number,
            title=self.title,
            content="\n".join(self.lines).strip(),
            visuals=self.visuals,
        )


def _parse_markdown(text: str) -> Book:
    title = "Imported Manuscript"
    subtitle = "Draft Upload"
    chapters: List[Chapter] = []
    current: Optional[_ChapterDraft] = None
    in_header = True

    def start_chapter(chapter_title: str) -> _ChapterDraft:
        if current is not None:
            chapters.append(current.build())
        return _ChapterDraft(len(chapters) + 1, chapter_title)

    for index, line in enumerate(text.split("\n")):
        stripped = line.strip()
        chapter_match = CHAPTER_RE.match(stripped)

        if in_header:
            title_match = TITLE_RE.match(stripped)
            if title_match:
                title = title_match.group(1).strip()
                continue
            if chapter_match or (stripped.startswith("##") and index > HEADER_SECTION_LINES):
                in_header = False
            elif stripped.startswith("## "):
                subtitle = stripped[3:].strip()
                continue

        if chapter_match:
            current = start_chapter(chapter_match.group(2).strip() or "Untitled Chapter")
            in_header = False
            continue

        if not in_header and stripped.startswith("## "):
            current = start_chapter(stripped[3:].strip())
            continue

        if current is None:
            continue

        visual_match = VISUAL_TAG_RE.search(stripped)
        if visual_match:
            tag = (visual_match.group(1) or "DIAGRAM").upper()
            description = visual_match.group(2).strip()
            current.visuals.append(Visual(
                type=tag if tag in _TAG_TYPES else "DIAGRAM",
                description=description,
                caption=description,
            ))
            continue

        image_match = MD_IMAGE_RE.search(stripped)
        if image_match:
            alt, url = image_match.group(1), image_match.group(2)
            current.visuals.append(Visual(type="HERO", description=alt, caption=alt, image_url=url))
            continue

        current.lines.append(line)

    if current is not None:
        chapters.append(current.build())

    logger.info("Parsed markdown manuscript '%s' (%d chapters)", title, len(chapters))
    return Book(
        title=title,
        subtitle=subtitle,
        front_cover=Cover(
            title_text=title,
            subtitle_text=subtitle,
            visual_description="A striking cover representing the book topic.",
        ),
        back_cover=Cover(blurb="Imported manuscript.", visual_description="Abstract patterns."),
        chapters=chapters,
    )


def parse_manuscript(text: str) -> Book:
    book = _parse_json_backup(text)
    if book is not None:
        return book
    return _parse_markdown(text)
