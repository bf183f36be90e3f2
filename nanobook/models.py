"""
Pydantic records and dataclasses passed between pipeline stages.

Pydantic models carry the structured LLM outputs (validated by nanobook.schema);
field names are snake_case and serialize with the camelCase aliases used in
prompts and persisted JSON (``ethicalRating``, ``chapterBriefs``, ...).
Dataclasses carry settings and run results.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Research record
# ---------------------------------------------------------------------------
CASE_STUDY_TYPES = ("WINNER", "LOSER")
AFFILIATE_TYPES = ("PARTICIPANT", "WRITER")


class Stat(_Record):
    label: str
    value: str
    context: str


class CaseStudy(_Record):
    name: str
    type: str  # WINNER | LOSER, unknown labels pass through
    background: str
    strategy: str
    outcome: str
    revenue: str


class Affiliate(_Record):
    program: str
    potential: Optional[str] = None
    type: str  # PARTICIPANT | WRITER, unknown labels pass through
    commission: str
    notes: str


class ResearchRecord(_Record):
    """Canonical output of the research phase."""
    summary: str
    ethical_rating: int = Field(alias="ethicalRating", ge=1, le=10)
    profit_potential: str = Field(alias="profitPotential")
    market_stats: List[Stat] = Field(default_factory=list, alias="marketStats")
    hidden_costs: List[Stat] = Field(default_factory=list, alias="hiddenCosts")
    case_studies: List[CaseStudy] = Field(default_factory=list, alias="caseStudies")
    affiliates: List[Affiliate] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Book
# ---------------------------------------------------------------------------
VISUAL_TYPES = ("HERO", "CHART", "CALLOUT", "PORTRAIT", "DIAGRAM")
QUOTE_POSITIONS = ("LEFT", "RIGHT")


class Cover(_Record):
    title_text: Optional[str] = Field(default=None, alias="titleText")
    subtitle_text: Optional[str] = Field(default=None, alias="subtitleText")
    blurb: Optional[str] = None
    visual_description: str = Field(alias="visualDescription")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class ChapterBrief(_Record):
    number: int = Field(gt=0)
    title: str
    detailed_brief: str = Field(alias="detailedBrief")


class Outline(_Record):
    """Architect-stage output; consumed by the chapter loop and then discarded."""
    title: str
    subtitle: str
    front_cover: Optional[Cover] = Field(default=None, alias="frontCover")
    back_cover: Optional[Cover] = Field(default=None, alias="backCover")
    chapter_briefs: List[ChapterBrief] = Field(alias="chapterBriefs")


class PosiBotQuote(_Record):
    position: str  # LEFT | RIGHT, unknown labels pass through
    text: str


class Visual(_Record):
    type: str  # HERO | CHART | CALLOUT | PORTRAIT | DIAGRAM, unknown labels pass through
    description: str
    caption: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class ChapterContent(_Record):
    content: str
    posi_bot_quotes: Optional[List[PosiBotQuote]] = Field(default=None, alias="posiBotQuotes")
    visuals: Optional[List[Visual]] = None


class Chapter(_Record):
    number: int
    title: str
    content: str
    posi_bot_quotes: List[PosiBotQuote] = Field(default_factory=list, alias="posiBotQuotes")
    visuals: List[Visual] = Field(default_factory=list)


class Book(_Record):
    title: str
    subtitle: str
    front_cover: Optional[Cover] = Field(default=None, alias="frontCover")
    back_cover: Optional[Cover] = Field(default=None, alias="backCover")
    chapters: List[Chapter]


# ---------------------------------------------------------------------------
# Podcast
# ---------------------------------------------------------------------------
class PodcastLine(_Record):
    speaker: str
    text: str


class PodcastScript(_Record):
    title: str
    lines: List[PodcastLine]


# ---------------------------------------------------------------------------
# Agent telemetry
# ---------------------------------------------------------------------------
class AgentStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class AgentState:
    name: str
    status: AgentStatus = AgentStatus.PENDING
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@dataclass
class GenSettings:
    """Book generation settings. ``custom_spec`` is the user manifest, passed verbatim."""
    tone: str = ""
    visual_style: str = ""
    length_level: int = 2       # 1 (Nano), 2 (Standard), 3 (Deep)
    image_density: int = 2      # 1 (Text), 2 (Balanced), 3 (Visual Heavy)
    tech_level: int = 2         # 1 (Artistic), 2 (Hybrid), 3 (Technical)
    target_word_count: Optional[int] = None
    case_study_count: Optional[int] = None
    front_cover_prompt: str = ""
    back_cover_prompt: str = ""
    custom_spec: str = ""
    research_model: Optional[str] = None
    writing_model: Optional[str] = None
    image_model: Optional[str] = None
    podcast_model: Optional[str] = None
    chapter_concurrency: int = 1


@dataclass
class PodcastSettings:
    host1_voice: str = "Puck"
    host2_voice: str = "Charon"
    host1_name: str = "Host 1"
    host2_name: str = "Host 2"
    conversation_style: str = "Skeptic vs Optimist"
    length_level: int = 2       # 1 (Short), 2 (Medium), 3 (Long)


# ---------------------------------------------------------------------------
# Run results
# ---------------------------------------------------------------------------
@dataclass
class InvestigationResult:
    topic: str
    status: str = "completed"   # "completed" | "failed"
    research: Optional[ResearchRecord] = None
    book: Optional[Book] = None
    research_source: str = ""   # "agents" | "cache" | "upload" | "normalized"
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"


@dataclass
class PodcastAudio:
    wav: bytes
    sample_rate: int
    channels: int

    @property
    def duration_seconds(self) -> float:
        payload = max(len(self.wav) - 44, 0)
        return payload / float(self.sample_rate * self.channels * 2)


@dataclass
class PodcastResult:
    status: str = "completed"
    script: Optional[PodcastScript] = None
    audio: Optional[PodcastAudio] = None
    error: Optional[str] = None
