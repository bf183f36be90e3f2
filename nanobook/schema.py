"""
Two-phase validation of extracted LLM JSON: coerce, then check.

Phase 1 walks the value against the field rules below and converts loosely
typed input into canonical shapes using the COERCIONS table (numbers sent as
text, missing research lists, lower-case enum labels). Phase 2 hands the
coerced dict to the pydantic model for the kind, which enforces required
fields and ranges. Both phases report into one list of violations so a caller
sees every problem at once.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from nanobook.errors import SchemaValidationError
from nanobook.models import (
    AFFILIATE_TYPES,
    CASE_STUDY_TYPES,
    QUOTE_POSITIONS,
    VISUAL_TYPES,
    Book,
    ChapterContent,
    Outline,
    PodcastScript,
    ResearchRecord,
)
from nanobook.utils import safe_float, safe_int, safe_str

logger = logging.getLogger(__name__)


class _Reject(ValueError):
    pass


# ---------------------------------------------------------------------------
# Coercion table: accepted input shapes -> canonical output type
# ---------------------------------------------------------------------------
def _coerce_str(value, rule):
    # str -> str; int/float/bool -> str(v)
    out = safe_str(value)
    if out is None:
        raise _Reject(f"expected string, got {type(value).__name__}")
    return out


def _coerce_int(value, rule):
    # int, integral float, numeric string ("7", " 7.0 ") -> int
    out = safe_int(value)
    if out is None:
        raise _Reject(f"expected integer, got {value!r}")
    return out


def _coerce_rating(value, rule):
    # any number or numeric string -> nearest int ("7.5" -> 8)
    out = safe_float(value)
    if out is None or not math.isfinite(out):
        raise _Reject(f"expected finite number, got {value!r}")
    return int(out + 0.5) if out >= 0 else int(out - 0.5)


def _coerce_enum(value, rule):
    # any string; known labels upper-cased, unknown labels pass through
    if not isinstance(value, str):
        raise _Reject(f"expected string label, got {type(value).__name__}")
    label = value.strip()
    if label.upper() in rule.choices:
        return label.upper()
    return label


def _coerce_list(value, rule):
    if not isinstance(value, list):
        raise _Reject(f"expected list, got {type(value).__name__}")
    return value


def _coerce_object(value, rule):
    if not isinstance(value, dict):
        raise _Reject(f"expected object, got {type(value).__name__}")
    return value


COERCIONS: Dict[str, Callable[[Any, "Rule"], Any]] = {
    "str": _coerce_str,
    "int": _coerce_int,
    "rating": _coerce_rating,
    "enum": _coerce_enum,
    "list": _coerce_list,
    "object": _coerce_object,
}

_MISSING = object()


@dataclass(frozen=True)
class Rule:
    coerce: str
    required: bool = True
    shape: Optional[str] = None       # nested shape for list items / objects
    choices: tuple = ()               # known labels for relaxed enums
    default: Any = _MISSING           # value used when the key is absent


def _req(coerce, **kw):
    return Rule(coerce, True, **kw)


def _opt(coerce, **kw):
    return Rule(coerce, False, **kw)


_EMPTY_LIST = ()  # sentinel turned into a fresh [] per record

SHAPES: Dict[str, Dict[str, Rule]] = {
    "stat": {
        "label": _req("str"),
        "value": _req("str"),
        "context": _req("str"),
    },
    "case_study": {
        "name": _req("str"),
        "type": _req("enum", choices=CASE_STUDY_TYPES),
        "background": _req("str"),
        "strategy": _req("str"),
        "outcome": _req("str"),
        "revenue": _req("str"),
    },
    "affiliate": {
        "program": _req("str"),
        "potential": _opt("str"),
        "type": _req("enum", choices=AFFILIATE_TYPES),
        "commission": _req("str"),
        "notes": _req("str"),
    },
    "research": {
        "summary": _req("str"),
        "ethicalRating": _req("rating"),
        "profitPotential": _req("str"),
        "marketStats": _req("list", shape="stat", default=_EMPTY_LIST),
        "hiddenCosts": _req("list", shape="stat", default=_EMPTY_LIST),
        "caseStudies": _req("list", shape="case_study", default=_EMPTY_LIST),
        "affiliates": _req("list", shape="affiliate", default=_EMPTY_LIST),
    },
    "cover": {
        "titleText": _opt("str"),
        "subtitleText": _opt("str"),
        "blurb": _opt("str"),
        "visualDescription": _req("str"),
        "imageUrl": _opt("str"),
    },
    "chapter_brief": {
        "number": _req("int"),
        "title": _req("str"),
        "detailedBrief": _req("str"),
    },
    "outline": {
        "title": _req("str"),
        "subtitle": _req("str"),
        "frontCover": _opt("object", shape="cover"),
        "backCover": _opt("object", shape="cover"),
        "chapterBriefs": _req("list", shape="chapter_brief"),
    },
    "quote": {
        "position": _req("enum", choices=QUOTE_POSITIONS),
        "text": _req("str"),
    },
    "visual": {
        "type": _req("enum", choices=VISUAL_TYPES),
        "description": _req("str"),
        "caption": _opt("str"),
        "imageUrl": _opt("str"),
    },
    "chapter_content": {
        "content": _req("str"),
        "posiBotQuotes": _opt("list", shape="quote"),
        "visuals": _opt("list", shape="visual"),
    },
    "chapter": {
        "number": _req("int"),
        "title": _req("str"),
        "content": _req("str"),
        "posiBotQuotes": _opt("list", shape="quote", default=_EMPTY_LIST),
        "visuals": _opt("list", shape="visual", default=_EMPTY_LIST),
    },
    "book": {
        "title": _req("str"),
        "subtitle": _req("str"),
        "frontCover": _opt("object", shape="cover"),
        "backCover": _opt("object", shape="cover"),
        "chapters": _req("list", shape="chapter"),
    },
    "podcast_line": {
        "speaker": _req("str"),
        "text": _req("str"),
    },
    "podcast_script": {
        "title": _req("str"),
        "lines": _req("list", shape="podcast_line"),
    },
}

KIND_MODELS: Dict[str, type] = {
    "research": ResearchRecord,
    "outline": Outline,
    "chapter_content": ChapterContent,
    "book": Book,
    "podcast_script": PodcastScript,
}


def _coerce_shape(value: Any, shape: str, path: str, violations: List[str]) -> Optional[dict]:
    if not isinstance(value, dict):
        violations.append(f"{path or '<root>'}: expected object, got {type(value).__name__}")
        return None

    out = {}
    for key, rule in SHAPES[shape].items():
        where = f"{path}.{key}" if path else key
        raw = value.get(key, _MISSING)

        if raw is _MISSING or raw is None:
            if rule.default is _EMPTY_LIST:
                out[key] = []
            elif rule.default is not _MISSING:
                out[key] = rule.default
            elif rule.required:
                violations.append(f"{where}: required field missing")
            continue

        try:
            coerced = COERCIONS[rule.coerce](raw, rule)
        except _Reject as e:
            violations.append(f"{where}: {e}")
            continue

        if rule.coerce == "list" and rule.shape:
            items = []
            for i, item in enumerate(coerced):
                nested = _coerce_shape(item, rule.shape, f"{where}[{i}]", violations)
                if nested is not None:
                    items.append(nested)
            coerced = items
        elif rule.coerce == "object" and rule.shape:
            coerced = _coerce_shape(coerced, rule.shape, where, violations)
            if coerced is None:
                continue

        out[key] = coerced
    return out


def coerce(kind: str, value: Any) -> Tuple[dict, List[str]]:
    """Phase 1 only: return (coerced dict, violations)."""
    if kind not in KIND_MODELS:
        raise KeyError(f"Unknown schema kind: {kind}")
    violations: List[str] = []
    coerced = _coerce_shape(value, kind, "", violations)
    return coerced or {}, violations


def _format_pydantic_errors(exc: ValidationError) -> List[str]:
    out = []
    for err in exc.errors():
        loc = ""
        for part in err.get("loc", ()):
            loc += f"[{part}]" if isinstance(part, int) else (f".{part}" if loc else str(part))
        out.append(f"{loc or '<root>'}: {err.get('msg', 'invalid')}")
    return out


def validate(kind: str, value: Any) -> BaseModel:
    """Coerce and check ``value`` as ``kind``; raise SchemaValidationError on any violation."""
    coerced, violations = coerce(kind, value)
    if violations:
        logger.warning("Schema '%s' rejected %d field(s): %s", kind, len(violations), violations[:3])
        raise SchemaValidationError(kind, violations)

    try:
        return KIND_MODELS[kind].model_validate(coerced)
    except ValidationError as e:
        violations = _format_pydantic_errors(e)
        logger.warning("Schema '%s' rejected %d field(s): %s", kind, len(violations), violations[:3])
        raise SchemaValidationError(kind, violations) from e
