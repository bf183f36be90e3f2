"""
Recover JSON values from raw LLM output.

Models return clean JSON, fenced JSON, or JSON wrapped in commentary, and
occasionally JSON with syntax slips. ``extract_json`` walks a cascade of
strategies from cheapest to most aggressive and returns the first value that
parses:

1. direct parse of the trimmed text
2. payload of a ```json fenced block
3. payload of the first generic ``` fenced block
4. payload of the first inline `backtick` span
5. greedy ``{...}`` then ``[...]`` span
6. aggressive cleanup (drop fences, leading and trailing prose)
7. syntax repair (trailing commas, single quotes, bare keys), then the first object

``repair_json`` / ``safe_json_parse`` are the independent repair path used
before schema validation in research synthesis; they additionally close
brackets left open by a truncated response.
"""

import json
import logging
import re
from typing import Any, Optional

from nanobook.errors import UnparseableOutputError

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```json", re.IGNORECASE)
_OBJECT_SPAN = re.compile(r"(\{[\s\S]*\})")
_ARRAY_SPAN = re.compile(r"(\[[\s\S]*\])")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_BARE_KEY = re.compile(r"(\w+):")


def _loads(text: str) -> Any:
    # strict=False tolerates raw newlines inside strings, which models emit often
    return json.loads(text, strict=False)


def _between(text: str, start: int, fence: str) -> Optional[str]:
    end = text.find(fence, start)
    if end == -1:
        return None
    return text[start:end].strip()


def _direct(text: str) -> Any:
    return _loads(text.strip())


def _json_fence(text: str) -> Any:
    match = _JSON_FENCE.search(text)
    if not match:
        raise ValueError("no ```json fence")
    payload = _between(text, match.end(), "```")
    if payload is None:
        raise ValueError("unterminated ```json fence")
    return _loads(payload)


def _generic_fence(text: str) -> Any:
    start = text.find("```")
    if start == -1:
        raise ValueError("no ``` fence")
    payload = _between(text, start + 3, "```")
    if payload is None:
        raise ValueError("unterminated ``` fence")
    return _loads(payload)


def _inline_code(text: str) -> Any:
    start = text.find("`")
    if start == -1:
        raise ValueError("no inline code span")
    payload = _between(text, start + 1, "`")
    if payload is None:
        raise ValueError("unterminated inline code span")
    return _loads(payload)


def _greedy_span(text: str) -> Any:
    for pattern in (_OBJECT_SPAN, _ARRAY_SPAN):
        match = pattern.search(text)
        if match:
            try:
                return _loads(match.group(1))
            except ValueError:
                continue
    raise ValueError("no parseable {...} or [...] span")


def _aggressive_cleanup(text: str) -> Any:
    clean = re.sub(r"```json", "", text, flags=re.IGNORECASE)
    clean = clean.replace("```", "")
    clean = re.sub(r"^[^\[{]*", "", clean)
    clean = re.sub(r"[^\]}]*$", "", clean)
    return _loads(clean.strip())


def _syntax_repair(text: str) -> Any:
    clean = re.sub(r",\s*}", "}", text)
    clean = re.sub(r",\s*]", "]", clean)
    clean = clean.replace("'", '"')
    clean = _BARE_KEY.sub(r'"\1":', clean)
    match = _OBJECT_SPAN.search(clean.strip())
    if not match:
        raise ValueError("no object span after repair")
    return _loads(match.group(1))


STRATEGIES = (
    ("direct", _direct),
    ("json_fence", _json_fence),
    ("generic_fence", _generic_fence),
    ("inline_code", _inline_code),
    ("greedy_span", _greedy_span),
    ("aggressive_cleanup", _aggressive_cleanup),
    ("syntax_repair", _syntax_repair),
)


def extract_json(raw_text: str) -> Any:
    """Return the first value any strategy can parse; raise UnparseableOutputError otherwise."""
    if not raw_text or not isinstance(raw_text, str):
        raise UnparseableOutputError(raw_text if isinstance(raw_text, str) else None)

    for name, strategy in STRATEGIES:
        try:
            value = strategy(raw_text)
        except ValueError:
            continue
        if name != "direct":
            logger.debug("JSON recovered via %s strategy", name)
        return value

    logger.error("All JSON parsing strategies failed for: %s...", raw_text[:200])
    raise UnparseableOutputError(raw_text)


def _missing_closers(text: str) -> str:
    """Closers needed to balance every open brace/bracket outside string literals."""
    stack = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()
    prefix = '"' if in_string else ""
    return prefix + "".join(reversed(stack))


def repair_json(json_string: str) -> str:
    """Best-effort repair: drop fences and trailing commas, close truncated structures."""
    if not json_string:
        return "{}"
    clean = json_string.replace("```json", "").replace("```", "").strip()
    clean = _TRAILING_COMMA.sub(r"\1", clean)
    closers = _missing_closers(clean)
    if closers:
        clean = _TRAILING_COMMA.sub(r"\1", clean.rstrip().rstrip(",") + closers)
    return clean


def safe_json_parse(text: str, fallback: Any = None) -> Any:
    """Parse ``text``, retrying with fence removal and then repair_json; ``fallback`` on failure."""
    if not text:
        return fallback
    try:
        return _loads(text)
    except ValueError:
        pass
    try:
        return _loads(text.replace("```json", "").replace("```", "").strip())
    except ValueError:
        pass
    try:
        return _loads(repair_json(text))
    except ValueError as e:
        logger.warning("Failed to parse JSON even after repair: %s", e)
        return fallback
