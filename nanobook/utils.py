"""Shared utility functions for the nanobook pipeline."""
import re


def strip_think_blocks(text: str) -> str:
    """Remove <think>...</think> blocks from LLM output (reasoning-model safety net)."""
    return re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()


def normalize_topic(topic: str) -> str:
    """Cache key for a topic: trimmed and lower-cased."""
    return (topic or "").strip().lower()


def safe_float(v):
    """Safely convert value to float, returning None on failure."""
    if v is None or v == "null" or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip()
    try:
        return float(v)
    except (ValueError, TypeError):
        return None


def safe_int(v):
    """Safely convert value to int, returning None on failure or a fractional value."""
    f = safe_float(v)
    if f is None or f != f or not f.is_integer():
        return None
    return int(f)


def safe_str(v):
    """Safely convert a scalar to string, returning None for null and containers."""
    if v is None:
        return None
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (str, int, float)):
        return str(v)
    return None
