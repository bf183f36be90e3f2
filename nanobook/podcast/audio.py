"""
Podcast audio helpers: dialogue text for multi-speaker TTS, and WAV framing
of the raw 16-bit PCM the speech model returns.
"""

import logging
import os
import re
import struct

from nanobook.config import PODCAST_CHANNELS, PODCAST_SAMPLE_RATE
from nanobook.models import PodcastAudio, PodcastScript

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44
BITS_PER_SAMPLE = 16


def frame_wav(pcm: bytes, sample_rate: int = PODCAST_SAMPLE_RATE,
              channels: int = PODCAST_CHANNELS) -> bytes:
    """Prefix raw little-endian 16-bit PCM with a canonical 44-byte RIFF/WAVE header.

    Pure and deterministic: the payload is appended unchanged.
    """
    block_align = channels * BITS_PER_SAMPLE // 8
    byte_rate = sample_rate * block_align
    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + len(pcm),      # RIFF chunk size
        b"WAVE",
        b"fmt ",
        16,                 # fmt chunk size
        1,                  # audio format: PCM
        channels,
        sample_rate,
        byte_rate,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        len(pcm),
    )
    return header + bytes(pcm)


def clean_line_for_tts(text: str) -> str:
    """Strip markdown and LLM artifacts the speech model would read aloud."""
    clean = re.sub(r'<think>.*?</think>', '', text, flags=re.DOTALL)
    clean = re.sub(r'\*\*', '', clean)      # bold
    clean = re.sub(r'[*#\[\]]', '', clean)  # italics, headers, brackets
    unicode_map = {
        '‘': "'", '’': "'",
        '“': '"', '”': '"',
        '…': '...',
    }
    for old, new in unicode_map.items():
        clean = clean.replace(old, new)
    return re.sub(r'\s+', ' ', clean).strip()


def dialogue_prompt(script: PodcastScript) -> str:
    """One "<speaker>: <text>" line per script line, the format multi-speaker TTS expects."""
    return "\n".join(
        f"{line.speaker}: {clean_line_for_tts(line.text)}"
        for line in script.lines
        if line.text and line.text.strip()
    )


def write_episode(audio: PodcastAudio, output_path: str) -> str:
    """Write the framed WAV to ``output_path``; returns the path."""
    parent = os.path.dirname(output_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(output_path, "wb") as f:
        f.write(audio.wav)
    logger.info("Podcast audio written: %s (%.1fs)", output_path, audio.duration_seconds)
    return output_path
