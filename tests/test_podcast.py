"""Tests for podcast script generation, speech synthesis, and WAV framing."""

import asyncio
import io
import json
import struct
import wave

import pytest

from conftest import PODCAST_SCRIPT, FakeProvider, scripted
from nanobook.errors import GenerationFailedError, PodcastGenerationFailedError
from nanobook.models import Book, Chapter, PodcastAudio, PodcastLine, PodcastScript, PodcastSettings
from nanobook.podcast.audio import clean_line_for_tts, dialogue_prompt, frame_wav, write_episode
from nanobook.podcast.script import PodcastScriptGenerator, book_context, length_tier

SCRIPT = {
    "title": "The Reality Check: Dropshipping",
    "lines": [
        {"speaker": "Host 1", "text": "Welcome back. Today: **dropshipping**."},
        {"speaker": "Host 2", "text": "Is it really that bad?"},
        {"speaker": "Host 1", "text": "90% fail in year one."},
    ],
}


def _book():
    return Book(
        title="The Dropshipping Lie",
        subtitle="Why 90% Fail",
        chapters=[
            Chapter(number=1, title="The Lie", content="A" * 600),
            Chapter(number=2, title="The Math", content="Short chapter."),
        ],
    )


def _generator(fake_registry, routes=None, speech=b"\x01\x00\x02\x00"):
    provider = FakeProvider(scripted(routes or {PODCAST_SCRIPT: json.dumps(SCRIPT)}), speech=speech)
    return PodcastScriptGenerator(fake_registry(provider)), provider


class TestFrameWav:

    def test_header_fields(self):
        pcm = b"\x00\x01" * 1000
        wav = frame_wav(pcm, sample_rate=24000, channels=1)

        assert len(wav) == 44 + len(pcm)
        assert wav[:4] == b"RIFF"
        assert struct.unpack("<I", wav[4:8])[0] == 36 + len(pcm)
        assert wav[8:16] == b"WAVEfmt "
        assert struct.unpack("<IHHIIHH", wav[16:36]) == (16, 1, 1, 24000, 48000, 2, 16)
        assert wav[36:40] == b"data"
        assert struct.unpack("<I", wav[40:44])[0] == len(pcm)
        assert wav[44:] == pcm

    def test_readable_by_wave_module(self):
        pcm = b"\x10\x00" * 24000
        with wave.open(io.BytesIO(frame_wav(pcm)), "rb") as w:
            assert w.getframerate() == 24000
            assert w.getnchannels() == 1
            assert w.getsampwidth() == 2
            assert w.getnframes() == 24000

    def test_stereo_byte_rate(self):
        wav = frame_wav(b"", sample_rate=44100, channels=2)
        assert len(wav) == 44
        channels, rate, byte_rate, block_align = struct.unpack("<HIIH", wav[22:34])
        assert (channels, rate, byte_rate, block_align) == (2, 44100, 176400, 4)

    def test_deterministic(self):
        assert frame_wav(b"\x01\x02") == frame_wav(b"\x01\x02")

    def test_duration(self):
        audio = PodcastAudio(wav=frame_wav(b"\x00" * 48000), sample_rate=24000, channels=1)
        assert audio.duration_seconds == pytest.approx(1.0)


class TestDialogue:

    def test_clean_line(self):
        assert clean_line_for_tts("**Bold** and *italic* [aside]") == "Bold and italic aside"
        assert clean_line_for_tts("<think>plan</think>It’s  fine…") == "It's fine..."

    def test_dialogue_prompt(self):
        script = PodcastScript.model_validate(SCRIPT)
        script.lines.append(PodcastLine(speaker="Host 2", text="   "))
        assert dialogue_prompt(script) == (
            "Host 1: Welcome back. Today: dropshipping.\n"
            "Host 2: Is it really that bad?\n"
            "Host 1: 90% fail in year one."
        )

    def test_write_episode(self, tmp_path):
        audio = PodcastAudio(wav=frame_wav(b"\x00\x00"), sample_rate=24000, channels=1)
        path = write_episode(audio, str(tmp_path / "out" / "episode.wav"))
        with open(path, "rb") as f:
            assert f.read() == audio.wav


class TestBookContext:

    def test_no_book(self):
        assert book_context(None) == ""

    def test_chapter_excerpts(self):
        context = book_context(_book())
        assert "Title: The Dropshipping Lie" in context
        assert f"Chapter 1 (The Lie): {'A' * 500}..." in context
        assert "A" * 501 not in context
        assert "Chapter 2 (The Math): Short chapter...." in context

    def test_length_tiers(self):
        assert length_tier(1) == "Short (2 minutes)"
        assert length_tier(2) == "Standard (5 minutes)"
        assert length_tier(3) == "Deep Dive (10 minutes)"


class TestGenerateScript:

    def test_script(self, fake_registry, research_record):
        generator, provider = _generator(fake_registry)

        script = asyncio.run(generator.generate_script("Dropshipping", research_record, PodcastSettings()))

        assert script.title == SCRIPT["title"]
        assert [line.speaker for line in script.lines] == ["Host 1", "Host 2", "Host 1"]
        _, prompt, options = provider.calls[0]
        assert options.json_mode
        assert options.thinking_budget == 0
        assert "investigative report" in prompt
        assert "THE BOOK BEING DISCUSSED" not in prompt

    def test_with_book(self, fake_registry, research_record):
        generator, provider = _generator(fake_registry)
        asyncio.run(generator.generate_script("Dropshipping", research_record, PodcastSettings(), book=_book()))
        assert "THE BOOK BEING DISCUSSED" in provider.calls[0][1]

    def test_deep_dive_gets_thinking_budget(self, fake_registry, research_record):
        generator, provider = _generator(fake_registry)
        settings = PodcastSettings(length_level=3)
        asyncio.run(generator.generate_script("Dropshipping", research_record, settings))
        assert provider.calls[0][2].thinking_budget == 2048
        assert "Deep Dive (10 minutes)" in provider.calls[0][1]

    def test_unparseable_script(self, fake_registry, research_record):
        generator, _ = _generator(fake_registry, {PODCAST_SCRIPT: "Once upon a time..."})
        with pytest.raises(PodcastGenerationFailedError):
            asyncio.run(generator.generate_script("Dropshipping", research_record, PodcastSettings()))

    def test_empty_script(self, fake_registry, research_record):
        generator, _ = _generator(fake_registry, {PODCAST_SCRIPT: json.dumps({"title": "t", "lines": []})})
        with pytest.raises(PodcastGenerationFailedError, match="no lines"):
            asyncio.run(generator.generate_script("Dropshipping", research_record, PodcastSettings()))

    def test_call_failure(self, fake_registry, research_record):
        generator, _ = _generator(fake_registry, {PODCAST_SCRIPT: GenerationFailedError("down")})
        with pytest.raises(PodcastGenerationFailedError):
            asyncio.run(generator.generate_script("Dropshipping", research_record, PodcastSettings()))

    def test_unexpected_provider_error(self, fake_registry, research_record):
        generator, _ = _generator(fake_registry, {PODCAST_SCRIPT: RuntimeError("provider bug")})
        with pytest.raises(PodcastGenerationFailedError, match="provider bug"):
            asyncio.run(generator.generate_script("Dropshipping", research_record, PodcastSettings()))


class TestGenerateAudio:

    def test_audio(self, fake_registry):
        pcm = b"\x01\x00" * 240
        generator, provider = _generator(fake_registry, speech=pcm)
        settings = PodcastSettings(host1_voice="Kore", host2_voice="Fenrir")

        audio = asyncio.run(generator.generate_audio(PodcastScript.model_validate(SCRIPT), settings))

        assert audio.wav == frame_wav(pcm, 24000, 1)
        assert audio.sample_rate == 24000
        model_id, text, voices = provider.speech_calls[0]
        assert model_id == "gemini-2.5-flash-preview-tts"
        assert voices == {"Host 1": "Kore", "Host 2": "Fenrir"}
        assert text.startswith("Host 1: Welcome back.")

    def test_speech_failure(self, fake_registry):
        generator, _ = _generator(fake_registry, speech=GenerationFailedError("No audio data generated."))
        with pytest.raises(PodcastGenerationFailedError):
            asyncio.run(generator.generate_audio(PodcastScript.model_validate(SCRIPT), PodcastSettings()))

    def test_empty_audio(self, fake_registry):
        generator, _ = _generator(fake_registry, speech=b"")
        with pytest.raises(PodcastGenerationFailedError, match="No audio data"):
            asyncio.run(generator.generate_audio(PodcastScript.model_validate(SCRIPT), PodcastSettings()))

    def test_unexpected_speech_error(self, fake_registry):
        generator, _ = _generator(fake_registry, speech=KeyError("inlineData"))
        with pytest.raises(PodcastGenerationFailedError, match="audio generation failed"):
            asyncio.run(generator.generate_audio(PodcastScript.model_validate(SCRIPT), PodcastSettings()))
