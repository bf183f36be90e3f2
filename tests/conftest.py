"""Shared pytest fixtures for the nanobook test suite."""

import inspect
import json

import pytest

from nanobook.config import Credentials
from nanobook.models import GenSettings, ResearchRecord
from nanobook.providers.base import LLMProvider
from nanobook.providers.registry import ProviderRegistry


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Keep tests off real credentials and the user's research cache."""
    monkeypatch.setenv("GEMINI_API_KEY", "")
    monkeypatch.setenv("GOOGLE_API_KEY", "")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")


class FakeProvider(LLMProvider):
    """In-memory provider. ``handler(prompt, options)`` returns text, an exception, or an awaitable."""

    provider_id = "google"

    def __init__(self, handler=None, speech=b"\x01\x00\x02\x00"):
        super().__init__("test-key")
        self.handler = handler or (lambda prompt, options: "")
        self.speech = speech
        self.calls = []
        self.speech_calls = []

    async def generate_text(self, model_id, prompt, options=None):
        self.calls.append((model_id, prompt, options))
        result = self.handler(prompt, options)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, BaseException):
            raise result
        return result

    async def generate_speech(self, model_id, text, voices):
        self.speech_calls.append((model_id, text, dict(voices)))
        if isinstance(self.speech, BaseException):
            raise self.speech
        return self.speech

    def prompts_containing(self, marker):
        return [prompt for _, prompt, _ in self.calls if marker in prompt]


def scripted(routes, default=""):
    """Handler routing on the first marker found in the prompt.

    Route values: str, exception instance, or callable(prompt) -> str/exception/awaitable.
    """
    def handler(prompt, options):
        for marker, response in routes.items():
            if marker in prompt:
                return response(prompt) if callable(response) else response
        return default
    return handler


# Markers that identify each pipeline call in a prompt
DETECTIVE = "REDDIT DETECTIVE"
AUDITOR = "FINANCIAL AUDITOR"
INSIDER = "INSIDER SOURCE"
STATISTICIAN = "DATA SCIENTIST"
SYNTHESIS = "FORENSIC DOSSIER"
NORMALIZE = "RAW RESEARCH NOTES"
OUTLINE = "master outline"
CHAPTER = "CHAPTER ASSIGNMENT"
PODCAST_SCRIPT = "podcast script dialogue"


@pytest.fixture
def research_dict():
    return {
        "summary": "Dropshipping is a low-margin, high-churn business.",
        "ethicalRating": 4,
        "profitPotential": "Low",
        "marketStats": [{"label": "Failure rate", "value": "90%", "context": "first year"}],
        "hiddenCosts": [{"label": "Ads", "value": "$1,500/mo", "context": "minimum test budget"}],
        "caseStudies": [{
            "name": "Jake",
            "type": "LOSER",
            "background": "College student",
            "strategy": "Facebook ads",
            "outcome": "Lost savings",
            "revenue": "-$4,000",
        }],
        "affiliates": [{
            "program": "Shopify",
            "potential": "High",
            "type": "PARTICIPANT",
            "commission": "$150/referral",
            "notes": "Paid to gurus",
        }],
    }


@pytest.fixture
def research_record(research_dict):
    return ResearchRecord.model_validate(research_dict)


@pytest.fixture
def outline_dict():
    def _make(n=3):
        return {
            "title": "The Dropshipping Lie",
            "subtitle": "Why 90% Fail",
            "frontCover": {"titleText": "The Dropshipping Lie", "visualDescription": "A rotting apple"},
            "backCover": {"blurb": "Read this first.", "visualDescription": "Falling coins"},
            "chapterBriefs": [
                {"number": i, "title": f"Chapter Title {i}", "detailedBrief": f"Brief for chapter {i}"}
                for i in range(1, n + 1)
            ],
        }
    return _make


def chapter_json(prompt):
    """Ghostwriter response echoing the chapter number found in the prompt."""
    number = prompt.split("Number: ", 1)[1].split("\n", 1)[0].strip()
    return json.dumps({
        "content": f"## Real content for chapter {number}",
        "posiBotQuotes": [{"position": "left", "text": "Just manifest the sales!"}],
        "visuals": [{"type": "CHART", "description": "Failure curve"}],
    })


@pytest.fixture
def fake_registry():
    """Registry with a google credential; register a FakeProvider to use it."""
    def _make(provider):
        registry = ProviderRegistry(Credentials(google="test-key"))
        registry.register_provider("google", provider)
        return registry
    return _make


@pytest.fixture
def settings():
    return GenSettings(tone="Forensic", custom_spec="Chapter 2 has a [MANUSCRIPT OVERRIDE].")
