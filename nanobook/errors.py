"""Exception taxonomy for the nanobook pipeline.

Local recovery (research agents, individual chapters) catches
GenerationFailedError / UnparseableOutputError / SchemaValidationError and
substitutes a placeholder. PipelineAbortError subclasses are only raised at
the two points with no fallback (research synthesis, outline) and are caught
once by nanobook.pipeline.
"""

from typing import List, Optional


class NanobookError(Exception):
    """Base class for every error raised by this package."""


# --- Configuration ---

class ConfigurationError(NanobookError):
    """A model or provider cannot be used at all (as opposed to a failed run)."""


class ProviderNotConfiguredError(ConfigurationError):
    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider '{provider_id}' is not configured (missing API key)")


class UnknownProviderError(ConfigurationError):
    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Unknown provider: {provider_id}")


class UnknownModelError(ConfigurationError):
    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model '{model_id}' is not in the model registry")


# --- Single-call failures (recoverable at agent/chapter level) ---

class GenerationFailedError(NanobookError):
    def __init__(self, message: str, provider_id: str = "", model_id: str = ""):
        self.provider_id = provider_id
        self.model_id = model_id
        super().__init__(message)


class UnparseableOutputError(NanobookError):
    def __init__(self, raw_text: Optional[str]):
        self.excerpt = (raw_text or "")[:200]
        super().__init__(
            "Invalid JSON format received from LLM. The response could not be parsed."
        )


class SchemaValidationError(NanobookError):
    def __init__(self, kind: str, violations: List[str]):
        self.kind = kind
        self.violations = list(violations)
        summary = "; ".join(self.violations[:5])
        if len(self.violations) > 5:
            summary += f" (+{len(self.violations) - 5} more)"
        super().__init__(f"{kind} failed validation: {summary}")


# --- Fatal pipeline failures ---

class PipelineAbortError(NanobookError):
    """Raised where no local fallback exists; fails the whole run."""


class SynthesisFailedError(PipelineAbortError):
    pass


class OutlineGenerationFailedError(PipelineAbortError):
    pass


class PipelineCancelledError(NanobookError):
    pass


class PodcastGenerationFailedError(NanobookError):
    """Fatal to podcast generation only; the book is unaffected."""
