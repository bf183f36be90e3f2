"""Static catalog of the models the pipeline can route to, with pricing per 1M tokens."""

from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from nanobook.errors import UnknownModelError

PROVIDER_IDS = ("google", "anthropic", "openai")

CAPABILITIES = frozenset({"text", "image", "audio", "video", "tools", "json_mode", "thinking"})


@dataclass(frozen=True)
class ModelPricing:
    input_per_1m: float
    output_per_1m: float
    cached_input_per_1m: Optional[float] = None


@dataclass(frozen=True)
class ModelDefinition:
    id: str
    provider: str
    display_name: str
    context_window: int
    pricing: ModelPricing
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    is_visual: bool = False     # accepts image inputs
    is_legacy: bool = False

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities


def _model(id, provider, display_name, context_window, input_per_1m, output_per_1m,
           capabilities, is_visual, is_legacy=False):
    return ModelDefinition(
        id=id,
        provider=provider,
        display_name=display_name,
        context_window=context_window,
        pricing=ModelPricing(input_per_1m, output_per_1m),
        capabilities=frozenset(capabilities),
        is_visual=is_visual,
        is_legacy=is_legacy,
    )


MODELS: List[ModelDefinition] = [
    # --- Anthropic ---
    _model("claude-3-5-sonnet-20241022", "anthropic", "Claude 3.5 Sonnet", 200_000, 3.00, 15.00,
           ["text", "tools", "json_mode", "thinking"], is_visual=True),
    _model("claude-3-5-haiku-20241022", "anthropic", "Claude 3.5 Haiku", 200_000, 0.80, 4.00,
           ["text", "tools", "json_mode"], is_visual=False),
    _model("claude-3-opus-20240229", "anthropic", "Claude 3 Opus", 200_000, 15.00, 75.00,
           ["text", "tools", "json_mode", "thinking"], is_visual=True, is_legacy=True),

    # --- OpenAI ---
    _model("gpt-4o", "openai", "GPT-4o", 128_000, 2.50, 10.00,
           ["text", "tools", "json_mode", "image"], is_visual=True),
    _model("gpt-4o-mini", "openai", "GPT-4o Mini", 128_000, 0.15, 0.60,
           ["text", "tools", "json_mode", "image"], is_visual=True),
    # billed per image, not per token
    _model("dall-e-3", "openai", "DALL-E 3", 0, 0.0, 0.0, ["image"], is_visual=False),

    # --- Google ---
    _model("gemini-2.5-flash", "google", "Gemini 2.5 Flash", 1_000_000, 0.30, 2.50,
           ["text", "tools", "json_mode", "thinking", "audio"], is_visual=True),
    _model("gemini-2.5-flash-preview-tts", "google", "Gemini 2.5 Flash TTS", 8_000, 0.50, 10.00,
           ["audio"], is_visual=False),
    _model("gemini-1.5-pro-002", "google", "Gemini 1.5 Pro", 2_000_000, 1.25, 5.00,
           ["text", "tools", "json_mode", "thinking", "audio"], is_visual=True, is_legacy=True),
    _model("gemini-1.5-flash-002", "google", "Gemini 1.5 Flash", 1_000_000, 0.10, 0.40,
           ["text", "tools", "json_mode", "audio"], is_visual=True, is_legacy=True),
    _model("gemini-2.0-flash-exp", "google", "Gemini 2.0 Flash (Exp)", 1_000_000, 0.0, 0.0,
           ["text", "tools", "audio", "video"], is_visual=True),
    _model("imagen-3.0-generate-001", "google", "Imagen 3", 0, 0.0, 0.0, ["image"], is_visual=False),
]

_BY_ID = {m.id: m for m in MODELS}


def get_model(model_id: str) -> Optional[ModelDefinition]:
    return _BY_ID.get(model_id)


def require_model(model_id: str) -> ModelDefinition:
    model = _BY_ID.get(model_id)
    if model is None:
        raise UnknownModelError(model_id)
    return model


def get_models_by_provider(provider: str) -> List[ModelDefinition]:
    return [m for m in MODELS if m.provider == provider]


def models_with_capability(capability: str) -> List[ModelDefinition]:
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {capability}")
    return [m for m in MODELS if capability in m.capabilities]


def calculate_cost(model: ModelDefinition, input_tokens: int, output_tokens: int) -> float:
    """USD cost of one call: tokens / 1M * per-1M price, input and output summed."""
    input_cost = (input_tokens / 1_000_000) * model.pricing.input_per_1m
    output_cost = (output_tokens / 1_000_000) * model.pricing.output_per_1m
    return input_cost + output_cost


def estimate_cost(model_id: str, input_tokens: int, output_tokens: int) -> float:
    return calculate_cost(require_model(model_id), input_tokens, output_tokens)
