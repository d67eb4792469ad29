"""
Model registry: the catalogue of known chat models and the rules for
choosing one from the provider credentials present in the environment.
"""

import os
from dataclasses import dataclass, fields
from typing import Dict, List, Literal, Optional, Sequence

Preset = Literal["fast", "smart", "pro"]
ProviderName = Literal["openrouter", "openai", "anthropic", "moonshot", "together", "minimax", "zai"]

PRESETS: Sequence[str] = ("fast", "smart", "pro")

# OpenAI-compatible endpoints per provider
PROVIDER_BASE_URLS: Dict[str, Optional[str]] = {
    "openai": None,
    "openrouter": "https://openrouter.ai/api/v1",
    "anthropic": "https://api.anthropic.com/v1/",
    "moonshot": "https://api.moonshot.ai/v1",
    "together": "https://api.together.xyz/v1",
    "minimax": "https://api.minimax.io/v1",
    "zai": "https://api.z.ai/api/coding/paas/v4",
}


@dataclass(frozen=True)
class ModelEntry:
    """A catalogued chat model.

    Attributes:
        id: Provider model identifier
        label: Human-readable name
        provider: Provider serving the model
        preset: Quality tier (fast/smart/pro)
        tool_use: Whether the model reliably supports tool calling
        vision: Whether the model accepts image input
    """
    id: str
    label: str
    provider: str
    preset: str
    tool_use: bool
    vision: bool


@dataclass(frozen=True)
class ApiKeys:
    """Provider credentials detected from the environment."""
    openrouter: Optional[str] = None
    openai: Optional[str] = None
    anthropic: Optional[str] = None
    moonshot: Optional[str] = None
    together: Optional[str] = None
    minimax: Optional[str] = None
    zai: Optional[str] = None

    def get(self, provider: str) -> Optional[str]:
        return getattr(self, provider, None)

    def has(self, provider: str) -> bool:
        return bool(self.get(provider))


def detect_api_keys() -> ApiKeys:
    """Read provider credentials from the conventional environment variables."""
    return ApiKeys(**{f.name: os.getenv(f"{f.name.upper()}_API_KEY") for f in fields(ApiKeys)})


DEFAULT_MODELS: List[ModelEntry] = [
    # Fast tier
    ModelEntry("google/gemini-2.0-flash-001", "Gemini 2.0 Flash (OpenRouter)", "openrouter", "fast", True, True),
    ModelEntry("kimi-k2-0905-preview", "Kimi K2", "moonshot", "fast", False, False),
    ModelEntry("kimi-k2.5", "Kimi K2.5 Code Plan", "moonshot", "smart", True, False),
    ModelEntry("MiniMax-M2.5-highspeed", "MiniMax M2.5 HighSpeed", "minimax", "fast", True, False),
    ModelEntry("MiniMax-M2.1-highspeed", "MiniMax M2.1 HighSpeed", "minimax", "fast", True, False),
    ModelEntry("glm-4.7-flash", "GLM 4.7 Flash", "zai", "fast", True, False),
    ModelEntry("z-ai/glm-4.7-flash", "GLM 4.7 Flash (OpenRouter)", "openrouter", "fast", True, False),
    # Smart tier
    ModelEntry("glm-4.7", "GLM 4.7", "zai", "smart", True, False),
    ModelEntry("glm-4.5v", "GLM 4.5V Vision", "zai", "smart", False, True),
    ModelEntry("MiniMax-M2.5", "MiniMax M2.5", "minimax", "smart", True, False),
    ModelEntry("MiniMax-M2.1", "MiniMax M2.1", "minimax", "smart", True, False),
    ModelEntry("z-ai/glm-4.7", "GLM 4.7 (OpenRouter)", "openrouter", "smart", True, False),
    ModelEntry("z-ai/glm-4.5v", "GLM 4.5V Vision (OpenRouter)", "openrouter", "smart", False, True),
    ModelEntry("openai/gpt-4o-mini", "GPT-4o Mini (OpenRouter)", "openrouter", "smart", True, True),
    ModelEntry("gpt-4o-mini", "GPT-4o Mini", "openai", "smart", True, True),
    ModelEntry("anthropic/claude-3.5-haiku", "Claude 3.5 Haiku (OpenRouter)", "openrouter", "smart", True, True),
    # Pro tier
    ModelEntry("glm-5", "GLM 5", "zai", "pro", True, False),
    ModelEntry("openai/gpt-4o", "GPT-4o (OpenRouter)", "openrouter", "pro", True, True),
    ModelEntry("gpt-4o", "GPT-4o", "openai", "pro", True, True),
    ModelEntry("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet (OpenRouter)", "openrouter", "pro", True, True),
]


class ModelRegistry:
    """Selects and builds chat models from a catalogue of entries.

    The catalogue is injectable so tests and deployments can supply their
    own entries; it defaults to DEFAULT_MODELS.
    """

    def __init__(self, entries: Optional[Sequence[ModelEntry]] = None):
        self.entries: List[ModelEntry] = list(entries if entries is not None else DEFAULT_MODELS)

    def available(self, keys: ApiKeys) -> List[ModelEntry]:
        """Entries whose provider has a credential, in catalogue order."""
        return [m for m in self.entries if keys.has(m.provider)]

    def pick_best(self, preset: str, keys: ApiKeys) -> Optional[ModelEntry]:
        """Best model for a preset: tool-capable preset match, then any tool-capable, then anything."""
        available = self.available(keys)

        # sorted() is stable, so catalogue order is kept within each group
        preset_models = sorted((m for m in available if m.preset == preset), key=lambda m: not m.tool_use)
        if preset_models:
            return preset_models[0]

        with_tools = [m for m in available if m.tool_use]
        if with_tools:
            return with_tools[0]

        return available[0] if available else None

    def pick_fast_direct(self, keys: ApiKeys) -> Optional[ModelEntry]:
        """Fastest available model, preferring direct providers over OpenRouter."""
        available = self.available(keys)
        fast = [m for m in available if m.preset == "fast"]

        direct = [m for m in fast if m.provider != "openrouter"]
        if direct:
            return direct[0]
        if fast:
            return fast[0]

        any_direct = [m for m in available if m.provider != "openrouter"]
        if any_direct:
            return any_direct[0]
        return available[0] if available else None

    def find(self, name_or_id: str) -> Optional[ModelEntry]:
        """Exact id or label match (case-insensitive), then substring of an id."""
        lower = name_or_id.lower()
        for m in self.entries:
            if m.id.lower() == lower or m.label.lower() == lower:
                return m
        for m in self.entries:
            if lower in m.id.lower():
                return m
        return None

    def format_list(self, keys: ApiKeys, current_id: Optional[str] = None) -> str:
        available = self.available(keys)
        if not available:
            return "No models available. Set at least one API key."

        lines = ["Available models:"]
        for preset in PRESETS:
            models = [m for m in available if m.preset == preset]
            if not models:
                continue
            lines.append(f"  {preset.upper()}:")
            for m in models:
                current = " ← current" if m.id == current_id else ""
                tools = "✓tools" if m.tool_use else "✗tools"
                lines.append(f"    {m.label} ({m.id}) [{tools}]{current}")
        return "\n".join(lines)

    def create_model(self, model_id: str, keys: ApiKeys):
        """Build a ChatModel for a catalogued or custom model id.

        Ids not in the catalogue are routed through OpenRouter.
        """
        from meow.llm.provider import ChatModel

        entry = self.find(model_id)
        if entry is None:
            return ChatModel(
                model=model_id,
                api_key=keys.openrouter,
                base_url=PROVIDER_BASE_URLS["openrouter"],
                provider="openrouter",
            )

        extra_body = None
        if entry.provider == "moonshot" and "k2.5" in entry.id:
            extra_body = {"thinking": {"type": "disabled"}}

        return ChatModel(
            model=entry.id,
            api_key=keys.get(entry.provider),
            base_url=PROVIDER_BASE_URLS[entry.provider],
            provider=entry.provider,
            extra_body=extra_body,
        )
