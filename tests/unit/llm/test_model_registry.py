"""
Unit tests for the model registry.

Tests cover:
- Credential detection
- Availability and preset selection
- Lookup by id or label
- Model list formatting
- Chat model construction per provider
"""

import pytest

from meow.llm.models import (
    DEFAULT_MODELS,
    PROVIDER_BASE_URLS,
    ApiKeys,
    ModelEntry,
    ModelRegistry,
    detect_api_keys,
)
from meow.llm.provider import ChatModel


@pytest.fixture
def registry():
    return ModelRegistry()


# ============================================================================
# Credentials
# ============================================================================

class TestDetectApiKeys:
    """Test credential detection from the environment."""

    def test_reads_conventional_variables(self, monkeypatch):
        for name in ("OPENROUTER", "OPENAI", "ANTHROPIC", "MOONSHOT", "TOGETHER", "MINIMAX", "ZAI"):
            monkeypatch.delenv(f"{name}_API_KEY", raising=False)
        monkeypatch.setenv("ZAI_API_KEY", "zai-key")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        keys = detect_api_keys()

        assert keys.zai == "zai-key"
        assert keys.openai == "sk-test"
        assert keys.openrouter is None
        assert keys.has("openai")
        assert not keys.has("moonshot")


# ============================================================================
# Selection
# ============================================================================

class TestPickBest:
    """Test preset-based selection."""

    def test_no_keys(self, registry):
        assert registry.available(ApiKeys()) == []
        assert registry.pick_best("smart", ApiKeys()) is None

    def test_preset_match(self, registry):
        assert registry.pick_best("smart", ApiKeys(openai="sk")).id == "gpt-4o-mini"
        assert registry.pick_best("pro", ApiKeys(openai="sk")).id == "gpt-4o"

    def test_tool_use_preferred_within_preset(self):
        entries = [
            ModelEntry("vision-only", "Vision Only", "zai", "smart", False, True),
            ModelEntry("tooled", "Tooled", "zai", "smart", True, False),
        ]

        assert ModelRegistry(entries).pick_best("smart", ApiKeys(zai="k")).id == "tooled"

    def test_falls_back_to_any_tool_capable(self, registry):
        """Test a preset with no available model falls back to tool-capable models."""
        assert registry.pick_best("pro", ApiKeys(moonshot="k")).id == "kimi-k2.5"

    def test_last_resort_any_available(self):
        entries = [ModelEntry("plain", "Plain", "together", "fast", False, False)]

        assert ModelRegistry(entries).pick_best("pro", ApiKeys(together="k")).id == "plain"


class TestPickFastDirect:
    """Test low-latency selection."""

    def test_prefers_direct_providers(self, registry):
        keys = ApiKeys(openrouter="or", minimax="mm")

        assert registry.pick_fast_direct(keys).id == "MiniMax-M2.5-highspeed"

    def test_openrouter_fast_when_no_direct(self, registry):
        assert registry.pick_fast_direct(ApiKeys(openrouter="or")).id == "google/gemini-2.0-flash-001"

    def test_any_direct_when_no_fast(self, registry):
        assert registry.pick_fast_direct(ApiKeys(openai="sk")).id == "gpt-4o-mini"


class TestFind:
    """Test lookup by id or label."""

    def test_exact_id_beats_substring(self, registry):
        assert registry.find("gpt-4o").id == "gpt-4o"

    def test_label_case_insensitive(self, registry):
        assert registry.find("gpt-4o mini").id == "gpt-4o-mini"

    def test_substring_of_id(self, registry):
        assert registry.find("claude-3.5-son").id == "anthropic/claude-3.5-sonnet"

    def test_unknown(self, registry):
        assert registry.find("llama-99") is None


class TestFormatList:
    """Test the human-readable model list."""

    def test_no_models(self, registry):
        assert registry.format_list(ApiKeys()) == "No models available. Set at least one API key."

    def test_grouped_by_preset_with_marker(self, registry):
        text = registry.format_list(ApiKeys(openai="sk"), current_id="gpt-4o-mini")

        assert text == (
            "Available models:\n"
            "  SMART:\n"
            "    GPT-4o Mini (gpt-4o-mini) [✓tools] ← current\n"
            "  PRO:\n"
            "    GPT-4o (gpt-4o) [✓tools]"
        )

    def test_tool_marker(self, registry):
        text = registry.format_list(ApiKeys(moonshot="k"))

        assert "Kimi K2 (kimi-k2-0905-preview) [✗tools]" in text


# ============================================================================
# Construction
# ============================================================================

class TestCreateModel:
    """Test chat model construction."""

    def test_openai(self, registry):
        model = registry.create_model("gpt-4o", ApiKeys(openai="sk"))

        assert isinstance(model, ChatModel)
        assert model.model == "gpt-4o"
        assert model.api_key == "sk"
        assert model.base_url is None
        assert model.extra_body is None

    def test_moonshot_k25_disables_thinking(self, registry):
        model = registry.create_model("kimi-k2.5", ApiKeys(moonshot="k"))

        assert model.base_url == "https://api.moonshot.ai/v1"
        assert model.extra_body == {"thinking": {"type": "disabled"}}

    def test_moonshot_k2_keeps_thinking(self, registry):
        assert registry.create_model("kimi-k2-0905-preview", ApiKeys(moonshot="k")).extra_body is None

    def test_custom_id_routes_through_openrouter(self, registry):
        model = registry.create_model("meta-llama/llama-4-maverick", ApiKeys(openrouter="or"))

        assert model.model == "meta-llama/llama-4-maverick"
        assert model.base_url == PROVIDER_BASE_URLS["openrouter"]
        assert model.api_key == "or"

    def test_every_provider_has_an_endpoint(self):
        assert {m.provider for m in DEFAULT_MODELS} <= set(PROVIDER_BASE_URLS)
