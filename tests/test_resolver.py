import pytest

from chat_gateway.config import get_settings
from chat_gateway.providers.anthropic import AnthropicAdapter
from chat_gateway.providers.mock import MockAdapter
from chat_gateway.providers.openai import OpenAIAdapter
from chat_gateway.providers.registry import ProviderRegistry, build_adapters
from chat_gateway.resolver import ProviderKind, parse_provider_kind, resolve_provider


@pytest.mark.parametrize(
    "model, kind",
    [
        ("gpt-5", ProviderKind.OPENAI),
        ("gpt-5-pro", ProviderKind.OPENAI),
        ("o3-mini", ProviderKind.OPENAI),
        ("claude-sonnet-4-5", ProviderKind.ANTHROPIC),
        ("claude-opus-4-1-20250805", ProviderKind.ANTHROPIC),
        ("models/gemini-2.5-pro", ProviderKind.GEMINI),
        ("gemini-2.5-flash", ProviderKind.GEMINI),
        ("anthropic/claude-4-sonnet", ProviderKind.REPLICATE),
        ("openai/gpt-5", ProviderKind.REPLICATE),
        ("deepseek-ai/deepseek-r1", ProviderKind.REPLICATE),
        ("meta/llama-3-70b", ProviderKind.REPLICATE),
        ("google/gemini-pro", ProviderKind.REPLICATE),
    ],
)
def test_resolve_provider(model, kind):
    assert resolve_provider(model) is kind


def test_unknown_model_uses_default():
    assert resolve_provider("mystery") is ProviderKind.OPENAI
    assert resolve_provider("", ProviderKind.ANTHROPIC) is ProviderKind.ANTHROPIC


def test_parse_provider_kind():
    assert parse_provider_kind("Anthropic", ProviderKind.OPENAI) is ProviderKind.ANTHROPIC
    assert parse_provider_kind("bogus", ProviderKind.GEMINI) is ProviderKind.GEMINI
    assert parse_provider_kind(None, ProviderKind.OPENAI) is ProviderKind.OPENAI


def _mock_adapters():
    return {kind: MockAdapter(kind) for kind in ProviderKind}


def test_registry_requires_every_kind():
    adapters = _mock_adapters()
    del adapters[ProviderKind.GEMINI]
    with pytest.raises(RuntimeError, match="gemini"):
        ProviderRegistry(adapters)


def test_registry_resolves_model_to_adapter():
    adapters = _mock_adapters()
    registry = ProviderRegistry(adapters)

    assert registry.resolve("claude-sonnet-4") is adapters[ProviderKind.ANTHROPIC]
    assert registry.resolve("openai/gpt-5") is adapters[ProviderKind.REPLICATE]
    assert registry.resolve("unknown") is adapters[ProviderKind.OPENAI]
    assert len(list(registry)) == len(ProviderKind)


def test_build_adapters_real(monkeypatch):
    monkeypatch.delenv("MOCK_PROVIDERS", raising=False)
    adapters = build_adapters(get_settings())

    assert isinstance(adapters[ProviderKind.OPENAI], OpenAIAdapter)
    assert isinstance(adapters[ProviderKind.ANTHROPIC], AnthropicAdapter)
    assert set(adapters) == set(ProviderKind)


def test_build_adapters_mock(monkeypatch):
    monkeypatch.setenv("MOCK_PROVIDERS", "true")
    adapters = build_adapters(get_settings())

    assert all(isinstance(a, MockAdapter) for a in adapters.values())
    assert adapters[ProviderKind.GEMINI].name == "gemini"
    assert "gpt-5" in adapters[ProviderKind.OPENAI].models
