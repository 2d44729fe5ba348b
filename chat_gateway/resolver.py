from __future__ import annotations

from enum import Enum


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    REPLICATE = "replicate"


# Namespaced "owner/model" ids are served by the aggregator.
PREFIX_RULES: tuple[tuple[str, ProviderKind], ...] = (
    ("models/gemini", ProviderKind.GEMINI),
    ("anthropic/", ProviderKind.REPLICATE),
    ("deepseek-ai/", ProviderKind.REPLICATE),
    ("meta/", ProviderKind.REPLICATE),
    ("openai/", ProviderKind.REPLICATE),
    ("google/", ProviderKind.REPLICATE),
    ("o1", ProviderKind.OPENAI),
    ("o3", ProviderKind.OPENAI),
    ("o4", ProviderKind.OPENAI),
)

SUBSTRING_RULES: tuple[tuple[str, ProviderKind], ...] = (
    ("claude", ProviderKind.ANTHROPIC),
    ("gpt-", ProviderKind.OPENAI),
    ("gemini", ProviderKind.GEMINI),
)


def resolve_provider(
    model: str, default: ProviderKind = ProviderKind.OPENAI
) -> ProviderKind:
    """Return the provider that serves ``model``; never raises."""
    name = (model or "").strip().lower()
    for prefix, kind in PREFIX_RULES:
        if name.startswith(prefix):
            return kind
    for fragment, kind in SUBSTRING_RULES:
        if fragment in name:
            return kind
    return default


def parse_provider_kind(value: str | None, fallback: ProviderKind) -> ProviderKind:
    try:
        return ProviderKind((value or "").strip().lower())
    except ValueError:
        return fallback
