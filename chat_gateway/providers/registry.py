from __future__ import annotations

import logging
from typing import Iterator, Mapping

from ..config import Settings
from ..resolver import ProviderKind, resolve_provider
from .anthropic import AnthropicAdapter
from .base import HttpProviderAdapter, ProviderAdapter
from .gemini import GeminiAdapter
from .mock import MockAdapter
from .openai import OpenAIAdapter
from .replicate import ReplicateAdapter


logger = logging.getLogger(__name__)

ADAPTER_TYPES: Mapping[ProviderKind, type[HttpProviderAdapter]] = {
    ProviderKind.OPENAI: OpenAIAdapter,
    ProviderKind.ANTHROPIC: AnthropicAdapter,
    ProviderKind.GEMINI: GeminiAdapter,
    ProviderKind.REPLICATE: ReplicateAdapter,
}


def build_adapters(settings: Settings) -> dict[ProviderKind, ProviderAdapter]:
    if settings.mock_providers:
        logger.warning("MOCK_PROVIDERS is set; all provider calls are simulated")
        return {
            kind: MockAdapter(kind, models=adapter_type.models)
            for kind, adapter_type in ADAPTER_TYPES.items()
        }
    return {
        kind: adapter_type.from_settings(settings)
        for kind, adapter_type in ADAPTER_TYPES.items()
    }


class ProviderRegistry:
    """Maps every ProviderKind to exactly one adapter."""

    def __init__(
        self,
        adapters: Mapping[ProviderKind, ProviderAdapter],
        default: ProviderKind = ProviderKind.OPENAI,
    ) -> None:
        missing = [kind.value for kind in ProviderKind if kind not in adapters]
        if missing:
            raise RuntimeError(f"no adapter registered for: {', '.join(missing)}")
        self._adapters = dict(adapters)
        self.default = default

    def get(self, kind: ProviderKind) -> ProviderAdapter:
        return self._adapters[kind]

    def resolve(self, model: str) -> ProviderAdapter:
        return self._adapters[resolve_provider(model, self.default)]

    def __iter__(self) -> Iterator[ProviderAdapter]:
        return iter(self._adapters.values())

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
