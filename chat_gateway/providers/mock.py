from __future__ import annotations

import asyncio
from typing import AsyncIterator, Sequence

from ..budget import estimate_tokens
from ..models import GenerationParams, Message, ProviderResponse, StreamChunk, Usage
from ..resolver import ProviderKind
from .base import ProviderAdapter


class MockAdapter(ProviderAdapter):
    """Offline stand-in that answers deterministically for any provider kind."""

    display_name = "Mock"

    def __init__(
        self,
        kind: ProviderKind,
        *,
        models: Sequence[str] = (),
        delay: float = 0.0,
    ) -> None:
        self.kind = kind
        self.models = tuple(models)
        self._delay = delay

    def _answer(self, messages: Sequence[Message], params: GenerationParams) -> str:
        prompt = next(
            (m.content for m in reversed(messages) if m.role == "user"), ""
        )
        files = sum(len(m.files) for m in messages)
        answer = f"[{params.model}] You said: {prompt.strip() or '(nothing)'}"
        if files:
            answer += f" ({files} file(s) attached)"
        return answer

    def _usage(self, messages: Sequence[Message], answer: str) -> Usage:
        prompt = sum(estimate_tokens(m.content) for m in messages)
        completion = estimate_tokens(answer)
        return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)

    async def generate_response(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> ProviderResponse:
        if self._delay:
            await asyncio.sleep(self._delay)
        answer = self._answer(messages, params)
        return ProviderResponse(
            content=answer,
            model=params.model,
            provider=self.name,
            usage=self._usage(messages, answer),
            is_truncated=False,
            stop_reason="stop",
        )

    async def generate_stream(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> AsyncIterator[StreamChunk]:
        answer = self._answer(messages, params)
        words = answer.split(" ")
        for i, word in enumerate(words):
            if self._delay:
                await asyncio.sleep(self._delay)
            yield StreamChunk(content=word if i == len(words) - 1 else word + " ")
        yield StreamChunk(
            is_complete=True,
            usage=self._usage(messages, answer),
            is_truncated=False,
            stop_reason="stop",
        )
