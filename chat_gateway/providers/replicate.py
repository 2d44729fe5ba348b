"""Replicate predictions adapter for namespaced ``owner/model`` ids."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Mapping, Sequence

from ..errors import ProviderError
from ..models import GenerationParams, Message, ProviderResponse, StreamChunk, Usage
from ..resolver import ProviderKind
from .base import HttpProviderAdapter, system_text


logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


def _never_native(_file: Any) -> bool:
    return False


def _output_text(output: Any) -> str:
    if output is None:
        return ""
    if isinstance(output, list):
        return "".join(str(part) for part in output)
    return str(output)


def _usage(metrics: Mapping[str, Any] | None) -> Usage:
    metrics = metrics or {}
    prompt = int(metrics.get("input_token_count") or 0)
    completion = int(metrics.get("output_token_count") or 0)
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


class ReplicateAdapter(HttpProviderAdapter):
    kind = ProviderKind.REPLICATE
    display_name = "Replicate"
    models = ("openai/gpt-5", "anthropic/claude-4-sonnet", "deepseek-ai/deepseek-r1")

    poll_interval = 1.0

    def _headers(self) -> dict[str, str]:
        token = self._require_key(self._settings.replicate_api_token)
        return {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}

    def _create_target(self, model: str) -> tuple[str, dict[str, Any]]:
        base = f"{self._settings.replicate_base_url.rstrip('/')}/v1"
        name, _, version = model.partition(":")
        if version:
            return f"{base}/predictions", {"version": version}
        return f"{base}/models/{name}/predictions", {}

    async def _input(self, messages: Sequence[Message], params: GenerationParams) -> dict[str, Any]:
        formatted: list[dict[str, str]] = []
        system = system_text(messages, params)
        if system:
            formatted.append({"role": "system", "content": system})
        for message in messages:
            if message.role == "system":
                continue
            content = message.content
            if message.files:
                content, _ = await self._split_attachments(message, _never_native)
            formatted.append({"role": message.role, "content": content})

        body: dict[str, Any] = {
            "messages": formatted,
            "temperature": params.temperature,
            "top_p": 1,
        }
        if params.max_tokens:
            body["max_tokens"] = params.max_tokens
        return body

    async def _create(
        self, messages: Sequence[Message], params: GenerationParams, stream: bool
    ) -> dict[str, Any]:
        url, body = self._create_target(params.model)
        body["input"] = await self._input(messages, params)
        if stream:
            body["stream"] = True
            return await self._post_json(url, body)
        return await self._post_json(url, body, {"Prefer": "wait"})

    def _failed(self, prediction: Mapping[str, Any]) -> ProviderError:
        detail = prediction.get("error") or prediction.get("status")
        return ProviderError(f"Replicate prediction failed: {detail}", provider=self.name)

    async def _wait(self, prediction: dict[str, Any]) -> dict[str, Any]:
        while prediction.get("status") not in TERMINAL_STATUSES:
            url = (prediction.get("urls") or {}).get("get")
            if not url:
                raise ProviderError("Replicate prediction has no status URL", provider=self.name)
            await asyncio.sleep(self.poll_interval)
            prediction = await self._request_json("GET", url)
        return prediction

    async def generate_response(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> ProviderResponse:
        prediction = await self._wait(await self._create(messages, params, stream=False))
        if prediction.get("status") != "succeeded":
            raise self._failed(prediction)

        return ProviderResponse(
            content=_output_text(prediction.get("output")).strip(),
            model=params.model,
            provider=self.name,
            usage=_usage(prediction.get("metrics")),
            is_truncated=False,
            stop_reason=prediction.get("status"),
        )

    async def generate_stream(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> AsyncIterator[StreamChunk]:
        prediction = await self._create(messages, params, stream=True)
        urls = prediction.get("urls") or {}
        stream_url = urls.get("stream")
        if not stream_url:
            raise ProviderError("Replicate model does not support streaming", provider=self.name)

        events = self._stream_events("GET", stream_url)
        async with aclosing(events):
            async for event in events:
                if event.event == "output":
                    if event.data:
                        yield StreamChunk(content=event.data)
                elif event.event == "error":
                    raise ProviderError(
                        f"Replicate prediction failed: {event.data}", provider=self.name
                    )
                elif event.event == "done":
                    break

        usage = Usage()
        if urls.get("get"):
            final = await self._request_json("GET", urls["get"])
            usage = _usage(final.get("metrics"))
        yield StreamChunk(is_complete=True, usage=usage, is_truncated=False, stop_reason="succeeded")
