"""Anthropic Messages API adapter."""

from __future__ import annotations

import logging
from contextlib import aclosing
from types import MappingProxyType
from typing import Any, AsyncIterator, Mapping, Sequence

from ..budget import DEFAULT_THINKING_BUDGET, canonical_model
from ..errors import ProviderError
from ..models import FileAttachment, GenerationParams, Message, ProviderResponse, StreamChunk, Usage
from ..resolver import ProviderKind
from .base import HttpProviderAdapter, system_text


logger = logging.getLogger(__name__)

API_VERSION = "2023-06-01"
WEB_SEARCH_BETA = "web-search-2025-03-05"
WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}

NATIVE_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
PDF_TYPE = "application/pdf"

# Hard output limits the Messages API enforces per model.
API_OUTPUT_LIMITS: Mapping[str, int] = MappingProxyType(
    {
        "claude-sonnet-4-5": 64000,
        "claude-sonnet-4": 64000,
        "claude-haiku-4-5": 64000,
        "claude-haiku-3-5": 8192,
        "claude-opus-4-1": 32000,
        "claude-opus-4": 32000,
        "claude-opus-3": 4096,
    }
)
DEFAULT_API_OUTPUT_LIMIT = 64000


def api_output_limit(model: str) -> int:
    return API_OUTPUT_LIMITS.get(canonical_model(model), DEFAULT_API_OUTPUT_LIMIT)


def _is_native(file: FileAttachment) -> bool:
    return file.mime_type in NATIVE_IMAGE_TYPES or file.mime_type == PDF_TYPE


def _source(file: FileAttachment) -> dict[str, Any] | None:
    if file.data:
        return {"type": "base64", "media_type": file.mime_type, "data": file.data}
    if file.url:
        return {"type": "url", "url": file.url}
    return None


def _usage(raw: Mapping[str, Any] | None) -> Usage:
    raw = raw or {}
    prompt = raw.get("input_tokens") or 0
    completion = raw.get("output_tokens") or 0
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


class AnthropicAdapter(HttpProviderAdapter):
    kind = ProviderKind.ANTHROPIC
    display_name = "Anthropic"
    models = (
        "claude-sonnet-4-5",
        "claude-sonnet-4",
        "claude-haiku-4-5",
        "claude-opus-4-1",
        "claude-opus-4",
    )

    def _headers(self) -> dict[str, str]:
        key = self._require_key(self._settings.anthropic_api_key)
        return {
            "Content-Type": "application/json",
            "x-api-key": key,
            "anthropic-version": API_VERSION,
        }

    def _url(self) -> str:
        return f"{self._settings.anthropic_base_url.rstrip('/')}/v1/messages"

    def _extra_headers(self, params: GenerationParams) -> dict[str, str]:
        return {"anthropic-beta": WEB_SEARCH_BETA} if params.enable_web_search else {}

    async def _format_messages(self, messages: Sequence[Message]) -> list[dict[str, Any]]:
        formatted: list[dict[str, Any]] = []
        for message in messages:
            if message.role == "system":
                continue
            if message.role == "user" and message.files:
                text, native = await self._split_attachments(message, _is_native)
                content: list[dict[str, Any]] = []
                for file in native:
                    source = _source(file)
                    if source is None:
                        continue
                    block_type = "document" if file.mime_type == PDF_TYPE else "image"
                    content.append({"type": block_type, "source": source})
                content.append({"type": "text", "text": text or "(see attached files)"})
                formatted.append({"role": "user", "content": content})
            else:
                formatted.append({"role": message.role, "content": message.content})
        return formatted

    async def _payload(
        self, messages: Sequence[Message], params: GenerationParams, stream: bool
    ) -> dict[str, Any]:
        limit = api_output_limit(params.model)
        max_tokens = min(params.max_tokens or limit, limit)

        payload: dict[str, Any] = {
            "model": params.model,
            "max_tokens": max_tokens,
            "messages": await self._format_messages(messages),
            "temperature": params.temperature,
        }
        system = system_text(messages, params)
        if system:
            payload["system"] = system
        if params.extended_thinking:
            budget = max(params.thinking_budget_tokens, DEFAULT_THINKING_BUDGET)
            payload["thinking"] = {
                "type": "enabled",
                "budget_tokens": min(budget, max_tokens - 1),
            }
        if params.enable_web_search:
            payload["tools"] = [dict(WEB_SEARCH_TOOL)]
        if stream:
            payload["stream"] = True
        return payload

    def _overloaded(self, model: str) -> ProviderError:
        return ProviderError(
            f"Overloaded: The {model} model is currently experiencing high demand. "
            "Please try again in a few moments or switch to a different model.",
            provider=self.name,
            upstream_status=529,
            code="overloaded_error",
        )

    def _stream_error(self, data: Mapping[str, Any], model: str) -> ProviderError:
        error = data.get("error") or {}
        if error.get("type") == "overloaded_error":
            return self._overloaded(model)
        return ProviderError(
            f"Anthropic error: {error.get('message') or 'stream failed'}",
            provider=self.name,
            code=error.get("type"),
        )

    async def generate_response(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> ProviderResponse:
        payload = await self._payload(messages, params, stream=False)
        try:
            data = await self._post_json(self._url(), payload, self._extra_headers(params))
        except ProviderError as exc:
            if exc.upstream_status == 529 or exc.code == "overloaded_error":
                raise self._overloaded(params.model) from exc
            raise

        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        stop_reason = data.get("stop_reason")
        return ProviderResponse(
            content=text.strip(),
            model=params.model,
            provider=self.name,
            usage=_usage(data.get("usage")),
            is_truncated=stop_reason == "max_tokens",
            stop_reason=stop_reason,
        )

    async def generate_stream(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> AsyncIterator[StreamChunk]:
        payload = await self._payload(messages, params, stream=True)
        input_tokens = 0
        output_tokens = 0
        stop_reason: str | None = None

        events = self._stream_events(
            "POST", self._url(), payload=payload, headers=self._extra_headers(params)
        )
        async with aclosing(events):
            try:
                async for event in events:
                    data = event.json()
                    if data is None:
                        continue
                    kind = data.get("type") or event.event
                    if kind == "message_start":
                        usage = (data.get("message") or {}).get("usage") or {}
                        input_tokens = usage.get("input_tokens") or 0
                        output_tokens = usage.get("output_tokens") or 0
                    elif kind == "content_block_delta":
                        delta = data.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield StreamChunk(content=delta["text"])
                    elif kind == "message_delta":
                        stop_reason = (data.get("delta") or {}).get("stop_reason") or stop_reason
                        output_tokens = (data.get("usage") or {}).get("output_tokens") or output_tokens
                    elif kind == "message_stop":
                        break
                    elif kind == "error":
                        raise self._stream_error(data, params.model)
            except ProviderError as exc:
                if exc.upstream_status == 529 or exc.code == "overloaded_error":
                    raise self._overloaded(params.model) from exc
                raise

        yield StreamChunk(
            is_complete=True,
            usage=Usage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            is_truncated=stop_reason == "max_tokens",
            stop_reason=stop_reason,
        )
