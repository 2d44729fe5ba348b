"""OpenAI adapter.

Chat Completions serves plain turns; the Responses API is used when web
search is requested, since the hosted ``web_search`` tool only exists there.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Sequence

from ..budget import canonical_model
from ..errors import ProviderError
from ..models import FileAttachment, GenerationParams, Message, ProviderResponse, StreamChunk, Usage
from ..resolver import ProviderKind
from .base import HttpProviderAdapter, system_text


logger = logging.getLogger(__name__)

NATIVE_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
REASONING_PREFIXES = ("gpt-5", "o1", "o3", "o4")


def _is_reasoning_model(model: str) -> bool:
    return canonical_model(model).startswith(REASONING_PREFIXES)


def _is_native(file: FileAttachment) -> bool:
    return file.mime_type in NATIVE_IMAGE_TYPES


def _image_url(file: FileAttachment) -> str | None:
    if file.url:
        return file.url
    if file.data:
        return f"data:{file.mime_type};base64,{file.data}"
    return None


def _chat_usage(raw: dict[str, Any] | None) -> Usage:
    raw = raw or {}
    return Usage(
        prompt_tokens=raw.get("prompt_tokens") or 0,
        completion_tokens=raw.get("completion_tokens") or 0,
        total_tokens=raw.get("total_tokens") or 0,
    )


def _responses_usage(raw: dict[str, Any] | None) -> Usage:
    raw = raw or {}
    prompt = raw.get("input_tokens") or 0
    completion = raw.get("output_tokens") or 0
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=raw.get("total_tokens") or prompt + completion,
    )


def _responses_text(response: dict[str, Any]) -> str:
    texts: list[str] = []
    for item in response.get("output") or []:
        if item.get("type") != "message":
            continue
        for part in item.get("content") or []:
            if part.get("type") == "output_text":
                texts.append(part.get("text", ""))
    return "".join(texts)


def _responses_stop(response: dict[str, Any]) -> tuple[bool, str | None]:
    status = response.get("status")
    if status == "incomplete":
        reason = (response.get("incomplete_details") or {}).get("reason")
        return reason == "max_output_tokens", reason or status
    return False, status


class OpenAIAdapter(HttpProviderAdapter):
    kind = ProviderKind.OPENAI
    display_name = "OpenAI"
    models = ("gpt-5", "gpt-5-mini", "gpt-5-nano", "gpt-5-pro")

    def _headers(self) -> dict[str, str]:
        key = self._require_key(self._settings.openai_api_key)
        return {"Content-Type": "application/json", "Authorization": f"Bearer {key}"}

    def _url(self, path: str) -> str:
        return f"{self._settings.openai_base_url.rstrip('/')}{path}"

    def _tuning(self, params: GenerationParams) -> dict[str, Any]:
        if _is_reasoning_model(params.model):
            return {}
        return {"temperature": params.temperature}

    async def _chat_messages(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> list[dict[str, Any]]:
        formatted: list[dict[str, Any]] = []
        system = system_text(messages, params)
        if system:
            formatted.append({"role": "system", "content": system})

        for message in messages:
            if message.role == "system":
                continue
            if message.role == "user" and message.files:
                text, images = await self._split_attachments(message, _is_native)
                content: list[dict[str, Any]] = [{"type": "text", "text": text}]
                for image in images:
                    url = _image_url(image)
                    if url:
                        content.append({"type": "image_url", "image_url": {"url": url}})
                formatted.append({"role": "user", "content": content})
            else:
                formatted.append({"role": message.role, "content": message.content})
        return formatted

    async def _chat_payload(
        self, messages: Sequence[Message], params: GenerationParams, stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": params.model,
            "messages": await self._chat_messages(messages, params),
            "max_completion_tokens": params.max_tokens,
            **self._tuning(params),
        }
        if _is_reasoning_model(params.model):
            payload["reasoning_effort"] = params.reasoning_effort
            if canonical_model(params.model).startswith("gpt-5"):
                payload["verbosity"] = params.verbosity
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        return payload

    async def _responses_input(self, messages: Sequence[Message]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for message in messages:
            if message.role == "system":
                continue
            if message.role == "user" and message.files:
                text, images = await self._split_attachments(message, _is_native)
                content: list[dict[str, Any]] = [{"type": "input_text", "text": text}]
                for image in images:
                    url = _image_url(image)
                    if url:
                        content.append({"type": "input_image", "image_url": url})
                items.append({"role": "user", "content": content})
            else:
                items.append({"role": message.role, "content": message.content})
        return items

    async def _responses_payload(
        self, messages: Sequence[Message], params: GenerationParams, stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": params.model,
            "input": await self._responses_input(messages),
            "max_output_tokens": params.max_tokens,
            "tools": [{"type": "web_search"}],
            **self._tuning(params),
        }
        system = system_text(messages, params)
        if system:
            payload["instructions"] = system
        if _is_reasoning_model(params.model):
            payload["reasoning"] = {"effort": params.reasoning_effort}
            if canonical_model(params.model).startswith("gpt-5"):
                payload["text"] = {"verbosity": params.verbosity}
        if stream:
            payload["stream"] = True
        return payload

    async def generate_response(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> ProviderResponse:
        if params.enable_web_search:
            payload = await self._responses_payload(messages, params, stream=False)
            data = await self._post_json(self._url("/responses"), payload)
            truncated, stop_reason = _responses_stop(data)
            return ProviderResponse(
                content=_responses_text(data).strip(),
                model=params.model,
                provider=self.name,
                usage=_responses_usage(data.get("usage")),
                is_truncated=truncated,
                stop_reason=stop_reason,
            )

        payload = await self._chat_payload(messages, params, stream=False)
        data = await self._post_json(self._url("/chat/completions"), payload)
        choice = (data.get("choices") or [{}])[0]
        finish_reason = choice.get("finish_reason")
        return ProviderResponse(
            content=((choice.get("message") or {}).get("content") or "").strip(),
            model=params.model,
            provider=self.name,
            usage=_chat_usage(data.get("usage")),
            is_truncated=finish_reason == "length",
            stop_reason=finish_reason,
        )

    async def generate_stream(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> AsyncIterator[StreamChunk]:
        if params.enable_web_search:
            async for chunk in self._stream_responses(messages, params):
                yield chunk
            return

        payload = await self._chat_payload(messages, params, stream=True)
        finish_reason: str | None = None
        usage = Usage()
        events = self._stream_events("POST", self._url("/chat/completions"), payload=payload)
        async with aclosing(events):
            async for event in events:
                if event.data == "[DONE]":
                    break
                chunk = event.json()
                if chunk is None:
                    continue
                if chunk.get("usage"):
                    usage = _chat_usage(chunk["usage"])
                for choice in chunk.get("choices") or []:
                    text = (choice.get("delta") or {}).get("content")
                    if text:
                        yield StreamChunk(content=text)
                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]

        yield StreamChunk(
            is_complete=True,
            usage=usage,
            is_truncated=finish_reason == "length",
            stop_reason=finish_reason,
        )

    async def _stream_responses(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> AsyncIterator[StreamChunk]:
        payload = await self._responses_payload(messages, params, stream=True)
        events = self._stream_events("POST", self._url("/responses"), payload=payload)
        async with aclosing(events):
            async for event in events:
                data = event.json()
                if data is None:
                    continue
                kind = data.get("type") or event.event
                if kind == "response.output_text.delta" and data.get("delta"):
                    yield StreamChunk(content=data["delta"])
                elif kind in {"response.completed", "response.incomplete"}:
                    response = data.get("response") or {}
                    truncated, stop_reason = _responses_stop(response)
                    yield StreamChunk(
                        is_complete=True,
                        usage=_responses_usage(response.get("usage")),
                        is_truncated=truncated,
                        stop_reason=stop_reason,
                    )
                    return
                elif kind in {"response.failed", "error"}:
                    error = (data.get("response") or {}).get("error") or data.get("error") or data
                    message = error.get("message") if isinstance(error, dict) else str(error)
                    raise ProviderError(f"OpenAI error: {message}", provider=self.name)
