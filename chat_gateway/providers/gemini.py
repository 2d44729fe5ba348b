"""Gemini generateContent adapter."""

from __future__ import annotations

import base64
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Mapping, Sequence

from ..errors import ProviderError
from ..models import FileAttachment, GenerationParams, Message, ProviderResponse, StreamChunk, Usage
from ..resolver import ProviderKind
from .base import HttpProviderAdapter, system_text


logger = logging.getLogger(__name__)

NATIVE_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/webp",
        "image/heic",
        "image/heif",
        "application/pdf",
        "text/plain",
        "text/csv",
        "text/markdown",
    }
)


def _is_native(file: FileAttachment) -> bool:
    return file.mime_type in NATIVE_TYPES


def _model_path(model: str) -> str:
    return model[len("models/"):] if model.startswith("models/") else model


def _usage(raw: Mapping[str, Any] | None) -> Usage:
    raw = raw or {}
    prompt = raw.get("promptTokenCount") or 0
    completion = raw.get("candidatesTokenCount") or 0
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=raw.get("totalTokenCount") or prompt + completion,
    )


def _candidate_text(data: Mapping[str, Any]) -> tuple[str, str | None]:
    candidates = data.get("candidates") or []
    if not candidates:
        return "", None
    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts") or []
    text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
    return text, candidate.get("finishReason")


class GeminiAdapter(HttpProviderAdapter):
    kind = ProviderKind.GEMINI
    display_name = "Gemini"
    models = ("models/gemini-2.5-pro", "models/gemini-2.5-flash")

    def _headers(self) -> dict[str, str]:
        key = self._require_key(self._settings.gemini_api_key)
        return {"Content-Type": "application/json", "x-goog-api-key": key}

    def _url(self, model: str, method: str) -> str:
        base = self._settings.gemini_base_url.rstrip("/")
        return f"{base}/v1beta/models/{_model_path(model)}:{method}"

    async def _inline_part(self, file: FileAttachment) -> dict[str, Any] | None:
        data = file.data
        if not data and file.url:
            data = base64.b64encode(await self._fetch_stored(file)).decode("ascii")
        if not data:
            return None
        return {"inlineData": {"mimeType": file.mime_type, "data": data}}

    async def _contents(self, messages: Sequence[Message]) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        for message in messages:
            if message.role == "system":
                continue
            role = "model" if message.role == "assistant" else "user"
            if message.role == "user" and message.files:
                text, native = await self._split_attachments(message, _is_native)
                parts: list[dict[str, Any]] = []
                for file in native:
                    part = await self._inline_part(file)
                    if part is not None:
                        parts.append(part)
                if text:
                    parts.append({"text": text})
                contents.append({"role": role, "parts": parts})
            else:
                contents.append({"role": role, "parts": [{"text": message.content}]})
        return contents

    async def _payload(self, messages: Sequence[Message], params: GenerationParams) -> dict[str, Any]:
        config: dict[str, Any] = {"temperature": params.temperature}
        if params.max_tokens:
            config["maxOutputTokens"] = params.max_tokens
        if params.extended_thinking:
            config["thinkingConfig"] = {
                "thinkingBudget": params.thinking_budget_tokens,
                "includeThoughts": False,
            }

        payload: dict[str, Any] = {
            "contents": await self._contents(messages),
            "generationConfig": config,
        }
        system = system_text(messages, params)
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if params.enable_web_search:
            payload["tools"] = [{"google_search": {}}]
        return payload

    def _check_blocked(self, data: Mapping[str, Any]) -> None:
        reason = (data.get("promptFeedback") or {}).get("blockReason")
        if reason:
            raise ProviderError(
                f"Gemini blocked the request for safety reasons ({reason})",
                provider=self.name,
                code=reason,
            )

    async def generate_response(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> ProviderResponse:
        payload = await self._payload(messages, params)
        data = await self._post_json(self._url(params.model, "generateContent"), payload)
        self._check_blocked(data)

        text, finish_reason = _candidate_text(data)
        return ProviderResponse(
            content=text.strip(),
            model=params.model,
            provider=self.name,
            usage=_usage(data.get("usageMetadata")),
            is_truncated=finish_reason == "MAX_TOKENS",
            stop_reason=finish_reason,
        )

    async def generate_stream(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> AsyncIterator[StreamChunk]:
        payload = await self._payload(messages, params)
        url = self._url(params.model, "streamGenerateContent") + "?alt=sse"
        usage = Usage()
        finish_reason: str | None = None

        events = self._stream_events("POST", url, payload=payload)
        async with aclosing(events):
            async for event in events:
                data = event.json()
                if data is None:
                    continue
                self._check_blocked(data)
                text, reason = _candidate_text(data)
                if text:
                    yield StreamChunk(content=text)
                finish_reason = reason or finish_reason
                if data.get("usageMetadata"):
                    usage = _usage(data["usageMetadata"])

        yield StreamChunk(
            is_complete=True,
            usage=usage,
            is_truncated=finish_reason == "MAX_TOKENS",
            stop_reason=finish_reason,
        )
