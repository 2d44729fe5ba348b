"""Provider adapter contract and the httpx plumbing the adapters share."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, ClassVar, Sequence

import httpx

from ..config import Settings
from ..attachments import MAX_INDIVIDUAL_SIZE, MB
from ..errors import AttachmentFetchError, ProviderError
from ..extraction import Extractor, TextExtractor
from ..models import FileAttachment, GenerationParams, Message, ProviderResponse, StreamChunk
from ..resolver import ProviderKind
from ..storage import HttpObjectStore, ObjectStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SseEvent:
    event: str
    data: str

    def json(self) -> dict[str, Any] | None:
        """Decode the data line; payloads that are not a JSON object yield None."""
        try:
            payload = json.loads(self.data)
        except json.JSONDecodeError:
            logger.debug("skipping undecodable SSE data: %.80s", self.data)
            return None
        return payload if isinstance(payload, dict) else None


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[SseEvent]:
    """Group raw SSE lines into events; comment lines are skipped."""
    event = "message"
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                yield SseEvent(event, "\n".join(data_lines))
            event = "message"
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)
    if data_lines:
        yield SseEvent(event, "\n".join(data_lines))


def system_text(messages: Sequence[Message], params: GenerationParams) -> str:
    """Join the composed system prompt with any system turns in the history."""
    parts = [params.system_prompt] if params.system_prompt else []
    parts.extend(m.content for m in messages if m.role == "system" and m.content)
    return "\n\n".join(parts)


def _error_detail(body: str) -> tuple[str, str | None]:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body.strip()[:500] or "no response body", None

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error), error.get("type") or error.get("status")
    if isinstance(error, str):
        return error, None
    if isinstance(payload, dict) and payload.get("detail"):
        return str(payload["detail"]), None
    return body.strip()[:500], None


class ProviderAdapter(ABC):
    """Uniform generate/stream contract over one provider."""

    kind: ClassVar[ProviderKind]
    display_name: ClassVar[str] = ""
    models: ClassVar[tuple[str, ...]] = ()

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    async def generate_response(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> ProviderResponse:
        ...

    @abstractmethod
    def generate_stream(
        self, messages: Sequence[Message], params: GenerationParams
    ) -> AsyncIterator[StreamChunk]:
        ...

    async def aclose(self) -> None:
        return None


class HttpProviderAdapter(ProviderAdapter):
    """Base for adapters that call a provider's REST API with one pooled client."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
        object_store: ObjectStore | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._object_store = object_store or HttpObjectStore(timeout=settings.request_timeout)
        self._extractor = extractor or TextExtractor(max_tokens=settings.max_file_tokens)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "HttpProviderAdapter":
        return cls(settings, **kwargs)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.request_timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    def _headers(self) -> dict[str, str]:
        ...

    def _require_key(self, key: str | None) -> str:
        if not key:
            raise ProviderError(
                f"{self.display_name} API key is not configured", provider=self.name
            )
        return key

    def _http_error(self, status_code: int, body: str) -> ProviderError:
        detail, code = _error_detail(body)
        return ProviderError(
            f"{self.display_name} error {status_code}: {detail}",
            provider=self.name,
            upstream_status=status_code,
            code=code,
        )

    def _transport_error(self, exc: httpx.RequestError) -> ProviderError:
        if isinstance(exc, httpx.TimeoutException):
            message = f"{self.display_name} request timed out"
        else:
            message = f"{self.display_name} connection failed: {exc}"
        return ProviderError(message, provider=self.name)

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        request_headers = {**self._headers(), **(headers or {})}
        try:
            resp = await self._get_client().request(
                method, url, headers=request_headers, json=payload
            )
        except httpx.RequestError as exc:
            raise self._transport_error(exc) from exc

        if resp.status_code >= 400:
            raise self._http_error(resp.status_code, resp.text)
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(
                f"Unexpected {self.display_name} response format", provider=self.name
            ) from exc

    async def _post_json(
        self, url: str, payload: dict[str, Any], headers: dict[str, str] | None = None
    ) -> dict[str, Any]:
        return await self._request_json("POST", url, payload=payload, headers=headers)

    async def _stream_events(
        self,
        method: str,
        url: str,
        *,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> AsyncIterator[SseEvent]:
        request_headers = {
            **self._headers(),
            "Accept": "text/event-stream",
            **(headers or {}),
        }
        try:
            async with self._get_client().stream(
                method, url, headers=request_headers, json=payload
            ) as resp:
                if resp.status_code >= 400:
                    body = await resp.aread()
                    raise self._http_error(resp.status_code, body.decode(errors="replace"))
                async for event in iter_sse(resp.aiter_lines()):
                    yield event
        except httpx.RequestError as exc:
            raise self._transport_error(exc) from exc

    async def _attachment_bytes(self, file: FileAttachment) -> bytes:
        if file.data:
            return file.decode()
        if file.url:
            return await self._fetch_stored(file)
        return b""

    async def _fetch_stored(self, file: FileAttachment) -> bytes:
        data = await self._object_store.fetch(file.url)
        if len(data) > MAX_INDIVIDUAL_SIZE:
            raise AttachmentFetchError(
                f"Stored file {file.name} is larger than the {MAX_INDIVIDUAL_SIZE // MB}MB limit"
            )
        return data

    async def _split_attachments(
        self, message: Message, is_native: Callable[[FileAttachment], bool]
    ) -> tuple[str, list[FileAttachment]]:
        """Fold non-native files into the message text; return (text, native files)."""
        blocks = [message.content] if message.content else []
        native: list[FileAttachment] = []
        for file in message.files:
            if is_native(file):
                native.append(file)
                continue
            data = b"" if file.is_image else await self._attachment_bytes(file)
            blocks.append(await self._extractor.extract(file, data))
        return "\n\n".join(blocks), native
