from __future__ import annotations

import json
from typing import Any, Sequence

from .models import FileValidationWarning, StreamChunk


DONE_FRAME = "data: [DONE]\n\n"
KEEP_ALIVE_FRAME = ": keep-alive\n\n"


def format_sse(data: dict[str, Any]) -> str:
    payload = json.dumps(data, ensure_ascii=False)
    return f"data: {payload}\n\n"


def chunk_event(
    chunk: StreamChunk, warnings: Sequence[FileValidationWarning] | None = None
) -> dict[str, Any]:
    event: dict[str, Any] = {"content": chunk.content, "isComplete": chunk.is_complete}
    if chunk.usage is not None:
        event["usage"] = chunk.usage.to_wire()
    if chunk.is_truncated is not None:
        event["isTruncated"] = chunk.is_truncated
    if chunk.stop_reason is not None:
        event["stopReason"] = chunk.stop_reason
    if warnings:
        event["fileValidationWarnings"] = [w.to_wire() for w in warnings]
    return event


def error_event(
    message: str, warnings: Sequence[FileValidationWarning] | None = None
) -> dict[str, Any]:
    event: dict[str, Any] = {
        "content": f"Error: {message}",
        "isComplete": True,
        "error": True,
    }
    if warnings:
        event["fileValidationWarnings"] = [w.to_wire() for w in warnings]
    return event
