"""Local stand-in for the OpenAI Chat Completions endpoint.

Run with ``uvicorn mock_upstream:app --port 9000`` and point
``OPENAI_BASE_URL`` at it. A user message containing ``[long]`` yields a
``finish_reason`` of ``length``; one containing ``[fail]`` answers 429.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

app = FastAPI()

CHUNK_SIZE = 24


def _last_user_text(messages: list[dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") != "user":
            continue
        content = message.get("content")
        if isinstance(content, list):
            return " ".join(p.get("text", "") for p in content if p.get("type") == "text")
        return str(content or "")
    return ""


def _answer(prompt: str) -> str:
    words = prompt.split()
    snippet = " ".join(words[:20])
    return f"Echo: {snippet}{'...' if len(words) > 20 else ''}"


def _usage(prompt: str, answer: str) -> dict[str, int]:
    prompt_tokens = max(1, len(prompt) // 4)
    completion_tokens = max(1, len(answer) // 4)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


async def _event_stream(
    text: str, finish_reason: str, usage: dict[str, int] | None
) -> AsyncGenerator[str, None]:
    for i in range(0, len(text), CHUNK_SIZE):
        data = {"choices": [{"index": 0, "delta": {"content": text[i : i + CHUNK_SIZE]}}]}
        yield f"data: {json.dumps(data)}\n\n"
        await asyncio.sleep(0.01)
    final = {"choices": [{"index": 0, "delta": {}, "finish_reason": finish_reason}]}
    yield f"data: {json.dumps(final)}\n\n"
    if usage is not None:
        yield f"data: {json.dumps({'choices': [], 'usage': usage})}\n\n"
    yield "data: [DONE]\n\n"


@app.post("/chat/completions")
async def chat_completions(request: Request):
    body: dict[str, Any] = await request.json()
    prompt = _last_user_text(body.get("messages", []))

    if "[fail]" in prompt:
        return JSONResponse(
            {"error": {"message": "Rate limit reached for requests", "type": "rate_limit_exceeded"}},
            status_code=429,
        )

    answer = _answer(prompt)
    finish_reason = "length" if "[long]" in prompt else "stop"
    usage = _usage(prompt, answer)

    if body.get("stream", False):
        include_usage = (body.get("stream_options") or {}).get("include_usage", False)
        return StreamingResponse(
            _event_stream(answer, finish_reason, usage if include_usage else None),
            media_type="text/event-stream",
        )

    return {
        "id": "chatcmpl-mock",
        "model": body.get("model"),
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": answer},
                "finish_reason": finish_reason,
            }
        ],
        "usage": usage,
    }
