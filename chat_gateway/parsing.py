"""Turn either transport encoding of a chat turn into one ``ChatRequest``."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Mapping

from fastapi import Request
from pydantic import ValidationError
from starlette.datastructures import FormData, UploadFile

from .budget import DEFAULT_THINKING_BUDGET
from .config import Settings
from .errors import MalformedRequest
from .models import ChatRequest, FileAttachment, FileValidationWarning, GenerationParams, Message


logger = logging.getLogger(__name__)

MISSING_MESSAGES = "Messages array is required"
FILE_FIELD_PREFIX = "file_"
NO_USER_MESSAGE = "No user message to attach this file to"
NORMAL_TEMPERATURE = 0.7
EXTENDED_TEMPERATURE = 1.0


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _as_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed or default


def _first(fields: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = fields.get(name)
        if value not in (None, ""):
            return value
    return None


def _build_messages(raw_messages: Any) -> list[Message]:
    if not isinstance(raw_messages, list) or not raw_messages:
        raise MalformedRequest(MISSING_MESSAGES)
    try:
        return [Message.model_validate(m) for m in raw_messages]
    except ValidationError as exc:
        raise MalformedRequest(f"Invalid message: {exc.errors()[0]['msg']}") from exc


def _keep_last_user_files(
    messages: list[Message], extra_files: list[FileAttachment] | None = None
) -> list[Message]:
    """Strip attachments from every message except the last user message."""
    last_user = None
    for idx in range(len(messages) - 1, -1, -1):
        if messages[idx].role == "user":
            last_user = idx
            break

    normalized: list[Message] = []
    for idx, message in enumerate(messages):
        if idx == last_user:
            files = list(message.files) + list(extra_files or [])
        else:
            if message.files:
                logger.debug("dropping %d file(s) from earlier %s message", len(message.files), message.role)
            files = []
        normalized.append(message.model_copy(update={"files": files}))

    return normalized


def _build_request(
    fields: Mapping[str, Any],
    messages: list[Message],
    settings: Settings,
    *,
    web_search_default: bool = True,
    warnings: list[FileValidationWarning] | None = None,
) -> ChatRequest:
    model = _first(fields, "model") or settings.default_model
    extended = _as_bool(fields.get("extended_thinking"), False)

    web_search_raw = fields.get("enable_web_search")
    if isinstance(web_search_raw, str):
        enable_web_search = web_search_raw.strip().lower() != "false"
    else:
        enable_web_search = _as_bool(web_search_raw, web_search_default)

    try:
        params = GenerationParams(
            model=model,
            temperature=EXTENDED_TEMPERATURE if extended else NORMAL_TEMPERATURE,
            extended_thinking=extended,
            thinking_budget_tokens=_as_int(
                fields.get("thinking_budget_tokens"), DEFAULT_THINKING_BUDGET
            ),
            reasoning_effort=_first(fields, "reasoning_effort") or "medium",
            verbosity=_first(fields, "verbosity") or "medium",
            enable_web_search=enable_web_search,
            system_prompt=_first(fields, "system_instruction", "systemInstruction") or "",
        )
    except ValidationError as exc:
        error = exc.errors()[0]
        location = ".".join(str(part) for part in error["loc"]) or "request"
        raise MalformedRequest(f"Invalid {location}: {error['msg']}") from exc

    return ChatRequest(
        messages=messages,
        model=model,
        stream=_as_bool(fields.get("stream"), False),
        params=params,
        warnings=warnings or [],
    )


def chat_request_from_json(body: Any, settings: Settings) -> ChatRequest:
    if not isinstance(body, dict):
        raise MalformedRequest(MISSING_MESSAGES)
    messages = _keep_last_user_files(_build_messages(body.get("messages")))
    return _build_request(body, messages, settings)


async def _read_upload(upload: UploadFile) -> FileAttachment:
    payload = await upload.read()
    return FileAttachment(
        name=upload.filename or "file",
        mime_type=upload.content_type or "application/octet-stream",
        size=len(payload),
        data=base64.b64encode(payload).decode("ascii"),
    )


async def chat_request_from_form(form: FormData, settings: Settings) -> ChatRequest:
    raw_messages = form.get("messages")
    try:
        decoded = json.loads(raw_messages) if isinstance(raw_messages, str) else None
    except json.JSONDecodeError as exc:
        raise MalformedRequest(MISSING_MESSAGES) from exc

    uploads = [
        value
        for key, value in form.multi_items()
        if key.startswith(FILE_FIELD_PREFIX) and isinstance(value, UploadFile)
    ]
    files = [await _read_upload(upload) for upload in uploads]

    messages = _keep_last_user_files(_build_messages(decoded), files)
    warnings: list[FileValidationWarning] = []
    if files and not any(m.role == "user" for m in messages):
        logger.warning("no user message to attach %d uploaded file(s) to", len(files))
        warnings = [FileValidationWarning(file_name=f.name, reason=NO_USER_MESSAGE) for f in files]

    fields = {k: v for k, v in form.multi_items() if isinstance(v, str)}
    return _build_request(fields, messages, settings, warnings=warnings)


async def parse_chat_request(request: Request, settings: Settings) -> ChatRequest:
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type or "application/x-www-form-urlencoded" in content_type:
        form = await request.form()
        return await chat_request_from_form(form, settings)

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedRequest(MISSING_MESSAGES) from exc
    return chat_request_from_json(body, settings)
