import io
import json

import pytest
from starlette.datastructures import FormData, Headers, UploadFile

from chat_gateway.config import get_settings
from chat_gateway.errors import MalformedRequest
from chat_gateway.parsing import chat_request_from_form, chat_request_from_json


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.delenv("DEFAULT_MODEL", raising=False)
    return get_settings()


def test_json_defaults(settings):
    req = chat_request_from_json({"messages": [{"role": "user", "content": "Hello"}]}, settings)

    assert req.model == "gpt-5"
    assert req.stream is False
    assert req.params.temperature == 0.7
    assert req.params.extended_thinking is False
    assert req.params.thinking_budget_tokens == 1024
    assert req.params.reasoning_effort == "medium"
    assert req.params.enable_web_search is True


def test_json_extended_thinking(settings):
    body = {
        "messages": [{"role": "user", "content": "Think"}],
        "model": "claude-opus-4-1",
        "stream": True,
        "extended_thinking": True,
        "thinking_budget_tokens": 4096,
        "reasoning_effort": "high",
        "enable_web_search": False,
        "system_instruction": "Answer in French.",
    }
    req = chat_request_from_json(body, settings)

    assert req.stream is True
    assert req.params.temperature == 1.0
    assert req.params.thinking_budget_tokens == 4096
    assert req.params.reasoning_effort == "high"
    assert req.params.enable_web_search is False
    assert req.params.system_prompt == "Answer in French."


def test_zero_thinking_budget_uses_default(settings):
    body = {"messages": [{"role": "user", "content": "x"}], "thinking_budget_tokens": 0}
    assert chat_request_from_json(body, settings).params.thinking_budget_tokens == 1024


@pytest.mark.parametrize("body", [{}, {"messages": []}, {"messages": "hi"}, ["not", "a", "dict"]])
def test_missing_messages_rejected(settings, body):
    with pytest.raises(MalformedRequest, match="Messages array is required"):
        chat_request_from_json(body, settings)


def test_invalid_role_rejected(settings):
    with pytest.raises(MalformedRequest):
        chat_request_from_json({"messages": [{"role": "robot", "content": "x"}]}, settings)


def test_invalid_reasoning_effort_rejected(settings):
    body = {"messages": [{"role": "user", "content": "x"}], "reasoning_effort": "extreme"}
    with pytest.raises(MalformedRequest, match="reasoning_effort"):
        chat_request_from_json(body, settings)


def test_only_last_user_message_keeps_files(settings):
    file = {"name": "a.txt", "type": "text/plain", "data": "aGVsbG8="}
    body = {
        "messages": [
            {"role": "user", "content": "first", "files": [file]},
            {"role": "assistant", "content": "ok"},
            {"role": "user", "content": "second", "files": [file]},
        ]
    }
    req = chat_request_from_json(body, settings)

    assert req.messages[0].files == []
    assert len(req.messages[2].files) == 1
    assert req.attachments()[0].name == "a.txt"


def _upload(name, content, mime_type):
    return UploadFile(
        file=io.BytesIO(content),
        filename=name,
        headers=Headers({"content-type": mime_type}),
    )


@pytest.mark.asyncio
async def test_form_request_with_files(settings):
    form = FormData(
        [
            ("messages", json.dumps([{"role": "user", "content": "Summarize"}])),
            ("model", "claude-sonnet-4-5"),
            ("stream", "true"),
            ("extended_thinking", "false"),
            ("enable_web_search", "false"),
            ("file_0", _upload("notes.txt", b"hello world", "text/plain")),
            ("file_1", _upload("pic.png", b"\x89PNG", "image/png")),
            ("other", _upload("ignored.txt", b"nope", "text/plain")),
        ]
    )
    req = await chat_request_from_form(form, settings)

    assert req.model == "claude-sonnet-4-5"
    assert req.stream is True
    assert req.params.enable_web_search is False
    files = req.attachments()
    assert [f.name for f in files] == ["notes.txt", "pic.png"]
    assert files[0].size == 11
    assert files[0].decode() == b"hello world"
    assert files[1].mime_type == "image/png"


@pytest.mark.asyncio
async def test_form_web_search_defaults_on(settings):
    form = FormData([("messages", json.dumps([{"role": "user", "content": "x"}]))])
    req = await chat_request_from_form(form, settings)

    assert req.params.enable_web_search is True
    assert req.stream is False


@pytest.mark.asyncio
async def test_form_bad_messages_json(settings):
    form = FormData([("messages", "{not json")])
    with pytest.raises(MalformedRequest, match="Messages array is required"):
        await chat_request_from_form(form, settings)


@pytest.mark.asyncio
async def test_form_uploads_without_user_message_are_reported(settings):
    form = FormData(
        [
            ("messages", json.dumps([{"role": "assistant", "content": "How can I help?"}])),
            ("file_0", _upload("notes.txt", b"hello", "text/plain")),
        ]
    )
    req = await chat_request_from_form(form, settings)

    assert req.attachments() == []
    assert [(w.file_name, w.reason) for w in req.warnings] == [
        ("notes.txt", "No user message to attach this file to")
    ]
