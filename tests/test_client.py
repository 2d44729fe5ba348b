import argparse
import json

from client import _build_fields, iter_frames


def test_iter_frames_skips_keep_alives_and_stops_at_done():
    lines = [
        ": keep-alive",
        "",
        "data: " + json.dumps({"content": "Hi", "isComplete": False}),
        "",
        "data: " + json.dumps({"content": "", "isComplete": True}),
        "",
        "data: [DONE]",
        "",
        "data: " + json.dumps({"content": "never"}),
    ]
    frames = list(iter_frames(lines))

    assert frames == [
        {"content": "Hi", "isComplete": False},
        {"content": "", "isComplete": True},
        None,
    ]


def test_build_fields():
    args = argparse.Namespace(
        model="claude-opus-4-1",
        no_stream=False,
        extended_thinking=True,
        no_web_search=True,
        thinking_budget=4096,
    )
    assert _build_fields(args) == {
        "model": "claude-opus-4-1",
        "stream": "true",
        "extended_thinking": "true",
        "enable_web_search": "false",
        "thinking_budget_tokens": "4096",
    }
