"""Output-token ceilings per model and mode, plus length-based token estimates.

Normal mode favours cost and latency. Extended mode raises the ceiling only
for models built for long reasoning; the rest keep their normal ceiling.
"""

from __future__ import annotations

import math
import re
from types import MappingProxyType
from typing import Mapping


DEFAULT_NORMAL = 8192
DEFAULT_EXTENDED = 32768
THINKING_OVERHEAD = 2048
DEFAULT_THINKING_BUDGET = 1024

CHARS_PER_TOKEN = 3.5
TRUNCATION_NOTICE = "\n\n[... content truncated due to length ...]"

_DATE_SUFFIX = re.compile(r"-\d{8}$")
_DOTTED_VERSION = re.compile(r"(?<=\d)\.(?=\d)")

NORMAL: Mapping[str, int] = MappingProxyType(
    {
        "claude-sonnet-4-5": 16384,
        "claude-sonnet-4": 16384,
        "claude-haiku-4-5": 8192,
        "claude-haiku-3-5": 8192,
        "claude-opus-4-1": 16384,
        "claude-opus-4": 16384,
        "claude-opus-3": 8192,
        "gpt-5-pro": 16384,
        "gpt-5": 8192,
        "gpt-5-mini": 8192,
        "gpt-5-nano": 8192,
    }
)

EXTENDED: Mapping[str, int] = MappingProxyType(
    {
        "claude-sonnet-4-5": 32768,
        "claude-sonnet-4": 32768,
        "claude-haiku-4-5": 8192,
        "claude-haiku-3-5": 8192,
        "claude-opus-4-1": 32000,
        "claude-opus-4": 32000,
        "claude-opus-3": 8192,
        "gpt-5-pro": 32768,
        "gpt-5": 8192,
        "gpt-5-mini": 8192,
        "gpt-5-nano": 8192,
    }
)


def canonical_model(model: str) -> str:
    """Collapse dated, dotted and namespaced aliases onto one table key.

    >>> canonical_model("claude-sonnet-4.5")
    'claude-sonnet-4-5'
    >>> canonical_model("claude-opus-4-1-20250805")
    'claude-opus-4-1'
    """
    name = (model or "").strip().lower()
    if "/" in name:
        name = name.rsplit("/", 1)[1]
    name = _DOTTED_VERSION.sub("-", name)
    return _DATE_SUFFIX.sub("", name)


def model_ceiling(model: str, extended: bool) -> int:
    key = canonical_model(model)
    if extended:
        return EXTENDED.get(key, DEFAULT_EXTENDED)
    return NORMAL.get(key, DEFAULT_NORMAL)


def resolve_max_tokens(
    model: str,
    extended_thinking: bool,
    thinking_budget_tokens: int = DEFAULT_THINKING_BUDGET,
) -> int:
    if not extended_thinking:
        return model_ceiling(model, extended=False)

    requested = (thinking_budget_tokens or DEFAULT_THINKING_BUDGET) + THINKING_OVERHEAD
    target = max(requested, DEFAULT_EXTENDED)
    return min(target, model_ceiling(model, extended=True))


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_to_tokens(text: str, max_tokens: int) -> tuple[str, bool]:
    """Cut ``text`` to roughly ``max_tokens``; returns (text, was_truncated)."""
    if estimate_tokens(text) <= max_tokens:
        return text, False
    max_chars = int(max_tokens * CHARS_PER_TOKEN)
    keep = max(0, max_chars - len(TRUNCATION_NOTICE))
    return text[:keep] + TRUNCATION_NOTICE, True
