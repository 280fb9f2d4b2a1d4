"""Cheap token estimate for chat requests."""

from __future__ import annotations

from kimi_llm.types import ChatRequest

CHARS_TO_TOKENS = 2


def estimate_tokens(request: ChatRequest) -> int:
    """Approximate token usage without a tokenizer or a network call.

    Counts characters of every message and scales by ``CHARS_TO_TOKENS``. This is an
    estimate only; context-window checks should leave headroom on top of it.
    """
    return sum(len(m.string_contents()) for m in request.messages) * CHARS_TO_TOKENS
