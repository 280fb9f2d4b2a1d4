"""Test doubles shared by the test modules."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from typing import Any

from kimi_llm.types import StreamEvent


class MemorySecretStore:
    """In-memory ``SecretStore`` that records every call."""

    def __init__(self, secrets: dict[str, str] | None = None, fail_delete: bool = False) -> None:
        self.secrets = dict(secrets or {})
        self.fail_delete = fail_delete
        self.calls: list[tuple[str, str]] = []

    async def get(self, url: str) -> str | None:
        self.calls.append(("get", url))
        return self.secrets.get(url)

    async def set(self, url: str, secret: str) -> None:
        self.calls.append(("set", url))
        self.secrets[url] = secret

    async def delete(self, url: str) -> None:
        self.calls.append(("delete", url))
        if self.fail_delete:
            raise RuntimeError("keychain unavailable")
        self.secrets.pop(url, None)


def text_chunk(text: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def tool_chunk(arguments: str, *, name: str | None = None, index: int = 0) -> dict[str, Any]:
    function: dict[str, Any] = {"arguments": arguments}
    if name is not None:
        function["name"] = name
    call: dict[str, Any] = {"index": index, "function": function}
    if name is not None:
        call["id"] = f"call_{index}"
        call["type"] = "function"
    return {"choices": [{"index": 0, "delta": {"tool_calls": [call]}}]}


def sse_lines(chunks: Iterable[dict[str, Any]], done: bool = True) -> list[str]:
    lines: list[str] = []
    for chunk in chunks:
        lines.append(f"data: {json.dumps(chunk)}")
        lines.append("")
    if done:
        lines.append("data: [DONE]")
    return lines


def sse_body(chunks: Iterable[dict[str, Any]], done: bool = True) -> bytes:
    return ("\n".join(sse_lines(chunks, done)) + "\n").encode()


async def aiter_list(items: Iterable[Any]) -> AsyncIterator[Any]:
    for item in items:
        yield item


class RecordingSource:
    """Event source that remembers how far it was read and whether it was closed."""

    def __init__(self, events: Iterable[StreamEvent], error: BaseException | None = None) -> None:
        self._events = list(events)
        self._error = error
        self.consumed = 0
        self.closed = False

    def __aiter__(self) -> RecordingSource:
        return self

    async def __anext__(self) -> StreamEvent:
        if self.closed:
            raise StopAsyncIteration
        if self.consumed < len(self._events):
            event = self._events[self.consumed]
            self.consumed += 1
            return event
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self.closed = True


def text_event(text: str) -> StreamEvent:
    return StreamEvent(type="text_delta", text=text)


def tool_event(arguments: str, name: str | None = "extract", index: int = 0) -> StreamEvent:
    return StreamEvent(type="tool_delta", tool_name=name, tool_index=index, arguments=arguments)


async def collect(stream: AsyncIterator[Any]) -> list[Any]:
    items: list[Any] = []
    async for item in stream:
        items.append(item)
    return items
