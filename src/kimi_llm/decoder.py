"""Incremental decoding of the chat-completions event stream.

``decode_events`` turns raw SSE lines into :class:`StreamEvent` objects. Two projections
sit on top of it: ``text_stream`` yields the text deltas, and ``tool_arguments``
assembles the JSON arguments of one named tool call.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from kimi_llm.errors import IncompleteToolCall, MalformedEvent, ProviderError
from kimi_llm.types import StreamEvent

PROVIDER_NAME = "kimiai"

_logger = logging.getLogger(__name__)


async def decode_events(lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    """Yield events parsed from SSE lines until ``[DONE]`` or the end of input."""
    tool_names: dict[int, str] = {}

    async for line in lines:
        line = line.strip()
        if not line:
            continue

        # Comments and "event:" lines carry nothing we use.
        if not line.startswith("data:"):
            continue

        data_str = line[len("data:") :].strip()
        if data_str == "[DONE]":
            yield StreamEvent(type="done")
            return

        try:
            event = json.loads(data_str)
        except json.JSONDecodeError as exc:
            raise MalformedEvent(data_str) from exc
        if not isinstance(event, dict):
            raise MalformedEvent(data_str)

        error = event.get("error")
        if error:
            raise ProviderError(PROVIDER_NAME, _error_message(error))

        for decoded in _events_from_chunk(event, tool_names, data_str):
            yield decoded


def _events_from_chunk(
    event: dict[str, Any], tool_names: dict[int, str], data_str: str
) -> list[StreamEvent]:
    choices = event.get("choices") or []
    if not isinstance(choices, list):
        raise MalformedEvent(data_str)
    if not choices:
        return []
    choice = choices[0]
    if not isinstance(choice, dict):
        raise MalformedEvent(data_str)
    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        raise MalformedEvent(data_str)
    events: list[StreamEvent] = []

    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append(StreamEvent(type="text_delta", text=content, raw=event))

    tool_calls = delta.get("tool_calls") or []
    if not isinstance(tool_calls, list):
        raise MalformedEvent(data_str)
    for position, call in enumerate(tool_calls):
        if not isinstance(call, dict):
            raise MalformedEvent(data_str)
        index = call.get("index", position)
        function = call.get("function") or {}
        if not isinstance(index, int) or not isinstance(function, dict):
            raise MalformedEvent(data_str)
        name = function.get("name")
        if isinstance(name, str) and name:
            tool_names[index] = name
        arguments = function.get("arguments")
        events.append(
            StreamEvent(
                type="tool_delta",
                tool_index=index,
                tool_name=tool_names.get(index),
                arguments=arguments if isinstance(arguments, str) else "",
                raw=event,
            )
        )

    finish_reason = choice.get("finish_reason")
    if finish_reason:
        _logger.debug("Stream finished: %s", finish_reason)
    return events


async def _aclose(source: AsyncIterable[StreamEvent]) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()


@asynccontextmanager
async def _closing(source: AsyncIterable[StreamEvent]) -> AsyncIterator[AsyncIterable[StreamEvent]]:
    try:
        yield source
    finally:
        await _aclose(source)


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class TextStream:
    """Yields each non-empty text delta in arrival order.

    Errors from the source propagate once and end the sequence. Closing a
    ``TextStream`` closes its source, even if iteration never started.
    """

    def __init__(self, events: AsyncIterable[StreamEvent]) -> None:
        self._source = events
        self._events = events.__aiter__()
        self._finished = False

    def __aiter__(self) -> TextStream:
        return self

    async def __anext__(self) -> str:
        while not self._finished:
            try:
                event = await self._events.__anext__()
            except BaseException:
                self._finished = True
                await self.aclose()
                raise
            if event.type == "text_delta" and event.text:
                return event.text
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self._finished = True
        await _aclose(self._source)

    async def __aenter__(self) -> TextStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def text_stream(events: AsyncIterable[StreamEvent]) -> TextStream:
    return TextStream(events)


async def tool_arguments(events: AsyncIterable[StreamEvent], tool_name: str) -> Any:
    """Return the arguments of the first complete call to ``tool_name``.

    Fragments are concatenated in arrival order and parsed after every append. The
    first successful parse wins and the source is closed without reading further.
    Deltas for other tools are ignored.
    """
    buffer = ""
    async with _closing(events):
        async for event in events:
            if event.type != "tool_delta" or event.tool_name != tool_name:
                continue
            if not event.arguments:
                continue
            buffer += event.arguments
            try:
                return json.loads(buffer)
            except json.JSONDecodeError:
                continue
    raise IncompleteToolCall(tool_name, buffer)
