"""HTTP transport for streaming chat completions."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from kimi_llm.decoder import PROVIDER_NAME, decode_events
from kimi_llm.errors import ConnectFailed, Disconnected, LowSpeedTimeout, ProviderError, TransportError
from kimi_llm.types import StreamEvent, WireRequest

_CHAT_PATH = "/chat/completions"
_DEFAULT_TIMEOUT_S = 60.0

_logger = logging.getLogger(__name__)


class EventStream:
    """Single-pass stream of events read from an open HTTP response.

    Closing the stream closes the response, whether or not iteration started.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._events = decode_events(response.aiter_lines())

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> StreamEvent:
        try:
            return await self._events.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise
        except httpx.HTTPError as exc:
            await self.aclose()
            raise _translate(exc) from exc
        except BaseException:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        try:
            await self._events.aclose()
        finally:
            await self._response.aclose()


async def stream_completion(
    client: httpx.AsyncClient,
    api_url: str,
    api_key: str,
    request: WireRequest,
    low_speed_timeout: float | None = None,
    *,
    timeout_s: float = _DEFAULT_TIMEOUT_S,
) -> EventStream:
    """POST ``request`` and return the response's event stream once headers arrive.

    ``low_speed_timeout`` bounds how long the response may go without sending data.
    """
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    url = f"{api_url.rstrip('/')}{_CHAT_PATH}"
    timeout = httpx.Timeout(timeout_s, read=low_speed_timeout)
    payload: dict[str, Any] = request.to_payload()

    _logger.debug("POST %s model=%s messages=%d", url, request.model, len(request.messages))
    http_request = client.build_request("POST", url, headers=headers, json=payload, timeout=timeout)
    try:
        response = await client.send(http_request, stream=True)
    except httpx.HTTPError as exc:
        raise _translate(exc) from exc

    if response.status_code >= 400:
        try:
            body = await response.aread()
        except httpx.HTTPError as exc:
            raise _translate(exc) from exc
        finally:
            await response.aclose()
        raise ProviderError(
            PROVIDER_NAME,
            body.decode(errors="replace") or response.reason_phrase,
            status_code=response.status_code,
        )

    return EventStream(response)


def _translate(exc: httpx.HTTPError) -> TransportError:
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)):
        return ConnectFailed(f"could not connect: {exc}")
    if isinstance(exc, httpx.ReadTimeout):
        return LowSpeedTimeout(f"response stalled: {exc}")
    if isinstance(exc, httpx.TransportError):
        return Disconnected(f"connection lost: {exc}")
    return TransportError(str(exc))

