"""Caps the number of concurrent requests to the API."""

from __future__ import annotations

import asyncio
import inspect
import logging
import weakref
from collections import deque
from collections.abc import AsyncIterator, Awaitable
from typing import Callable, Generic, TypeVar

from kimi_llm.errors import AdmissionError

T = TypeVar("T")

DEFAULT_MAX_CONCURRENT_REQUESTS = 4

_logger = logging.getLogger(__name__)


class RateLimiter:
    """Admits at most ``limit`` operations at once. Extra callers wait in FIFO order.

    A slot is held from just before the work starts until it finishes, fails or is
    cancelled. For streams the slot is held until the stream is exhausted or closed.
    """

    def __init__(self, limit: int = DEFAULT_MAX_CONCURRENT_REQUESTS) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._in_flight = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._closed = False

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def run(self, task: Awaitable[T]) -> T:
        """Await ``task`` while holding a slot."""
        try:
            await self._acquire()
        except BaseException:
            if inspect.iscoroutine(task):
                task.close()
            raise
        try:
            return await task
        finally:
            self._release()

    async def stream(self, opener: Callable[[], Awaitable[AsyncIterator[T]]]) -> AdmittedStream[T]:
        """Take a slot, open a stream with ``opener`` and tie the slot to the stream."""
        await self._acquire()
        try:
            source = await opener()
        except BaseException:
            self._release()
            raise
        return AdmittedStream(source, self._release)

    def close(self) -> None:
        """Refuse new work and fail everyone still waiting for a slot."""
        self._closed = True
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(AdmissionError("request limiter closed"))

    async def _acquire(self) -> None:
        if self._closed:
            raise AdmissionError("request limiter closed")
        if self._in_flight < self._limit and not self.waiting:
            self._in_flight += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        _logger.debug("Waiting for a request slot (%d in flight)", self._in_flight)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # the slot was handed over just before cancellation
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        # hand the slot straight to the next waiter so in_flight never overshoots
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._in_flight -= 1


class _Slot:
    """One admission slot; releasing it a second time does nothing."""

    def __init__(self, release: Callable[[], None]) -> None:
        self._release = release
        self.held = True

    def release(self) -> None:
        if self.held:
            self.held = False
            self._release()


_closing_tasks: set[asyncio.Task[None]] = set()


def _abandoned(slot: _Slot, source: AsyncIterator[object], loop: asyncio.AbstractEventLoop) -> None:
    # weakref finalizer: may run from the garbage collector, so defer to the loop
    if loop.is_closed():
        return
    _logger.debug("Stream dropped without aclose(); releasing its request slot")
    loop.call_soon_threadsafe(_close_abandoned, slot, source)


def _close_abandoned(slot: _Slot, source: AsyncIterator[object]) -> None:
    slot.release()
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        task = asyncio.ensure_future(aclose())
        _closing_tasks.add(task)
        task.add_done_callback(_closing_tasks.discard)


class AdmittedStream(Generic[T]):
    """Async iterator that gives its admission slot back exactly once.

    The slot is released when the source is exhausted, raises, or when the stream
    is closed with :meth:`aclose` (or by leaving an ``async with`` block). A stream
    that is dropped unclosed releases its slot and closes its source on the event
    loop once it is garbage collected.
    """

    def __init__(self, source: AsyncIterator[T], release: Callable[[], None]) -> None:
        self._source = source
        self._slot = _Slot(release)
        self._closed = False
        self._finalizer = weakref.finalize(
            self, _abandoned, self._slot, source, asyncio.get_running_loop()
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AdmittedStream[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._source.__anext__()
        except BaseException:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._finalizer.detach()
        try:
            aclose = getattr(self._source, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            self._slot.release()

    async def __aenter__(self) -> AdmittedStream[T]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
