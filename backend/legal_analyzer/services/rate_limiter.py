"""
Admission gate for outbound analysis requests.

Combines a concurrency cap, a minimum spacing between request starts and a
token reservoir that refills on a fixed interval. Waiters are admitted in
FIFO order. All state lives on one event loop and is mutated only through
acquire/release, the dispatch step and the refill task.
"""

import asyncio
import contextlib
import logging
from collections import deque
from typing import Any, AsyncIterator, Deque, Dict, Optional

from ..models.config import RateLimitConfig
from .error_classifier import ErrorKind, ErrorRecord, FallbackAPIError

logger = logging.getLogger(__name__)


def _gate_closed_error() -> FallbackAPIError:
    return FallbackAPIError(ErrorRecord(
        ErrorKind.SERVICE_UNAVAILABLE,
        503,
        "API rate limiter is shut down",
        retryable=False
    ))


class AdmissionGate:
    """
    Bounded-concurrency, token-reservoir rate limiter.

    A caller is admitted when fewer than max_concurrent requests are in
    flight, min_time_ms has elapsed since the previous admitted start, and
    a reservoir token is available. The reservoir is reset to its full
    capacity every reservoir_refresh_ms.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()
        self._max_concurrent = self.config.max_concurrent
        self._min_time = self.config.min_time_ms / 1000.0
        self._capacity = self.config.reservoir
        self._refresh_interval = self.config.reservoir_refresh_ms / 1000.0

        self._waiters: Deque[asyncio.Future] = deque()
        self._in_flight = 0
        self._available_tokens = self._capacity
        self._last_start: Optional[float] = None
        self._done = 0

        self._closed = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._refill_task: Optional[asyncio.Task] = None
        self._idle: Optional[asyncio.Event] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def available_tokens(self) -> int:
        return self._available_tokens

    def start(self):
        """Start the reservoir refill timer. Must run inside an event loop."""
        if self._closed:
            return
        if self._refill_task is None or self._refill_task.done():
            self._refill_task = asyncio.get_running_loop().create_task(self._refill_loop())

    async def _refill_loop(self):
        while True:
            await asyncio.sleep(self._refresh_interval)
            self._available_tokens = self._capacity
            logger.debug(f"Reservoir refilled to {self._capacity} tokens")
            self._dispatch()

    async def acquire(self):
        """Wait for admission. Raises FallbackAPIError once the gate is shut down."""
        if self._closed:
            raise _gate_closed_error()

        self.start()
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._dispatch()

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Admitted just before cancellation; hand the slot back
                self.release()
            else:
                with contextlib.suppress(ValueError):
                    self._waiters.remove(waiter)
                self._dispatch()
            raise

    def release(self):
        """Return an admission slot."""
        if self._in_flight <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self._in_flight -= 1
        self._done += 1
        self._dispatch()

    @contextlib.asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one admission slot for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def _dispatch(self):
        """Admit queued waiters from the head while every constraint allows it."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        loop = asyncio.get_running_loop()

        while self._waiters:
            head = self._waiters[0]
            if head.done():
                self._waiters.popleft()
                continue

            if self._in_flight >= self._max_concurrent:
                break
            if self._available_tokens <= 0:
                # Next refill dispatches again
                break

            now = loop.time()
            if self._last_start is not None:
                remaining = self._min_time - (now - self._last_start)
                if remaining > 0:
                    self._timer = loop.call_later(remaining, self._on_timer)
                    break

            self._waiters.popleft()
            self._in_flight += 1
            self._available_tokens -= 1
            self._last_start = now
            head.set_result(None)

        self._check_idle()

    def _on_timer(self):
        self._timer = None
        self._dispatch()

    def _queued(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def _check_idle(self):
        if self._idle is not None and self._in_flight == 0 and self._queued() == 0:
            self._idle.set()

    def stats(self) -> Dict[str, Any]:
        """Counters for status reporting."""
        return {
            "running": self._in_flight,
            "queued": self._queued(),
            "done": self._done,
            "availableTokens": self._available_tokens,
            "closed": self._closed
        }

    async def shutdown(self, drop_waiting: bool = False):
        """
        Stop admitting new callers.

        Args:
            drop_waiting: Reject queued waiters with SERVICE_UNAVAILABLE
                instead of letting them run. In-flight requests always finish.
        """
        if self._closed and self._refill_task is None:
            return
        self._closed = True
        logger.info(f"Shutting down admission gate (drop_waiting={drop_waiting}, stats={self.stats()})")

        if drop_waiting:
            while self._waiters:
                waiter = self._waiters.popleft()
                if not waiter.done():
                    waiter.set_exception(_gate_closed_error())

        self._idle = asyncio.Event()
        self._dispatch()
        await self._idle.wait()

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if self._refill_task is not None:
            self._refill_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refill_task
            self._refill_task = None

        logger.info("Admission gate stopped")
