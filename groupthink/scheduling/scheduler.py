"""
Schedulers — delayed single-shot callbacks addressed by handler name.

Callers register handlers under a name and later ask for
``run_in(delay_seconds, name, payload)``; the handler is invoked once with
the payload after the delay. There is no cancellation: callers that need to
invalidate a pending callback carry a token in the payload and ignore it
when it fires.
"""

import asyncio
import heapq
import itertools
import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from groupthink.errors import SchedulerError

logger = logging.getLogger(__name__)

Handler = Callable[[dict], object]


class Scheduler(Protocol):
    """Protocol for the host's delayed-callback facility."""

    def register(self, name: str, handler: Handler) -> None: ...

    def run_in(self, delay_seconds: float, name: str, payload: dict) -> None: ...


class _HandlerTable:
    def __init__(self):
        self._handlers: Dict[str, Handler] = {}

    def register(self, name: str, handler: Handler) -> None:
        """Register (or replace) the handler invoked for ``name``."""
        self._handlers[name] = handler

    def _resolve(self, name: str) -> Handler:
        handler = self._handlers.get(name)
        if handler is None:
            raise SchedulerError(f"No handler registered for callback: {name}")
        return handler


class ManualScheduler(_HandlerTable):
    """
    Virtual-clock scheduler. Nothing fires until ``advance`` is called.
    Callbacks due at the same instant fire in the order they were scheduled.
    """

    def __init__(self):
        super().__init__()
        self._now = 0.0
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, str, dict]] = []

    @property
    def now(self) -> float:
        """Seconds elapsed on the virtual clock."""
        return self._now

    def run_in(self, delay_seconds: float, name: str, payload: dict) -> None:
        self._resolve(name)
        heapq.heappush(
            self._queue,
            (self._now + max(0.0, delay_seconds), next(self._seq), name, dict(payload)),
        )

    def pending(self) -> int:
        """Number of callbacks not yet fired."""
        return len(self._queue)

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, firing every callback that falls due,
        including ones scheduled by callbacks fired along the way.
        Returns the number fired.
        """
        if seconds < 0:
            raise SchedulerError(f"Cannot move the clock backwards: {seconds}")
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, name, payload = heapq.heappop(self._queue)
            self._now = due
            self._resolve(name)(payload)
            fired += 1
        self._now = target
        return fired


class AsyncioScheduler(_HandlerTable):
    """Schedules callbacks with ``loop.call_later`` on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self._loop = loop
        self._pending = 0

    def run_in(self, delay_seconds: float, name: str, payload: dict) -> None:
        self._resolve(name)
        loop = self._loop or asyncio.get_running_loop()
        self._pending += 1
        loop.call_later(max(0.0, delay_seconds), self._fire, name, dict(payload))

    def pending(self) -> int:
        return self._pending

    def _fire(self, name: str, payload: dict) -> None:
        self._pending -= 1
        try:
            self._resolve(name)(payload)
        except Exception:
            logger.exception("scheduled callback %s failed (payload=%s)", name, payload)
