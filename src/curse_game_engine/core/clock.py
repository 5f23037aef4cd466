from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from .errors import InvalidTimerDelayError

# Largest delay a platform timer accepts (signed 32-bit milliseconds, ~24.8 days).
MAX_TIMER_DELAY_MS = 2**31 - 1

Clock = Callable[[], int]


def system_clock_ms() -> int:
    return int(time.time() * 1000)


def day_key(now_ms: int, tz_name: str = "UTC") -> str:
    tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
    return datetime.fromtimestamp(now_ms / 1000, tz=tz).date().isoformat()


def _check_delay(delay_ms: int, max_delay_ms: int) -> None:
    if delay_ms < 0 or delay_ms > max_delay_ms:
        raise InvalidTimerDelayError(f"delay {delay_ms}ms outside [0, {max_delay_ms}]")


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        max_delay_ms: int = MAX_TIMER_DELAY_MS,
    ):
        self._loop = loop
        self.max_delay_ms = max_delay_ms

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        _check_delay(delay_ms, self.max_delay_ms)
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)


class _ManualHandle:
    def __init__(self, due_at_ms: int, seq: int, callback: Callable[[], None]):
        self.due_at_ms = due_at_ms
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: "_ManualHandle") -> bool:
        return (self.due_at_ms, self.seq) < (other.due_at_ms, other.seq)


class ManualScheduler:
    """Virtual clock and scheduler; time only moves on ``advance``."""

    def __init__(self, start_ms: int = 0, max_delay_ms: int = MAX_TIMER_DELAY_MS):
        self._now_ms = start_ms
        self.max_delay_ms = max_delay_ms
        self._queue: list[_ManualHandle] = []
        self._seq = itertools.count()

    def now_ms(self) -> int:
        return self._now_ms

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> _ManualHandle:
        _check_delay(delay_ms, self.max_delay_ms)
        handle = _ManualHandle(self._now_ms + int(delay_ms), next(self._seq), callback)
        heapq.heappush(self._queue, handle)
        return handle

    def pending(self) -> int:
        return sum(1 for handle in self._queue if not handle.cancelled)

    def advance(self, delta_ms: int) -> int:
        return self.advance_to(self._now_ms + delta_ms)

    def advance_to(self, target_ms: int) -> int:
        fired = 0
        while self._queue and self._queue[0].due_at_ms <= target_ms:
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now_ms = max(self._now_ms, handle.due_at_ms)
            handle.callback()
            fired += 1
        self._now_ms = max(self._now_ms, target_ms)
        return fired
