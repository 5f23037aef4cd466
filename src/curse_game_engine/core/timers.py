from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Hashable

from .clock import Clock, system_clock_ms
from .ports import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


@dataclass
class _ArmedTimer:
    token: int
    due_at_ms: int
    callback: Callable[[], None]
    handle: TimerHandle | None = None


class DurableTimers:
    """Keyed one-shot timers that survive delays beyond the scheduler limit.

    A delay longer than ``scheduler.max_delay_ms`` is split: an intermediate
    wake-up fires at the limit, the remaining delay is recomputed from the
    clock, and the timer is rearmed until what is left fits. Every wake-up
    checks the generation token it was created with, so a timer replaced or
    cancelled in between never fires.
    """

    def __init__(self, scheduler: Scheduler, clock: Clock | None = None):
        self._scheduler = scheduler
        self._clock = clock or system_clock_ms
        self._armed: dict[Hashable, _ArmedTimer] = {}
        self._tokens = itertools.count(1)

    def arm(self, key: Hashable, due_at_ms: int, callback: Callable[[], None]) -> None:
        self.cancel(key)
        entry = _ArmedTimer(token=next(self._tokens), due_at_ms=int(due_at_ms), callback=callback)
        self._armed[key] = entry
        self._submit(key, entry.token)

    def cancel(self, key: Hashable) -> bool:
        entry = self._armed.pop(key, None)
        if entry is None:
            return False
        if entry.handle is not None:
            entry.handle.cancel()
        return True

    def is_armed(self, key: Hashable) -> bool:
        return key in self._armed

    def armed_keys(self) -> list[Hashable]:
        return list(self._armed)

    def due_at(self, key: Hashable) -> int | None:
        entry = self._armed.get(key)
        return entry.due_at_ms if entry is not None else None

    def _current(self, key: Hashable, token: int) -> _ArmedTimer | None:
        entry = self._armed.get(key)
        if entry is None or entry.token != token:
            return None
        return entry

    def _submit(self, key: Hashable, token: int) -> None:
        entry = self._current(key, token)
        if entry is None:
            return
        remaining = max(0, entry.due_at_ms - self._clock())
        limit = self._scheduler.max_delay_ms
        if remaining > limit:
            logger.debug("Timer %r due in %sms exceeds %sms, waking early to rearm", key, remaining, limit)
            entry.handle = self._scheduler.call_later(limit, lambda: self._submit(key, token))
            return
        entry.handle = self._scheduler.call_later(remaining, lambda: self._fire(key, token))

    def _fire(self, key: Hashable, token: int) -> None:
        entry = self._current(key, token)
        if entry is None:
            logger.debug("Ignoring stale timer firing for %r", key)
            return
        if entry.due_at_ms > self._clock():
            self._submit(key, token)
            return
        del self._armed[key]
        try:
            entry.callback()
        except Exception:
            logger.exception("Timer callback for %r failed", key)
