from __future__ import annotations

import logging
from typing import Mapping

from ..persistence.store import EngineStore
from .clock import Clock, day_key, system_clock_ms
from .config import ActionLimit
from .types import CooldownCheck, DailyUsage

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def format_remaining(ms: int) -> str:
    """Render a wait as whole minutes, rounded up (``"1 hour and 5 minutes"``)."""
    minutes = max(0, -(-int(ms) // 60_000))
    if minutes < 60:
        return f"{minutes} {'minute' if minutes == 1 else 'minutes'}"
    hours, rest = divmod(minutes, 60)
    hours_text = f"{hours} {'hour' if hours == 1 else 'hours'}"
    if rest == 0:
        return hours_text
    return f"{hours_text} and {rest} {'minute' if rest == 1 else 'minutes'}"


class CooldownTracker:
    def __init__(
        self,
        store: EngineStore,
        limits: Mapping[str, ActionLimit],
        *,
        clock: Clock | None = None,
        timezone: str = "UTC",
    ):
        self._store = store
        self._limits = limits
        self._clock = clock or system_clock_ms
        self._timezone = timezone
        self._last_used, self._daily = store.load_cooldowns()

    def _today(self) -> str:
        return day_key(self._clock(), self._timezone)

    def _limit(self, action: str) -> ActionLimit:
        return self._limits.get(action) or ActionLimit()

    def used_today(self, actor_id: str, action: str) -> int:
        usage = self._daily.get(actor_id)
        if usage is None or usage.date != self._today():
            return 0
        return usage.counts.get(action, 0)

    def can_act(self, actor_id: str, action: str) -> CooldownCheck:
        limit = self._limit(action)
        now = self._clock()

        last = self._last_used.get(actor_id, {}).get(action)
        if last is not None and limit.cooldown_ms > 0:
            remaining = limit.cooldown_ms - (now - last)
            if remaining > 0:
                return CooldownCheck(
                    allowed=False,
                    remaining_ms=remaining,
                    reason=f"Wait {format_remaining(remaining)} before using {action} again.",
                )

        if limit.daily_limit is not None and self.used_today(actor_id, action) >= limit.daily_limit:
            return CooldownCheck(
                allowed=False,
                remaining_ms=self._ms_until_tomorrow(now),
                reason=f"Daily limit of {limit.daily_limit} reached for {action}.",
            )
        return CooldownCheck(allowed=True)

    def record_use(self, actor_id: str, action: str) -> int:
        now = self._clock()
        today = self._today()
        self._last_used.setdefault(actor_id, {})[action] = now
        usage = self._daily.get(actor_id)
        if usage is None or usage.date != today:
            usage = DailyUsage(date=today)
            self._daily[actor_id] = usage
        usage.counts[action] = usage.counts.get(action, 0) + 1
        self.save()
        limit = self._limit(action)
        logger.info(
            "%s used %s (%s/%s today)",
            actor_id,
            action,
            usage.counts[action],
            limit.daily_limit if limit.daily_limit is not None else "-",
        )
        return usage.counts[action]

    def prune(self) -> int:
        """Drop cooldowns older than a day and daily usage from earlier dates."""
        now = self._clock()
        today = self._today()
        removed = 0
        for actor_id, actions in list(self._last_used.items()):
            if all(now - ts >= DAY_MS for ts in actions.values()):
                del self._last_used[actor_id]
                removed += 1
        for actor_id, usage in list(self._daily.items()):
            if usage.date != today:
                del self._daily[actor_id]
                removed += 1
        if removed:
            self.save()
        return removed

    def save(self) -> bool:
        return self._store.save_cooldowns(self._last_used, self._daily)

    def _ms_until_tomorrow(self, now: int) -> int:
        today = self._today()
        # Walk forward in hour steps; DST shifts make fixed arithmetic unreliable.
        probe = now - now % 3_600_000 + 3_600_000
        while day_key(probe, self._timezone) == today:
            probe += 3_600_000
        return max(0, probe - now)
