from __future__ import annotations

from .clock import Clock, day_key, system_clock_ms
from .config import CostRule, EngineConfig
from .normalize import clamp
from .resources import ResourcePool
from .types import ActionStatus, ResourceAccount

CHARGED_STATUSES = (ActionStatus.APPLIED, ActionStatus.REFLECTED, ActionStatus.FAILED)


class CostModel:
    """Prices actions from the usage counters kept on resource accounts.

    ``escalating`` grows with today's count of the action and resets on the
    next calendar day. ``adaptive`` drifts inside ``[minimum, maximum]``:
    one cheaper after a success, one dearer after a reflection or failure.
    """

    def __init__(self, pool: ResourcePool, config: EngineConfig, *, clock: Clock | None = None):
        self._pool = pool
        self._config = config
        self._clock = clock or system_clock_ms

    def _today(self) -> str:
        return day_key(self._clock(), self._config.timezone)

    def todays_count(self, account: ResourceAccount, action: str) -> int:
        if account.daily_date != self._today():
            return 0
        return account.daily_counts.get(action, 0)

    def next_cost(self, actor_id: str, actor_class: str, action: str) -> int:
        rule = self._config.cost_rule(actor_class, action)
        if rule.mode == "flat":
            return rule.base
        account = self._pool.peek(actor_id)
        if rule.mode == "escalating":
            count = self.todays_count(account, action) if account is not None else 0
            return rule.base + rule.increment * count
        if account is None:
            return clamp(rule.base, rule.minimum, rule.maximum)
        return self._adaptive_position(account, rule)

    def record_outcome(self, actor_id: str, actor_class: str, action: str, status: ActionStatus) -> None:
        if status not in CHARGED_STATUSES:
            return
        rule = self._config.cost_rule(actor_class, action)
        account = self._pool.account(actor_id)

        today = self._today()
        if account.daily_date != today:
            account.daily_date = today
            account.daily_counts = {}
        account.daily_counts[action] = account.daily_counts.get(action, 0) + 1

        if status == ActionStatus.APPLIED:
            account.successes += 1
            account.success_streak += 1
            account.failure_streak = 0
        else:
            account.failures += 1
            account.failure_streak += 1
            account.success_streak = 0

        if rule.mode == "adaptive":
            step = -1 if status == ActionStatus.APPLIED else 1
            account.adaptive_cost = clamp(self._adaptive_position(account, rule) + step, rule.minimum, rule.maximum)

        self._pool.save()

    @staticmethod
    def _adaptive_position(account: ResourceAccount, rule: CostRule) -> int:
        current = rule.base if account.adaptive_cost is None else account.adaptive_cost
        return clamp(current, rule.minimum, rule.maximum)
