from __future__ import annotations

import logging

from ..persistence.store import EngineStore
from .clock import Clock, system_clock_ms
from .config import ResourceConfig
from .errors import InsufficientResourceError
from .types import ResourceAccount

logger = logging.getLogger(__name__)


class ResourcePool:
    """Per-actor regenerating budget.

    Regeneration is computed from ``last_regen_ms`` whenever it is needed,
    so no ticking clock is involved and downtime is accounted for on the
    next read.
    """

    def __init__(self, store: EngineStore, config: ResourceConfig | None = None, *, clock: Clock | None = None):
        self._store = store
        self._config = config or ResourceConfig()
        self._clock = clock or system_clock_ms
        self._accounts: dict[str, ResourceAccount] = store.load_accounts()

    @property
    def config(self) -> ResourceConfig:
        return self._config

    def peek(self, actor_id: str) -> ResourceAccount | None:
        return self._accounts.get(actor_id)

    def account(self, actor_id: str) -> ResourceAccount:
        account = self._accounts.get(actor_id)
        if account is None:
            account = ResourceAccount(
                actor_id=actor_id,
                balance=self._config.initial_balance,
                last_regen_ms=self._clock(),
            )
            self._accounts[actor_id] = account
        return account

    def _accrued(self, account: ResourceAccount, now: int) -> tuple[int, int]:
        interval = self._config.regen_interval_ms
        elapsed = max(0, now - account.last_regen_ms)
        intervals = elapsed // interval
        balance = min(self._config.max_balance, account.balance + intervals * self._config.regen_amount)
        return balance, intervals

    def balance(self, actor_id: str) -> int:
        account = self._accounts.get(actor_id)
        if account is None:
            return self._config.initial_balance
        balance, _ = self._accrued(account, self._clock())
        return balance

    def regenerate(self, actor_id: str) -> int:
        account = self.account(actor_id)
        balance, intervals = self._accrued(account, self._clock())
        if intervals > 0:
            account.balance = balance
            # Advance by whole intervals only; the partial interval carries over.
            account.last_regen_ms += intervals * self._config.regen_interval_ms
            self.save()
        return account.balance

    def consume(self, actor_id: str, amount: int) -> int:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        available = self.balance(actor_id)
        if available < amount:
            raise InsufficientResourceError(actor_id, amount, available)
        account = self.account(actor_id)
        self.regenerate(actor_id)
        account.balance -= amount
        self.save()
        logger.debug("%s spent %s, balance %s", actor_id, amount, account.balance)
        return account.balance

    def credit(self, actor_id: str, amount: int) -> int:
        if amount <= 0:
            return self.balance(actor_id)
        account = self.account(actor_id)
        self.regenerate(actor_id)
        account.balance = min(self._config.max_balance, account.balance + amount)
        self.save()
        return account.balance

    def refund_half(self, actor_id: str, amount: int) -> int:
        return self.credit(actor_id, amount // 2)

    def save(self) -> bool:
        return self._store.save_accounts(self._accounts)
