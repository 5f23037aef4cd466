from __future__ import annotations

import logging
import random
from dataclasses import replace
from typing import Optional

from ..persistence.interfaces import SnapshotStore
from ..persistence.store import EngineStore
from .clock import AsyncioScheduler, Clock, system_clock_ms
from .config import EngineConfig
from .cooldowns import CooldownTracker
from .costs import CostModel
from .curses import CursePresenter, MessageFilter, MessageVerdict
from .effects import EffectRegistry
from .outbox import PlatformOutbox, PlatformRelay
from .outcomes import OutcomeResolver, ReflectionTracker, RivalRegistry
from .ports import PlatformPort, Scheduler
from .recovery import TimerRecoveryManager
from .resources import ResourcePool
from .timers import DurableTimers
from .types import (
    ActionRequest,
    ActionResult,
    ActionStatus,
    Effect,
    EffectKind,
    RecoveryReport,
    VirtueReading,
)

logger = logging.getLogger(__name__)

BLESSING = "blessing"
VIRTUE_CHECK = "virtue_check"


class CurseEngine:
    def __init__(
        self,
        store: EngineStore | SnapshotStore,
        config: EngineConfig | None = None,
        *,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        platform: PlatformPort | None = None,
    ):
        self.config = config or EngineConfig()
        self.store = store if isinstance(store, EngineStore) else EngineStore(store)
        self._scheduler = scheduler or AsyncioScheduler(max_delay_ms=self.config.max_timer_delay_ms)
        self._clock = clock or getattr(self._scheduler, "now_ms", None) or system_clock_ms
        self._rng = rng or random.Random()

        self.outbox = PlatformOutbox()
        self.relay = PlatformRelay(self.outbox, platform)
        self.timers = DurableTimers(self._scheduler, self._clock)
        presenter = CursePresenter(self.config, self._clock)

        self.pool = ResourcePool(self.store, self.config.resources, clock=self._clock)
        self.costs = CostModel(self.pool, self.config, clock=self._clock)
        self.cooldowns = CooldownTracker(
            self.store,
            self.config.limits,
            clock=self._clock,
            timezone=self.config.timezone,
        )
        self.reflection = ReflectionTracker(self.store, self.config.reflection.step_percent)
        self.rivals = RivalRegistry(self.store)

        def registry(name: str, on_expired=None) -> EffectRegistry:
            return EffectRegistry(
                name,
                self.store,
                self.timers,
                clock=self._clock,
                outbox=self.outbox,
                presenter=presenter,
                on_expired=on_expired,
            )

        self.curses = registry("curses", on_expired=self._curse_lifted)
        self.blocks = registry("blocks", on_expired=self._block_lifted)
        self.shields = registry("shields")

        self.resolver = OutcomeResolver(
            self.config,
            pool=self.pool,
            costs=self.costs,
            cooldowns=self.cooldowns,
            reflection=self.reflection,
            rivals=self.rivals,
            curses=self.curses,
            blocks=self.blocks,
            shields=self.shields,
            rng=self._rng,
            clock=self._clock,
        )
        self.recovery = TimerRecoveryManager([self.curses, self.blocks, self.shields], self._clock)
        self.messages = MessageFilter(self.curses, self._clock, self._rng)

    def start(self) -> RecoveryReport:
        report = self.recovery.reconcile()
        self.cooldowns.prune()
        self.messages.prune()
        self.store.retry_pending()
        return report

    # -- actions -----------------------------------------------------------

    def resolve_curse(self, request: ActionRequest) -> ActionResult:
        return self.resolver.resolve(replace(request, action="curse"))

    def resolve_blessing(self, request: ActionRequest) -> ActionResult:
        request = replace(request, action=BLESSING)
        result = self._bless(request)
        logger.info(
            "%s blessing -> %s: %s (%s)",
            request.actor_id,
            request.target_id,
            result.status.value,
            result.detail,
        )
        return result

    def virtue_check(self, actor_id: str) -> ActionResult:
        refused = self.resolver.on_cooldown(actor_id, VIRTUE_CHECK)
        if refused is not None:
            return refused
        self.cooldowns.record_use(actor_id, VIRTUE_CHECK)
        picked = self._rng.sample(list(self.config.virtues), min(3, len(self.config.virtues)))
        reading = VirtueReading(
            actor_id=actor_id,
            virtues=[(name, self._rng.randint(0, 100)) for name in picked],
            advice=self._rng.choice(self.config.advice) if self.config.advice else "",
        )
        return ActionResult(status=ActionStatus.APPLIED, actor_id=actor_id, target_id=actor_id, reading=reading)

    def designate_rival(self, attacker_class: str, rival_id: str) -> None:
        self.rivals.designate(attacker_class, rival_id)
        logger.info("Redirected %s curses now land on %s", attacker_class, rival_id)

    # -- queries -----------------------------------------------------------

    def balance(self, actor_id: str) -> int:
        return self.pool.balance(actor_id)

    def active_effect(self, subject_id: str) -> Optional[Effect]:
        return self.curses.get(subject_id)

    def inspect_message(self, subject_id: str, text: str) -> MessageVerdict:
        return self.messages.inspect(subject_id, text)

    async def flush_platform(self) -> int:
        return await self.relay.flush()

    # -- internals ---------------------------------------------------------

    def _bless(self, request: ActionRequest) -> ActionResult:
        refused = self.resolver.blocked(request.actor_id) or self.resolver.on_cooldown(
            request.actor_id, request.action
        )
        if refused is not None:
            return refused

        cost, refused = self.resolver.charge(request, request.target_id)
        if refused is not None:
            return refused

        # get() purges a lapsed curse whose timer has not fired yet
        if self.curses.get(request.target_id) is not None and self.curses.clear(request.target_id) is not None:
            self.messages.forget(request.target_id)
            detail = "cleansed"
            effect = None
        else:
            detail = "protected"
            effect = self.shields.put(
                request.target_id,
                EffectKind.PROTECTION,
                {"blessing": self._rng.choice(self.config.blessings) if self.config.blessings else ""},
                self.config.shield_duration_ms,
                applied_by=request.actor_id,
            )
        self.costs.record_outcome(request.actor_id, request.actor_class, request.action, ActionStatus.APPLIED)
        return ActionResult(
            status=ActionStatus.APPLIED,
            actor_id=request.actor_id,
            target_id=request.target_id,
            cost=cost,
            balance=self.pool.balance(request.actor_id),
            effect=effect,
            detail=detail,
        )

    def _curse_lifted(self, effect: Effect) -> None:
        self.messages.forget(effect.subject_id)

    def _block_lifted(self, effect: Effect) -> None:
        bonus = int(effect.payload.get("bonus") or 0)
        self.reflection.clear_block(effect.subject_id)
        if bonus > 0:
            balance = self.pool.credit(effect.subject_id, bonus)
            logger.info("%s block lifted, credited %s (balance %s)", effect.subject_id, bonus, balance)
