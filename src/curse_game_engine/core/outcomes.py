from __future__ import annotations

import logging
import random

from ..persistence.store import EngineStore
from .clock import Clock, system_clock_ms
from .config import EngineConfig, Tier
from .cooldowns import CooldownTracker
from .costs import CostModel
from .curses import build_payload
from .effects import EffectRegistry
from .errors import InsufficientResourceError
from .normalize import clamp
from .resources import ResourcePool
from .tables import TABLE_TOTAL, WeightedTable
from .types import ActionRequest, ActionResult, ActionStatus, EffectKind, ReflectionState

logger = logging.getLogger(__name__)

CURSE = "curse"


class ReflectionTracker:
    def __init__(self, store: EngineStore, step_percent: int = 1):
        self._store = store
        self._step = step_percent
        self._states: dict[str, ReflectionState] = store.load_reflection()

    def state(self, actor_id: str) -> ReflectionState:
        return self._states.get(actor_id) or ReflectionState()

    def chance(self, actor_id: str) -> int:
        return self.state(actor_id).chance

    def record_success(self, actor_id: str) -> int:
        state = self._states.setdefault(actor_id, ReflectionState())
        state.chance = clamp(state.chance + self._step, 0, TABLE_TOTAL)
        self.save()
        return state.chance

    def reset(self, actor_id: str) -> None:
        state = self._states.setdefault(actor_id, ReflectionState())
        state.chance = 0
        self.save()

    def set_blocked_until(self, actor_id: str, until_ms: int) -> None:
        self._states.setdefault(actor_id, ReflectionState()).blocked_until_ms = until_ms
        self.save()

    def clear_block(self, actor_id: str) -> None:
        state = self._states.get(actor_id)
        if state is None or state.blocked_until_ms is None:
            return
        state.blocked_until_ms = None
        self.save()

    def save(self) -> bool:
        return self._store.save_reflection(self._states)


class RivalRegistry:
    """Which member takes the redirected curses of each attacker class."""

    def __init__(self, store: EngineStore):
        self._store = store
        self._rivals: dict[str, str] = store.load_rivals()

    def designate(self, attacker_class: str, rival_id: str) -> None:
        self._rivals[attacker_class] = rival_id
        self._store.save_rivals(self._rivals)

    def rival_for(self, attacker_class: str) -> str | None:
        return self._rivals.get(attacker_class)

    def clear(self, attacker_class: str) -> bool:
        if self._rivals.pop(attacker_class, None) is None:
            return False
        self._store.save_rivals(self._rivals)
        return True


class OutcomeResolver:
    """Runs one aggressive action through every check and roll.

    Every status other than APPLIED, REFLECTED and FAILED is decided before
    the actor is charged or any effect is installed.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        pool: ResourcePool,
        costs: CostModel,
        cooldowns: CooldownTracker,
        reflection: ReflectionTracker,
        rivals: RivalRegistry,
        curses: EffectRegistry,
        blocks: EffectRegistry,
        shields: EffectRegistry,
        rng: random.Random | None = None,
        clock: Clock | None = None,
    ):
        self._config = config
        self._pool = pool
        self._costs = costs
        self._cooldowns = cooldowns
        self._reflection = reflection
        self._rivals = rivals
        self._curses = curses
        self._blocks = blocks
        self._shields = shields
        self._rng = rng or random.Random()
        self._clock = clock or system_clock_ms

    def roll_tier(self, table: WeightedTable[Tier]) -> Tier:
        return table.roll(self._rng)

    def chance_hit(self, percent: int) -> bool:
        if percent <= 0:
            return False
        return self._rng.random() * TABLE_TOTAL < percent

    def blocked(self, actor_id: str) -> ActionResult | None:
        block = self._blocks.get(actor_id)
        if block is None:
            return None
        return ActionResult(
            status=ActionStatus.BLOCKED,
            actor_id=actor_id,
            remaining_ms=max(0, block.expires_at_ms - self._clock()),
            detail="reflection_block",
        )

    def on_cooldown(self, actor_id: str, action: str) -> ActionResult | None:
        check = self._cooldowns.can_act(actor_id, action)
        if check.allowed:
            return None
        return ActionResult(
            status=ActionStatus.COOLDOWN,
            actor_id=actor_id,
            remaining_ms=check.remaining_ms,
            detail=check.reason,
        )

    def charge(self, request: ActionRequest, target_id: str) -> tuple[int, ActionResult | None]:
        cost = self._costs.next_cost(request.actor_id, request.actor_class, request.action)
        try:
            self._pool.consume(request.actor_id, cost)
        except InsufficientResourceError as exc:
            return cost, ActionResult(
                status=ActionStatus.INSUFFICIENT_RESOURCE,
                actor_id=request.actor_id,
                target_id=target_id,
                cost=cost,
                balance=exc.available,
            )
        self._cooldowns.record_use(request.actor_id, request.action)
        return cost, None

    def resolve(self, request: ActionRequest) -> ActionResult:
        result = self._resolve(request)
        logger.info(
            "%s %s -> %s: %s (cost %s, tier %s)",
            request.actor_id,
            request.action,
            result.target_id,
            result.status.value,
            result.cost,
            result.tier,
        )
        return result

    def _resolve(self, request: ActionRequest) -> ActionResult:
        actor_id = request.actor_id
        actor_class = request.actor_class

        result = self.blocked(actor_id) or self.on_cooldown(actor_id, request.action)
        if result is not None:
            return result

        target_id = request.target_id
        tier_table = self._config.tier_table(actor_class)
        redirected = False
        rule = self._config.immunity_for(actor_class, request.target_class)
        if rule is not None:
            rival = self._rivals.rival_for(actor_class)
            if not rival or rival == actor_id:
                return ActionResult(
                    status=ActionStatus.REJECTED,
                    actor_id=actor_id,
                    target_id=target_id,
                    detail="target_immune",
                )
            target_id = rival
            tier_table = rule.redirect_tiers
            redirected = True

        if self._curses.get(target_id) is not None:
            return self._rejected(actor_id, target_id, "already_cursed", redirected)
        if self._shields.get(target_id) is not None:
            return self._rejected(actor_id, target_id, "protected", redirected)

        cost, failure = self.charge(request, target_id)
        if failure is not None:
            failure.redirected = redirected
            return failure

        if self.chance_hit(self._config.failure_chance.get(actor_class, 0)):
            balance = self._pool.refund_half(actor_id, cost)
            self._costs.record_outcome(actor_id, actor_class, request.action, ActionStatus.FAILED)
            return ActionResult(
                status=ActionStatus.FAILED,
                actor_id=actor_id,
                target_id=target_id,
                cost=cost - cost // 2,
                balance=balance,
                redirected=redirected,
                detail="fizzled",
            )

        tier = self.roll_tier(tier_table)

        reflects = self._config.reflects(actor_class)
        if reflects and self.chance_hit(self._reflection.chance(actor_id)):
            return self._reflect(request, target_id, cost, tier, redirected)

        kind = self._config.kind_table.roll(self._rng)
        payload = build_payload(kind, tier, self._config, self._rng)
        effect = self._curses.put(target_id, kind, payload, tier.duration_ms, applied_by=actor_id)
        chance = self._reflection.record_success(actor_id) if reflects else None
        self._costs.record_outcome(actor_id, actor_class, request.action, ActionStatus.APPLIED)
        return ActionResult(
            status=ActionStatus.APPLIED,
            actor_id=actor_id,
            target_id=target_id,
            cost=cost,
            balance=self._pool.balance(actor_id),
            tier=tier.name,
            effect=effect,
            redirected=redirected,
            reflection_chance=chance,
        )

    def _reflect(
        self,
        request: ActionRequest,
        target_id: str,
        cost: int,
        tier: Tier,
        redirected: bool,
    ) -> ActionResult:
        settings = self._config.reflection
        actor_id = request.actor_id
        self._reflection.reset(actor_id)
        block = self._blocks.put(
            actor_id,
            EffectKind.REFLECTION_BLOCK,
            {"bonus": settings.bonus_credit, "reflected_target": target_id},
            settings.block_duration_ms,
            applied_by=target_id,
        )
        self._reflection.set_blocked_until(actor_id, block.expires_at_ms)
        self._costs.record_outcome(actor_id, request.actor_class, request.action, ActionStatus.REFLECTED)
        return ActionResult(
            status=ActionStatus.REFLECTED,
            actor_id=actor_id,
            target_id=target_id,
            cost=cost,
            balance=self._pool.balance(actor_id),
            tier=tier.name,
            effect=block,
            redirected=redirected,
            reflection_chance=0,
        )

    @staticmethod
    def _rejected(actor_id: str, target_id: str, reason: str, redirected: bool) -> ActionResult:
        return ActionResult(
            status=ActionStatus.REJECTED,
            actor_id=actor_id,
            target_id=target_id,
            redirected=redirected,
            detail=reason,
        )
