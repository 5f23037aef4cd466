from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from ..persistence.store import EngineStore
from .clock import Clock, system_clock_ms
from .outbox import PlatformOutbox
from .timers import DurableTimers
from .types import Effect, EffectKind, PlatformRequest

logger = logging.getLogger(__name__)

EXPIRED = "expired"
CLEARED = "cleared"


class EffectPresenter(Protocol):
    def applied(self, effect: Effect) -> list[PlatformRequest]: ...
    def removed(self, effect: Effect, reason: str) -> list[PlatformRequest]: ...
    def tick(self, effect: Effect) -> list[PlatformRequest]: ...
    def tick_interval_ms(self, effect: Effect) -> int | None: ...


class EffectRegistry:
    """Time-bounded effects keyed by subject, one live effect per subject.

    Every change is saved as a whole snapshot before any platform request is
    queued. Timer callbacks carry the effect's kind and creation stamp rather
    than the effect itself and re-check both on firing, so a callback left
    over from a replaced effect does nothing.
    """

    def __init__(
        self,
        name: str,
        store: EngineStore,
        timers: DurableTimers,
        *,
        clock: Clock | None = None,
        outbox: PlatformOutbox | None = None,
        presenter: EffectPresenter | None = None,
        on_expired: Callable[[Effect], None] | None = None,
    ):
        self.name = name
        self._store = store
        self._timers = timers
        self._clock = clock or system_clock_ms
        self._outbox = outbox if outbox is not None else PlatformOutbox()
        self._presenter = presenter
        self._on_expired = on_expired
        self._effects: dict[str, Effect] = {}
        self._loaded = False

    # -- public operations -------------------------------------------------

    def put(
        self,
        subject_id: str,
        kind: EffectKind,
        payload: dict[str, Any] | None,
        duration_ms: int,
        *,
        applied_by: str | None = None,
    ) -> Effect:
        if duration_ms <= 0:
            raise ValueError(f"effect duration must be positive, got {duration_ms}")
        self.load()
        now = self._clock()
        created_at = now
        previous = self._effects.get(subject_id)
        if previous is not None:
            self._cancel_timers(subject_id)
            if previous.created_at_ms >= created_at:
                created_at = previous.created_at_ms + 1
        effect = Effect(
            subject_id=subject_id,
            kind=kind,
            payload=dict(payload or {}),
            created_at_ms=created_at,
            expires_at_ms=now + int(duration_ms),
            applied_by=applied_by,
        )
        self._effects[subject_id] = effect
        self._persist()
        self.arm(effect)
        if previous is not None:
            logger.info("%s: replaced %s on %s with %s", self.name, previous.kind.value, subject_id, kind.value)
            self._present_removed(previous, CLEARED)
        self._present_applied(effect)
        return effect

    def get(self, subject_id: str) -> Effect | None:
        self.load()
        effect = self._effects.get(subject_id)
        if effect is None:
            return None
        if effect.is_live(self._clock()):
            return effect
        self._expire(subject_id, effect.kind, effect.created_at_ms)
        return None

    def clear(self, subject_id: str) -> Effect | None:
        self.load()
        effect = self._effects.pop(subject_id, None)
        if effect is None:
            return None
        self._cancel_timers(subject_id)
        self._persist()
        logger.info("%s: cleared %s on %s", self.name, effect.kind.value, subject_id)
        self._present_removed(effect, CLEARED)
        return effect

    def active(self) -> list[Effect]:
        self.load()
        now = self._clock()
        return [effect for effect in self._effects.values() if effect.is_live(now)]

    # -- recovery hooks ----------------------------------------------------

    def load(self) -> list[Effect]:
        """Load the persisted snapshot the first time; later calls are no-ops."""
        if not self._loaded:
            self._loaded = True
            for effect in self._store.load_effects(self.name):
                current = self._effects.get(effect.subject_id)
                if current is None or current.created_at_ms < effect.created_at_ms:
                    self._effects[effect.subject_id] = effect
        return list(self._effects.values())

    def is_armed(self, subject_id: str) -> bool:
        return self._timers.is_armed(self._expiry_key(subject_id))

    def arm(self, effect: Effect) -> None:
        subject_id = effect.subject_id
        kind = effect.kind
        created_at = effect.created_at_ms
        self._timers.arm(
            self._expiry_key(subject_id),
            effect.expires_at_ms,
            lambda: self._expire(subject_id, kind, created_at),
        )
        self._arm_tick(effect)

    def expire_now(self, effect: Effect) -> bool:
        return self._expire(effect.subject_id, effect.kind, effect.created_at_ms)

    # -- internals ---------------------------------------------------------

    def _expiry_key(self, subject_id: str) -> tuple[str, str, str]:
        return (self.name, subject_id, "expiry")

    def _tick_key(self, subject_id: str) -> tuple[str, str, str]:
        return (self.name, subject_id, "tick")

    def _cancel_timers(self, subject_id: str) -> None:
        self._timers.cancel(self._expiry_key(subject_id))
        self._timers.cancel(self._tick_key(subject_id))

    def _current(self, subject_id: str, kind: EffectKind, created_at_ms: int) -> Effect | None:
        effect = self._effects.get(subject_id)
        if effect is None or not effect.same_identity(kind, created_at_ms):
            return None
        return effect

    def _expire(self, subject_id: str, kind: EffectKind, created_at_ms: int) -> bool:
        effect = self._current(subject_id, kind, created_at_ms)
        if effect is None:
            logger.debug("%s: expiry for %s/%s no longer current", self.name, subject_id, kind.value)
            return False
        if effect.is_live(self._clock()):
            # Fired early; keep the effect and wait for the real deadline.
            self.arm(effect)
            return False
        del self._effects[subject_id]
        self._cancel_timers(subject_id)
        self._persist()
        logger.info("%s: %s on %s expired", self.name, kind.value, subject_id)
        self._present_removed(effect, EXPIRED)
        if self._on_expired is not None:
            self._on_expired(effect)
        return True

    def _arm_tick(self, effect: Effect) -> None:
        if self._presenter is None:
            return
        interval = self._presenter.tick_interval_ms(effect)
        if not interval or interval <= 0:
            return
        due = self._clock() + interval
        if due >= effect.expires_at_ms:
            return
        subject_id = effect.subject_id
        kind = effect.kind
        created_at = effect.created_at_ms
        self._timers.arm(self._tick_key(subject_id), due, lambda: self._tick(subject_id, kind, created_at))

    def _tick(self, subject_id: str, kind: EffectKind, created_at_ms: int) -> None:
        effect = self._current(subject_id, kind, created_at_ms)
        if effect is None or not effect.is_live(self._clock()):
            return
        assert self._presenter is not None
        self._outbox.extend(self._presenter.tick(effect))
        self._arm_tick(effect)

    def _persist(self) -> None:
        self._store.save_effects(self.name, list(self._effects.values()))

    def _present_applied(self, effect: Effect) -> None:
        if self._presenter is not None:
            self._outbox.extend(self._presenter.applied(effect))

    def _present_removed(self, effect: Effect, reason: str) -> None:
        if self._presenter is not None:
            self._outbox.extend(self._presenter.removed(effect, reason))
