from __future__ import annotations

from conftest import HOUR, MINUTE, T0
from curse_game_engine.core.clock import ManualScheduler
from curse_game_engine.core.effects import EffectRegistry
from curse_game_engine.core.recovery import TimerRecoveryManager
from curse_game_engine.core.timers import DurableTimers
from curse_game_engine.core.types import Effect, EffectKind, RecoveryState
from curse_game_engine.persistence.store import EngineStore


def _seed(store: EngineStore) -> None:
    store.save_effects(
        "curses",
        [
            Effect("alive-1", EffectKind.SLOW_MODE, {}, T0 - MINUTE, T0 + 10 * MINUTE),
            Effect("alive-2", EffectKind.FORCED_CAPS, {}, T0 - MINUTE, T0 + HOUR),
            Effect("gone", EffectKind.WORD_SCRAMBLE, {}, T0 - HOUR, T0 - MINUTE),
        ],
    )


def _fresh_process(store: EngineStore, start_ms: int = T0):
    scheduler = ManualScheduler(start_ms=start_ms)
    timers = DurableTimers(scheduler, scheduler.now_ms)
    expired: list[Effect] = []
    registry = EffectRegistry("curses", store, timers, clock=scheduler.now_ms, on_expired=expired.append)
    manager = TimerRecoveryManager([registry], scheduler.now_ms)
    return scheduler, timers, registry, manager, expired


def test_reconcile_expires_stale_and_arms_live_effects(store):
    _seed(store)
    scheduler, timers, registry, manager, expired = _fresh_process(store)
    assert manager.state == RecoveryState.STOPPED

    report = manager.reconcile()

    assert manager.state == RecoveryState.ARMED
    assert (report.expired, report.armed, report.already_armed) == (1, 2, 0)
    assert [e.subject_id for e in expired] == ["gone"]
    assert sorted(e.subject_id for e in store.load_effects("curses")) == ["alive-1", "alive-2"]
    assert len(timers.armed_keys()) == 2


def test_reconcile_twice_never_double_arms(store):
    _seed(store)
    scheduler, timers, registry, manager, expired = _fresh_process(store)

    manager.reconcile()
    second = manager.reconcile()

    assert (second.expired, second.armed, second.already_armed) == (0, 0, 2)
    assert len(timers.armed_keys()) == 2
    assert scheduler.pending() == 2
    assert len(expired) == 1


def test_recovered_timers_fire_on_schedule(store):
    _seed(store)
    scheduler, timers, registry, manager, expired = _fresh_process(store)
    manager.reconcile()

    scheduler.advance(10 * MINUTE)
    assert [e.subject_id for e in expired] == ["gone", "alive-1"]
    assert registry.get("alive-2") is not None


def test_long_downtime_expires_everything_in_order(store):
    _seed(store)
    scheduler, timers, registry, manager, expired = _fresh_process(store, start_ms=T0 + 2 * HOUR)

    report = manager.reconcile()

    assert report.expired == 3
    assert report.armed == 0
    assert [e.subject_id for e in expired] == ["alive-1", "alive-2", "gone"]
    assert store.load_effects("curses") == []


def test_recovered_effect_beyond_scheduler_limit_rearms_until_due(store):
    store.save_effects("curses", [Effect("far", EffectKind.FORCED_CAPS, {}, T0 - MINUTE, T0 + 3_500)])
    scheduler = ManualScheduler(start_ms=T0, max_delay_ms=1_000)
    timers = DurableTimers(scheduler, scheduler.now_ms)
    expired: list[Effect] = []
    registry = EffectRegistry("curses", store, timers, clock=scheduler.now_ms, on_expired=expired.append)

    report = TimerRecoveryManager([registry], scheduler.now_ms).reconcile()

    assert (report.expired, report.armed) == (0, 1)
    for _ in range(3):
        scheduler.advance(1_000)
        assert expired == []
        assert registry.get("far") is not None
        assert scheduler.pending() == 1
    scheduler.advance(499)
    assert expired == []
    scheduler.advance(1)
    assert [e.subject_id for e in expired] == ["far"]
    assert scheduler.pending() == 0
    assert store.load_effects("curses") == []
