from __future__ import annotations

import asyncio

from conftest import MINUTE, T0, RecordingPlatform
from curse_game_engine.core.config import EngineConfig
from curse_game_engine.core.engine import CurseEngine
from curse_game_engine.core.outbox import PlatformOutbox, PlatformRelay
from curse_game_engine.core.types import (
    APPLY_IDENTITY_MARKER,
    SEND_NOTIFICATION,
    ActionRequest,
    ActionStatus,
    EffectKind,
    PlatformRequest,
)


def _request(actor, target, actor_class="member"):
    return ActionRequest(actor_id=actor, target_id=target, actor_class=actor_class)


def test_blessing_cleanses_a_cursed_target(make_engine, rng):
    engine = make_engine()
    rng.script(0.0, 0.05)
    engine.resolve_curse(_request("a", "b"))

    result = engine.resolve_blessing(_request("saint", "b", actor_class="virtutti"))

    assert result.status == ActionStatus.APPLIED
    assert result.detail == "cleansed"
    assert result.cost == 0
    assert engine.active_effect("b") is None
    assert engine.shields.get("b") is None


def test_blessing_protects_a_clean_target_from_curses(make_engine, rng):
    engine = make_engine()

    blessed = engine.resolve_blessing(_request("saint", "b", actor_class="virtutti"))
    assert blessed.detail == "protected"
    assert blessed.effect.kind == EffectKind.PROTECTION
    assert blessed.effect.expires_at_ms == T0 + 30 * MINUTE

    cursed = engine.resolve_curse(_request("a", "b"))
    assert cursed.status == ActionStatus.REJECTED
    assert cursed.detail == "protected"
    assert engine.pool.peek("a") is None


def test_blessing_treats_a_lapsed_curse_as_absent(scheduler, backend, rng):
    # The engine clock runs ahead of the scheduler, so the expiry timer has not fired.
    now = [T0]
    engine = CurseEngine(backend, scheduler=scheduler, clock=lambda: now[0], rng=rng)
    rng.script(0.0, 0.05)
    curse = engine.resolve_curse(_request("a", "b")).effect
    now[0] = curse.expires_at_ms + 1

    result = engine.resolve_blessing(_request("saint", "b", actor_class="virtutti"))

    assert result.status == ActionStatus.APPLIED
    assert result.detail == "protected"
    assert result.effect.kind == EffectKind.PROTECTION
    assert engine.curses.get("b") is None
    assert engine.shields.get("b") is not None
    assert backend.load_document("effects.curses") == {"effects": []}


def test_blessing_respects_cooldown_and_daily_cap(make_engine, scheduler):
    engine = make_engine()
    for i in range(5):
        assert engine.resolve_blessing(_request("saint", f"t{i}", actor_class="virtutti")).status == ActionStatus.APPLIED
        refused = engine.resolve_blessing(_request("saint", "other", actor_class="virtutti"))
        assert refused.status == ActionStatus.COOLDOWN
        scheduler.advance(10 * MINUTE)

    capped = engine.resolve_blessing(_request("saint", "t9", actor_class="virtutti"))
    assert capped.status == ActionStatus.COOLDOWN
    assert "Daily limit" in capped.detail


def test_paid_blessing_charges_the_actor(make_engine):
    engine = make_engine()
    result = engine.resolve_blessing(_request("lucy", "b", actor_class="lucyfer"))
    assert (result.cost, result.balance) == (10, 90)


def test_virtue_check_reading_and_cooldown(make_engine):
    engine = make_engine()

    result = engine.virtue_check("u1")

    assert result.status == ActionStatus.APPLIED
    reading = result.reading
    assert len(reading.virtues) == 3
    assert len({name for name, _ in reading.virtues}) == 3
    assert all(0 <= value <= 100 for _, value in reading.virtues)
    assert reading.advice in EngineConfig().advice
    assert engine.virtue_check("u1").status == ActionStatus.COOLDOWN


def test_platform_receives_curse_lifecycle(make_engine, rng, scheduler):
    platform = RecordingPlatform()
    engine = make_engine(platform=platform)
    rng.script(0.0, 0.05)

    async def run_test():
        engine.resolve_curse(_request("a", "b"))
        assert await engine.flush_platform() == 2
        scheduler.advance(5 * MINUTE)
        assert await engine.flush_platform() == 2

    asyncio.run(run_test())

    assert platform.calls == [
        ("apply_identity_marker", "b", "Cursed "),
        ("send_notification", "b", "curse_applied"),
        ("restore_identity", "b"),
        ("send_notification", "b", "curse_removed"),
    ]


def test_effect_requests_land_in_the_engine_outbox(make_engine, rng):
    engine = make_engine()
    rng.script(0.0, 0.05)

    engine.resolve_curse(_request("a", "b"))

    assert len(engine.outbox) == 2
    assert [r.kind for r in engine.outbox.drain()] == [APPLY_IDENTITY_MARKER, SEND_NOTIFICATION]


def test_relay_delivers_on_its_own_inside_a_running_loop(make_engine, rng, scheduler):
    platform = RecordingPlatform()
    engine = make_engine(platform=platform)
    rng.script(0.0, 0.05)

    async def settle():
        for _ in range(3):
            await asyncio.sleep(0)

    async def run_test():
        engine.resolve_curse(_request("a", "b"))
        await settle()
        assert [call[0] for call in platform.calls] == ["apply_identity_marker", "send_notification"]
        scheduler.advance(5 * MINUTE)
        await settle()

    asyncio.run(run_test())

    assert platform.calls[2:] == [
        ("restore_identity", "b"),
        ("send_notification", "b", "curse_removed"),
    ]
    assert len(engine.outbox) == 0


class FollowUpPlatform(RecordingPlatform):
    """Queues a second notification while the first one is being delivered."""

    def __init__(self, outbox: PlatformOutbox):
        super().__init__()
        self.outbox = outbox

    async def send_notification(self, subject_id, event, payload):
        await super().send_notification(subject_id, event, payload)
        if event == "first":
            self.outbox.emit(PlatformRequest(SEND_NOTIFICATION, subject_id, {"event": "second"}))
        await asyncio.sleep(0)


def test_flush_delivers_requests_queued_during_delivery():
    outbox = PlatformOutbox()
    platform = FollowUpPlatform(outbox)
    relay = PlatformRelay(outbox, platform)
    outbox.emit(PlatformRequest(SEND_NOTIFICATION, "b", {"event": "first"}))

    assert asyncio.run(relay.flush()) == 2
    assert platform.calls == [("send_notification", "b", "first"), ("send_notification", "b", "second")]
    assert len(outbox) == 0


def test_kicked_flush_picks_up_requests_queued_mid_delivery():
    outbox = PlatformOutbox()
    platform = FollowUpPlatform(outbox)
    PlatformRelay(outbox, platform)

    async def run_test():
        outbox.emit(PlatformRequest(SEND_NOTIFICATION, "b", {"event": "first"}))
        for _ in range(5):
            await asyncio.sleep(0)

    asyncio.run(run_test())

    assert [call[2] for call in platform.calls] == ["first", "second"]
    assert len(outbox) == 0


def test_cursed_member_filter_forgets_expired_slow_mode(make_engine, rng, scheduler):
    engine = make_engine()
    rng.script(0.0, 0.05)
    engine.resolve_curse(_request("a", "b"))
    engine.inspect_message("b", "hello")
    assert engine.messages.tracked_subjects() == ["b"]

    scheduler.advance(5 * MINUTE)

    assert engine.active_effect("b") is None
    assert engine.messages.tracked_subjects() == []


def test_platform_failure_never_rolls_back_state(make_engine, rng):
    platform = RecordingPlatform(fail_on={"apply_identity_marker"})
    engine = make_engine(platform=platform)
    rng.script(0.0, 0.05)

    result = engine.resolve_curse(_request("a", "b"))
    delivered = asyncio.run(engine.flush_platform())

    assert result.status == ActionStatus.APPLIED
    assert delivered == 1
    assert platform.calls == [("send_notification", "b", "curse_applied")]
    assert engine.active_effect("b") is not None
    assert len(engine.outbox) == 0


def test_cursed_member_messages_are_filtered(make_engine, rng, scheduler):
    engine = make_engine()
    rng.script(0.0, 0.05)
    engine.resolve_curse(_request("a", "b"))

    assert engine.inspect_message("b", "hello").delete is False
    assert engine.inspect_message("b", "again").delete is True
    scheduler.advance(MINUTE)
    assert engine.inspect_message("b", "later").delete is False
    assert engine.inspect_message("clean", "hi").effect_kind is None


def test_start_recovers_effects_left_by_a_previous_process(scheduler, make_engine, rng):
    rng.script(0.0, 0.05)
    make_engine().resolve_curse(_request("a", "b"))

    restarted = make_engine()
    report = restarted.start()

    assert report.armed == 1
    assert restarted.active_effect("b").kind == EffectKind.SLOW_MODE
    scheduler.advance(5 * MINUTE)
    assert restarted.active_effect("b") is None
