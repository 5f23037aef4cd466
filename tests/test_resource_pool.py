from __future__ import annotations

import pytest

from conftest import MINUTE, T0
from curse_game_engine.core.config import ResourceConfig
from curse_game_engine.core.errors import ConfigError, InsufficientResourceError
from curse_game_engine.core.resources import ResourcePool
from curse_game_engine.persistence.store import EngineStore

INTERVAL = 10 * MINUTE


def _pool(store, now, **overrides):
    config = ResourceConfig(**{"max_balance": 100, "initial_balance": 50, "regen_interval_ms": INTERVAL, **overrides})
    return ResourcePool(store, config, clock=lambda: now[0])


def test_regenerate_advances_by_whole_intervals_only(store):
    now = [T0]
    pool = _pool(store, now)
    account = pool.account("u1")

    now[0] = T0 + int(2.5 * INTERVAL)
    assert pool.regenerate("u1") == 52
    assert account.last_regen_ms == T0 + 2 * INTERVAL

    # The leftover half interval still counts towards the next point.
    now[0] = T0 + 3 * INTERVAL
    assert pool.regenerate("u1") == 53


def test_regeneration_is_capped_at_max_balance(store):
    now = [T0]
    pool = _pool(store, now, initial_balance=99)
    pool.account("u1")
    now[0] = T0 + 50 * INTERVAL
    assert pool.balance("u1") == 100
    assert pool.regenerate("u1") == 100


def test_consume_then_insufficient_leaves_balance_untouched(store):
    now = [T0]
    pool = _pool(store, now, initial_balance=12)

    assert pool.consume("u1", 10) == 2
    with pytest.raises(InsufficientResourceError) as info:
        pool.consume("u1", 10)

    assert info.value.required == 10
    assert info.value.available == 2
    assert pool.balance("u1") == 2


def test_balance_of_unknown_actor_is_initial_and_does_not_create_account(store):
    pool = _pool(store, [T0])
    assert pool.balance("stranger") == 50
    assert pool.peek("stranger") is None


def test_credit_and_refund_half(store):
    now = [T0]
    pool = _pool(store, now, initial_balance=40)
    assert pool.credit("u1", 100) == 100
    pool.consume("u1", 30)
    assert pool.refund_half("u1", 15) == 77


def test_accounts_survive_a_new_pool_instance(backend):
    now = [T0]
    pool = _pool(EngineStore(backend), now)
    pool.consume("u1", 20)

    reloaded = _pool(EngineStore(backend), now)
    assert reloaded.balance("u1") == 30


def test_resource_config_validation():
    with pytest.raises(ConfigError):
        ResourceConfig(max_balance=10, initial_balance=11)
    with pytest.raises(ConfigError):
        ResourceConfig(regen_interval_ms=0)
