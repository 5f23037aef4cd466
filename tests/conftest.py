from __future__ import annotations

import random
from collections import deque

import pytest
from sqlalchemy import text

from curse_game_engine.core.clock import ManualScheduler
from curse_game_engine.core.engine import CurseEngine
from curse_game_engine.core.errors import PersistenceFailure
from curse_game_engine.core.timers import DurableTimers
from curse_game_engine.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from curse_game_engine.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork
from curse_game_engine.persistence.store import EngineStore, MemorySnapshotStore

# 2024-01-01T12:00:00Z
T0 = 1_704_110_400_000
MINUTE = 60_000
HOUR = 60 * MINUTE
DAY = 24 * HOUR


class ScriptedRandom(random.Random):
    """``random()`` returns queued draws first, then falls back to the seed."""

    def __init__(self, seed: int = 7):
        super().__init__(seed)
        self._queued: deque[float] = deque()

    def script(self, *draws: float) -> "ScriptedRandom":
        self._queued.extend(draws)
        return self

    def random(self) -> float:
        if self._queued:
            return self._queued.popleft()
        return super().random()


class FlakyBackend(MemorySnapshotStore):
    def __init__(self) -> None:
        super().__init__()
        self.failing = False
        self.attempts = 0

    def save_document(self, name, document):
        self.attempts += 1
        if self.failing:
            raise PersistenceFailure(f"disk full while writing {name}")
        super().save_document(name, document)


class RecordingPlatform:
    def __init__(self, fail_on: set[str] | None = None):
        self.calls: list[tuple] = []
        self.fail_on = fail_on or set()

    def _record(self, name: str, *args) -> None:
        if name in self.fail_on:
            raise RuntimeError(f"{name} rejected")
        self.calls.append((name, *args))

    async def apply_identity_marker(self, subject_id, marker):
        self._record("apply_identity_marker", subject_id, marker)

    async def restore_identity(self, subject_id):
        self._record("restore_identity", subject_id)

    async def send_notification(self, subject_id, event, payload):
        self._record("send_notification", subject_id, event)

    async def grant_role(self, subject_id, role_id):
        self._record("grant_role", subject_id, role_id)

    async def revoke_role(self, subject_id, role_id):
        self._record("revoke_role", subject_id, role_id)

    async def toggle_timeout(self, subject_id, duration_ms):
        self._record("toggle_timeout", subject_id, duration_ms)


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    sf = build_session_factory(engine)
    with sf() as session:
        session.execute(text("PRAGMA foreign_keys=ON"))
        session.commit()
    return sf


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory


@pytest.fixture()
def scheduler():
    return ManualScheduler(start_ms=T0)


@pytest.fixture()
def timers(scheduler):
    return DurableTimers(scheduler, scheduler.now_ms)


@pytest.fixture()
def backend():
    return MemorySnapshotStore()


@pytest.fixture()
def store(backend):
    return EngineStore(backend)


@pytest.fixture()
def rng():
    return ScriptedRandom()


@pytest.fixture()
def make_engine(scheduler, backend, rng):
    def _make(config=None, *, snapshot_store=None, platform=None, scripted=None):
        return CurseEngine(
            snapshot_store if snapshot_store is not None else backend,
            config,
            scheduler=scheduler,
            clock=scheduler.now_ms,
            rng=scripted if scripted is not None else rng,
            platform=platform,
        )

    return _make
