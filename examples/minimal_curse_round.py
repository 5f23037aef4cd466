from __future__ import annotations

import asyncio
import logging

from curse_game_engine.core.clock import AsyncioScheduler
from curse_game_engine.core.engine import CurseEngine
from curse_game_engine.core.types import ActionRequest
from curse_game_engine.persistence.sqlalchemy import (
    SQLAlchemySnapshotStore,
    SQLAlchemyUnitOfWork,
    build_engine,
    build_session_factory,
    create_schema,
)


class PrintingPlatform:
    async def apply_identity_marker(self, subject_id, marker):
        print(f"[platform] {subject_id} is now shown as {marker!r}")

    async def restore_identity(self, subject_id):
        print(f"[platform] {subject_id} restored")

    async def send_notification(self, subject_id, event, payload):
        print(f"[platform] {event} for {subject_id}: {payload.get('effect_kind')}")

    async def grant_role(self, subject_id, role_id):
        print(f"[platform] role {role_id} -> {subject_id}")

    async def revoke_role(self, subject_id, role_id):
        print(f"[platform] role {role_id} <- {subject_id}")

    async def toggle_timeout(self, subject_id, duration_ms):
        print(f"[platform] timeout {subject_id} for {duration_ms}ms")


def make_uow_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    session_factory = build_session_factory(engine)

    def _uow_factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _uow_factory


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    engine = CurseEngine(
        SQLAlchemySnapshotStore(make_uow_factory()),
        scheduler=AsyncioScheduler(),
        platform=PrintingPlatform(),
    )
    engine.start()

    result = engine.resolve_curse(ActionRequest(actor_id="lucy", target_id="bob", actor_class="lucyfer"))
    print("curse:", result.status.value, result.tier, result.effect and result.effect.kind.value)
    print("lucy balance:", engine.balance("lucy"))

    blessing = engine.resolve_blessing(ActionRequest(actor_id="saint", target_id="bob", actor_class="virtutti"))
    print("blessing:", blessing.status.value, blessing.detail)

    reading = engine.virtue_check("bob").reading
    for name, value in reading.virtues:
        print(f"  {name}: {value}%")
    print("  advice:", reading.advice)

    await engine.flush_platform()


if __name__ == "__main__":
    asyncio.run(main())
