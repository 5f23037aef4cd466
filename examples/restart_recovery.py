from __future__ import annotations

import logging
import tempfile

from curse_game_engine.core.clock import ManualScheduler
from curse_game_engine.core.engine import CurseEngine
from curse_game_engine.core.types import ActionRequest
from curse_game_engine.persistence.store import JsonFileSnapshotStore

MINUTE = 60_000


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    with tempfile.TemporaryDirectory() as state_dir:
        scheduler = ManualScheduler(start_ms=1_704_110_400_000)
        engine = CurseEngine(JsonFileSnapshotStore(state_dir), scheduler=scheduler)
        result = engine.resolve_curse(ActionRequest(actor_id="gab", target_id="bob", actor_class="gabriel"))
        print("before restart:", result.status.value, result.tier)
        if result.effect is None:
            return

        # A new process comes up two minutes later with only the files on disk.
        later = ManualScheduler(start_ms=scheduler.now_ms() + 2 * MINUTE)
        restarted = CurseEngine(JsonFileSnapshotStore(state_dir), scheduler=later)
        report = restarted.start()
        print("recovery:", report)

        remaining = result.effect.expires_at_ms - later.now_ms()
        later.advance(remaining)
        print("after expiry:", restarted.active_effect("bob"))


if __name__ == "__main__":
    main()
