from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from ..core.errors import PersistenceFailure
from ..core.normalize import coerce_int, coerce_optional_int, dump_json
from ..core.types import DailyUsage, Effect, ReflectionState, ResourceAccount
from .interfaces import SnapshotStore

logger = logging.getLogger(__name__)

ACCOUNTS_DOC = "accounts"
COOLDOWNS_DOC = "cooldowns"
REFLECTION_DOC = "reflection"
RIVALS_DOC = "rivals"


def effects_doc(registry: str) -> str:
    return f"effects.{registry}"


class MemorySnapshotStore:
    """Keeps each document as serialized text, like the durable stores do."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}

    def load_document(self, name: str) -> dict[str, Any] | None:
        raw = self._documents.get(name)
        if raw is None:
            return None
        return json.loads(raw)

    def save_document(self, name: str, document: dict[str, Any]) -> None:
        self._documents[name] = dump_json(document)

    def names(self) -> list[str]:
        return sorted(self._documents)


class JsonFileSnapshotStore:
    """One JSON file per document, replaced atomically on every save."""

    def __init__(self, directory: str | os.PathLike[str]):
        self._directory = Path(directory)

    def _path(self, name: str) -> Path:
        return self._directory / f"{name}.json"

    def load_document(self, name: str) -> dict[str, Any] | None:
        path = self._path(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceFailure(f"cannot read {path}: {exc}") from exc
        if not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Snapshot %s is corrupt, ignoring it: %s", path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Snapshot %s must hold a JSON object", path)
            return None
        return data

    def save_document(self, name: str, document: dict[str, Any]) -> None:
        path = self._path(name)
        tmp_name: str | None = None
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._directory,
                prefix=f".{name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(json.dumps(document, ensure_ascii=False, indent=2))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            raise PersistenceFailure(f"cannot write {path}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)


class EngineStore:
    """Typed facade over a SnapshotStore shared by every engine component.

    Saves never raise: a failed save is logged, remembered, and written again
    ahead of the next save so the newest in-memory state wins eventually.
    """

    def __init__(self, backend: SnapshotStore):
        self._backend = backend
        self._pending: dict[str, dict[str, Any]] = {}

    @property
    def pending(self) -> list[str]:
        return sorted(self._pending)

    def _load(self, name: str) -> dict[str, Any]:
        try:
            return self._backend.load_document(name) or {}
        except PersistenceFailure as exc:
            logger.warning("Loading snapshot %s failed, starting empty: %s", name, exc)
            return {}

    def _save(self, name: str, document: dict[str, Any]) -> bool:
        self._pending.pop(name, None)
        self.retry_pending()
        try:
            self._backend.save_document(name, document)
        except PersistenceFailure as exc:
            logger.warning("Saving snapshot %s failed, keeping it for retry: %s", name, exc)
            self._pending[name] = document
            return False
        return True

    def retry_pending(self) -> bool:
        for name, document in list(self._pending.items()):
            try:
                self._backend.save_document(name, document)
            except PersistenceFailure as exc:
                logger.warning("Retry of snapshot %s failed: %s", name, exc)
                continue
            del self._pending[name]
        return not self._pending

    # -- effects -----------------------------------------------------------

    def load_effects(self, registry: str) -> list[Effect]:
        out: list[Effect] = []
        for raw in self._load(effects_doc(registry)).get("effects") or []:
            try:
                out.append(Effect.from_dict(raw))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping unreadable %s effect %r: %s", registry, raw, exc)
        return out

    def save_effects(self, registry: str, effects: list[Effect]) -> bool:
        return self._save(effects_doc(registry), {"effects": [e.to_dict() for e in effects]})

    # -- accounts ----------------------------------------------------------

    def load_accounts(self) -> dict[str, ResourceAccount]:
        out: dict[str, ResourceAccount] = {}
        for actor_id, raw in (self._load(ACCOUNTS_DOC).get("accounts") or {}).items():
            if not isinstance(raw, dict):
                continue
            out[actor_id] = ResourceAccount(
                actor_id=actor_id,
                balance=coerce_int(raw.get("balance")),
                last_regen_ms=coerce_int(raw.get("last_regen_ms")),
                daily_date=str(raw.get("daily_date") or ""),
                daily_counts={str(k): coerce_int(v) for k, v in (raw.get("daily_counts") or {}).items()},
                successes=coerce_int(raw.get("successes")),
                failures=coerce_int(raw.get("failures")),
                success_streak=coerce_int(raw.get("success_streak")),
                failure_streak=coerce_int(raw.get("failure_streak")),
                adaptive_cost=coerce_optional_int(raw.get("adaptive_cost")),
            )
        return out

    def save_accounts(self, accounts: dict[str, ResourceAccount]) -> bool:
        document = {
            "accounts": {
                actor_id: {
                    "balance": a.balance,
                    "last_regen_ms": a.last_regen_ms,
                    "daily_date": a.daily_date,
                    "daily_counts": dict(a.daily_counts),
                    "successes": a.successes,
                    "failures": a.failures,
                    "success_streak": a.success_streak,
                    "failure_streak": a.failure_streak,
                    "adaptive_cost": a.adaptive_cost,
                }
                for actor_id, a in accounts.items()
            }
        }
        return self._save(ACCOUNTS_DOC, document)

    # -- cooldowns ---------------------------------------------------------

    def load_cooldowns(self) -> tuple[dict[str, dict[str, int]], dict[str, DailyUsage]]:
        data = self._load(COOLDOWNS_DOC)
        last_used = {
            actor_id: {str(action): coerce_int(ts) for action, ts in (actions or {}).items()}
            for actor_id, actions in (data.get("last_used") or {}).items()
        }
        daily: dict[str, DailyUsage] = {}
        for actor_id, raw in (data.get("daily") or {}).items():
            if not isinstance(raw, dict):
                continue
            daily[actor_id] = DailyUsage(
                date=str(raw.get("date") or ""),
                counts={str(k): coerce_int(v) for k, v in (raw.get("counts") or {}).items()},
            )
        return last_used, daily

    def save_cooldowns(self, last_used: dict[str, dict[str, int]], daily: dict[str, DailyUsage]) -> bool:
        document = {
            "last_used": {actor_id: dict(actions) for actor_id, actions in last_used.items()},
            "daily": {
                actor_id: {"date": usage.date, "counts": dict(usage.counts)}
                for actor_id, usage in daily.items()
            },
        }
        return self._save(COOLDOWNS_DOC, document)

    # -- reflection & rivals -----------------------------------------------

    def load_reflection(self) -> dict[str, ReflectionState]:
        out: dict[str, ReflectionState] = {}
        for actor_id, raw in (self._load(REFLECTION_DOC).get("actors") or {}).items():
            if not isinstance(raw, dict):
                continue
            out[actor_id] = ReflectionState(
                chance=coerce_int(raw.get("chance")),
                blocked_until_ms=coerce_optional_int(raw.get("blocked_until_ms")),
            )
        return out

    def save_reflection(self, states: dict[str, ReflectionState]) -> bool:
        document = {
            "actors": {
                actor_id: {"chance": s.chance, "blocked_until_ms": s.blocked_until_ms}
                for actor_id, s in states.items()
            }
        }
        return self._save(REFLECTION_DOC, document)

    def load_rivals(self) -> dict[str, str]:
        raw = self._load(RIVALS_DOC).get("rivals") or {}
        return {str(k): str(v) for k, v in raw.items() if v}

    def save_rivals(self, rivals: dict[str, str]) -> bool:
        return self._save(RIVALS_DOC, {"rivals": dict(rivals)})
