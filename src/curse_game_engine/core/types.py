from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class EffectKind(str, Enum):
    SLOW_MODE = "slow_mode"
    AUTO_DELETE = "auto_delete"
    RANDOM_MENTION = "random_mention"
    REACTION_SPAM = "reaction_spam"
    FORCED_CAPS = "forced_caps"
    RANDOM_TIMEOUT = "random_timeout"
    ROLE_GRANT = "role_grant"
    WORD_SCRAMBLE = "word_scramble"
    CANNED_REPLY = "canned_reply"
    IDENTITY_MARKER = "identity_marker"
    REFLECTION_BLOCK = "reflection_block"
    PROTECTION = "protection"


CURSE_KINDS: tuple[EffectKind, ...] = (
    EffectKind.SLOW_MODE,
    EffectKind.AUTO_DELETE,
    EffectKind.RANDOM_MENTION,
    EffectKind.REACTION_SPAM,
    EffectKind.FORCED_CAPS,
    EffectKind.RANDOM_TIMEOUT,
    EffectKind.ROLE_GRANT,
    EffectKind.WORD_SCRAMBLE,
    EffectKind.CANNED_REPLY,
    EffectKind.IDENTITY_MARKER,
)


class ActorClass(str, Enum):
    MEMBER = "member"
    VIRTUTTI = "virtutti"
    GABRIEL = "gabriel"
    LUCYFER = "lucyfer"


class ActionStatus(str, Enum):
    APPLIED = "applied"
    REFLECTED = "reflected"
    REJECTED = "rejected"
    BLOCKED = "blocked"
    INSUFFICIENT_RESOURCE = "insufficient_resource"
    COOLDOWN = "cooldown"
    FAILED = "failed"


class RecoveryState(str, Enum):
    STOPPED = "stopped"
    LOADING = "loading"
    RECONCILING = "reconciling"
    ARMED = "armed"


# Platform request kinds, consumed by PlatformRelay.
APPLY_IDENTITY_MARKER = "apply_identity_marker"
RESTORE_IDENTITY = "restore_identity"
SEND_NOTIFICATION = "send_notification"
GRANT_ROLE = "grant_role"
REVOKE_ROLE = "revoke_role"
TOGGLE_TIMEOUT = "toggle_timeout"


@dataclass(frozen=True)
class Effect:
    subject_id: str
    kind: EffectKind
    payload: dict[str, Any]
    created_at_ms: int
    expires_at_ms: int
    applied_by: Optional[str] = None

    def is_live(self, now_ms: int) -> bool:
        return now_ms < self.expires_at_ms

    def same_identity(self, kind: EffectKind, created_at_ms: int) -> bool:
        return self.kind == kind and self.created_at_ms == created_at_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "kind": self.kind.value,
            "payload": dict(self.payload),
            "created_at_ms": self.created_at_ms,
            "expires_at_ms": self.expires_at_ms,
            "applied_by": self.applied_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Effect":
        return cls(
            subject_id=str(data["subject_id"]),
            kind=EffectKind(data["kind"]),
            payload=dict(data.get("payload") or {}),
            created_at_ms=int(data["created_at_ms"]),
            expires_at_ms=int(data["expires_at_ms"]),
            applied_by=data.get("applied_by"),
        )


@dataclass
class ResourceAccount:
    actor_id: str
    balance: int
    last_regen_ms: int
    daily_date: str = ""
    daily_counts: dict[str, int] = field(default_factory=dict)
    successes: int = 0
    failures: int = 0
    success_streak: int = 0
    failure_streak: int = 0
    adaptive_cost: Optional[int] = None


@dataclass
class DailyUsage:
    date: str
    counts: dict[str, int] = field(default_factory=dict)


@dataclass
class ReflectionState:
    chance: int = 0
    blocked_until_ms: Optional[int] = None


@dataclass
class PlatformRequest:
    kind: str
    subject_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at_ms: int = 0


@dataclass
class ActionRequest:
    actor_id: str
    target_id: str
    actor_class: str = ActorClass.MEMBER.value
    target_class: str = ActorClass.MEMBER.value
    action: str = "curse"


@dataclass
class ActionResult:
    status: ActionStatus
    actor_id: str
    target_id: Optional[str] = None
    cost: int = 0
    balance: Optional[int] = None
    tier: Optional[str] = None
    effect: Optional[Effect] = None
    redirected: bool = False
    reflection_chance: Optional[int] = None
    remaining_ms: int = 0
    detail: Optional[str] = None
    reading: Optional[VirtueReading] = None


@dataclass
class CooldownCheck:
    allowed: bool
    remaining_ms: int = 0
    reason: Optional[str] = None


@dataclass
class RecoveryReport:
    expired: int = 0
    armed: int = 0
    already_armed: int = 0


@dataclass
class VirtueReading:
    actor_id: str
    virtues: list[tuple[str, int]]
    advice: str
