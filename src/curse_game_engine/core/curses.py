from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Any

from .clock import Clock, system_clock_ms
from .config import EngineConfig, Tier
from .effects import EffectRegistry
from .types import (
    APPLY_IDENTITY_MARKER,
    CURSE_KINDS,
    GRANT_ROLE,
    RESTORE_IDENTITY,
    REVOKE_ROLE,
    SEND_NOTIFICATION,
    TOGGLE_TIMEOUT,
    Effect,
    EffectKind,
    PlatformRequest,
)

PERIODIC_KINDS = (EffectKind.RANDOM_MENTION, EffectKind.RANDOM_TIMEOUT)

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def build_payload(kind: EffectKind, tier: Tier, config: EngineConfig, rng: random.Random) -> dict[str, Any]:
    cfg = config.curses
    payload: dict[str, Any] = {"tier": tier.name}
    if kind == EffectKind.SLOW_MODE:
        payload["min_gap_ms"] = cfg.slow_mode_interval_ms
    elif kind == EffectKind.AUTO_DELETE:
        payload["chance"] = cfg.auto_delete_chance
    elif kind == EffectKind.RANDOM_MENTION:
        payload["interval_ms"] = cfg.mention_interval_ms
    elif kind == EffectKind.REACTION_SPAM:
        payload["reactions"] = list(cfg.reactions)
    elif kind == EffectKind.RANDOM_TIMEOUT:
        payload["interval_ms"] = cfg.timeout_interval_ms
        payload["timeout_ms"] = cfg.timeout_ms
    elif kind == EffectKind.ROLE_GRANT:
        payload["role_id"] = cfg.curse_role_id
    elif kind == EffectKind.CANNED_REPLY:
        payload["reply"] = rng.choice(cfg.canned_replies) if cfg.canned_replies else ""
    elif kind == EffectKind.IDENTITY_MARKER:
        payload["marker"] = rng.choice(cfg.identity_markers) if cfg.identity_markers else ""
    return payload


def scramble_words(text: str, rng: random.Random) -> str:
    def _shuffle(match: re.Match[str]) -> str:
        word = match.group(0)
        if len(word) <= 3:
            return word
        middle = list(word[1:-1])
        rng.shuffle(middle)
        return word[0] + "".join(middle) + word[-1]

    return _WORD_RE.sub(_shuffle, text)


class CursePresenter:
    """Translates effect lifecycle events into chat platform requests."""

    def __init__(self, config: EngineConfig, clock: Clock | None = None):
        self._config = config
        self._clock = clock or system_clock_ms

    def _request(self, kind: str, subject_id: str, **payload: Any) -> PlatformRequest:
        return PlatformRequest(kind=kind, subject_id=subject_id, payload=payload, created_at_ms=self._clock())

    def _notice(self, effect: Effect, event: str, **extra: Any) -> PlatformRequest:
        return self._request(
            SEND_NOTIFICATION,
            effect.subject_id,
            event=event,
            effect_kind=effect.kind.value,
            applied_by=effect.applied_by,
            expires_at_ms=effect.expires_at_ms,
            **extra,
        )

    def applied(self, effect: Effect) -> list[PlatformRequest]:
        out: list[PlatformRequest] = []
        if effect.kind in CURSE_KINDS:
            marker = self._config.curse_marker
            if effect.kind == EffectKind.IDENTITY_MARKER:
                marker = str(effect.payload.get("marker") or marker)
            out.append(self._request(APPLY_IDENTITY_MARKER, effect.subject_id, marker=marker))
            role_id = effect.payload.get("role_id")
            if effect.kind == EffectKind.ROLE_GRANT and role_id:
                out.append(self._request(GRANT_ROLE, effect.subject_id, role_id=role_id))
            out.append(self._notice(effect, "curse_applied", tier=effect.payload.get("tier")))
        elif effect.kind == EffectKind.REFLECTION_BLOCK:
            if self._config.block_role_id:
                out.append(self._request(GRANT_ROLE, effect.subject_id, role_id=self._config.block_role_id))
            out.append(self._notice(effect, "curse_reflected", target=effect.payload.get("reflected_target")))
        elif effect.kind == EffectKind.PROTECTION:
            out.append(self._notice(effect, "protection_granted"))
        return out

    def removed(self, effect: Effect, reason: str) -> list[PlatformRequest]:
        out: list[PlatformRequest] = []
        if effect.kind in CURSE_KINDS:
            out.append(self._request(RESTORE_IDENTITY, effect.subject_id))
            role_id = effect.payload.get("role_id")
            if effect.kind == EffectKind.ROLE_GRANT and role_id:
                out.append(self._request(REVOKE_ROLE, effect.subject_id, role_id=role_id))
            out.append(self._notice(effect, "curse_removed", reason=reason))
        elif effect.kind == EffectKind.REFLECTION_BLOCK:
            if self._config.block_role_id:
                out.append(self._request(REVOKE_ROLE, effect.subject_id, role_id=self._config.block_role_id))
            out.append(self._notice(effect, "block_lifted", reason=reason, bonus=effect.payload.get("bonus", 0)))
        elif effect.kind == EffectKind.PROTECTION:
            out.append(self._notice(effect, "protection_ended", reason=reason))
        return out

    def tick(self, effect: Effect) -> list[PlatformRequest]:
        if effect.kind == EffectKind.RANDOM_MENTION:
            return [self._notice(effect, "random_mention")]
        if effect.kind == EffectKind.RANDOM_TIMEOUT:
            duration = int(effect.payload.get("timeout_ms") or self._config.curses.timeout_ms)
            return [self._request(TOGGLE_TIMEOUT, effect.subject_id, duration_ms=duration)]
        return []

    def tick_interval_ms(self, effect: Effect) -> int | None:
        if effect.kind not in PERIODIC_KINDS:
            return None
        interval = effect.payload.get("interval_ms")
        return int(interval) if interval else None


@dataclass
class MessageVerdict:
    delete: bool = False
    reactions: list[str] = field(default_factory=list)
    rewritten: str | None = None
    reply: str | None = None
    effect_kind: EffectKind | None = None


class MessageFilter:
    """Decides what happens to a message posted by a cursed member."""

    def __init__(self, curses: EffectRegistry, clock: Clock | None = None, rng: random.Random | None = None):
        self._curses = curses
        self._clock = clock or system_clock_ms
        self._rng = rng or random.Random()
        self._last_message: dict[tuple[str, int], int] = {}

    def inspect(self, subject_id: str, text: str) -> MessageVerdict:
        effect = self._curses.get(subject_id)
        if effect is None or effect.kind != EffectKind.SLOW_MODE:
            self.forget(subject_id)
        if effect is None:
            return MessageVerdict()
        verdict = MessageVerdict(effect_kind=effect.kind)
        payload = effect.payload
        if effect.kind == EffectKind.SLOW_MODE:
            now = self._clock()
            key = (subject_id, effect.created_at_ms)
            last = self._last_message.get(key)
            if last is not None and now - last < int(payload.get("min_gap_ms") or 0):
                verdict.delete = True
            else:
                self.forget(subject_id)
                self._last_message[key] = now
        elif effect.kind == EffectKind.AUTO_DELETE:
            verdict.delete = self._rng.random() * 100 < int(payload.get("chance") or 0)
        elif effect.kind == EffectKind.REACTION_SPAM:
            verdict.reactions = [str(r) for r in payload.get("reactions") or []]
        elif effect.kind == EffectKind.FORCED_CAPS:
            upper = text.upper()
            if upper != text:
                verdict.delete = True
                verdict.rewritten = upper
        elif effect.kind == EffectKind.WORD_SCRAMBLE:
            scrambled = scramble_words(text, self._rng)
            if scrambled != text:
                verdict.delete = True
                verdict.rewritten = scrambled
        elif effect.kind == EffectKind.CANNED_REPLY:
            verdict.reply = str(payload.get("reply") or "") or None
        return verdict

    def forget(self, subject_id: str) -> None:
        for key in [k for k in self._last_message if k[0] == subject_id]:
            self._last_message.pop(key, None)

    def prune(self) -> int:
        """Drop slow-mode timestamps whose curse is no longer live."""
        dropped = 0
        for key in list(self._last_message):
            subject_id, created_at_ms = key
            effect = self._curses.get(subject_id)
            if effect is None or not effect.same_identity(EffectKind.SLOW_MODE, created_at_ms):
                if self._last_message.pop(key, None) is not None:
                    dropped += 1
        return dropped

    def tracked_subjects(self) -> list[str]:
        return sorted({subject_id for subject_id, _ in self._last_message})
