from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .clock import MAX_TIMER_DELAY_MS
from .errors import ConfigError, InvalidWeightTableError
from .tables import WeightedTable
from .types import CURSE_KINDS, ActorClass, EffectKind

logger = logging.getLogger(__name__)

COST_MODES = ("flat", "escalating", "adaptive")
DEFAULT_CLASS = "default"

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS


@dataclass(frozen=True)
class ResourceConfig:
    max_balance: int = 100
    initial_balance: int = 100
    regen_interval_ms: int = 10 * MINUTE_MS
    regen_amount: int = 1

    def __post_init__(self) -> None:
        if self.max_balance <= 0 or self.regen_interval_ms <= 0 or self.regen_amount < 0:
            raise ConfigError("resource pool needs a positive max balance and regen interval")
        if not 0 <= self.initial_balance <= self.max_balance:
            raise ConfigError("initial balance must lie within [0, max_balance]")


@dataclass(frozen=True)
class ActionLimit:
    cooldown_ms: int = 0
    daily_limit: Optional[int] = None


@dataclass(frozen=True)
class CostRule:
    mode: str = "flat"
    base: int = 10
    increment: int = 0
    minimum: int = 0
    maximum: int = 0

    def __post_init__(self) -> None:
        if self.mode not in COST_MODES:
            raise ConfigError(f"unknown cost mode {self.mode!r}")
        if self.base < 0 or self.increment < 0:
            raise ConfigError("cost base and increment must be non-negative")
        if self.mode == "adaptive" and not self.minimum <= self.base <= self.maximum:
            raise ConfigError("adaptive cost needs minimum <= base <= maximum")


@dataclass(frozen=True)
class Tier:
    name: str
    duration_ms: int


@dataclass(frozen=True)
class ReflectionConfig:
    classes: tuple[str, ...] = (ActorClass.LUCYFER.value,)
    step_percent: int = 1
    block_duration_ms: int = HOUR_MS
    bonus_credit: int = 10


@dataclass(frozen=True)
class ImmunityRule:
    attacker_class: str
    immune_class: str
    redirect_tiers: WeightedTable[Tier]


@dataclass(frozen=True)
class CursePayloadConfig:
    slow_mode_interval_ms: int = MINUTE_MS
    auto_delete_chance: int = 35
    mention_interval_ms: int = 5 * MINUTE_MS
    timeout_interval_ms: int = 10 * MINUTE_MS
    timeout_ms: int = MINUTE_MS
    reactions: tuple[str, ...] = ("\U0001F480", "\U0001F921", "\U0001F4A9", "\U0001F40C")
    canned_replies: tuple[str, ...] = (
        "Nobody asked.",
        "Did you mean to say something smarter?",
        "The spirits are not impressed.",
    )
    identity_markers: tuple[str, ...] = ("\U0001F438", "\U0001F921", "\U0001F40C")
    curse_role_id: Optional[str] = None


def default_tier_table() -> WeightedTable[Tier]:
    return WeightedTable(
        [
            (50, Tier("minor", 5 * MINUTE_MS)),
            (35, Tier("major", 15 * MINUTE_MS)),
            (15, Tier("severe", 30 * MINUTE_MS)),
        ],
        name="tiers.default",
    )


def default_kind_table() -> WeightedTable[EffectKind]:
    return WeightedTable([(10, kind) for kind in CURSE_KINDS], name="kinds")


def default_redirect_table() -> WeightedTable[Tier]:
    return WeightedTable(
        [
            (60, Tier("major", 15 * MINUTE_MS)),
            (40, Tier("severe", 30 * MINUTE_MS)),
        ],
        name="tiers.redirect",
    )


def _default_costs() -> dict[str, dict[str, CostRule]]:
    return {
        ActorClass.GABRIEL.value: {
            "curse": CostRule(mode="escalating", base=5, increment=5),
            "blessing": CostRule(mode="flat", base=5),
        },
        ActorClass.LUCYFER.value: {
            "curse": CostRule(mode="adaptive", base=10, minimum=5, maximum=15),
            "blessing": CostRule(mode="flat", base=10),
        },
        ActorClass.VIRTUTTI.value: {
            "blessing": CostRule(mode="flat", base=0),
        },
    }


def _default_limits() -> dict[str, ActionLimit]:
    return {
        "curse": ActionLimit(cooldown_ms=MINUTE_MS),
        "blessing": ActionLimit(cooldown_ms=10 * MINUTE_MS, daily_limit=5),
        "virtue_check": ActionLimit(cooldown_ms=10 * MINUTE_MS, daily_limit=5),
    }


@dataclass(frozen=True)
class EngineConfig:
    resources: ResourceConfig = field(default_factory=ResourceConfig)
    limits: Mapping[str, ActionLimit] = field(default_factory=_default_limits)
    costs: Mapping[str, Mapping[str, CostRule]] = field(default_factory=_default_costs)
    default_cost: CostRule = field(default_factory=CostRule)
    tier_tables: Mapping[str, WeightedTable[Tier]] = field(
        default_factory=lambda: {DEFAULT_CLASS: default_tier_table()}
    )
    kind_table: WeightedTable[EffectKind] = field(default_factory=default_kind_table)
    failure_chance: Mapping[str, int] = field(default_factory=lambda: {ActorClass.GABRIEL.value: 10})
    reflection: ReflectionConfig = field(default_factory=ReflectionConfig)
    immunities: tuple[ImmunityRule, ...] = field(
        default_factory=lambda: (
            ImmunityRule(
                attacker_class=ActorClass.LUCYFER.value,
                immune_class=ActorClass.GABRIEL.value,
                redirect_tiers=default_redirect_table(),
            ),
        )
    )
    curses: CursePayloadConfig = field(default_factory=CursePayloadConfig)
    shield_duration_ms: int = 30 * MINUTE_MS
    curse_marker: str = "Cursed "
    block_role_id: Optional[str] = None
    timezone: str = "UTC"
    max_timer_delay_ms: int = MAX_TIMER_DELAY_MS
    blessings: tuple[str, ...] = (
        "May every drop be a rare one!",
        "May your gems only ever multiply!",
        "May your phone battery never fall below 20%!",
    )
    virtues: tuple[str, ...] = (
        "Meme literacy",
        "Patience with loading screens",
        "Wisdom of searching first",
        "Humility before bugs",
        "Grace of stable WiFi",
        "Virtue of backups",
    )
    advice: tuple[str, ...] = (
        "Pray more often to the documentation, my child.",
        "Go forth and learn ctrl+z.",
        "Your soul needs more backups.",
    )

    def __post_init__(self) -> None:
        if DEFAULT_CLASS not in self.tier_tables:
            raise ConfigError("tier_tables needs a 'default' table")
        for actor_class, chance in self.failure_chance.items():
            if not 0 <= chance <= 100:
                raise ConfigError(f"failure chance for {actor_class} must be within 0..100")
        if not 0 <= self.reflection.step_percent <= 100:
            raise ConfigError("reflection step must be within 0..100")
        if self.max_timer_delay_ms <= 0:
            raise ConfigError("max_timer_delay_ms must be positive")

    def cost_rule(self, actor_class: str, action: str) -> CostRule:
        return self.costs.get(actor_class, {}).get(action, self.default_cost)

    def tier_table(self, actor_class: str) -> WeightedTable[Tier]:
        table = self.tier_tables.get(actor_class)
        return table if table is not None else self.tier_tables[DEFAULT_CLASS]

    def immunity_for(self, attacker_class: str, target_class: str) -> ImmunityRule | None:
        for rule in self.immunities:
            if rule.attacker_class == attacker_class and rule.immune_class == target_class:
                return rule
        return None

    def reflects(self, actor_class: str) -> bool:
        return actor_class in self.reflection.classes

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        try:
            return _config_from_dict(data)
        except InvalidWeightTableError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"invalid engine config: {exc}") from exc


def _tier_table(raw: Any, name: str) -> WeightedTable[Tier]:
    if not isinstance(raw, list):
        raise ConfigError(f"{name} must be a list of tiers")
    return WeightedTable(
        [(int(e["weight"]), Tier(str(e["name"]), int(e["duration_ms"]))) for e in raw],
        name=name,
    )


def _config_from_dict(data: Mapping[str, Any]) -> EngineConfig:
    kwargs: dict[str, Any] = {}

    if "resources" in data:
        kwargs["resources"] = ResourceConfig(**dict(data["resources"]))
    if "limits" in data:
        kwargs["limits"] = {
            str(action): ActionLimit(
                cooldown_ms=int(raw.get("cooldown_ms", 0)),
                daily_limit=None if raw.get("daily_limit") is None else int(raw["daily_limit"]),
            )
            for action, raw in dict(data["limits"]).items()
        }
    if "costs" in data:
        kwargs["costs"] = {
            str(actor_class): {str(action): CostRule(**dict(rule)) for action, rule in dict(rules).items()}
            for actor_class, rules in dict(data["costs"]).items()
        }
    if "default_cost" in data:
        kwargs["default_cost"] = CostRule(**dict(data["default_cost"]))
    if "tier_tables" in data:
        kwargs["tier_tables"] = {
            str(actor_class): _tier_table(raw, f"tiers.{actor_class}")
            for actor_class, raw in dict(data["tier_tables"]).items()
        }
    if "kind_table" in data:
        kwargs["kind_table"] = WeightedTable(
            [(int(e["weight"]), EffectKind(e["kind"])) for e in data["kind_table"]],
            name="kinds",
        )
    if "failure_chance" in data:
        kwargs["failure_chance"] = {str(k): int(v) for k, v in dict(data["failure_chance"]).items()}
    if "reflection" in data:
        raw = dict(data["reflection"])
        if "classes" in raw:
            raw["classes"] = tuple(str(c) for c in raw["classes"])
        kwargs["reflection"] = ReflectionConfig(**raw)
    if "immunities" in data:
        kwargs["immunities"] = tuple(
            ImmunityRule(
                attacker_class=str(raw["attacker_class"]),
                immune_class=str(raw["immune_class"]),
                redirect_tiers=_tier_table(
                    raw["redirect_tiers"],
                    f"tiers.redirect.{raw['attacker_class']}",
                ),
            )
            for raw in data["immunities"]
        )
    if "curses" in data:
        raw = dict(data["curses"])
        for key in ("reactions", "canned_replies", "identity_markers"):
            if key in raw:
                raw[key] = tuple(str(v) for v in raw[key])
        kwargs["curses"] = CursePayloadConfig(**raw)
    for key in ("shield_duration_ms", "max_timer_delay_ms"):
        if key in data:
            kwargs[key] = int(data[key])
    for key in ("curse_marker", "timezone"):
        if key in data:
            kwargs[key] = str(data[key])
    if data.get("block_role_id") is not None:
        kwargs["block_role_id"] = str(data["block_role_id"])
    for key in ("blessings", "virtues", "advice"):
        if key in data:
            kwargs[key] = tuple(str(v) for v in data[key])

    return EngineConfig(**kwargs)


def load_engine_config(path: str | Path | None) -> EngineConfig:
    """Build the config from a JSON file, falling back to defaults when absent."""
    if not path:
        return EngineConfig()
    path = Path(path)
    if not path.exists():
        logger.warning("Engine config %s not found; using defaults.", path)
        return EngineConfig()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"engine config {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"engine config {path} must be a JSON object")
    return EngineConfig.from_dict(payload)
