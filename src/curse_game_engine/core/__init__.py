from .clock import AsyncioScheduler, ManualScheduler, day_key, system_clock_ms
from .config import (
    ActionLimit,
    CostRule,
    CursePayloadConfig,
    EngineConfig,
    ImmunityRule,
    ReflectionConfig,
    ResourceConfig,
    Tier,
    load_engine_config,
)
from .cooldowns import CooldownTracker, format_remaining
from .costs import CostModel
from .curses import CursePresenter, MessageFilter, MessageVerdict
from .effects import EffectRegistry
from .engine import CurseEngine
from .errors import (
    ConfigError,
    CurseEngineError,
    InsufficientResourceError,
    InvalidTimerDelayError,
    InvalidWeightTableError,
    PersistenceFailure,
)
from .outbox import PlatformOutbox, PlatformRelay
from .outcomes import OutcomeResolver, ReflectionTracker, RivalRegistry
from .ports import PlatformPort, Scheduler
from .recovery import TimerRecoveryManager
from .resources import ResourcePool
from .tables import WeightedTable
from .timers import DurableTimers
from .types import (
    ActionRequest,
    ActionResult,
    ActionStatus,
    ActorClass,
    Effect,
    EffectKind,
    PlatformRequest,
    RecoveryReport,
    RecoveryState,
    VirtueReading,
)

__all__ = [
    "CurseEngine",
    "AsyncioScheduler",
    "ManualScheduler",
    "day_key",
    "system_clock_ms",
    "ActionLimit",
    "CostRule",
    "CursePayloadConfig",
    "EngineConfig",
    "ImmunityRule",
    "ReflectionConfig",
    "ResourceConfig",
    "Tier",
    "load_engine_config",
    "CooldownTracker",
    "format_remaining",
    "CostModel",
    "CursePresenter",
    "MessageFilter",
    "MessageVerdict",
    "EffectRegistry",
    "ConfigError",
    "CurseEngineError",
    "InsufficientResourceError",
    "InvalidTimerDelayError",
    "InvalidWeightTableError",
    "PersistenceFailure",
    "PlatformOutbox",
    "PlatformRelay",
    "OutcomeResolver",
    "ReflectionTracker",
    "RivalRegistry",
    "PlatformPort",
    "Scheduler",
    "TimerRecoveryManager",
    "ResourcePool",
    "WeightedTable",
    "DurableTimers",
    "ActionRequest",
    "ActionResult",
    "ActionStatus",
    "ActorClass",
    "Effect",
    "EffectKind",
    "PlatformRequest",
    "RecoveryReport",
    "RecoveryState",
    "VirtueReading",
]
