from .core.clock import AsyncioScheduler, ManualScheduler
from .core.config import EngineConfig, load_engine_config
from .core.engine import CurseEngine
from .core.ports import PlatformPort
from .core.types import ActionRequest, ActionResult, ActionStatus, ActorClass, EffectKind
from .persistence import EngineStore, JsonFileSnapshotStore, MemorySnapshotStore

__all__ = [
    "CurseEngine",
    "EngineConfig",
    "load_engine_config",
    "AsyncioScheduler",
    "ManualScheduler",
    "PlatformPort",
    "ActionRequest",
    "ActionResult",
    "ActionStatus",
    "ActorClass",
    "EffectKind",
    "EngineStore",
    "JsonFileSnapshotStore",
    "MemorySnapshotStore",
]
