from .interfaces import SnapshotStore
from .store import EngineStore, JsonFileSnapshotStore, MemorySnapshotStore

__all__ = [
    "SnapshotStore",
    "EngineStore",
    "JsonFileSnapshotStore",
    "MemorySnapshotStore",
]
