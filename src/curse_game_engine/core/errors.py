from __future__ import annotations


class CurseEngineError(Exception):
    pass


class InsufficientResourceError(CurseEngineError):
    def __init__(self, actor_id: str, required: int, available: int):
        super().__init__(f"{actor_id} needs {required}, has {available}")
        self.actor_id = actor_id
        self.required = required
        self.available = available


class PersistenceFailure(CurseEngineError):
    pass


class InvalidTimerDelayError(CurseEngineError):
    pass


class InvalidWeightTableError(CurseEngineError):
    pass


class ConfigError(CurseEngineError):
    pass
