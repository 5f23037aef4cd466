from __future__ import annotations

from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    max_delay_ms: int

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        ...


class PlatformPort(Protocol):
    async def apply_identity_marker(self, subject_id: str, marker: str) -> None:
        ...

    async def restore_identity(self, subject_id: str) -> None:
        ...

    async def send_notification(self, subject_id: str, event: str, payload: dict[str, Any]) -> None:
        ...

    async def grant_role(self, subject_id: str, role_id: str) -> None:
        ...

    async def revoke_role(self, subject_id: str, role_id: str) -> None:
        ...

    async def toggle_timeout(self, subject_id: str, duration_ms: int) -> None:
        ...
