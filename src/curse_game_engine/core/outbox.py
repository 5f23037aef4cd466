from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Iterable

from .ports import PlatformPort
from .types import (
    APPLY_IDENTITY_MARKER,
    GRANT_ROLE,
    RESTORE_IDENTITY,
    REVOKE_ROLE,
    SEND_NOTIFICATION,
    TOGGLE_TIMEOUT,
    PlatformRequest,
)

logger = logging.getLogger(__name__)


class PlatformOutbox:
    """In-memory queue of platform side effects, filled after state is saved."""

    def __init__(self) -> None:
        self._pending: deque[PlatformRequest] = deque()
        self._listeners: list[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def emit(self, request: PlatformRequest) -> None:
        self._pending.append(request)
        for listener in self._listeners:
            listener()

    def extend(self, requests: Iterable[PlatformRequest]) -> None:
        for request in requests:
            self.emit(request)

    def drain(self) -> list[PlatformRequest]:
        out = list(self._pending)
        self._pending.clear()
        return out

    def __len__(self) -> int:
        return len(self._pending)


class PlatformRelay:
    def __init__(self, outbox: PlatformOutbox, port: PlatformPort | None = None):
        self._outbox = outbox
        self._port = port
        self._task: asyncio.Task | None = None
        if port is not None:
            outbox.subscribe(self.kick)

    async def flush(self) -> int:
        """Deliver every queued request; returns how many were delivered.

        Requests emitted while earlier ones are being delivered are picked
        up before returning. Delivery failures are logged and dropped; engine
        state is never rolled back because the platform side failed.
        """
        if self._port is None:
            self._outbox.drain()
            return 0
        delivered = 0
        while len(self._outbox):
            for request in self._outbox.drain():
                try:
                    await self._dispatch(request)
                    delivered += 1
                except Exception as exc:
                    logger.warning(
                        "Platform request %s for %s failed: %s",
                        request.kind,
                        request.subject_id,
                        exc,
                    )
        return delivered

    def kick(self) -> None:
        """Schedule a flush on the running loop, if there is one."""
        if self._port is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._task is not None and not self._task.done():
            return
        self._task = loop.create_task(self.flush())

    async def _dispatch(self, request: PlatformRequest) -> None:
        port = self._port
        assert port is not None
        payload: dict[str, Any] = request.payload
        subject = request.subject_id
        if request.kind == APPLY_IDENTITY_MARKER:
            await port.apply_identity_marker(subject, str(payload.get("marker") or ""))
        elif request.kind == RESTORE_IDENTITY:
            await port.restore_identity(subject)
        elif request.kind == SEND_NOTIFICATION:
            event = str(payload.get("event") or "notice")
            await port.send_notification(subject, event, payload)
        elif request.kind == GRANT_ROLE:
            await port.grant_role(subject, str(payload["role_id"]))
        elif request.kind == REVOKE_ROLE:
            await port.revoke_role(subject, str(payload["role_id"]))
        elif request.kind == TOGGLE_TIMEOUT:
            await port.toggle_timeout(subject, int(payload.get("duration_ms") or 0))
        else:
            logger.warning("Unknown platform request kind %s", request.kind)
