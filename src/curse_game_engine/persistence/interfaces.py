from __future__ import annotations

from typing import Any, Protocol


class SnapshotStore(Protocol):
    """Whole-document storage; a save replaces the named document atomically."""

    def load_document(self, name: str) -> dict[str, Any] | None: ...
    def save_document(self, name: str, document: dict[str, Any]) -> None: ...


class SnapshotRepo(Protocol):
    def get(self, name: str): ...
    def put(self, name: str, payload_json: str): ...
    def list_names(self) -> list[str]: ...


class UnitOfWork(Protocol):
    snapshots: SnapshotRepo

    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
