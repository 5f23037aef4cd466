from __future__ import annotations

from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from ...core.errors import PersistenceFailure
from ...core.normalize import dump_json, parse_json_dict
from ..interfaces import UnitOfWork


class SQLAlchemySnapshotStore:
    """Snapshot documents as rows; each save is its own transaction."""

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self._uow_factory = uow_factory

    def load_document(self, name: str) -> dict[str, Any] | None:
        try:
            with self._uow_factory() as uow:
                row = uow.snapshots.get(name)
                if row is None:
                    return None
                return parse_json_dict(row.payload_json)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"cannot load snapshot {name}: {exc}") from exc

    def save_document(self, name: str, document: dict[str, Any]) -> None:
        try:
            with self._uow_factory() as uow:
                uow.snapshots.put(name, dump_json(document))
                uow.commit()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"cannot save snapshot {name}: {exc}") from exc

    def names(self) -> list[str]:
        try:
            with self._uow_factory() as uow:
                return uow.snapshots.list_names()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"cannot list snapshots: {exc}") from exc
