from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import SnapshotDocument


class SnapshotRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, name: str) -> SnapshotDocument | None:
        return self.session.get(SnapshotDocument, name)

    def put(self, name: str, payload_json: str) -> SnapshotDocument:
        row = self.get(name)
        if row is None:
            row = SnapshotDocument(name=name, payload_json=payload_json, revision=1)
            self.session.add(row)
        else:
            row.payload_json = payload_json
            row.revision += 1
        self.session.flush()
        return row

    def list_names(self) -> list[str]:
        stmt = select(SnapshotDocument.name).order_by(SnapshotDocument.name.asc())
        return list(self.session.execute(stmt).scalars().all())
