from .db import build_engine, build_session_factory, create_schema, sqlite_url
from .store import SQLAlchemySnapshotStore
from .uow import SQLAlchemyUnitOfWork

__all__ = [
    "build_engine",
    "build_session_factory",
    "create_schema",
    "sqlite_url",
    "SQLAlchemySnapshotStore",
    "SQLAlchemyUnitOfWork",
]
