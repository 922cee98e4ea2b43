from __future__ import annotations

import logging
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .errors import TransientError

logger = logging.getLogger(__name__)

DATABASE_URL = f"sqlite:///{settings.sqlite_path}" if settings.storage_backend == "sqlite" else None
if settings.storage_backend != "sqlite":
    raise NotImplementedError("Only sqlite backend is implemented")

TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


def build_engine(url: str):
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit(db: Session) -> None:
    """Commit the unit of work, surfacing storage outages as ``TransientError``."""
    try:
        db.commit()
    except TRANSIENT_ERRORS as exc:
        db.rollback()
        logger.warning("Storage failure while committing: %s", exc)
        raise TransientError("The storage backend is temporarily unavailable; retry the request") from exc
