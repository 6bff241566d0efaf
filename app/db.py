"""Engine and session management for the ledger store."""
from __future__ import annotations

import threading
from collections.abc import Generator
from dataclasses import dataclass, field

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from fastapi import Request
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings
from app.models.base import Base

engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def _engine_kwargs(url: str) -> dict[str, object]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def init_engine() -> Engine:
    """Create the engine and session factory on first use."""

    global engine, SessionLocal
    if engine is None:
        url = get_settings().database_url
        engine = create_engine(url, echo=False, **_engine_kwargs(url))
        SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return engine


def get_engine() -> Engine:
    if engine is None:
        return init_engine()
    return engine


def get_sessionmaker() -> sessionmaker[Session]:
    if SessionLocal is None:
        init_engine()
    assert SessionLocal is not None
    return SessionLocal


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:
    """SQLite leaves foreign keys off unless asked."""

    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_all() -> None:
    Base.metadata.create_all(bind=get_engine())


def close_engine() -> None:
    """Dispose of the engine and reset the session factory."""

    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
        engine = None
        SessionLocal = None


@dataclass
class SessionHandoff:
    """Lets a worker thread that outlives its request close the request session."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    finished: bool = False
    abandoned: bool = False

    def worker_done(self, session: Session) -> None:
        with self.lock:
            self.finished = True
            if self.abandoned:
                session.close()

    def abandon(self) -> bool:
        """Hand the session to the worker; False if the worker already finished."""

        with self.lock:
            if self.finished:
                return False
            self.abandoned = True
            return True


def get_db(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""

    session = get_sessionmaker()()
    try:
        yield session
    finally:
        handoff = getattr(request.state, "session_handoff", None)
        if handoff is None or not handoff.abandoned:
            session.close()


__all__ = [
    "SessionLocal",
    "engine",
    "create_all",
    "SessionHandoff",
    "get_db",
    "get_engine",
    "get_sessionmaker",
    "init_engine",
    "close_engine",
]
