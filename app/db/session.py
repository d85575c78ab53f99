from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, settings as default_settings


def _enable_sqlite_busy_timeout(engine: Engine) -> None:
    # Writers on one SQLite file queue on the database lock instead of failing fast.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA busy_timeout = 30000")
        cur.close()


class Database:
    """
    Process-wide handle on the connection pool.

    Open one at startup, hand it to whatever needs the store, and call
    dispose() at shutdown.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, *, pool_size: int = 5, pool_timeout: float = 30.0) -> "Database":
        if url.startswith("sqlite"):
            engine = create_engine(url, connect_args={"check_same_thread": False})
            _enable_sqlite_busy_timeout(engine)
        else:
            engine = create_engine(
                url,
                pool_size=pool_size,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
            )
        return cls(engine)

    @classmethod
    def from_settings(cls, s: Settings | None = None) -> "Database":
        s = s or default_settings
        return cls.from_url(s.database_url, pool_size=s.db_pool_size, pool_timeout=s.db_pool_timeout_sec)

    def new_session(self) -> Session:
        return self._sessions()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One session, one transaction: commit on success, roll back on any error."""
        with self._sessions() as db, db.begin():
            yield db

    def dispose(self) -> None:
        self.engine.dispose()
