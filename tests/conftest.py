import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("ENV", "test")

from app.core.config import Settings  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import Database  # noqa: E402
from app.models import TranscriptionJob  # noqa: F401,E402
from app.services.queue import TranscriptionQueue  # noqa: E402


class FakeClock:
    """Strictly increasing UTC clock; each read moves forward one millisecond."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2020, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def database(tmp_path):
    """A fresh file-backed SQLite store per test (file, so threads share it)."""
    db = Database.from_url(f"sqlite:///{tmp_path / 'queue.db'}")
    Base.metadata.create_all(bind=db.engine)
    try:
        yield db
    finally:
        db.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        default_max_attempts=3,
        claim_max_batch=50,
        enforce_max_attempts=True,
        lease_seconds=600,
    )


@pytest.fixture
def queue(database, settings, clock):
    return TranscriptionQueue(database, settings=settings, clock=clock)
