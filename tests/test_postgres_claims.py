"""
Claim races against a real PostgreSQL, where SKIP LOCKED is in play.

Set TEST_DATABASE_URL (e.g. postgresql+psycopg://tq:tq@localhost:5433/tq_test)
to run these; the tables are created and dropped around each test. CI sets it
against a postgres service container (.github/workflows/tests.yml).
"""
import os
import threading

import pytest
from sqlalchemy import select

from app.db.base import Base
from app.db.session import Database
from app.models.transcription_job import TranscriptionJob
from app.services.queue import TranscriptionQueue

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set")


@pytest.fixture
def pg_queue(settings, clock):
    db = Database.from_url(TEST_DATABASE_URL, pool_size=10)
    Base.metadata.drop_all(bind=db.engine)
    Base.metadata.create_all(bind=db.engine)
    try:
        yield TranscriptionQueue(db, settings=settings, clock=clock)
    finally:
        Base.metadata.drop_all(bind=db.engine)
        db.dispose()


def test_priority_then_fifo(pg_queue):
    low = pg_queue.enqueue("http://a", priority=1)
    high = pg_queue.enqueue("http://b", priority=5)
    mid = pg_queue.enqueue("http://c", priority=3)

    assert [j.id for j in pg_queue.claim("w1", 3)] == [high, mid, low]


def test_parallel_claimers_split_the_queue(pg_queue):
    total = 200
    for i in range(total):
        pg_queue.enqueue(f"http://example.com/{i}", priority=(i % 5) + 1)

    results: dict[str, list] = {}
    start = threading.Barrier(8)

    def worker(name: str):
        got = []
        start.wait()
        while batch := pg_queue.claim(name, 5):
            got.extend(j.id for j in batch)
        results[name] = got

    threads = [threading.Thread(target=worker, args=(f"w{n}",)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)

    claimed = [job_id for got in results.values() for job_id in got]
    assert len(claimed) == total
    assert len(set(claimed)) == total


def test_claim_skips_rows_locked_by_another_transaction(pg_queue):
    first = pg_queue.enqueue("http://a", priority=5)
    second = pg_queue.enqueue("http://b", priority=1)

    with pg_queue.database.transaction() as other:
        other.execute(select(TranscriptionJob).where(TranscriptionJob.id == first).with_for_update())

        assert [j.id for j in pg_queue.claim("w1", 2)] == [second]

    assert [j.id for j in pg_queue.claim("w2", 2)] == [first]
