import threading
from dataclasses import replace

import pytest
from sqlalchemy import update
from sqlalchemy.dialects import postgresql

from app.core.errors import InvalidArgument
from app.models.transcription_job import JobStatus, TranscriptionJob
from app.services.jobs import build_claim_statement
from app.services.queue import TranscriptionQueue


def _requeue(database, job_id):
    # stands in for an operator or external tool putting the job back
    with database.transaction() as db:
        db.execute(
            update(TranscriptionJob)
            .where(TranscriptionJob.id == job_id)
            .values(status=JobStatus.ENQUEUED)
        )


def test_claim_empty_queue_returns_empty_list(queue):
    assert queue.claim("w1", 10) == []


def test_claim_orders_by_priority_desc(queue):
    ids = {p: queue.enqueue(f"http://example.com/{p}", priority=p) for p in (1, 5, 3)}

    claimed = queue.claim("w1", 3)

    assert [j.priority for j in claimed] == [5, 3, 1]
    assert [j.id for j in claimed] == [ids[5], ids[3], ids[1]]


def test_claim_fifo_within_same_priority(queue):
    first = queue.enqueue("http://example.com/first", priority=2)
    second = queue.enqueue("http://example.com/second", priority=2)

    claimed = queue.claim("w1", 1)
    assert [j.id for j in claimed] == [first]

    claimed = queue.claim("w1", 1)
    assert [j.id for j in claimed] == [second]


def test_claim_stamps_worker_and_attempts(queue):
    job_id = queue.enqueue("http://example.com/a")

    [job] = queue.claim("worker-7", 5)

    assert job.id == job_id
    assert job.status == JobStatus.PROCESSING
    assert job.worker_id == "worker-7"
    assert job.attempts == 1
    assert job.started_at is not None
    assert job.updated_at >= job.created_at

    stored = queue.get(job_id)
    assert stored.status == JobStatus.PROCESSING
    assert stored.attempts == 1
    assert stored.worker_id == "worker-7"


def test_claim_returns_only_available_jobs(queue):
    queue.enqueue("http://example.com/a")
    queue.enqueue("http://example.com/b")

    assert len(queue.claim("w1", 10)) == 2
    assert queue.claim("w2", 10) == []


def test_attempts_increase_once_per_claim(queue, database):
    job_id = queue.enqueue("http://example.com/a")

    [job] = queue.claim("w1", 1)
    assert job.attempts == 1

    _requeue(database, job_id)

    [job] = queue.claim("w2", 1)
    assert job.attempts == 2
    assert job.worker_id == "w2"


def test_claim_skips_exhausted_jobs(queue, database):
    job_id = queue.enqueue("http://example.com/a", max_attempts=1)
    queue.claim("w1", 1)
    _requeue(database, job_id)

    assert queue.claim("w1", 1) == []


def test_claim_can_ignore_max_attempts(database, clock, settings):
    lenient = TranscriptionQueue(database, settings=replace(settings, enforce_max_attempts=False), clock=clock)
    job_id = lenient.enqueue("http://example.com/a", max_attempts=1)
    lenient.claim("w1", 1)
    _requeue(database, job_id)

    [job] = lenient.claim("w1", 1)
    assert job.attempts == 2


def test_claimed_jobs_are_not_reclaimed_by_others(queue):
    for i in range(4):
        queue.enqueue(f"http://example.com/{i}")

    a = {j.id for j in queue.claim("a", 2)}
    b = {j.id for j in queue.claim("b", 2)}

    assert len(a) == 2 and len(b) == 2
    assert a.isdisjoint(b)


def test_concurrent_claims_never_share_a_job(queue):
    total = 60
    for i in range(total):
        queue.enqueue(f"http://example.com/{i}", priority=(i % 4) + 1)

    results: dict[str, list] = {}
    errors: list[BaseException] = []
    start = threading.Barrier(6)

    def worker(name: str):
        got = []
        try:
            start.wait()
            while True:
                batch = queue.claim(name, 4)
                if not batch:
                    break
                got.extend(j.id for j in batch)
        except BaseException as e:  # surfaced by the assertion below
            errors.append(e)
        results[name] = got

    threads = [threading.Thread(target=worker, args=(f"w{n}",)) for n in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    claimed = [job_id for got in results.values() for job_id in got]
    assert len(claimed) == total
    assert len(set(claimed)) == total


@pytest.mark.parametrize("limit", [0, -1, 51, "3", None, True])
def test_claim_rejects_bad_limit(queue, limit):
    with pytest.raises(InvalidArgument):
        queue.claim("w1", limit)


@pytest.mark.parametrize("worker_id", ["", "   ", None, "x" * 129])
def test_claim_rejects_bad_worker_id(queue, worker_id):
    with pytest.raises(InvalidArgument):
        queue.claim(worker_id, 1)


def test_claim_statement_uses_skip_locked_on_postgres(clock):
    stmt = build_claim_statement("w1", 5, now=clock())
    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE SKIP LOCKED" in sql
    assert "ORDER BY transcription_jobs.priority DESC, transcription_jobs.created_at ASC" in sql
    assert "RETURNING" in sql
    assert "WITH eligible AS" in sql
