"""
Row-level queries over transcription_jobs.

Every function takes the caller's Session and never commits; transaction
boundaries belong to the caller (see app.services.queue).
"""
from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import String, cast, func, select, update
from sqlalchemy.orm import Session

from app.core.errors import StoreCorruption
from app.models.transcription_job import JobStatus, TranscriptionJob

CLAIM_ORDER = (
    TranscriptionJob.priority.desc(),
    TranscriptionJob.created_at.asc(),
    TranscriptionJob.id.asc(),
)


@contextmanager
def _decoding_rows() -> Iterator[None]:
    # SQLAlchemy's Enum raises LookupError for a status value it does not know
    try:
        yield
    except LookupError as e:
        raise StoreCorruption(f"unexpected transcription_jobs row: {e}") from e


def _claim_sort_key(job: TranscriptionJob):
    return (-job.priority, job.created_at, job.id)


def insert_job(
    db: Session,
    *,
    source_url: str,
    priority: int,
    max_attempts: int,
    submitter_id: uuid.UUID | None,
    now: datetime | None,
) -> TranscriptionJob:
    """Insert an enqueued job. With `now=None` the database stamps created_at/updated_at."""
    job = TranscriptionJob(
        submitter_id=submitter_id,
        source_url=source_url,
        status=JobStatus.ENQUEUED,
        priority=priority,
        attempts=0,
        max_attempts=max_attempts,
    )
    if now is not None:
        job.created_at = now
        job.updated_at = now
    db.add(job)
    db.flush()
    return job


def get_job(db: Session, job_id: uuid.UUID) -> TranscriptionJob | None:
    with _decoding_rows():
        return db.get(TranscriptionJob, job_id)


def build_claim_statement(
    worker_id: str,
    limit: int,
    *,
    now: datetime,
    enforce_max_attempts: bool = True,
):
    """
    UPDATE that moves up to `limit` enqueued jobs to processing for `worker_id`.

    PostgreSQL renders:

        WITH eligible AS (
          SELECT id FROM transcription_jobs
          WHERE status = 'enqueued'
          ORDER BY priority DESC, created_at ASC, id ASC
          LIMIT :limit
          FOR UPDATE SKIP LOCKED
        )
        UPDATE transcription_jobs SET status = 'processing', ...
        WHERE id IN (SELECT id FROM eligible)
        RETURNING ...

    Rows another transaction has already locked are skipped, so concurrent
    claimers never see the same job and never wait on each other. SQLite
    drops the locking clause; there the statement is atomic because writers
    are serialised on the database lock.
    """
    eligible = select(TranscriptionJob.id).where(TranscriptionJob.status == JobStatus.ENQUEUED)
    if enforce_max_attempts:
        eligible = eligible.where(TranscriptionJob.attempts < TranscriptionJob.max_attempts)
    eligible = (
        eligible.order_by(*CLAIM_ORDER)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .cte("eligible")
    )

    stmt = (
        update(TranscriptionJob)
        .where(TranscriptionJob.id.in_(select(eligible.c.id)))
        .values(
            status=JobStatus.PROCESSING,
            worker_id=worker_id,
            started_at=now,
            attempts=TranscriptionJob.attempts + 1,
            updated_at=now,
        )
        .returning(TranscriptionJob)
        .execution_options(synchronize_session=False)
    )
    return stmt


def claim_jobs(
    db: Session,
    worker_id: str,
    limit: int,
    *,
    now: datetime,
    enforce_max_attempts: bool = True,
) -> list[TranscriptionJob]:
    stmt = build_claim_statement(worker_id, limit, now=now, enforce_max_attempts=enforce_max_attempts)
    # RETURNING order is unspecified
    with _decoding_rows():
        jobs = list(db.scalars(stmt))
    jobs.sort(key=_claim_sort_key)
    return jobs


def finalize_job(
    db: Session,
    job_id: uuid.UUID,
    status: JobStatus,
    *,
    now: datetime,
    transcript: str | None = None,
    transcript_format: str | None = None,
    last_error: str | None = None,
    duration_seconds: int | None = None,
    size_bytes: int | None = None,
) -> int:
    """Write the terminal fields. Returns the number of rows matched (0 or 1)."""
    if status == JobStatus.SUCCEEDED:
        last_error = None
    else:
        transcript = None
        transcript_format = None

    stmt = (
        update(TranscriptionJob)
        .where(TranscriptionJob.id == job_id)
        .values(
            status=status,
            transcript=transcript,
            transcript_format=transcript_format,
            last_error=last_error,
            finished_at=now,
            duration_seconds=duration_seconds,
            size_bytes=size_bytes,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount


def expire_leases(db: Session, *, cutoff: datetime, now: datetime) -> tuple[list[uuid.UUID], list[uuid.UUID]]:
    """
    Recover processing jobs whose claim started before `cutoff`.

    Jobs with attempts left go back to enqueued; exhausted ones fail.
    Both are conditional UPDATEs, so a row finalized concurrently no longer
    matches once its lock is released and is left alone.
    """
    stale = (
        (TranscriptionJob.status == JobStatus.PROCESSING)
        & (TranscriptionJob.started_at < cutoff)
    )

    requeued = db.scalars(
        update(TranscriptionJob)
        .where(stale, TranscriptionJob.attempts < TranscriptionJob.max_attempts)
        .values(status=JobStatus.ENQUEUED, updated_at=now)
        .returning(TranscriptionJob.id)
        .execution_options(synchronize_session=False)
    ).all()

    failed = db.scalars(
        update(TranscriptionJob)
        .where(stale, TranscriptionJob.attempts >= TranscriptionJob.max_attempts)
        .values(
            status=JobStatus.FAILED,
            last_error="lease expired after " + cast(TranscriptionJob.attempts, String) + " attempt(s)",
            finished_at=now,
            updated_at=now,
        )
        .returning(TranscriptionJob.id)
        .execution_options(synchronize_session=False)
    ).all()

    return list(requeued), list(failed)


def list_jobs(
    db: Session,
    *,
    submitter_id: uuid.UUID | None = None,
    status: JobStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[TranscriptionJob]:
    query = select(TranscriptionJob)
    if submitter_id is not None:
        query = query.where(TranscriptionJob.submitter_id == submitter_id)
    if status is not None:
        query = query.where(TranscriptionJob.status == status)
    query = query.order_by(TranscriptionJob.created_at.desc(), TranscriptionJob.id.asc()).offset(offset).limit(limit)
    with _decoding_rows():
        return list(db.scalars(query))


def count_by_status(db: Session) -> dict[JobStatus, int]:
    counts = {s: 0 for s in JobStatus}
    with _decoding_rows():
        rows = db.execute(
            select(TranscriptionJob.status, func.count()).group_by(TranscriptionJob.status)
        ).all()
    for status, n in rows:
        counts[status] = n
    return counts
