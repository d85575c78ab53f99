from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta

from pydantic import ValidationError
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import Settings, settings as default_settings
from app.core.errors import InvalidArgument, NotFound, StoreCorruption, StoreError, StoreUnavailable
from app.db.session import Database
from app.models.transcription_job import JobStatus
from app.schemas.job import JobRecord, LeaseSweepResult
from app.services import jobs as store

logger = logging.getLogger(__name__)

WORKER_ID_MAX_LEN = 128


def _positive_int(name: str, value) -> int:
    # bool is an int subclass; True is not a priority
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidArgument(f"{name} must be a positive integer, got {value!r}")
    return value


def _terminal_status(value) -> JobStatus:
    try:
        status = JobStatus(value)
    except ValueError:
        raise InvalidArgument(f"unknown job status {value!r}") from None
    if not status.is_terminal:
        raise InvalidArgument(f"finalize needs a terminal status (succeeded|failed), got {status.value!r}")
    return status


def _as_uuid(value, name: str = "job_id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise InvalidArgument(f"{name} is not a valid UUID: {value!r}") from None


def _to_record(row) -> JobRecord:
    try:
        return JobRecord.model_validate(row)
    except ValidationError as e:
        raise StoreCorruption(f"unexpected transcription_jobs row shape: {e}") from e


class TranscriptionQueue:
    """
    enqueue / claim / get / finalize over the transcription_jobs table.

    Each call is one transaction on a session drawn from `database`; nothing
    else is shared between callers, so any number of threads or processes
    may use queues backed by the same store.
    """

    def __init__(
        self,
        database: Database,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.database = database
        self.settings = settings or default_settings
        # None: created_at comes from the database clock, so arrival order holds across producer hosts
        self.clock = clock

    def _now(self) -> datetime:
        return self.clock() if self.clock is not None else utcnow()

    @contextmanager
    def _transaction(self, op: str) -> Iterator[Session]:
        """Run one unit of work, translating SQLAlchemy failures into StoreError kinds."""
        try:
            with self.database.transaction() as db:
                yield db
        except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError, sa_exc.DisconnectionError) as e:
            logger.warning("%s: store unavailable: %s", op, e)
            raise StoreUnavailable(f"{op}: job store unavailable") from e
        except (sa_exc.ProgrammingError, sa_exc.NoSuchColumnError) as e:
            logger.error("%s: schema mismatch: %s", op, e)
            raise StoreCorruption(f"{op}: unexpected job store schema") from e
        except sa_exc.DBAPIError as e:
            if e.connection_invalidated:
                logger.warning("%s: connection lost: %s", op, e)
                raise StoreUnavailable(f"{op}: job store connection lost") from e
            logger.error("%s: store error: %s", op, e)
            raise StoreError(f"{op}: job store error") from e
        except sa_exc.SQLAlchemyError as e:
            logger.error("%s: store error: %s", op, e)
            raise StoreError(f"{op}: job store error") from e

    def enqueue(
        self,
        source_url: str,
        priority: int = 1,
        submitter_id: uuid.UUID | None = None,
        max_attempts: int | None = None,
    ) -> uuid.UUID:
        if not isinstance(source_url, str) or not source_url.strip():
            raise InvalidArgument("source_url is required")
        priority = _positive_int("priority", priority)
        if max_attempts is None:
            max_attempts = self.settings.default_max_attempts
        max_attempts = _positive_int("max_attempts", max_attempts)
        if submitter_id is not None:
            submitter_id = _as_uuid(submitter_id, "submitter_id")

        with self._transaction("enqueue") as db:
            job = store.insert_job(
                db,
                source_url=source_url.strip(),
                priority=priority,
                max_attempts=max_attempts,
                submitter_id=submitter_id,
                now=self.clock() if self.clock is not None else None,
            )
            job_id = job.id

        logger.info("Enqueued job %s priority=%d submitter=%s", job_id, priority, submitter_id)
        return job_id

    def claim(self, worker_id: str, limit: int = 1) -> list[JobRecord]:
        if not isinstance(worker_id, str) or not worker_id.strip():
            raise InvalidArgument("worker_id is required")
        if len(worker_id) > WORKER_ID_MAX_LEN:
            raise InvalidArgument(f"worker_id longer than {WORKER_ID_MAX_LEN} characters")
        limit = _positive_int("limit", limit)
        if limit > self.settings.claim_max_batch:
            raise InvalidArgument(f"limit must be <= {self.settings.claim_max_batch}, got {limit}")

        with self._transaction("claim") as db:
            rows = store.claim_jobs(
                db,
                worker_id,
                limit,
                now=self._now(),
                enforce_max_attempts=self.settings.enforce_max_attempts,
            )
            claimed = [_to_record(r) for r in rows]

        if claimed:
            logger.info("Worker %s claimed %d job(s): %s", worker_id, len(claimed), [str(j.id) for j in claimed])
        return claimed

    def get(self, job_id: uuid.UUID) -> JobRecord | None:
        job_id = _as_uuid(job_id)
        with self._transaction("get") as db:
            row = store.get_job(db, job_id)
            return _to_record(row) if row is not None else None

    def finalize(
        self,
        job_id: uuid.UUID,
        status: JobStatus | str,
        transcript: str | None = None,
        transcript_format: str | None = None,
        error: str | None = None,
        duration_seconds: int | None = None,
        size_bytes: int | None = None,
    ) -> None:
        job_id = _as_uuid(job_id)
        status = _terminal_status(status)

        with self._transaction("finalize") as db:
            matched = store.finalize_job(
                db,
                job_id,
                status,
                now=self._now(),
                transcript=transcript,
                transcript_format=transcript_format,
                last_error=error,
                duration_seconds=duration_seconds,
                size_bytes=size_bytes,
            )
        if matched == 0:
            raise NotFound(f"transcription job {job_id} not found")

        if status == JobStatus.FAILED:
            logger.info("Job %s failed: %s", job_id, error)
        else:
            logger.info("Job %s succeeded", job_id)

    def list_jobs(
        self,
        *,
        submitter_id: uuid.UUID | None = None,
        status: JobStatus | str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[JobRecord]:
        if submitter_id is not None:
            submitter_id = _as_uuid(submitter_id, "submitter_id")
        if status is not None:
            try:
                status = JobStatus(status)
            except ValueError:
                raise InvalidArgument(f"unknown job status {status!r}") from None
        limit = _positive_int("limit", limit)
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise InvalidArgument(f"offset must be a non-negative integer, got {offset!r}")

        with self._transaction("list_jobs") as db:
            rows = store.list_jobs(db, submitter_id=submitter_id, status=status, limit=limit, offset=offset)
            return [_to_record(r) for r in rows]

    def count_by_status(self) -> dict[JobStatus, int]:
        with self._transaction("count_by_status") as db:
            return store.count_by_status(db)

    def release_expired(self, lease_seconds: int | None = None) -> LeaseSweepResult:
        """
        Return abandoned processing jobs to the queue, or fail them when their
        attempts are used up. A job is abandoned once its claim is older than
        `lease_seconds`.
        """
        if lease_seconds is None:
            lease_seconds = self.settings.lease_seconds
        lease_seconds = _positive_int("lease_seconds", lease_seconds)

        now = self._now()
        with self._transaction("release_expired") as db:
            requeued, failed = store.expire_leases(db, cutoff=now - timedelta(seconds=lease_seconds), now=now)

        if requeued or failed:
            logger.warning(
                "Lease sweep: requeued=%s failed=%s",
                [str(i) for i in requeued],
                [str(i) for i in failed],
            )
        return LeaseSweepResult(requeued=requeued, failed=failed)
