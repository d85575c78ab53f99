from __future__ import annotations

import logging
import os
import socket
import threading
from collections.abc import Callable

from app.core.config import settings
from app.core.errors import QueueError, StoreUnavailable
from app.models.transcription_job import JobStatus
from app.schemas.job import JobRecord, TranscriptionOutcome
from app.services.queue import TranscriptionQueue

logger = logging.getLogger(__name__)

Handler = Callable[[JobRecord], TranscriptionOutcome]


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class WorkerLoop:
    """
    Poll the queue, hand each claimed job to `handler`, report the outcome.

    The handler does the actual transcription and either returns a
    TranscriptionOutcome or raises; the exception text becomes last_error.
    """

    def __init__(
        self,
        queue: TranscriptionQueue,
        handler: Handler,
        *,
        worker_id: str | None = None,
        batch_size: int | None = None,
        poll_interval: float | None = None,
    ):
        self.queue = queue
        self.handler = handler
        self.worker_id = worker_id or default_worker_id()
        self.batch_size = batch_size or settings.worker_batch_size
        self.poll_interval = settings.worker_poll_interval_sec if poll_interval is None else poll_interval
        self._stop = threading.Event()

    def _finalize(self, job: JobRecord, status: JobStatus, **fields) -> None:
        # a job left unfinalized is recovered by the lease sweep
        try:
            self.queue.finalize(job.id, status, **fields)
        except QueueError as e:
            logger.error("Worker %s could not finalize job %s as %s: %s", self.worker_id, job.id, status.value, e)

    def _process(self, job: JobRecord) -> None:
        try:
            outcome = TranscriptionOutcome.model_validate(self.handler(job))
        except Exception as e:
            logger.exception("Job %s attempt %d failed on %s", job.id, job.attempts, self.worker_id)
            self._finalize(job, JobStatus.FAILED, error=str(e) or e.__class__.__name__)
            return

        self._finalize(
            job,
            JobStatus.SUCCEEDED,
            transcript=outcome.transcript,
            transcript_format=outcome.transcript_format,
            duration_seconds=outcome.duration_seconds,
            size_bytes=outcome.size_bytes,
        )

    def run_once(self) -> int:
        """Claim one batch and process it. Returns how many jobs were handled."""
        jobs = self.queue.claim(self.worker_id, self.batch_size)
        for job in jobs:
            self._process(job)
        return len(jobs)

    def run_forever(self) -> None:
        logger.info("Worker %s polling (batch=%d, interval=%.1fs)", self.worker_id, self.batch_size, self.poll_interval)
        while not self._stop.is_set():
            try:
                handled = self.run_once()
            except StoreUnavailable as e:
                logger.warning("Worker %s: claim failed, retrying: %s", self.worker_id, e)
                handled = 0
            if handled == 0:
                self._stop.wait(self.poll_interval)
        logger.info("Worker %s stopped", self.worker_id)

    def stop(self) -> None:
        self._stop.set()
