import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.models.transcription_job import JobStatus


class JobRecord(BaseModel):
    """Immutable snapshot of one transcription_jobs row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    submitter_id: uuid.UUID | None
    source_url: str
    status: JobStatus
    priority: int
    attempts: int
    max_attempts: int
    worker_id: str | None
    started_at: datetime | None
    finished_at: datetime | None
    last_error: str | None
    transcript: str | None
    transcript_format: str | None
    duration_seconds: int | None
    size_bytes: int | None
    created_at: datetime
    updated_at: datetime


class TranscriptionOutcome(BaseModel):
    """What a worker handler reports for a successfully transcribed job."""

    transcript: str
    transcript_format: str = "text"
    duration_seconds: int | None = None
    size_bytes: int | None = None


class LeaseSweepResult(BaseModel):
    requeued: list[uuid.UUID] = []
    failed: list[uuid.UUID] = []
