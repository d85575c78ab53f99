import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from app.models.transcription_job import JobStatus
from app.schemas.job import JobRecord
from app.services.queue import TranscriptionQueue

router = APIRouter(prefix="/transcriptions", tags=["transcriptions"])


def get_queue(request: Request) -> TranscriptionQueue:
    return request.app.state.queue


class EnqueueRequest(BaseModel):
    source_url: str
    priority: int = 1
    submitter_id: uuid.UUID | None = None
    max_attempts: int | None = None


class EnqueueResponse(BaseModel):
    ok: bool
    job_id: uuid.UUID


class JobResponse(BaseModel):
    ok: bool
    job: JobRecord


class JobListResponse(BaseModel):
    ok: bool
    limit: int
    offset: int
    jobs: list[JobRecord]


@router.post("", response_model=EnqueueResponse)
def enqueue_transcription(req: EnqueueRequest, queue: TranscriptionQueue = Depends(get_queue)) -> EnqueueResponse:
    job_id = queue.enqueue(
        req.source_url,
        priority=req.priority,
        submitter_id=req.submitter_id,
        max_attempts=req.max_attempts,
    )
    return EnqueueResponse(ok=True, job_id=job_id)


@router.get("", response_model=JobListResponse)
def list_transcriptions(
    queue: TranscriptionQueue = Depends(get_queue),
    submitter_id: uuid.UUID | None = Query(default=None),
    status: JobStatus | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> JobListResponse:
    jobs = queue.list_jobs(submitter_id=submitter_id, status=status, limit=limit, offset=offset)
    return JobListResponse(ok=True, limit=limit, offset=offset, jobs=jobs)


@router.get("/{job_id}", response_model=JobResponse)
def get_transcription(job_id: uuid.UUID, queue: TranscriptionQueue = Depends(get_queue)) -> JobResponse:
    job = queue.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Transcription job not found")
    return JobResponse(ok=True, job=job)
