from app.models.transcription_job import JobStatus, TranscriptionJob

__all__ = ["JobStatus", "TranscriptionJob"]
