from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class QueueError(Exception):
    """Base exception for the transcription queue"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class NotFound(QueueError):
    """Raised when a job id does not exist"""
    status_code = status.HTTP_404_NOT_FOUND


class InvalidArgument(QueueError):
    """Raised when a caller breaks an operation's input contract"""
    status_code = status.HTTP_400_BAD_REQUEST


class StoreError(QueueError):
    """Raised when the job store fails to persist or read a row"""


class StoreUnavailable(StoreError):
    """Transient connectivity/transaction failure. The whole operation is safe to retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class StoreCorruption(StoreError):
    """A row came back in a shape the code does not understand. Do not retry."""


async def queue_exception_handler(request: Request, exc: QueueError):
    if exc.status_code >= 500:
        logger.error("Queue error on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )
