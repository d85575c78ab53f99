from app.db.session import Database
from app.services.queue import TranscriptionQueue
from app.worker.celery_app import celery_app


@celery_app.task(name="queue.release_expired_leases")
def release_expired_leases(lease_seconds: int | None = None) -> dict:
    database = Database.from_settings()
    try:
        result = TranscriptionQueue(database).release_expired(lease_seconds)
        return {
            "ok": True,
            "requeued": [str(i) for i in result.requeued],
            "failed": [str(i) for i in result.failed],
        }
    finally:
        database.dispose()
