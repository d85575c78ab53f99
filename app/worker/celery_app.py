from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "transcription_queue",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.autodiscover_tasks(["app.worker"])

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    timezone="UTC",
    task_always_eager=settings.env == "test",
    beat_schedule={
        "release-expired-leases": {
            "task": "queue.release_expired_leases",
            "schedule": settings.lease_sweep_interval_sec,
        },
    },
)
