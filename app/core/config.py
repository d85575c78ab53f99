import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Always load .env from the repo root (stable, regardless of CWD)
BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=BASE_DIR / ".env", override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv(
        "DATABASE_URL",
        "postgresql+psycopg://tq:tq@localhost:5433/tq",
    )
    env: str = os.getenv("ENV", "local")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # connection pool
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_pool_timeout_sec: float = float(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))

    # queue policy
    default_max_attempts: int = int(os.getenv("QUEUE_DEFAULT_MAX_ATTEMPTS", "3"))
    claim_max_batch: int = int(os.getenv("QUEUE_CLAIM_MAX_BATCH", "100"))
    enforce_max_attempts: bool = _env_bool("QUEUE_ENFORCE_MAX_ATTEMPTS", "1")

    # lease sweep
    lease_seconds: int = int(os.getenv("QUEUE_LEASE_SECONDS", "900"))
    lease_sweep_interval_sec: float = float(os.getenv("QUEUE_LEASE_SWEEP_INTERVAL_SEC", "60"))

    # worker loop
    worker_poll_interval_sec: float = float(os.getenv("WORKER_POLL_INTERVAL_SEC", "2"))
    worker_batch_size: int = int(os.getenv("WORKER_BATCH_SIZE", "1"))

    # celery (lease sweep schedule)
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL") or "redis://localhost:6379/0"
    celery_result_backend: str = os.getenv("CELERY_RESULT_BACKEND") or celery_broker_url


settings = Settings()
