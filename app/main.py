from contextlib import asynccontextmanager

from fastapi import FastAPI
from pydantic import BaseModel
from sqlalchemy import text

from app.api.transcriptions import router as transcriptions_router
from app.core.errors import QueueError, queue_exception_handler
from app.core.logging import setup_logging
from app.db.session import Database
from app.services.queue import TranscriptionQueue


class HealthResponse(BaseModel):
    ok: bool
    service: str
    version: str
    db_ok: bool
    queue: dict[str, int] | None = None


def create_app(database: Database | None = None) -> FastAPI:
    """
    Build the API around one Database handle. When none is given the app opens
    one from settings at startup and disposes it at shutdown.
    """
    owns_database = database is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_handle = database or Database.from_settings()
        app.state.database = db_handle
        app.state.queue = TranscriptionQueue(db_handle)
        try:
            yield
        finally:
            if owns_database:
                db_handle.dispose()

    app = FastAPI(title="Transcription Queue API", version="0.1.0", lifespan=lifespan)
    app.include_router(transcriptions_router)
    app.add_exception_handler(QueueError, queue_exception_handler)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        db_ok = False
        counts = None
        try:
            with app.state.database.new_session() as db:
                db.execute(text("SELECT 1"))
            db_ok = True
            counts = {s.value: n for s, n in app.state.queue.count_by_status().items()}
        except Exception:
            db_ok = False

        return HealthResponse(ok=True, service="api", version=app.version, db_ok=db_ok, queue=counts)

    return app


setup_logging()
app = create_app()
