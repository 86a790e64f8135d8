import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from app.settings import settings
from app.api.errors import register_exception_handlers
from app.api.v1.jobs import router as jobs_router
from app.api.v1.notifications import router as notifications_router
from app.api.v1.metrics import router as metrics_router
from app.db.session import AsyncSessionLocal, Base, engine
from app.db.store import SqlJobStore
from app.services.bootstrap import Services, build_services
from app.utils.logging import setup_logging

logger = logging.getLogger(__name__)

async def create_tables(attempts: int = 10, delay: float = 2.0) -> None:
    # Retry while the database container is still coming up
    for i in range(attempts):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ready")
            return
        except (SQLAlchemyError, OSError) as e:
            if i == attempts - 1:
                raise
            logger.warning(f"Database not ready, retrying in {delay}s... ({i+1}/{attempts}): {e}")
            await asyncio.sleep(delay)

def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Builds the API. With `services` given (tests), the app uses them as-is and
    the lifespan neither touches the database nor starts the worker.
    """
    owns_services = services is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not owns_services:
            yield
            return

        if settings.AUTO_CREATE_TABLES:
            await create_tables()

        runtime = app.state.services.runtime
        if settings.WORKER_ENABLED:
            await runtime.start()

        yield

        # Shutdown
        if runtime.running:
            await runtime.stop(drain_timeout=settings.WORKER_DRAIN_TIMEOUT_SECONDS)
        sent = await app.state.services.notifications.flush_all()
        if sent:
            logger.info(f"Flushed {sent} buffered notification(s) on shutdown")
        close = getattr(app.state.services.directory, "close", None)
        if close:
            await close()
        await engine.dispose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        lifespan=lifespan
    )
    app.state.services = services or build_services(SqlJobStore(AsyncSessionLocal), settings)

    register_exception_handlers(app)

    app.include_router(jobs_router, prefix="/api/v1/jobs", tags=["jobs"])
    app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["notifications"])
    app.include_router(metrics_router, tags=["metrics"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app

setup_logging(settings.LOG_LEVEL)
app = create_app()
