"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from fortyfive.api.errors import register_error_handlers
from fortyfive.api.routes import billing, generation, me, templates
from fortyfive.core import timezone  # noqa: F401
from fortyfive.core.config import Settings, configure_logging
from fortyfive.core.database import create_tables, dispose, setup_db_session
from fortyfive.core.timezone import utcnow
from fortyfive.services.content_safety import MockContentSafetyChecker
from fortyfive.services.exceptions import ShutdownTimeout
from fortyfive.services.generation import GenerationService
from fortyfive.services.image_generation.provider import create_image_provider
from fortyfive.uow import create_uow_factory
from fortyfive.workers.job_queue import JobQueue
from fortyfive.workers.pipeline import GenerationPipeline
from fortyfive.workers.pool import WorkerPool

logger = structlog.get_logger()

INTERRUPTED_ERROR = "Generation interrupted by server restart"
SHUTDOWN_ERROR = "Generation not started before server shutdown"


async def start_services(app: FastAPI, settings: Settings) -> None:
    """Build the database, queue, worker pool and services and store them on app.state.

    Jobs live only in memory, so records left pending or processing by a
    previous process can never finish; they are marked failed before the
    workers start.
    """
    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    await create_tables(session_factory)

    uow_factory = create_uow_factory(session_factory)

    async with await uow_factory() as uow:
        interrupted = await uow.generations.fail_unfinished(INTERRUPTED_ERROR)
    if interrupted:
        logger.warning("startup.interrupted_jobs_failed", count=interrupted)

    queue = JobQueue(capacity=settings.queue_capacity)
    provider = create_image_provider(settings)
    pipeline = GenerationPipeline(
        uow_factory, provider, generation_timeout=settings.generation_timeout_seconds
    )
    pool = WorkerPool(
        queue,
        pipeline,
        size=settings.worker_count,
        shutdown_timeout=settings.shutdown_timeout_seconds,
    )
    pool.start()

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.job_queue = queue
    app.state.worker_pool = pool
    app.state.generation_service = GenerationService(
        uow_factory=uow_factory,
        queue=queue,
        provider=provider,
        safety_checker=MockContentSafetyChecker(),
        max_image_bytes=settings.max_image_bytes,
        generation_timeout=settings.generation_timeout_seconds,
    )


async def stop_services(app: FastAPI) -> None:
    """Stop the worker pool, then close database connections."""
    try:
        undelivered = await app.state.worker_pool.shutdown()
        if undelivered:
            logger.warning("shutdown.jobs_not_delivered", count=undelivered)
            await _fail_undelivered(app)
    except ShutdownTimeout as e:
        logger.error(
            "shutdown.workers_timeout",
            timeout=e.timeout,
            still_running=e.still_running,
        )

    await dispose(app.state.session_factory)


async def _fail_undelivered(app: FastAPI) -> None:
    jobs = app.state.job_queue.drain()
    try:
        async with await app.state.uow_factory() as uow:
            for job in jobs:
                await uow.generations.update_with_error(job.job_id, SHUTDOWN_ERROR, utcnow())
    except Exception as e:
        # Startup recovery marks them failed on the next start instead
        logger.error(
            "shutdown.undelivered_write_failed",
            count=len(jobs),
            error=str(e),
            error_type=type(e).__name__,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, create tables, fail interrupted jobs, start workers
    - Shutdown: Drain workers (bounded by SHUTDOWN_TIMEOUT_SECONDS), close database connections
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    await start_services(app, settings)
    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        image_provider=settings.image_provider,
        worker_count=settings.worker_count,
        queue_capacity=settings.queue_capacity,
    )

    yield

    logger.info("application.shutdown")
    await stop_services(app)


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="45AI Backend API",
        description="Portrait style generation with credit billing",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(generation.router)
    app.include_router(templates.router)
    app.include_router(me.router)
    app.include_router(billing.router)

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
