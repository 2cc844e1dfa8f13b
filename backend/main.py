"""
FastAPI application entry point for Picstash

Builds the application container, registers job handlers and routers, and
starts/stops the background job worker with the app lifespan.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from picstash.api.v1 import api_router
from picstash.container import build_container
from picstash.core.config import settings
from picstash.core.logging_config import get_logger, setup_logging
from picstash.core.metrics import get_content_type, get_metrics, init_metrics, set_vector_store_size
from picstash.middleware import RequestLoggingMiddleware
from picstash.workers import register_default_handlers

# Application version
APP_VERSION = "0.1.0"

setup_logging(app_version=APP_VERSION)
logger = get_logger(__name__)

init_metrics(version=APP_VERSION)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: build (or reuse a preset) container, create tables, settle
      interrupted jobs, load the embedding model, start the job worker
    - Shutdown: drain the job worker, then release the container
    """
    logger.info(
        "Application starting",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "log_level": settings.LOG_LEVEL,
            "debug_mode": settings.DEBUG,
        }
    )

    container = getattr(app.state, "container", None)
    owns_container = container is None
    if owns_container:
        container = build_container(settings)
        app.state.container = container

    container.initialize()
    set_vector_store_size(container.vector_store.count())
    job_types = register_default_handlers(container)

    if container.settings.JOB_WORKER_ENABLED:
        container.job_worker.start()
    else:
        logger.info(
            "Job worker disabled",
            extra={"event_type": "job_worker_disabled", "job_types": job_types}
        )

    logger.info(
        "Application startup complete",
        extra={"event_type": "app_startup_complete", "job_types": job_types}
    )

    yield

    logger.info("Application shutting down", extra={"event_type": "app_shutdown"})

    if container.job_worker.is_running:
        timed_out = await container.job_worker.stop()
        if timed_out:
            logger.warning(
                "Shutting down with a job still running",
                extra={"event_type": "app_shutdown_job_abandoned"}
            )

    if owns_container:
        container.close()
        app.state.container = None

    logger.info(
        "Application shutdown complete",
        extra={"event_type": "app_shutdown_complete", "version": APP_VERSION}
    )


# Create FastAPI app
app = FastAPI(
    title="Picstash API",
    description="API for image similarity search, duplicate detection, recommendations and background jobs",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    """Root endpoint - API status check"""
    return {
        "name": "Picstash API",
        "version": APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint"""
    container = getattr(request.app.state, "container", None)
    if container is None:
        return {"status": "starting"}
    return {
        "status": "healthy",
        "job_worker_running": container.job_worker.is_running,
        "job_types": container.job_worker.get_registered_types(),
        "vector_count": container.vector_store.count(),
    }


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=get_metrics(),
        media_type=get_content_type()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
