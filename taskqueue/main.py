from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from taskqueue.config.logging import setup_logging
from taskqueue.config.settings import Settings, get_settings
from taskqueue.config.settings import settings as default_settings
from taskqueue.v1.core.exceptions import (
    RequestContextMiddleware,
    TaskQueueException,
    general_exception_handler,
    http_exception_handler,
    request_validation_exception_handler,
    task_queue_exception_handler,
)
from taskqueue.v1.core.registries import JobRegistry
from taskqueue.v1.healthz import router as health_router
from taskqueue.v1.jobs.registry_init import register_job_handlers
from taskqueue.v1.jobs.routes import router as jobs_router
from taskqueue.v1.jobs.service import JobOrchestrator


def create_app(
    settings: Settings | None = None, registry: JobRegistry | None = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    custom_settings = settings is not None
    settings = settings or default_settings

    # Initialize structured logging
    setup_logging(settings)

    registry = register_job_handlers(registry or JobRegistry(), settings)

    # Freeze registry in non-development environments to prevent runtime modifications
    if settings.environment != "development":
        registry.freeze()

    orchestrator = JobOrchestrator(settings, registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        orchestrator.start()
        try:
            yield
        finally:
            orchestrator.shutdown()

    # Create FastAPI app with API versioning from day 1
    app = FastAPI(
        title=settings.app_name,
        description="Asynchronous job queue with retries, backoff and compensation",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        # All endpoints will be under /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    if custom_settings:
        app.dependency_overrides[get_settings] = lambda: settings

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(TaskQueueException, task_queue_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    # Job state is in memory: run exactly one server process
    uvicorn.run(
        "taskqueue.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )
