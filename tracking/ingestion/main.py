"""Main FastAPI application for the tracking service.

This module creates and configures the FastAPI app. Process-wide
resources (database engine, snowflake node, Kafka producer) are built
once in the lifespan, injected into the services, and released on
shutdown.
"""
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tracking import __version__
from tracking.common.config import Settings, get_settings
from tracking.common.errors import TrackingError
from tracking.common.logger import clear_request_context, get_logger, setup_logging
from tracking.common.retry import RetryConfig
from tracking.common.snowflake import SnowflakeGenerator
from tracking.db.database import create_engine, create_session_factory
from tracking.db.repositories import (
    ApplicationRepository,
    EventRepository,
    PlatformRepository,
)
from tracking.ingestion.application_service import ApplicationService
from tracking.ingestion.auth import AuthenticationError
from tracking.ingestion.event_service import EventService
from tracking.ingestion.kafka_producer import ProducerFactory
from tracking.ingestion.routes import router

logger = get_logger(__name__)


def build_services(app: FastAPI, settings: Settings) -> None:
    """Create the long-lived resources and services and attach them to ``app.state``."""
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    ids = SnowflakeGenerator(node_id=settings.snowflake_node_id)
    producer = ProducerFactory.create_producer(settings)

    event_repo = EventRepository(session_factory)
    app_repo = ApplicationRepository(session_factory)
    platform_repo = PlatformRepository(session_factory)

    app.state.engine = engine
    app.state.producer = producer
    app.state.event_service = EventService(
        ids=ids,
        event_repo=event_repo,
        app_repo=app_repo,
        platform_repo=platform_repo,
        producer=producer,
        retry_config=RetryConfig(
            max_attempts=settings.publish_max_attempts,
            backoff=settings.publish_backoff_seconds,
        ),
    )
    app.state.application_service = ApplicationService(
        ids=ids,
        app_repo=app_repo,
        platform_repo=platform_repo,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager.

    Startup:
    - Configure logging
    - Build engine, producer and services

    Shutdown:
    - Close the Kafka producer (flushes pending messages)
    - Dispose the connection pool
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Tracking service starting",
        environment=settings.environment,
        log_level=settings.log_level,
    )

    build_services(app, settings)

    yield  # Application runs here

    logger.info("Tracking service shutting down")
    await app.state.producer.close()
    await app.state.engine.dispose()
    logger.info("Tracking service stopped")


app = FastAPI(
    title="Tracking Service",
    description="Multi-tenant event tracking: events, sessions and event log ingestion",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


# Exception handlers

@app.exception_handler(TrackingError)
async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    """Map service errors to their HTTP status."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        path=request.url.path,
        error=exc.code,
        detail=exc.detail,
    )

    # Internal details stay in the logs
    detail = exc.detail if exc.status_code < 500 else "internal error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": detail},
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    logger.warning(
        "Authentication failed",
        path=request.url.path,
        error=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "unauthorized", "detail": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(
        "Request validation failed",
        path=request.url.path,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "invalid_request", "detail": exc.errors()},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unexpected error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "detail": "internal error"},
    )


# Request logging middleware

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request."""
    clear_request_context()
    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        "HTTP request processed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration * 1000, 2),
    )

    return response


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "tracking.ingestion.main:app",
        host=settings.http_host,
        port=settings.http_port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
