"""
FastAPI dependencies that hand out the long-lived services

The services are built once in the application lifespan and stored on
``app.state``; tests replace these functions through
``app.dependency_overrides``.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request

from tracking.common.logger import get_logger
from tracking.ingestion.application_service import ApplicationService
from tracking.ingestion.event_service import EventService

logger = get_logger(__name__)

DISCONNECT_POLL_SECONDS = 0.1


def get_event_service(request: Request) -> EventService:
    return request.app.state.event_service


def get_application_service(request: Request) -> ApplicationService:
    return request.app.state.application_service


@asynccontextmanager
async def watch_disconnect(
    request: Request,
    poll_interval: float = DISCONNECT_POLL_SECONDS,
) -> AsyncIterator[asyncio.Event]:
    """Yield an event that gets set once the client goes away.

    A background task polls ``request.is_disconnected()`` for as long
    as the block runs and is cancelled on exit.

    Usage:
        async with watch_disconnect(request) as cancelled:
            await service.create_event_log(..., cancelled=cancelled)
    """
    cancelled = asyncio.Event()

    async def poll() -> None:
        while not await request.is_disconnected():
            await asyncio.sleep(poll_interval)
        logger.info("Client disconnected", path=request.url.path)
        cancelled.set()

    watcher = asyncio.create_task(poll())
    try:
        yield cancelled
    finally:
        watcher.cancel()
