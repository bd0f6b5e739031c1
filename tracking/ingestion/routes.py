"""API routes for the tenant-facing tracking service.

Every route under ``/tenant`` is authenticated with an application API
key. The application id always comes from the key, never from the body.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request, Response, status

from tracking import __version__
from tracking.common.config import get_settings
from tracking.common.models import (
    ApplicationOut,
    CreateEventFieldRequest,
    CreateEventLogRequest,
    CreateEventRequest,
    CreateSessionRequest,
    DataResponse,
    EventFieldOut,
    EventLogOut,
    EventOut,
    PlatformOut,
    SessionOut,
    TenantContext,
    UpdateEventFieldRequest,
    UpdateEventRequest,
    UpdateSessionRequest,
)
from tracking.ingestion.application_service import ApplicationService
from tracking.ingestion.auth import verify_api_key
from tracking.ingestion.dependencies import (
    get_application_service,
    get_event_service,
    watch_disconnect,
)
from tracking.ingestion.event_service import EventService

router = APIRouter()
tenant_router = APIRouter(prefix="/tenant", tags=["tenant"])


@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    response_model=Dict[str, Any],
    summary="Health check",
)
async def health_check() -> Dict[str, Any]:
    """Health check endpoint. No authentication required."""
    return {
        "status": "healthy",
        "service": get_settings().service_name,
        "version": __version__,
    }


# Platforms and profile

@tenant_router.get("/platforms", response_model=DataResponse[List[PlatformOut]])
async def list_platforms(
    tenant: TenantContext = Depends(verify_api_key),
    service: ApplicationService = Depends(get_application_service),
):
    platforms = await service.list_platforms()
    return {"data": [PlatformOut.model_validate(p) for p in platforms]}


@tenant_router.get("/profile", response_model=DataResponse[ApplicationOut])
async def get_profile(
    tenant: TenantContext = Depends(verify_api_key),
    service: ApplicationService = Depends(get_application_service),
):
    application = await service.get_application(tenant.tenant_id, tenant.application_id)
    return {"data": ApplicationOut.model_validate(application)}


# Events

@tenant_router.post(
    "/events",
    status_code=status.HTTP_201_CREATED,
    response_model=DataResponse[EventOut],
)
async def create_event(
    body: CreateEventRequest,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    event = await service.create_event(tenant.application_id, body)
    return {"data": EventOut.model_validate(event)}


@tenant_router.get("/events", response_model=DataResponse[List[EventOut]])
async def list_events(
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    events = await service.list_events(tenant.application_id)
    return {"data": [EventOut.model_validate(e) for e in events]}


@tenant_router.get("/events/{event_id}", response_model=DataResponse[EventOut])
async def get_event(
    event_id: str,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    event = await service.get_event(tenant.application_id, event_id)
    return {"data": EventOut.model_validate(event)}


@tenant_router.put("/events/{event_id}", response_model=DataResponse[EventOut])
async def update_event(
    event_id: str,
    body: UpdateEventRequest,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    event = await service.update_event(tenant.application_id, event_id, body)
    return {"data": EventOut.model_validate(event)}


@tenant_router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: str,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
) -> Response:
    await service.delete_event(tenant.application_id, event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@tenant_router.post(
    "/events/{event_id}/fields",
    status_code=status.HTTP_201_CREATED,
    response_model=DataResponse[EventFieldOut],
)
async def create_event_field(
    event_id: str,
    body: CreateEventFieldRequest,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    field = await service.create_event_field(tenant.application_id, event_id, body)
    return {"data": EventFieldOut.model_validate(field)}


@tenant_router.get("/events/{event_id}/fields", response_model=DataResponse[List[EventFieldOut]])
async def list_event_fields(
    event_id: str,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    fields = await service.list_event_fields(tenant.application_id, event_id)
    return {"data": [EventFieldOut.model_validate(f) for f in fields]}


@tenant_router.get("/events/{event_id}/fields/{field_id}", response_model=DataResponse[EventFieldOut])
async def get_event_field(
    event_id: str,
    field_id: str,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    field = await service.get_event_field(tenant.application_id, event_id, field_id)
    return {"data": EventFieldOut.model_validate(field)}


@tenant_router.put("/events/{event_id}/fields/{field_id}", response_model=DataResponse[EventFieldOut])
async def update_event_field(
    event_id: str,
    field_id: str,
    body: UpdateEventFieldRequest,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    field = await service.update_event_field(tenant.application_id, event_id, field_id, body)
    return {"data": EventFieldOut.model_validate(field)}


@tenant_router.delete("/events/{event_id}/fields/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event_field(
    event_id: str,
    field_id: str,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
) -> Response:
    await service.delete_event_field(tenant.application_id, event_id, field_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@tenant_router.post(
    "/events/{event_id}/logs",
    status_code=status.HTTP_201_CREATED,
    response_model=DataResponse[EventLogOut],
    summary="Ingest an event log",
)
async def create_event_log(
    event_id: str,
    body: CreateEventLogRequest,
    request: Request,
    tenant: TenantContext = Depends(verify_api_key),
    service: EventService = Depends(get_event_service),
):
    """Record one occurrence of an event.

    The record is relayed to Kafka, or written to the database when
    Kafka is unavailable. Either way the response is the same. If the
    client disconnects while retries are pending, the retries stop and
    the record goes to the database.

    Example request:
        ```
        POST /tenant/events/1798732109471449088/logs
        Headers:
            X-API-Key: your-api-key-here
        Body:
            {
              "platform_id": 1,
              "session_id": "1798732109471449001",
              "properties": {"button_id": "cta-signup"}
            }
        ```
    """
    async with watch_disconnect(request) as cancelled:
        event_log = await service.create_event_log(
            application_id=tenant.application_id,
            event_id=event_id,
            session_id=body.session_id,
            platform_id=body.platform_id,
            properties=body.properties,
            cancelled=cancelled,
        )
    return {"data": EventLogOut.model_validate(event_log)}


# Sessions

@tenant_router.post(
    "/sessions",
    status_code=status.HTTP_201_CREATED,
    response_model=DataResponse[SessionOut],
)
async def create_session(
    body: CreateSessionRequest,
    tenant: TenantContext = Depends(verify_api_key),
    service: ApplicationService = Depends(get_application_service),
):
    session = await service.create_session(tenant.application_id, body)
    return {"data": SessionOut.model_validate(session)}


@tenant_router.get("/sessions/{session_id}", response_model=DataResponse[SessionOut])
async def get_session(
    session_id: str,
    tenant: TenantContext = Depends(verify_api_key),
    service: ApplicationService = Depends(get_application_service),
):
    session = await service.get_session(tenant.application_id, session_id)
    return {"data": SessionOut.model_validate(session)}


@tenant_router.put("/sessions/{session_id}", response_model=DataResponse[SessionOut])
async def update_session(
    session_id: str,
    body: UpdateSessionRequest,
    tenant: TenantContext = Depends(verify_api_key),
    service: ApplicationService = Depends(get_application_service),
):
    session = await service.update_session(tenant.application_id, session_id, body)
    return {"data": SessionOut.model_validate(session)}


@tenant_router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    tenant: TenantContext = Depends(verify_api_key),
    service: ApplicationService = Depends(get_application_service),
) -> Response:
    await service.delete_session(tenant.application_id, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


router.include_router(tenant_router)
