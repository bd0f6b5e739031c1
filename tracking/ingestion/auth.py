"""Authentication for the tenant API.

Client applications authenticate with an API key header. The key is
resolved to its application and tenant before any route runs.
"""
from fastapi import Depends, HTTPException, Request, status

from tracking.common.config import get_settings
from tracking.common.errors import UnauthorizedError
from tracking.common.logger import bind_request_context, get_logger
from tracking.common.models import TenantContext
from tracking.ingestion.application_service import ApplicationService
from tracking.ingestion.dependencies import get_application_service

logger = get_logger(__name__)


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = "Invalid or missing API key"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "ApiKey"},
        )


def _key_prefix(api_key: str) -> str:
    return api_key[:8] if len(api_key) >= 8 else "***"


async def verify_api_key(
    request: Request,
    service: ApplicationService = Depends(get_application_service),
) -> TenantContext:
    """Resolve the request's API key to a tenant context.

    This is a FastAPI dependency. On success the application and tenant
    ids are bound into the log context for the rest of the request.

    Returns:
        TenantContext for the calling application

    Raises:
        AuthenticationError: If the key is missing or unknown

    Example:
        ```python
        @router.post("/events/{event_id}/logs")
        async def create_event_log(
            event_id: str,
            tenant: TenantContext = Depends(verify_api_key),
        ):
            ...
        ```
    """
    header = get_settings().api_key_header
    api_key = request.headers.get(header)

    if not api_key:
        logger.warning("Request missing API key", header=header)
        raise AuthenticationError("API key required")

    try:
        application = await service.validate_api_key(api_key)
    except UnauthorizedError:
        logger.warning("Invalid API key attempted", key_prefix=_key_prefix(api_key))
        raise AuthenticationError("Invalid API key")

    bind_request_context(
        application_id=application.id,
        tenant_id=application.tenant_id,
    )
    logger.debug("API key validated successfully")

    return TenantContext(
        application_id=application.id,
        tenant_id=application.tenant_id,
    )
