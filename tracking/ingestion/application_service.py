"""
Application service - API key resolution, sessions and platforms
"""
from datetime import datetime, timezone
from typing import List, Optional

from tracking.common.errors import (
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
    translate_db_errors,
)
from tracking.common.logger import get_logger
from tracking.common.models import (
    TIMESTAMP_FORMAT,
    CreateSessionRequest,
    UpdateSessionRequest,
)
from tracking.common.snowflake import SnowflakeGenerator
from tracking.db.models import Application, Platform, Session
from tracking.db.repositories import ApplicationRepository, PlatformRepository

logger = get_logger(__name__)


def parse_timestamp(value: str) -> datetime:
    """Parse a ``YYYY-MM-DD HH:MM:SS`` string as a UTC datetime.

    Raises:
        InvalidRequestError: If the string doesn't match the format
    """
    try:
        parsed = datetime.strptime(value, TIMESTAMP_FORMAT)
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(
            f"Invalid timestamp {value!r}, expected YYYY-MM-DD HH:MM:SS"
        ) from e
    return parsed.replace(tzinfo=timezone.utc)


class ApplicationService:
    """Service for application-scoped operations used by client SDKs"""

    def __init__(
        self,
        ids: SnowflakeGenerator,
        app_repo: ApplicationRepository,
        platform_repo: PlatformRepository,
    ):
        self.ids = ids
        self.app_repo = app_repo
        self.platform_repo = platform_repo

    async def validate_api_key(self, api_key: str) -> Application:
        """
        Resolve an API key to its application.

        Raises:
            UnauthorizedError: Unknown, revoked or orphaned key
        """
        try:
            with translate_db_errors():
                return await self.app_repo.get_application_by_api_key(api_key)
        except NotFoundError as e:
            raise UnauthorizedError("Invalid API key") from e

    async def get_application(self, tenant_id: str, application_id: str) -> Application:
        with translate_db_errors():
            return await self.app_repo.get_application_by_tenant_and_id(tenant_id, application_id)

    async def list_platforms(self) -> List[Platform]:
        with translate_db_errors():
            return await self.platform_repo.list_platforms()

    # Sessions

    async def create_session(self, application_id: str, request: CreateSessionRequest) -> Session:
        """
        Open a session for an application.

        Raises:
            NotFoundError: Application or platform doesn't exist
            InvalidRequestError: Bad started_at / ended_at
            DuplicateKeyError: session_key already used
        """
        started_at = parse_timestamp(request.started_at)
        ended_at: Optional[datetime] = None
        if request.ended_at is not None:
            ended_at = parse_timestamp(request.ended_at)

        with translate_db_errors():
            application = await self.app_repo.get_application_by_id(application_id)
            platform = await self.platform_repo.get_platform_by_id(request.platform_id)

            now = datetime.now(timezone.utc)
            session = Session(
                id=self.ids.generate(),
                application_id=application.id,
                platform_id=platform.id,
                session_key=request.session_key,
                user_id=request.user_id,
                user_agent=request.user_agent,
                ip_address=request.ip_address,
                started_at=started_at,
                ended_at=ended_at,
                created_at=now,
                updated_at=now,
            )
            await self.app_repo.create_session(session)

        logger.info(
            "Session created",
            session_id=session.id,
            application_id=application.id,
            platform_id=platform.id,
        )
        return session

    async def get_session(self, application_id: str, session_id: str) -> Session:
        with translate_db_errors():
            return await self.app_repo.get_session_by_application_and_id(application_id, session_id)

    async def update_session(
        self,
        application_id: str,
        session_id: str,
        request: UpdateSessionRequest,
    ) -> Session:
        """Set user_id and/or close the session. Unset fields are left alone."""
        ended_at = parse_timestamp(request.ended_at) if request.ended_at else None

        with translate_db_errors():
            session = await self.app_repo.get_session_by_application_and_id(application_id, session_id)

            if request.user_id:
                session.user_id = request.user_id
            if ended_at is not None:
                session.ended_at = ended_at
            session.updated_at = datetime.now(timezone.utc)

            return await self.app_repo.update_session(session)

    async def delete_session(self, application_id: str, session_id: str) -> None:
        """Soft-delete a session."""
        with translate_db_errors():
            session = await self.app_repo.get_session_by_application_and_id(application_id, session_id)
            now = datetime.now(timezone.utc)
            session.deleted_at = now
            session.updated_at = now
            await self.app_repo.update_session(session)

        logger.info("Session deleted", session_id=session_id)
