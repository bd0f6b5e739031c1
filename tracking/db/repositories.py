"""
Repositories: the persistence gateway.

DB access only, no business rules. Every write runs inside its own
transaction (``session.begin()``) that commits on success and rolls
back completely on any error, so a row is either fully written or not
written at all. Lookups of missing or soft-deleted rows raise
``NotFoundError``; other SQLAlchemy errors propagate for the service
layer to translate.
"""
from typing import List, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from tracking.common.errors import NotFoundError
from tracking.db.models import (
    Application,
    ApplicationApiKey,
    Event,
    EventField,
    EventLog,
    Platform,
    Session,
)

ModelT = TypeVar("ModelT")


class BaseRepository:
    """Shared transaction helpers."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _add(self, record: ModelT) -> ModelT:
        async with self._session_factory() as db:
            async with db.begin():
                db.add(record)
        return record

    async def _save(self, record: ModelT) -> ModelT:
        async with self._session_factory() as db:
            async with db.begin():
                merged = await db.merge(record)
        return merged

    async def _one(self, query, what: str):
        async with self._session_factory() as db:
            result = await db.execute(query)
            record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError(f"{what} not found")
        return record

    async def _all(self, query) -> list:
        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())


class EventRepository(BaseRepository):
    """Events, event fields and event logs."""

    async def get_event_by_id(self, event_id: str) -> Event:
        """Fetch a live event (fields preloaded) by id."""
        query = select(Event).where(
            Event.id == event_id,
            Event.deleted_at.is_(None),
        )
        return await self._one(query, f"Event {event_id}")

    async def get_event_by_application_and_id(self, application_id: str, event_id: str) -> Event:
        query = select(Event).where(
            Event.application_id == application_id,
            Event.id == event_id,
            Event.deleted_at.is_(None),
        )
        return await self._one(query, f"Event {event_id}")

    async def list_events_by_application(self, application_id: str) -> List[Event]:
        query = (
            select(Event)
            .where(Event.application_id == application_id, Event.deleted_at.is_(None))
            .order_by(Event.created_at)
        )
        return await self._all(query)

    async def create_event(self, event: Event) -> Event:
        return await self._add(event)

    async def update_event(self, event: Event) -> Event:
        """Write back a modified event (including soft delete)."""
        return await self._save(event)

    async def create_event_field(self, field: EventField) -> EventField:
        return await self._add(field)

    async def get_event_field_by_event_and_id(self, event_id: str, field_id: str) -> EventField:
        query = select(EventField).where(
            EventField.event_id == event_id,
            EventField.id == field_id,
            EventField.deleted_at.is_(None),
        )
        return await self._one(query, f"Event field {field_id}")

    async def update_event_field(self, field: EventField) -> EventField:
        return await self._save(field)

    async def list_event_fields(self, event_id: str) -> List[EventField]:
        query = (
            select(EventField)
            .where(EventField.event_id == event_id, EventField.deleted_at.is_(None))
            .order_by(EventField.created_at)
        )
        return await self._all(query)

    async def create_event_log(self, event_log: EventLog) -> EventLog:
        """Insert one event log row in its own transaction."""
        return await self._add(event_log)

    async def get_event_log_by_id(self, event_log_id: str) -> EventLog:
        query = select(EventLog).where(EventLog.id == event_log_id)
        return await self._one(query, f"Event log {event_log_id}")


class ApplicationRepository(BaseRepository):
    """Applications, their API keys and sessions."""

    async def get_application_by_id(self, application_id: str) -> Application:
        query = select(Application).where(
            Application.id == application_id,
            Application.deleted_at.is_(None),
        )
        return await self._one(query, f"Application {application_id}")

    async def get_application_by_tenant_and_id(self, tenant_id: str, application_id: str) -> Application:
        query = select(Application).where(
            Application.tenant_id == tenant_id,
            Application.id == application_id,
            Application.deleted_at.is_(None),
        )
        return await self._one(query, f"Application {application_id}")

    async def get_application_by_api_key(self, api_key: str) -> Application:
        """Resolve a live API key to its live application."""
        query = (
            select(Application)
            .join(ApplicationApiKey, ApplicationApiKey.application_id == Application.id)
            .where(
                ApplicationApiKey.api_key == api_key,
                ApplicationApiKey.deleted_at.is_(None),
                Application.deleted_at.is_(None),
            )
        )
        return await self._one(query, "Application for API key")

    async def create_session(self, session: Session) -> Session:
        return await self._add(session)

    async def get_session_by_application_and_id(self, application_id: str, session_id: str) -> Session:
        query = select(Session).where(
            Session.application_id == application_id,
            Session.id == session_id,
            Session.deleted_at.is_(None),
        )
        return await self._one(query, f"Session {session_id}")

    async def update_session(self, session: Session) -> Session:
        return await self._save(session)


class PlatformRepository(BaseRepository):
    """Read-only access to the platform reference table."""

    async def get_platform_by_id(self, platform_id: int) -> Platform:
        query = select(Platform).where(
            Platform.id == platform_id,
            Platform.deleted_at.is_(None),
        )
        return await self._one(query, f"Platform {platform_id}")

    async def list_platforms(self) -> List[Platform]:
        query = select(Platform).where(Platform.deleted_at.is_(None)).order_by(Platform.id)
        return await self._all(query)
