"""
Event service - event definitions and event log ingestion

Event logs take one of two delivery paths:

1. Relay to Kafka (each failure followed by a 1s, 2s, 3s wait). Once the broker
   acknowledges, downstream consumers own storage; nothing is written
   to the database here.
2. Direct insert into ``event_logs`` when the record cannot be encoded
   or every publish attempt failed.

Exactly one path delivers a record. The call only fails when the
fallback insert fails too.

A cancelled caller (signal or task cancellation) stops the retry loop
and still gets the fallback insert.
"""
import asyncio
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from tracking.common.errors import InternalError, translate_db_errors
from tracking.common.logger import get_logger
from tracking.common.models import (
    CreateEventFieldRequest,
    CreateEventRequest,
    UpdateEventFieldRequest,
    UpdateEventRequest,
)
from tracking.common.retry import RetryCancelledError, RetryConfig, with_retry
from tracking.common.snowflake import SnowflakeGenerator
from tracking.db.models import Event, EventField, EventLog
from tracking.db.repositories import (
    ApplicationRepository,
    EventRepository,
    PlatformRepository,
)
from tracking.ingestion.kafka_producer import BaseProducer

logger = get_logger(__name__)


class DeliveryOutcome(str, Enum):
    """How an event log left the service."""

    PUBLISHED = "published"
    PERSISTED_FALLBACK = "persisted_fallback"
    FAILED = "failed"


def _json_default(obj: Any) -> Any:
    """Serialize datetimes; reject everything else JSON can't represent."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_event_log(event_log: EventLog) -> bytes:
    """Encode an event log as the Kafka message value.

    Raises:
        TypeError, ValueError: If a property is not representable in JSON
    """
    return json.dumps(
        event_log.to_dict(),
        default=_json_default,
        allow_nan=False,
        separators=(",", ":"),
    ).encode("utf-8")


class EventService:
    """Events, event fields and the event log ingestion path.

    Long-lived collaborators (id generator, repositories, producer) are
    built once at startup and passed in. The service itself keeps no
    per-request state, so concurrent requests never interfere.
    """

    def __init__(
        self,
        ids: SnowflakeGenerator,
        event_repo: EventRepository,
        app_repo: ApplicationRepository,
        platform_repo: PlatformRepository,
        producer: BaseProducer,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.ids = ids
        self.event_repo = event_repo
        self.app_repo = app_repo
        self.platform_repo = platform_repo
        self.producer = producer
        self.retry_config = retry_config or RetryConfig(max_attempts=3, backoff=1.0)

    # Event log ingestion

    async def create_event_log(
        self,
        *,
        application_id: str,
        event_id: str,
        session_id: str,
        platform_id: int,
        properties: Dict[str, Any],
        cancelled: Optional[asyncio.Event] = None,
    ) -> EventLog:
        """
        Record one event occurrence.

        Args:
            application_id: Caller's application, taken from the API key
            event_id: Event being logged; must exist
            session_id: Client session id, stored as given
            platform_id: Platform id, stored as given
            properties: Free-form payload; not checked against the event's fields
            cancelled: Optional cancellation signal for the caller's context

        Returns:
            The constructed EventLog, whichever path delivered it

        Raises:
            NotFoundError: Event doesn't exist (nothing published or written)
            InternalError: Event lookup failed, or neither path delivered the record
            asyncio.CancelledError: Task cancelled while publishing; re-raised
                once the fallback write has been attempted
        """
        with translate_db_errors():
            event = await self.event_repo.get_event_by_id(event_id)

        event_log = EventLog(
            id=self.ids.generate(),
            application_id=application_id,
            session_id=session_id,
            event_id=event.id,
            platform_id=platform_id,
            properties=dict(properties),
            created_at=datetime.now(timezone.utc),
        )

        outcome = await self._deliver(event_log, cancelled)

        if outcome is DeliveryOutcome.FAILED:
            raise InternalError("Failed to record event log")

        return event_log

    def _build_message(self, event_log: EventLog) -> Tuple[str, bytes, List[Tuple[str, bytes]]]:
        """Build (key, value, headers) for Kafka.

        The key is a fresh snowflake id so messages spread across
        partitions; the event log id travels in a header.
        """
        value = encode_event_log(event_log)
        key = self.ids.generate()
        headers = [("event_log_id", event_log.id.encode("utf-8"))]
        return key, value, headers

    async def _deliver(
        self,
        event_log: EventLog,
        cancelled: Optional[asyncio.Event],
    ) -> DeliveryOutcome:
        try:
            key, value, headers = self._build_message(event_log)
        except (TypeError, ValueError) as e:
            logger.warning(
                "Event log not serializable, skipping Kafka",
                event_log_id=event_log.id,
                error=str(e),
            )
            return await self._persist_fallback(event_log)

        async def publish() -> None:
            await self.producer.publish(key, value, headers)

        try:
            await with_retry(
                publish,
                config=self.retry_config,
                cancelled=cancelled,
            )
        except RetryCancelledError:
            logger.warning(
                "Publish cancelled by caller",
                event_log_id=event_log.id,
            )
            return await self._persist_fallback(event_log)
        except asyncio.CancelledError:
            # The task itself was cancelled: store the record, then let
            # the cancellation propagate.
            logger.warning(
                "Publish interrupted by task cancellation",
                event_log_id=event_log.id,
            )
            await asyncio.shield(self._persist_fallback(event_log))
            raise
        except Exception as e:
            logger.error(
                "Failed to send event log to Kafka",
                event_log_id=event_log.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self._persist_fallback(event_log)

        logger.info(
            "Event log sent to Kafka",
            event_log_id=event_log.id,
            event_id=event_log.event_id,
            message_key=key,
        )
        return DeliveryOutcome.PUBLISHED

    async def _persist_fallback(self, event_log: EventLog) -> DeliveryOutcome:
        """Write the event log straight to the database."""
        try:
            await self.event_repo.create_event_log(event_log)
        except Exception as e:
            logger.error(
                "Failed to create event log",
                event_log_id=event_log.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryOutcome.FAILED

        logger.warning(
            "Event log persisted directly (Kafka unavailable)",
            event_log_id=event_log.id,
        )
        return DeliveryOutcome.PERSISTED_FALLBACK

    # Events

    async def create_event(self, application_id: str, request: CreateEventRequest) -> Event:
        """Define a new event for an application on a platform."""
        with translate_db_errors():
            application = await self.app_repo.get_application_by_id(application_id)
            platform = await self.platform_repo.get_platform_by_id(request.platform_id)

            now = datetime.now(timezone.utc)
            event = Event(
                id=self.ids.generate(),
                application_id=application.id,
                platform_id=platform.id,
                name=request.name,
                description=request.description,
                is_active=request.is_active,
                created_at=now,
                updated_at=now,
                fields=[],
            )
            await self.event_repo.create_event(event)

        logger.info("Event created", event_id=event.id, name=event.name)
        return event

    async def get_event(self, application_id: str, event_id: str) -> Event:
        with translate_db_errors():
            return await self.event_repo.get_event_by_application_and_id(application_id, event_id)

    async def list_events(self, application_id: str) -> List[Event]:
        with translate_db_errors():
            return await self.event_repo.list_events_by_application(application_id)

    async def update_event(
        self,
        application_id: str,
        event_id: str,
        request: UpdateEventRequest,
    ) -> Event:
        """Rewrite an event's editable columns; the platform stays."""
        with translate_db_errors():
            event = await self.event_repo.get_event_by_application_and_id(application_id, event_id)

            event.name = request.name
            event.description = request.description
            event.is_active = request.is_active
            event.updated_at = datetime.now(timezone.utc)

            return await self.event_repo.update_event(event)

    async def delete_event(self, application_id: str, event_id: str) -> None:
        """Soft-delete an event. Later event logs for it are rejected as not found."""
        with translate_db_errors():
            event = await self.event_repo.get_event_by_application_and_id(application_id, event_id)
            now = datetime.now(timezone.utc)
            event.deleted_at = now
            event.updated_at = now
            await self.event_repo.update_event(event)

        logger.info("Event deleted", event_id=event_id)

    async def create_event_field(
        self,
        application_id: str,
        event_id: str,
        request: CreateEventFieldRequest,
    ) -> EventField:
        """Declare a payload field on one of the application's events."""
        with translate_db_errors():
            event = await self.event_repo.get_event_by_application_and_id(application_id, event_id)

            now = datetime.now(timezone.utc)
            field = EventField(
                id=self.ids.generate(),
                event_id=event.id,
                name=request.name,
                data_type=request.data_type.value,
                is_required=request.is_required,
                description=request.description,
                created_at=now,
                updated_at=now,
            )
            await self.event_repo.create_event_field(field)

        return field

    async def list_event_fields(self, application_id: str, event_id: str) -> List[EventField]:
        with translate_db_errors():
            event = await self.event_repo.get_event_by_application_and_id(application_id, event_id)
            return await self.event_repo.list_event_fields(event.id)

    async def get_event_field(self, application_id: str, event_id: str, field_id: str) -> EventField:
        with translate_db_errors():
            event = await self.event_repo.get_event_by_application_and_id(application_id, event_id)
            return await self.event_repo.get_event_field_by_event_and_id(event.id, field_id)

    async def update_event_field(
        self,
        application_id: str,
        event_id: str,
        field_id: str,
        request: UpdateEventFieldRequest,
    ) -> EventField:
        with translate_db_errors():
            event = await self.event_repo.get_event_by_application_and_id(application_id, event_id)
            field = await self.event_repo.get_event_field_by_event_and_id(event.id, field_id)

            field.name = request.name
            field.data_type = request.data_type.value
            field.is_required = request.is_required
            field.description = request.description
            field.updated_at = datetime.now(timezone.utc)

            return await self.event_repo.update_event_field(field)

    async def delete_event_field(self, application_id: str, event_id: str, field_id: str) -> None:
        """Soft-delete one field of an event."""
        with translate_db_errors():
            event = await self.event_repo.get_event_by_application_and_id(application_id, event_id)
            field = await self.event_repo.get_event_field_by_event_and_id(event.id, field_id)
            now = datetime.now(timezone.utc)
            field.deleted_at = now
            field.updated_at = now
            await self.event_repo.update_event_field(field)

        logger.info("Event field deleted", event_id=event_id, field_id=field_id)
