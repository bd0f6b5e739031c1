import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from tracking.common.errors import NotFoundError
from tracking.common.retry import RetryConfig
from tracking.common.snowflake import SnowflakeGenerator
from tracking.db.database import create_session_factory, drop_db, init_db
from tracking.db.models import (
    Application,
    ApplicationApiKey,
    Event,
    EventField,
    Platform,
    Tenant,
)
from tracking.db.repositories import (
    ApplicationRepository,
    EventRepository,
    PlatformRepository,
)
from tracking.ingestion.application_service import ApplicationService
from tracking.ingestion.event_service import EventService
from tracking.ingestion.kafka_producer import BaseProducer, PublishError

API_KEY = "test-api-key-0123456789"
TENANT_ID = "100"
APPLICATION_ID = "200"
OTHER_APPLICATION_ID = "201"
EVENT_ID = "300"
WEB_PLATFORM_ID = 1


class FlakyProducer(BaseProducer):
    """Producer that fails its first ``failures`` publishes."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.messages: List[Dict[str, Any]] = []

    async def start(self) -> None:
        pass

    async def publish(self, key, value, headers=None) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise PublishError(f"broker unavailable (attempt {self.calls})")
        self.messages.append({"key": key, "value": value, "headers": list(headers or [])})

    async def close(self) -> None:
        pass


class SpyEventRepository:
    """In-memory stand-in for EventRepository that records writes."""

    def __init__(self, events: Optional[Dict[str, Event]] = None, fail_writes: bool = False):
        self.events = events or {}
        self.fail_writes = fail_writes
        self.lookup_error: Optional[Exception] = None
        self.created_logs: List[Any] = []
        self.write_attempts = 0

    async def get_event_by_id(self, event_id: str) -> Event:
        if self.lookup_error is not None:
            raise self.lookup_error
        try:
            return self.events[event_id]
        except KeyError:
            raise NotFoundError(f"Event {event_id} not found")

    async def create_event_log(self, event_log):
        self.write_attempts += 1
        if self.fail_writes:
            raise RuntimeError("database unavailable")
        self.created_logs.append(event_log)
        return event_log


def make_event(event_id: str = EVENT_ID, application_id: str = APPLICATION_ID) -> Event:
    now = datetime.now(timezone.utc)
    return Event(
        id=event_id,
        application_id=application_id,
        platform_id=WEB_PLATFORM_ID,
        name="click_button",
        description="Click on CTA",
        is_active=True,
        created_at=now,
        updated_at=now,
        fields=[],
    )


@pytest.fixture
def ids():
    return SnowflakeGenerator(node_id=7)


@pytest.fixture
def fast_retry():
    """Three attempts with a 50ms unit (waits of 50ms, 100ms)."""
    return RetryConfig(max_attempts=3, backoff=0.05)


@pytest.fixture
def spy_repo():
    return SpyEventRepository(events={EVENT_ID: make_event()})


@pytest.fixture
def make_service(ids, spy_repo, fast_retry):
    """Build an EventService around a spy repository and a given producer."""

    def _make(producer: BaseProducer, retry_config: Optional[RetryConfig] = None) -> EventService:
        return EventService(
            ids=ids,
            event_repo=spy_repo,
            app_repo=None,
            platform_repo=None,
            producer=producer,
            retry_config=retry_config or fast_retry,
        )

    return _make


@pytest.fixture
def cancel_after():
    """Return an asyncio.Event that gets set after ``delay`` seconds."""

    def _cancel_after(delay: float) -> asyncio.Event:
        cancelled = asyncio.Event()
        asyncio.get_running_loop().call_later(delay, cancelled.set)
        return cancelled

    return _cancel_after


# Database fixtures (in-memory SQLite)

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)

    yield engine

    await drop_db(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = create_session_factory(engine)

    now = datetime.now(timezone.utc)
    async with factory() as db:
        async with db.begin():
            db.add_all([
                Tenant(id=TENANT_ID, name="acme", created_at=now, updated_at=now),
                Platform(id=WEB_PLATFORM_ID, name="Web", created_at=now, updated_at=now),
                Platform(id=2, name="iOS", created_at=now, updated_at=now),
                Application(
                    id=APPLICATION_ID,
                    tenant_id=TENANT_ID,
                    name="storefront",
                    description="Main web shop",
                    created_at=now,
                    updated_at=now,
                ),
                Application(
                    id=OTHER_APPLICATION_ID,
                    tenant_id=TENANT_ID,
                    name="backoffice",
                    created_at=now,
                    updated_at=now,
                ),
                ApplicationApiKey(
                    id="400",
                    application_id=APPLICATION_ID,
                    api_key=API_KEY,
                    created_at=now,
                    updated_at=now,
                ),
                ApplicationApiKey(
                    id="401",
                    application_id=APPLICATION_ID,
                    api_key="revoked-key",
                    created_at=now,
                    updated_at=now,
                    deleted_at=now,
                ),
            ])
        async with db.begin():
            db.add(make_event())
            db.add(EventField(
                id="500",
                event_id=EVENT_ID,
                name="button_id",
                data_type="string",
                is_required=True,
                created_at=now,
                updated_at=now,
            ))

    return factory


@pytest.fixture
def event_repo(session_factory):
    return EventRepository(session_factory)


@pytest.fixture
def app_repo(session_factory):
    return ApplicationRepository(session_factory)


@pytest.fixture
def platform_repo(session_factory):
    return PlatformRepository(session_factory)


@pytest.fixture
def application_service(ids, app_repo, platform_repo):
    return ApplicationService(ids=ids, app_repo=app_repo, platform_repo=platform_repo)


@pytest.fixture
def db_event_service(ids, event_repo, app_repo, platform_repo, fast_retry):
    """EventService on the SQLite repositories with a producer that never succeeds."""
    return EventService(
        ids=ids,
        event_repo=event_repo,
        app_repo=app_repo,
        platform_repo=platform_repo,
        producer=FlakyProducer(failures=10**6),
        retry_config=fast_retry,
    )
