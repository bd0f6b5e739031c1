import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tracking.common.retry import RetryConfig
from tracking.ingestion.dependencies import get_application_service, get_event_service
from tracking.ingestion.event_service import EventService
from tracking.ingestion.kafka_producer import MockKafkaProducer
from tracking.ingestion.main import app
from tests.conftest import API_KEY, APPLICATION_ID, EVENT_ID, WEB_PLATFORM_ID

AUTH = {"X-API-Key": API_KEY}


@pytest.fixture
def producer():
    return MockKafkaProducer(topic="tracking")


@pytest_asyncio.fixture
async def client(ids, event_repo, app_repo, platform_repo, application_service, producer):
    event_service = EventService(
        ids=ids,
        event_repo=event_repo,
        app_repo=app_repo,
        platform_repo=platform_repo,
        producer=producer,
        retry_config=RetryConfig(max_attempts=3, backoff=0.01),
    )
    app.dependency_overrides[get_event_service] = lambda: event_service
    app.dependency_overrides[get_application_service] = lambda: application_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health_needs_no_key(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_api_key(client):
    response = await client.get("/tenant/profile")

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"
    assert response.headers["www-authenticate"] == "ApiKey"


@pytest.mark.asyncio
@pytest.mark.parametrize("api_key", ["revoked-key", "made-up-key"])
async def test_rejected_api_key(client, api_key):
    response = await client.get("/tenant/profile", headers={"X-API-Key": api_key})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid API key"


@pytest.mark.asyncio
async def test_profile(client):
    response = await client.get("/tenant/profile", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["data"]["id"] == APPLICATION_ID


@pytest.mark.asyncio
async def test_event_log_ingested_to_stream(client, producer, event_repo):
    body = {
        "platform_id": WEB_PLATFORM_ID,
        "session_id": "sess-1",
        "properties": {"button_id": "cta-signup"},
    }

    response = await client.post(f"/tenant/events/{EVENT_ID}/logs", json=body, headers=AUTH)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["event_id"] == EVENT_ID
    assert data["application_id"] == APPLICATION_ID
    assert data["properties"] == {"button_id": "cta-signup"}

    assert len(producer.messages) == 1
    payload = json.loads(producer.messages[0]["value"])
    assert payload["id"] == data["id"]
    assert payload["session_id"] == "sess-1"


@pytest.mark.asyncio
async def test_event_log_falls_back_to_database(client, producer, event_repo):
    await producer.close()
    body = {"platform_id": WEB_PLATFORM_ID, "session_id": "sess-1", "properties": {}}

    response = await client.post(f"/tenant/events/{EVENT_ID}/logs", json=body, headers=AUTH)

    assert response.status_code == 201
    stored = await event_repo.get_event_log_by_id(response.json()["data"]["id"])
    assert stored.session_id == "sess-1"


@pytest.mark.asyncio
async def test_event_log_unknown_event(client, producer):
    body = {"platform_id": WEB_PLATFORM_ID, "session_id": "sess-1", "properties": {}}

    response = await client.post("/tenant/events/999/logs", json=body, headers=AUTH)

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
    assert producer.messages == []


@pytest.mark.asyncio
async def test_event_log_body_validation(client):
    response = await client.post(
        f"/tenant/events/{EVENT_ID}/logs",
        json={"platform_id": "web", "session_id": ""},
        headers=AUTH,
    )

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_event_and_field_definition(client):
    created = await client.post(
        "/tenant/events",
        json={"platform_id": WEB_PLATFORM_ID, "name": "purchase"},
        headers=AUTH,
    )
    assert created.status_code == 201
    event_id = created.json()["data"]["id"]

    field = await client.post(
        f"/tenant/events/{event_id}/fields",
        json={"name": "amount", "data_type": "float", "is_required": True},
        headers=AUTH,
    )
    assert field.status_code == 201

    fetched = await client.get(f"/tenant/events/{event_id}", headers=AUTH)
    assert [f["name"] for f in fetched.json()["data"]["fields"]] == ["amount"]

    listed = await client.get("/tenant/events", headers=AUTH)
    assert {e["id"] for e in listed.json()["data"]} == {EVENT_ID, event_id}


@pytest.mark.asyncio
async def test_field_with_unknown_data_type(client):
    response = await client.post(
        f"/tenant/events/{EVENT_ID}/fields",
        json={"name": "amount", "data_type": "decimal"},
        headers=AUTH,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_session_lifecycle(client):
    created = await client.post(
        "/tenant/sessions",
        json={
            "platform_id": WEB_PLATFORM_ID,
            "session_key": "sess-xyz",
            "started_at": "2024-03-01 10:00:00",
        },
        headers=AUTH,
    )
    assert created.status_code == 201
    session_id = created.json()["data"]["id"]

    updated = await client.put(
        f"/tenant/sessions/{session_id}",
        json={"user_id": "user-7", "ended_at": "2024-03-01 10:30:00"},
        headers=AUTH,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["user_id"] == "user-7"

    deleted = await client.delete(f"/tenant/sessions/{session_id}", headers=AUTH)
    assert deleted.status_code == 204

    missing = await client.get(f"/tenant/sessions/{session_id}", headers=AUTH)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_session_bad_timestamp(client):
    response = await client.post(
        "/tenant/sessions",
        json={"platform_id": WEB_PLATFORM_ID, "session_key": "s", "started_at": "2024-03-01T10:00"},
        headers=AUTH,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_duplicate_session_key(client):
    body = {"platform_id": WEB_PLATFORM_ID, "session_key": "dup", "started_at": "2024-03-01 10:00:00"}

    first = await client.post("/tenant/sessions", json=body, headers=AUTH)
    second = await client.post("/tenant/sessions", json=body, headers=AUTH)

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["error"] == "duplicate_key"


@pytest.mark.asyncio
async def test_platforms(client):
    response = await client.get("/tenant/platforms", headers=AUTH)

    assert response.json() == {"data": [{"id": 1, "name": "Web"}, {"id": 2, "name": "iOS"}]}


@pytest.mark.asyncio
async def test_health_reports_service_name(client):
    response = await client.get("/health")

    assert response.json()["service"] == "tracking-service"


@pytest.mark.asyncio
async def test_ingestion_against_deleted_event(client, producer):
    deleted = await client.delete(f"/tenant/events/{EVENT_ID}", headers=AUTH)
    assert deleted.status_code == 204

    body = {"platform_id": WEB_PLATFORM_ID, "session_id": "sess-1", "properties": {}}
    response = await client.post(f"/tenant/events/{EVENT_ID}/logs", json=body, headers=AUTH)

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
    assert producer.messages == []


@pytest.mark.asyncio
async def test_update_event(client):
    response = await client.put(
        f"/tenant/events/{EVENT_ID}",
        json={"name": "click_cta", "description": "Renamed", "is_active": False},
        headers=AUTH,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert (data["name"], data["is_active"]) == ("click_cta", False)


@pytest.mark.asyncio
async def test_event_field_routes(client):
    path = f"/tenant/events/{EVENT_ID}/fields/500"

    fetched = await client.get(path, headers=AUTH)
    assert fetched.json()["data"]["name"] == "button_id"

    updated = await client.put(
        path,
        json={"name": "button_label", "data_type": "string", "is_required": False},
        headers=AUTH,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["is_required"] is False

    deleted = await client.delete(path, headers=AUTH)
    assert deleted.status_code == 204

    missing = await client.get(path, headers=AUTH)
    assert missing.status_code == 404

    event = await client.get(f"/tenant/events/{EVENT_ID}", headers=AUTH)
    assert event.json()["data"]["fields"] == []
