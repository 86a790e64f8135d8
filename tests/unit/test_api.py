from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from app.main import create_app
from app.services.bootstrap import build_services
from app.settings import Settings
from tests.conftest import PARTICIPANT_UUID, PROGRAM_ID

@pytest.fixture
def services(store, directory, clock):
    return build_services(store, Settings(), directory=directory, clock=clock)

@pytest_asyncio.fixture
async def client(services):
    app = create_app(services)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}

@pytest.mark.asyncio
async def test_create_and_get_job(client):
    resp = await client.post("/api/v1/jobs", json={"type": "bulk_resync_passes", "payload": {"program_id": "prog-1"}})
    assert resp.status_code == 201
    job = resp.json()
    assert job["status"] == "pending"
    assert job["attempts"] == 0
    assert job["max_attempts"] == 3

    resp = await client.get(f"/api/v1/jobs/{job['id']}")
    assert resp.status_code == 200
    assert resp.json()["payload"] == {"program_id": "prog-1"}

@pytest.mark.asyncio
async def test_invalid_payload_is_422(client):
    resp = await client.post("/api/v1/jobs", json={"type": "bulk_resync_passes", "payload": {}})
    assert resp.status_code == 422

@pytest.mark.asyncio
async def test_unknown_job_is_404(client):
    resp = await client.get(f"/api/v1/jobs/{uuid4()}")
    assert resp.status_code == 404

    resp = await client.post(f"/api/v1/jobs/{uuid4()}/cancel")
    assert resp.status_code == 404

@pytest.mark.asyncio
async def test_cancel_then_retry(client):
    job_id = (await client.post("/api/v1/jobs", json={"type": "export", "payload": {}})).json()["id"]

    resp = await client.post(f"/api/v1/jobs/{job_id}/cancel")
    assert resp.json() == {"job_id": job_id, "changed": True, "status": "failed"}

    resp = await client.post(f"/api/v1/jobs/{job_id}/cancel")
    assert resp.json()["changed"] is False

    resp = await client.post(f"/api/v1/jobs/{job_id}/retry")
    assert resp.json() == {"job_id": job_id, "changed": True, "status": "pending"}

@pytest.mark.asyncio
async def test_list_jobs_by_status(client):
    await client.post("/api/v1/jobs", json={"type": "export", "payload": {}})
    cancelled = (await client.post("/api/v1/jobs", json={"type": "export", "payload": {}})).json()["id"]
    await client.post(f"/api/v1/jobs/{cancelled}/cancel")

    resp = await client.get("/api/v1/jobs", params={"status": "failed"})
    assert [job["id"] for job in resp.json()] == [cancelled]

    resp = await client.get("/api/v1/jobs", params={"type": "export"})
    assert len(resp.json()) == 2

@pytest.mark.asyncio
async def test_queue_event_and_flush(client, services):
    event = {
        "program_id": PROGRAM_ID,
        "participant_uuid": PARTICIPANT_UUID,
        "rule": "points_updated",
        "data": {"unused_points_before": 100, "unused_points_after": 110},
    }
    resp = await client.post("/api/v1/notifications/events", json=event)
    assert resp.status_code == 202
    assert resp.json()["events_buffered"] == 1

    resp = await client.post("/api/v1/notifications/events", json=event)
    assert resp.json()["events_buffered"] == 2

    resp = await client.post("/api/v1/notifications/flush")
    assert resp.json() == {"flushed": 1}

    [sent] = await services.queue.list_jobs(job_type="notification_sent")
    assert sent.payload["events_merged"] == 2

@pytest.mark.asyncio
async def test_event_with_unknown_rule_is_rejected(client):
    resp = await client.post(
        "/api/v1/notifications/events",
        json={"program_id": PROGRAM_ID, "participant_uuid": PARTICIPANT_UUID, "rule": "birthday"},
    )
    assert resp.status_code == 422

@pytest.mark.asyncio
async def test_points_burst_simulation(client, services):
    resp = await client.post(
        "/api/v1/notifications/simulate/points-burst",
        json={"program_id": PROGRAM_ID, "participant_uuid": PARTICIPANT_UUID, "total_events": 4, "delta_per_event": 10},
    )
    assert resp.status_code == 200
    assert resp.json()["events_queued"] == 4

    [record] = await services.queue.list_jobs(job_type="points_burst_simulation")
    assert record.status == "completed"

    await services.notifications.flush_all()
    [sent] = await services.queue.list_jobs(job_type="notification_sent")
    assert sent.payload["events_merged"] == 4
    # unused_points starts at 100
    assert sent.payload["points_delta"] == 40
    assert sent.payload["new_points"] == 140

@pytest.mark.asyncio
async def test_points_burst_unknown_participant(client):
    resp = await client.post(
        "/api/v1/notifications/simulate/points-burst",
        json={"program_id": PROGRAM_ID, "participant_uuid": "ghost"},
    )
    assert resp.status_code == 404

@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "jobs_enqueued_total" in resp.text
