from dataclasses import replace

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import CRON_SECRET, OPERATOR_TOKEN, TENANT_NUMBER

from agenda.main import create_app

AUTH = {"Authorization": f"Bearer {OPERATOR_TOKEN}"}


@pytest.fixture
async def make_client(session_factory, twilio, seed):
    """Client factory; the app lifespan runs for as long as the client is open."""
    clients = []

    async def _make(settings):
        app = create_app(settings=settings, session_factory=session_factory, twilio=twilio)
        lifespan = app.router.lifespan_context(app)
        await lifespan.__aenter__()
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")
        clients.append((client, lifespan))
        return client

    yield _make

    for client, lifespan in clients:
        await client.aclose()
        await lifespan.__aexit__(None, None, None)


@pytest.fixture
async def client(make_client, settings):
    return await make_client(settings)


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_endpoints_require_operator_token(client, seed):
    response = await client.get(
        "/api/v1/availability",
        params={"provider_id": str(seed["provider"].id), "date": "2026-05-04"},
    )
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"

    response = await client.get(
        "/api/v1/availability",
        params={"provider_id": str(seed["provider"].id), "date": "2026-05-04"},
        headers={"Authorization": "Bearer wrong"},
    )
    assert response.status_code == 401


async def test_book_then_availability_then_conflict_then_cancel(client, seed, twilio):
    provider_id = str(seed["provider"].id)
    payload = {
        "provider_id": provider_id,
        "customer_phone": "+351 912 345 678",
        "customer_name": "Ana",
        "date": "2026-05-04",
        "time": "10:00",
    }

    created = await client.post("/api/v1/appointments", json=payload, headers=AUTH)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "BOOKED"
    assert body["start"].startswith("2026-05-04T09:00:00")

    availability = await client.get(
        "/api/v1/availability",
        params={"provider_id": provider_id, "date": "2026-05-04", "duration": 30, "step": 15},
        headers=AUTH,
    )
    assert availability.status_code == 200
    labels = [s["label"] for s in availability.json()["slots"]]
    assert labels[:3] == ["09:00", "09:15", "09:30"]
    assert "09:45" not in labels and "10:00" not in labels and "10:15" not in labels
    assert labels[-1] == "17:30"

    conflict = await client.post("/api/v1/appointments", json={**payload, "time": "10:15"}, headers=AUTH)
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "conflict"

    cancelled = await client.post(f"/api/v1/appointments/{body['id']}/cancel", headers=AUTH)
    assert cancelled.status_code == 200
    assert cancelled.json()["changed"] is True
    assert cancelled.json()["appointment"]["status"] == "CANCELLED"

    again = await client.post(f"/api/v1/appointments/{body['id']}/cancel", headers=AUTH)
    assert again.json()["changed"] is False


async def test_invalid_duration_is_a_validation_error(client, seed):
    response = await client.get(
        "/api/v1/availability",
        params={"provider_id": str(seed["provider"].id), "date": "2026-05-04", "duration": 0},
        headers=AUTH,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation"


async def test_malformed_date_is_a_validation_error(client, seed):
    response = await client.get(
        "/api/v1/availability",
        params={"provider_id": str(seed["provider"].id), "date": "2026-13-40"},
        headers=AUTH,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation"
    assert "date" in response.json()["detail"]


async def test_malformed_time_is_a_validation_error(client, seed):
    payload = {
        "provider_id": str(seed["provider"].id),
        "customer_phone": "351912345678",
        "date": "2026-05-04",
        "time": "25:99",
    }
    response = await client.post("/api/v1/appointments", json=payload, headers=AUTH)
    assert response.status_code == 400
    assert response.json() == {"error": "validation", "detail": "Invalid value for: time"}


async def test_capacity_maps_to_402(make_client, settings, seed):
    client = await make_client(replace(settings, daily_appointment_limit=1))
    payload = {
        "provider_id": str(seed["provider"].id),
        "customer_phone": "351912345678",
        "date": "2026-05-04",
        "time": "10:00",
    }
    assert (await client.post("/api/v1/appointments", json=payload, headers=AUTH)).status_code == 201
    response = await client.post("/api/v1/appointments", json={**payload, "time": "15:00"}, headers=AUTH)
    assert response.status_code == 402


async def test_inbound_sms_replies_with_twiml(client, seed):
    payload = {
        "provider_id": str(seed["provider"].id),
        "customer_phone": "351912345678",
        "date": "2099-05-04",
        "time": "10:00",
    }
    created = await client.post("/api/v1/appointments", json=payload, headers=AUTH)
    assert created.status_code == 201

    form = {"From": "+351912345678", "To": TENANT_NUMBER, "Body": "SIM", "MessageSid": "SM100"}
    response = await client.post("/sms/incoming", data=form)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert "confirmada" in response.text

    # Twilio retrying the same webhook gets an empty response
    retry = await client.post("/sms/incoming", data=form)
    assert "<Message>" not in retry.text


async def test_inbound_sms_signature_is_checked_when_enabled(make_client, settings):
    client = await make_client(replace(settings, twilio_validate_signature=True))
    form = {"From": "+351912345678", "To": TENANT_NUMBER, "Body": "SIM", "MessageSid": "SM200"}

    rejected = await client.post("/sms/incoming", data=form, headers={"X-Twilio-Signature": "forged"})
    assert rejected.status_code == 401

    accepted = await client.post("/sms/incoming", data=form, headers={"X-Twilio-Signature": "valid"})
    assert accepted.status_code == 200


async def test_cron_requires_secret(client):
    assert (await client.post("/cron/complete")).status_code == 401
    assert (await client.post("/cron/complete", headers={"x-cron-secret": "nope"})).status_code == 401

    response = await client.post("/cron/complete", headers={"x-cron-secret": CRON_SECRET})
    assert response.status_code == 200
    assert response.json()["job"] == "complete"
    assert response.json()["skipped"] is False


async def test_cron_rejects_everything_without_configured_secret(make_client, settings):
    client = await make_client(replace(settings, cron_secret=None))
    response = await client.post("/cron/reminders-24h", headers={"x-cron-secret": ""})
    assert response.status_code == 401


async def test_rate_limit_returns_429_with_retry_after(make_client, settings):
    client = await make_client(replace(settings, rate_limit_per_minute=2))
    for _ in range(2):
        assert (await client.post("/sms/incoming", data={"From": "1", "Body": "oi"})).status_code == 200

    response = await client.post("/sms/incoming", data={"From": "1", "Body": "oi"})
    assert response.status_code == 429
    assert int(response.headers["retry-after"]) >= 1
