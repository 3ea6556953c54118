"""
Tests for the booking events webhook and operator endpoints.
"""

import datetime
import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from salonsync.database import get_db
from salonsync.domain.booking_events import router as operator_router
from salonsync.domain.booking_events import webhook_router
from salonsync.domain.booking_events.resolver import EntityResolver
from salonsync.domain.booking_events.router import get_webhook_secret
from salonsync.models import Booking

SECRET = "test-secret"


@pytest.fixture
def app(db):
    app = FastAPI()
    app.include_router(webhook_router)
    app.include_router(operator_router)

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_webhook_secret] = lambda: SECRET
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def _post(client, payload, headers=None):
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return client.post(
        "/webhooks/booking-events",
        content=raw,
        headers={"Content-Type": "application/json", **(headers or {})},
    )


def _payload(salon_id, *emails):
    return {
        "salonId": salon_id,
        "emails": [{"id": message_id, "subject": subject, "body": body} for message_id, subject, body in emails],
    }


def test_webhook_processes_emails(client, salon, staff, services, new_booking_email):
    subject, body = new_booking_email()
    queued_subject, queued_body = new_booking_email(name="Ewa Lis", phone="500 600 700", staff="Zenon")

    response = _post(
        client,
        _payload(salon.id, ("m1", subject, body), ("m2", queued_subject, queued_body)),
        headers={"X-Booking-Webhook-Secret": SECRET},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["processed"] == 2
    assert data["successful"] == 2
    assert data["pending"] == 1
    assert data["errors"] == 0
    first, second = data["results"]
    assert first["emailId"] == "m1"
    assert first["action"] == "created"
    assert first["bookingId"] is not None
    assert second["status"] == "pending"
    assert second["reason"] == "employee_not_found"


def test_webhook_accepts_bearer_token(client, salon, staff, services, new_booking_email):
    subject, body = new_booking_email()

    response = _post(
        client, _payload(salon.id, ("m1", subject, body)), headers={"Authorization": f"Bearer {SECRET}"}
    )

    assert response.status_code == 200


def test_webhook_reports_terminal_failures(client, salon, staff, services, cancel_email):
    subject, body = cancel_email(name="Ghost Client")

    response = _post(
        client, _payload(salon.id, ("m1", subject, body)), headers={"X-Booking-Webhook-Secret": SECRET}
    )

    data = response.json()
    assert data["success"] is True
    assert data["successful"] == 0
    assert data["errors"] == 1
    assert "No booking found to cancel" in data["results"][0]["error"]


def test_webhook_rejects_bad_secret(client, salon):
    response = _post(client, _payload(salon.id, ("m1", "s", "b")), headers={"X-Booking-Webhook-Secret": "bad"})

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_webhook_rejects_missing_secret(client, salon):
    response = _post(client, _payload(salon.id, ("m1", "s", "b")))

    assert response.status_code == 401


def test_webhook_requires_configured_secret(app, client, salon):
    app.dependency_overrides[get_webhook_secret] = lambda: None

    response = _post(client, _payload(salon.id, ("m1", "s", "b")), headers={"X-Booking-Webhook-Secret": SECRET})

    assert response.status_code == 500
    assert "not configured" in response.json()["error"]


def test_webhook_rejects_invalid_json(client):
    response = _post(client, b"{not json", headers={"X-Booking-Webhook-Secret": SECRET})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON payload"}


def test_webhook_rejects_invalid_payload(client, salon):
    response = _post(
        client, {"salonId": salon.id, "emails": []}, headers={"X-Booking-Webhook-Secret": SECRET}
    )

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Invalid webhook payload"
    assert data["details"]


def test_webhook_unknown_salon(client):
    response = _post(client, _payload(999, ("m1", "s", "b")), headers={"X-Booking-Webhook-Secret": SECRET})

    assert response.status_code == 404


def _queue_unknown_staff(client, salon, new_booking_email, message_id="m1"):
    subject, body = new_booking_email(staff="Zenon")
    response = _post(
        client, _payload(salon.id, (message_id, subject, body)), headers={"X-Booking-Webhook-Secret": SECRET}
    )
    return response.json()["results"][0]["pendingEventId"]


def test_list_and_assign_pending(client, salon, staff, services, new_booking_email):
    pending_id = _queue_unknown_staff(client, salon, new_booking_email)

    listed = client.get(f"/salons/{salon.id}/booking-events/pending")
    assert listed.status_code == 200
    assert [r["id"] for r in listed.json()] == [pending_id]
    assert listed.json()[0]["failureReason"] == "employee_not_found"
    assert listed.json()[0]["createdAt"] is not None

    assigned = client.post(
        f"/salons/{salon.id}/booking-events/pending/{pending_id}/assign",
        json={"staffId": staff["piotr"].id},
    )
    assert assigned.status_code == 200
    booking = assigned.json()["booking"]
    assert booking["staffId"] == staff["piotr"].id
    assert booking["serviceId"] == services["haircut"].id
    assert booking["bookingTime"] == "14:00"

    assert client.get(f"/salons/{salon.id}/booking-events/pending").json() == []
    resolved = client.get(f"/salons/{salon.id}/booking-events/pending", params={"status": "resolved"})
    assert [r["id"] for r in resolved.json()] == [pending_id]

    again = client.post(
        f"/salons/{salon.id}/booking-events/pending/{pending_id}/assign",
        json={"staffId": staff["piotr"].id},
    )
    assert again.status_code == 400


def test_patch_pending_status(client, salon, staff, services, new_booking_email):
    pending_id = _queue_unknown_staff(client, salon, new_booking_email)
    url = f"/salons/{salon.id}/booking-events/pending/{pending_id}"

    invalid = client.patch(url, json={"status": "pending"})
    ignored = client.patch(url, json={"status": "ignored"})

    assert invalid.status_code == 400
    assert ignored.status_code == 200
    assert ignored.json()["status"] == "ignored"
    assert client.get(url).json()["status"] == "ignored"


def test_pending_not_found(client, salon):
    base = f"/salons/{salon.id}/booking-events/pending"

    assert client.get(f"{base}/999").status_code == 404
    assert client.patch(f"{base}/999", json={"status": "ignored"}).status_code == 404
    assert client.post(f"{base}/999/assign", json={}).status_code == 404
    assert client.get("/salons/999/booking-events/pending").status_code == 404
    assert client.get(base, params={"status": "bogus"}).status_code == 400


def test_stats_and_logs(client, db, salon, staff, services, new_booking_email, cancel_email):
    subject, body = new_booking_email()
    other_subject, other_body = new_booking_email(name="Ewa Lis", phone="500 600 700", staff="Kasia")
    cancel_subject, cancel_body = cancel_email(when="25 października 2024, 14:00 - 14:45")
    _post(
        client,
        _payload(
            salon.id,
            ("m1", subject, body),
            ("m2", other_subject, other_body),
            ("m3", cancel_subject, cancel_body),
        ),
        headers={"X-Booking-Webhook-Secret": SECRET},
    )

    stats = client.get(f"/salons/{salon.id}/booking-events/stats")
    logs = client.get(f"/salons/{salon.id}/booking-events/logs")
    limited = client.get(f"/salons/{salon.id}/booking-events/logs", params={"limit": 1})

    assert stats.status_code == 200
    assert stats.json() == {"source": "booksy", "total": 2, "scheduled": 1, "cancelled": 1}
    assert logs.status_code == 200
    entries = logs.json()["bookings"]
    assert [e["clientName"] for e in entries] == ["Ewa Lis", "Jan Nowak"]
    assert entries[0]["clientPhone"] == "500600700"
    assert entries[0]["staffName"] == "Kasia Nowicka"
    assert entries[0]["serviceName"] == "Haircut"
    assert entries[1]["status"] == "cancelled"
    assert len(limited.json()["bookings"]) == 1


def test_stats_ignore_other_sources(client, db, salon, staff, services):
    walk_in, _ = EntityResolver(db, salon.id).resolve_client("123456789", "Jan Nowak")
    db.add(
        Booking(
            salon_id=salon.id,
            client_id=walk_in.id,
            booking_date=datetime.date(2024, 10, 25),
            booking_time="10:00",
            source="manual",
        )
    )
    db.commit()

    assert client.get(f"/salons/{salon.id}/booking-events/stats").json()["total"] == 0
    assert client.get(f"/salons/{salon.id}/booking-events/logs").json() == {"bookings": []}
    assert client.get("/salons/999/booking-events/stats").status_code == 404
