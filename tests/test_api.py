"""
HTTP layer tests: routing, bearer-token identity and error rendering.
"""

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from consultbook.api.dependencies import get_notifier
from consultbook.config import settings
from consultbook.database import Base, get_db
from consultbook.main import app
from consultbook.models.user import Consultant, User


START = "2030-01-07T10:00:00Z"


def token_for(subject, role):
    return jwt.encode({"sub": str(subject), "role": role}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def auth(subject, role):
    return {"Authorization": f"Bearer {token_for(subject, role)}"}


ALICE = auth(1, "user")
BOB = auth(2, "user")
CAROL = auth(1, "consultant")
ADMIN = auth(99, "admin")


@pytest.fixture
def client(notifier):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    with TestingSession() as db:
        db.add_all([
            User(id=1, name="Alice User"),
            User(id=2, name="Bob User"),
            Consultant(id=1, name="Dr. Carol"),
        ])
        db.commit()

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()


def book(client, headers=ALICE, **overrides):
    body = {"consultant_id": 1, "start_time": START, "duration_minutes": 60}
    body.update(overrides)
    return client.post("/appointments/", json=body, headers=headers)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requests_need_a_valid_token(client):
    assert client.get("/appointments/").status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert client.get("/appointments/", headers=bad).status_code == 401
    system = auth(1, "system")
    assert client.get("/appointments/", headers=system).status_code == 401


def test_booking_flow_over_http(client, notifier):
    created = book(client)
    assert created.status_code == 201
    appointment = created.json()
    assert appointment["status"] == "pending"
    assert appointment["user_id"] == 1
    assert appointment["start_time"].startswith("2030-01-07T10:00:00")
    assert appointment["end_time"].startswith("2030-01-07T11:00:00")

    clash = book(client, headers=BOB, start_time="2030-01-07T10:30:00Z")
    assert clash.status_code == 409
    assert clash.json() == {"error": "SlotTaken", "detail": "Time slot is already booked"}

    confirmed = client.post(f"/appointments/{appointment['id']}/confirm", headers=CAROL)
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert "appointment_confirmed" in notifier.events()


def test_role_gates(client):
    consultant_booking = book(client, headers=CAROL)
    assert consultant_booking.status_code == 403
    assert consultant_booking.json() == {
        "error": "Forbidden",
        "detail": "Only user accounts can perform this action",
    }
    appointment_id = book(client).json()["id"]

    assert client.post(f"/appointments/{appointment_id}/confirm", headers=ALICE).status_code == 403

    forbidden = client.patch(
        f"/appointments/{appointment_id}/status", json={"status": "confirmed"}, headers=ALICE
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "Forbidden"

    unknown = client.patch(
        f"/appointments/{appointment_id}/status", json={"status": "archived"}, headers=CAROL
    )
    assert unknown.status_code == 400
    assert unknown.json()["error"] == "InvalidStatus"


def test_cancel_and_reschedule(client):
    appointment_id = book(client).json()["id"]

    moved = client.post(
        f"/appointments/{appointment_id}/reschedule",
        json={"start_time": "2030-01-08T09:00:00Z"},
        headers=ALICE,
    )
    assert moved.status_code == 200
    assert moved.json()["start_time"].startswith("2030-01-08T09:00:00")

    cancelled = client.post(
        f"/appointments/{appointment_id}/cancel", json={"reason": "Travelling"}, headers=ALICE
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["cancellation_reason"] == "Travelling"


def test_list_is_scoped_and_paginated(client):
    book(client, headers=ALICE, start_time="2030-01-07T08:00:00Z")
    book(client, headers=ALICE, start_time="2030-01-07T12:00:00Z")
    book(client, headers=BOB, start_time="2030-01-07T15:00:00Z")

    mine = client.get("/appointments/?limit=1", headers=ALICE).json()
    assert len(mine["items"]) == 1
    assert mine["items"][0]["start_time"].startswith("2030-01-07T12:00:00")
    assert mine["pagination"] == {
        "page": 1, "limit": 1, "total": 2, "total_pages": 2, "has_next": True, "has_prev": False,
    }

    assert client.get("/appointments/", headers=CAROL).json()["pagination"]["total"] == 3
    assert client.get("/appointments/", headers=ADMIN).json()["pagination"]["total"] == 3
    assert client.get("/appointments/?status=confirmed", headers=CAROL).json()["items"] == []

    bad = client.get("/appointments/?status=pending,bogus", headers=CAROL)
    assert bad.status_code == 400


def test_get_one_respects_ownership(client):
    appointment_id = book(client).json()["id"]

    assert client.get(f"/appointments/{appointment_id}", headers=ALICE).status_code == 200
    assert client.get(f"/appointments/{appointment_id}", headers=BOB).status_code == 403
    assert client.get(f"/appointments/{appointment_id}", headers=ADMIN).status_code == 200
    assert client.get("/appointments/12345", headers=ALICE).status_code == 404


def test_block_and_availability(client):
    blocked = client.post(
        "/appointments/block",
        json={"start_time": "2030-01-07T14:00:00Z", "duration_minutes": 30},
        headers=CAROL,
    )
    assert blocked.status_code == 201
    assert blocked.json()["status"] == "blocked"

    again = client.post("/appointments/block", json={"start_time": "2030-01-07T14:00:00Z"}, headers=CAROL)
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyBlocked"

    book(client)
    availability = client.get(
        "/appointments/consultants/1/availability?date_from=2030-01-07&date_to=2030-01-07",
        headers=BOB,
    )
    assert availability.status_code == 200
    body = availability.json()
    assert body["consultant_id"] == 1
    assert [w["status"] for w in body["appointments"]] == ["pending", "blocked"]

    missing = client.get("/appointments/consultants/1/availability?date_from=2030-01-07", headers=BOB)
    assert missing.status_code == 422
    assert missing.json()["error"] == "ValidationError"


def test_review_endpoints(client):
    appointment_id = book(client).json()["id"]

    early = client.post("/reviews/", json={"consultant_id": 1, "rating": 5}, headers=ALICE)
    assert early.status_code == 400
    assert early.json()["error"] == "NoCompletedAppointment"

    client.post(f"/appointments/{appointment_id}/start", headers=CAROL)
    client.post(f"/appointments/{appointment_id}/complete", headers=CAROL)

    submitted = client.post(
        "/reviews/", json={"consultant_id": 1, "rating": 4, "review_text": "Clear advice"}, headers=ALICE
    )
    assert submitted.status_code == 201
    assert submitted.json()["consultant_new_average"] == 4.0

    duplicate = client.post("/reviews/", json={"consultant_id": 1, "rating": 5}, headers=ALICE)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "DuplicateReview"

    listing = client.get("/reviews/consultant/1", headers=BOB).json()
    assert listing["pagination"]["total_reviews"] == 1
    assert listing["reviews"][0]["user_name"] == "Alice User"

    rating = client.get("/reviews/rating/1", headers=BOB).json()
    assert rating["average_rating"] == 4.0
    assert rating["rating_distribution"]["4"] == 1

    assert client.post("/reviews/admin/recalculate", headers=ALICE).status_code == 403
    recalculated = client.post("/reviews/admin/recalculate", headers=ADMIN)
    assert recalculated.status_code == 200
    assert recalculated.json()["updated_count"] == 1


def test_review_rating_out_of_range_is_rejected(client):
    response = client.post("/reviews/", json={"consultant_id": 1, "rating": 9}, headers=ALICE)
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"
    assert "rating" in response.json()["detail"]


def test_malformed_body_uses_error_envelope(client):
    response = book(client, start_time="next tuesday")
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "ValidationError"
    assert body["detail"].startswith("start_time:")


def test_list_by_day_carries_reviews(client):
    reviewed_id = book(client, headers=ALICE, start_time="2030-01-07T08:00:00Z").json()["id"]
    book(client, headers=ALICE, start_time="2030-01-07T23:30:00Z", duration_minutes=30)
    book(client, headers=ALICE, start_time="2030-01-08T00:00:00Z")

    client.post(f"/appointments/{reviewed_id}/start", headers=CAROL)
    client.post(f"/appointments/{reviewed_id}/complete", headers=CAROL)
    client.post("/reviews/", json={"consultant_id": 1, "rating": 5, "review_text": "Great"}, headers=ALICE)

    day = client.get("/appointments/?date=2030-01-07", headers=ALICE).json()
    assert [item["start_time"][:16] for item in day["items"]] == ["2030-01-07T23:30", "2030-01-07T08:00"]

    review = day["items"][1]["review"]
    assert review["rating"] == 5
    assert review["review_text"] == "Great"
    assert review["review_id"] > 0
    assert review["review_date"].endswith("Z") or review["review_date"].endswith("+00:00")
    assert day["items"][0]["review"] is None

    next_day = client.get("/appointments/?date=2030-01-08", headers=ALICE).json()
    assert next_day["pagination"]["total"] == 1

    bad = client.get("/appointments/?date=tomorrow", headers=ALICE)
    assert bad.status_code == 422
    assert bad.json()["error"] == "ValidationError"
