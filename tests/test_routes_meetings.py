from datetime import timedelta

import pytest

from models.meeting import Meeting
from models.audit_log import AuditLog
from tests.conftest import create_user, login, meeting_payload


@pytest.fixture
def accounts(app):
    with app.app_context():
        ana = create_user("ana@example.com")
        bruno = create_user("bruno@example.com", full_name="Bruno Lima")
        admin = create_user("admin@example.com", admin=True, full_name="Site Admin")
        return {"ana": ana.id, "bruno": bruno.id, "admin": admin.id}


@pytest.fixture
def ana(client, accounts):
    login(client, "ana@example.com")
    return client


def _book(client, day, time_label="14:00", **overrides):
    return client.post("/meetings", json=meeting_payload(day, time_label, **overrides))


def test_health(client):
    assert client.get("/health").get_json() == {"status": "ok"}


def test_booking_requires_login(client, future_day):
    assert _book(client, future_day).status_code == 401


def test_slots_listing_is_public(client, future_day):
    resp = client.get(f"/meetings/slots?date={future_day.isoformat()}")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["available"] == body["slots"] == ["09:00", "11:00", "14:00", "16:00", "18:00"]

    assert client.get("/meetings/slots?date=soon").status_code == 400


def test_book_then_slot_disappears(ana, future_day):
    resp = _book(ana, future_day, "14:00")
    body = resp.get_json()

    assert resp.status_code == 201
    assert body["duplicate"] is False
    assert body["meeting"]["status"] == "pending"
    assert body["meeting"]["phone"] == "+55 11 91234-5678"

    slots = ana.get(f"/meetings/slots?date={future_day.isoformat()}").get_json()
    assert "14:00" not in slots["available"]


def test_double_submit_returns_existing_meeting(app, ana, future_day):
    first = _book(ana, future_day).get_json()["meeting"]
    resp = _book(ana, future_day)

    assert resp.status_code == 200
    assert resp.get_json()["duplicate"] is True
    assert resp.get_json()["meeting"]["id"] == first["id"]
    with app.app_context():
        assert Meeting.query.count() == 1


def test_second_active_meeting_is_refused(ana, future_day):
    first = _book(ana, future_day).get_json()["meeting"]
    resp = _book(ana, future_day + timedelta(days=1), "09:00")

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "ACTIVE_MEETING_EXISTS"
    assert resp.get_json()["meeting_id"] == first["id"]


def test_taken_slot_is_refused_with_fresh_availability(client, ana, future_day):
    _book(ana, future_day, "16:00")
    ana.post("/auth/logout")

    login(client, "bruno@example.com")
    resp = _book(client, future_day, "16:00", full_name="Bruno Lima", email="bruno@example.com")

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "SLOT_ALREADY_TAKEN"
    assert "16:00" not in resp.get_json()["available"]


@pytest.mark.parametrize("overrides,message", [
    ({"full_name": "Ana"}, "full name"),
    ({"email": "ana@"}, "Invalid email"),
    ({"project_description": "too short"}, "at least 250"),
    ({"project_type": "Other", "other_description": "game"}, "project type"),
    ({"meeting_time": ""}, "Missing required fields: meeting_time"),
])
def test_request_validation(ana, future_day, overrides, message):
    resp = _book(ana, future_day, **overrides)
    assert resp.status_code == 400
    assert message in resp.get_json()["error"]


def test_other_project_type_is_stored_with_description(ana, future_day):
    resp = _book(ana, future_day, project_type="Other", other_description="Internal CRM for a clinic")
    assert resp.get_json()["meeting"]["project_type"] == "Other: Internal CRM for a clinic"


def test_past_date_and_unknown_time(ana, future_day):
    resp = _book(ana, future_day - timedelta(days=400))
    assert resp.status_code == 400 and resp.get_json()["code"] == "INVALID_SLOT"

    resp = _book(ana, future_day, "10:15")
    assert resp.status_code == 400 and resp.get_json()["code"] == "INVALID_SLOT"


def test_reschedule_flow_and_limit(ana, future_day):
    meeting_id = _book(ana, future_day).get_json()["meeting"]["id"]

    for n in (1, 2, 3):
        resp = ana.post(f"/meetings/{meeting_id}/reschedule",
                        json={"new_date": (future_day + timedelta(days=n)).isoformat()})
        assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()["remaining"] == 3 - n

    resp = ana.post(f"/meetings/{meeting_id}/reschedule",
                    json={"new_date": (future_day + timedelta(days=9)).isoformat()})
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "RESCHEDULE_LIMIT_EXCEEDED"


def test_same_day_reschedule_is_rejected(ana, future_day):
    meeting_id = _book(ana, future_day).get_json()["meeting"]["id"]
    resp = ana.post(f"/meetings/{meeting_id}/reschedule", json={"new_date": future_day.isoformat()})

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "NOOP_RESCHEDULE"
    mine = ana.get("/meetings/me").get_json()
    assert mine[0]["reschedule_count"] == 0


def test_cancel_reports_remaining_quota(app, ana, accounts, future_day):
    meeting_id = _book(ana, future_day).get_json()["meeting"]["id"]
    resp = ana.post(f"/meetings/{meeting_id}/cancel")

    assert resp.status_code == 200
    assert resp.get_json()["remaining"] == 1
    assert resp.get_json()["meeting"]["status"] == "cancelled"
    assert ana.get("/meetings/quota").get_json()["remaining_cancellations"] == 1

    # cancelling twice is a state error, not another charge
    resp = ana.post(f"/meetings/{meeting_id}/cancel")
    assert resp.status_code == 409
    assert ana.get("/meetings/quota").get_json()["remaining_cancellations"] == 1

    with app.app_context():
        actions = {row.action for row in AuditLog.query.filter_by(user_id=accounts["ana"]).all()}
    assert {"MEETING_CREATE", "MEETING_CANCEL", "MEETING_CANCEL_FAIL"} <= actions


def test_other_users_meetings_are_hidden(client, app, accounts, future_day):
    login(client, "bruno@example.com")
    meeting_id = _book(client, future_day, full_name="Bruno Lima", email="bruno@example.com").get_json()["meeting"]["id"]
    client.post("/auth/logout")

    login(client, "ana@example.com")
    assert client.post(f"/meetings/{meeting_id}/cancel").status_code == 404
    assert client.post(f"/meetings/{meeting_id}/reschedule",
                       json={"new_date": (future_day + timedelta(days=1)).isoformat()}).status_code == 404
    assert client.get("/meetings/me").get_json() == []


def test_my_meetings_filters(ana, future_day):
    meeting_id = _book(ana, future_day).get_json()["meeting"]["id"]
    ana.post(f"/meetings/{meeting_id}/cancel")

    assert ana.get("/meetings/me?status=pending").get_json() == []
    assert len(ana.get("/meetings/me?status=cancelled").get_json()) == 1
    assert len(ana.get("/meetings/me?status=all").get_json()) == 1
    assert ana.get("/meetings/me?status=bogus").status_code == 400


def test_admin_books_several_meetings(client, accounts, future_day):
    login(client, "admin@example.com")
    assert _book(client, future_day, "09:00", email="admin@example.com").status_code == 201
    assert _book(client, future_day, "11:00", email="admin@example.com").status_code == 201
    assert client.get("/meetings/quota").get_json()["is_admin"] is True


def test_csrf_enforced_for_authenticated_writes(app, client, accounts, future_day):
    app.config["CSRF_ENABLED"] = True
    login(client, "ana@example.com")

    assert _book(client, future_day).status_code == 403

    token = client.get_cookie("csrf_token").value
    resp = client.post("/meetings", json=meeting_payload(future_day), headers={"X-CSRF-Token": token})
    assert resp.status_code == 201
