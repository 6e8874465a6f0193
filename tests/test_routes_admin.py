from datetime import timedelta

import pytest

from models.user import User
from tests.conftest import PASSWORD, create_meeting, create_user, login


@pytest.fixture
def seeded(app, future_day):
    with app.app_context():
        ana = create_user("ana@example.com")
        create_user("admin@example.com", admin=True, full_name="Site Admin")
        meeting = create_meeting(ana, future_day, "14:00")
        return {"meeting_id": meeting.id}


@pytest.fixture
def admin_client(client, seeded):
    login(client, "admin@example.com")
    return client


def test_admin_routes_require_admin(client, seeded):
    assert client.get("/admin/meetings").status_code == 401
    login(client, "ana@example.com")
    assert client.get("/admin/meetings").status_code == 403
    assert client.post(f"/admin/meetings/{seeded['meeting_id']}/status",
                       json={"status": "confirmed"}).status_code == 403


def test_admin_status_transitions(admin_client, seeded):
    url = f"/admin/meetings/{seeded['meeting_id']}/status"

    for status in ("confirmed", "completed", "confirmed", "cancelled", "confirmed"):
        resp = admin_client.post(url, json={"status": status})
        assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()["meeting"]["status"] == status


def test_admin_invalid_transition(admin_client, seeded):
    resp = admin_client.post(f"/admin/meetings/{seeded['meeting_id']}/status", json={"status": "completed"})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "INVALID_TRANSITION"

    assert admin_client.post("/admin/meetings/999/status", json={"status": "confirmed"}).status_code == 404


def test_admin_lists_and_filters(admin_client, future_day):
    rows = admin_client.get("/admin/meetings").get_json()
    assert len(rows) == 1
    assert rows[0]["allowed_transitions"] == ["confirmed", "cancelled"]

    assert len(admin_client.get("/admin/meetings?status=pending").get_json()) == 1
    assert admin_client.get("/admin/meetings?status=completed").get_json() == []
    assert len(admin_client.get(f"/admin/meetings?date={future_day.isoformat()}").get_json()) == 1
    other_day = (future_day + timedelta(days=1)).isoformat()
    assert admin_client.get(f"/admin/meetings?date={other_day}").get_json() == []
    assert len(admin_client.get("/admin/meetings?q=ANA@").get_json()) == 1
    assert admin_client.get("/admin/meetings?q=nobody").get_json() == []


def test_stats_are_cached_until_refresh_or_status_change(app, admin_client, seeded, future_day):
    stats = admin_client.get("/admin/stats").get_json()
    assert stats["total_meetings"] == 1
    assert stats["pending_meetings"] == 1

    with app.app_context():
        ana = User.query.filter_by(email="ana@example.com").first()
        create_meeting(ana, future_day, "16:00", status="completed")

    assert admin_client.get("/admin/stats").get_json()["total_meetings"] == 1
    assert admin_client.get("/admin/stats?refresh=1").get_json()["total_meetings"] == 2

    admin_client.post(f"/admin/meetings/{seeded['meeting_id']}/status", json={"status": "confirmed"})
    stats = admin_client.get("/admin/stats").get_json()
    assert stats["pending_meetings"] == 0
    assert stats["confirmed_meetings"] == 1


def test_audit_log_records_admin_actions(admin_client, seeded):
    admin_client.post(f"/admin/meetings/{seeded['meeting_id']}/status", json={"status": "confirmed"})
    rows = admin_client.get("/admin/audit-logs?action=ADMIN_MEETING_STATUS").get_json()

    assert len(rows) == 1
    assert rows[0]["entity_id"] == str(seeded["meeting_id"])


def test_me_reports_admin_flag(admin_client):
    assert admin_client.get("/auth/me").get_json()["is_admin"] is True


def test_block_and_unblock_user(app, admin_client, seeded):
    ana_id = next(u["id"] for u in admin_client.get("/admin/users").get_json() if u["email"] == "ana@example.com")

    resp = admin_client.post(f"/admin/users/{ana_id}/block", json={"reason": "spam"})
    assert resp.status_code == 201
    assert admin_client.post(f"/admin/users/{ana_id}/block").status_code == 409

    blocked = admin_client.get("/admin/users?filter=blocked").get_json()
    assert [u["email"] for u in blocked] == ["ana@example.com"]
    assert blocked[0]["blocked_reason"] == "spam"
    assert "ana@example.com" not in [u["email"] for u in admin_client.get("/admin/users?filter=active").get_json()]
    assert admin_client.get("/admin/stats").get_json()["blocked_users"] == 1

    other = app.test_client()
    resp = other.post("/auth/login", json={"email": "ana@example.com", "password": PASSWORD})
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "ACCOUNT_BLOCKED"

    assert admin_client.post(f"/admin/users/{ana_id}/unblock").status_code == 200
    assert admin_client.post(f"/admin/users/{ana_id}/unblock").status_code == 404
    assert admin_client.get("/admin/stats").get_json()["blocked_users"] == 0
    login(other, "ana@example.com")


def test_blocking_ends_the_users_sessions(app, client, seeded):
    login(client, "ana@example.com")
    admin = app.test_client()
    login(admin, "admin@example.com")

    ana_id = client.get("/auth/me").get_json()["id"]
    admin.post(f"/admin/users/{ana_id}/block")

    assert client.get("/auth/me").status_code == 401


def test_admins_cannot_be_blocked(admin_client):
    admin_id = admin_client.get("/auth/me").get_json()["id"]
    assert admin_client.post(f"/admin/users/{admin_id}/block").status_code == 403
    assert admin_client.post("/admin/users/999/block").status_code == 404
    assert admin_client.get("/admin/users?filter=deleted").status_code == 400
