import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import matchtime.main as m
from matchtime import admin_repo, config
from matchtime.services import rate_limit

ME = "11111111-1111-1111-1111-111111111111"
THEM = "22222222-2222-2222-2222-222222222222"
REPORT_ID = "55555555-5555-5555-5555-555555555555"
VERIFICATION_ID = "66666666-6666-6666-6666-666666666666"


def _client(monkeypatch, roles=None, email="me@example.com"):
    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "run_migrations", lambda *args, **kwargs: None)
    monkeypatch.setattr(m.auth_repo, "get_profile", lambda user_id: {"id": user_id, "is_active": True})
    monkeypatch.setattr(m.auth_repo, "get_user_roles", lambda user_id: list(roles or []))
    monkeypatch.setattr(m.auth_repo, "log_audit", lambda **kwargs: None)
    rate_limit.limiter.reset()
    m.app.dependency_overrides[m.get_current_user] = lambda: {"id": ME, "email": email}
    return TestClient(m.app)


def test_block_user(monkeypatch):
    client = _client(monkeypatch)
    blocks = []
    monkeypatch.setattr(m.auth_repo, "create_block", lambda blocker, blocked, reason: blocks.append((blocker, blocked, reason)))

    res = client.post("/safety/block", json={"blocked_id": THEM, "reason": "<i>rude</i>"})
    assert res.status_code == 200
    assert blocks == [(ME, THEM, "rude")]

    assert client.post("/safety/block", json={"blocked_id": ME}).status_code == 400

    monkeypatch.setattr(m.auth_repo, "get_profile", lambda user_id: None)
    assert client.post("/safety/block", json={"blocked_id": THEM}).status_code == 404

    m.app.dependency_overrides = {}


def test_report_validation_and_rate_limit(monkeypatch):
    client = _client(monkeypatch)
    created = []

    def fake_report(**kwargs):
        created.append(kwargs)
        return {"id": f"r{len(created)}", **kwargs}

    monkeypatch.setattr(m.auth_repo, "create_report", fake_report)

    assert client.post("/safety/report", json={"reported_id": THEM, "reason": "boring"}).status_code == 400
    assert client.post("/safety/report", json={"reported_id": ME, "reason": "spam"}).status_code == 400
    assert client.post("/safety/report", json={"reported_id": THEM, "reason": "spam", "content_type": "video"}).status_code == 400

    for _ in range(config.RL_REPORT_LIMIT):
        res = client.post(
            "/safety/report",
            json={"reported_id": THEM, "reason": "spam", "content_type": "message", "content_metadata": {"message_id": "m1"}},
        )
        assert res.status_code == 201
    assert created[0]["content_metadata"] == {"message_id": "m1"}

    res = client.post("/safety/report", json={"reported_id": THEM, "reason": "spam"})
    assert res.status_code == 429

    m.app.dependency_overrides = {}


def test_professional_verification_needs_document(monkeypatch):
    client = _client(monkeypatch)
    monkeypatch.setattr(m.auth_repo, "get_latest_verification", lambda user_id: None)
    png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16

    res = client.post(
        "/verification",
        data={"verification_type": "professional"},
        files={"selfie": ("me.png", png, "image/png")},
    )
    assert res.status_code == 400

    monkeypatch.setattr(m.auth_repo, "get_latest_verification", lambda user_id: {"status": "pending"})
    res = client.post(
        "/verification",
        data={"verification_type": "photo"},
        files={"selfie": ("me.png", png, "image/png")},
    )
    assert res.status_code == 409

    m.app.dependency_overrides = {}


def test_admin_routes_require_admin_role(monkeypatch):
    client = _client(monkeypatch)
    assert client.get("/admin/statistics").status_code == 403
    assert client.get("/admin/reports").status_code == 403

    monkeypatch.setattr(config, "SUPER_ADMIN_EMAILS", {"root@example.com"})
    monkeypatch.setattr(admin_repo, "get_statistics", lambda: {"total_users": 3})
    client = _client(monkeypatch, email="root@example.com")
    res = client.get("/admin/statistics")
    assert res.status_code == 200
    assert res.json() == {"statistics": {"total_users": 3}}

    m.app.dependency_overrides = {}


def test_admin_resolves_report_with_suspension(monkeypatch):
    client = _client(monkeypatch, roles=["admin"])
    captured = {}

    def fake_resolve(**kwargs):
        captured.update(kwargs)
        return {"id": kwargs["report_id"], "status": kwargs["status"], "user_suspended": kwargs["suspend_user"]}

    monkeypatch.setattr(admin_repo, "resolve_report", fake_resolve)
    res = client.post(f"/admin/reports/{REPORT_ID}/resolve", json={"status": "resolved", "suspend_user": True})
    assert res.status_code == 200
    assert res.json()["report"]["user_suspended"] is True
    assert captured["admin_user_id"] == ME

    assert client.post(f"/admin/reports/{REPORT_ID}/resolve", json={"status": "ignored"}).status_code == 400

    monkeypatch.setattr(admin_repo, "resolve_report", lambda **kwargs: None)
    assert client.post(f"/admin/reports/{REPORT_ID}/resolve", json={}).status_code == 404

    m.app.dependency_overrides = {}


def test_admin_reviews_verification(monkeypatch):
    client = _client(monkeypatch, roles=["admin"])
    monkeypatch.setattr(
        admin_repo,
        "review_verification",
        lambda **kwargs: {"id": kwargs["verification_id"], "status": "verified" if kwargs["approved"] else "rejected", "badge": kwargs["badge"]},
    )

    res = client.post(f"/admin/verifications/{VERIFICATION_ID}/review", json={"approved": True, "badge": "Doctor"})
    assert res.json()["verification"] == {"id": VERIFICATION_ID, "status": "verified", "badge": "Doctor"}

    assert client.post(f"/admin/verifications/{VERIFICATION_ID}/review", json={"approved": "yes"}).status_code == 400

    m.app.dependency_overrides = {}


def test_admin_fake_user_generation_bounds(monkeypatch):
    client = _client(monkeypatch, roles=["admin"])
    assert client.post("/admin/fake-users/generate", json={"count": 0}).status_code == 400
    assert client.post("/admin/fake-users/generate", json={"count": 101}).status_code == 400
    assert client.post("/admin/fake-users/generate", json={"count": 5, "female_ratio": 2}).status_code == 400

    m.app.dependency_overrides = {}


def test_lodge_manager_can_add_accommodation(monkeypatch):
    client = _client(monkeypatch)
    body = {"name": "Lake Lodge", "type": "cabin", "price_per_night": "85.50", "location_city": "Siavonga"}
    assert client.post("/accommodations", json=body).status_code == 403

    client = _client(monkeypatch, roles=["lodge_manager"])
    created = {}
    monkeypatch.setattr(m.auth_repo, "create_accommodation", lambda owner_id, fields: created.update(fields) or {"id": "a1", **fields})
    res = client.post("/accommodations", json=body)
    assert res.status_code == 201
    assert created["type"] == "cabin"
    assert str(created["price_per_night"]) == "85.50"

    assert client.post("/accommodations", json={**body, "price_per_night": "-1"}).status_code == 400
    assert client.post("/accommodations", json={**body, "type": "tent"}).status_code == 400

    m.app.dependency_overrides = {}
