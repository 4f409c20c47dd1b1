import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import matchtime.main as m
from matchtime.routes import swipes as swipe_routes
from matchtime.services import rate_limit

ME = "11111111-1111-1111-1111-111111111111"
THEM = "22222222-2222-2222-2222-222222222222"
MATCH_ID = "33333333-3333-3333-3333-333333333333"
CONVERSATION_ID = "44444444-4444-4444-4444-444444444444"


def _client(monkeypatch, tier="free", usage=None, bonus_super_likes=0):
    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "run_migrations", lambda *args, **kwargs: None)
    monkeypatch.setattr(m.auth_repo, "get_profile", lambda user_id: {"id": user_id, "is_active": True})
    monkeypatch.setattr(m.auth_repo, "is_blocked_pair", lambda a, b: False)
    monkeypatch.setattr(m.auth_repo, "get_swipe", lambda a, b: None)
    monkeypatch.setattr(m.auth_repo, "get_subscription", lambda user_id: {"tier": tier, "status": "active"})
    monkeypatch.setattr(
        m.auth_repo,
        "get_daily_usage",
        lambda user_id, day: usage or {"swipes_used": 0, "super_likes_used": 0, "boosts_used": 0},
    )
    monkeypatch.setattr(m.auth_repo, "get_or_create_stats", lambda user_id: {"bonus_super_likes": bonus_super_likes, "bonus_boosts": 0})
    rate_limit.limiter.reset()
    m.app.dependency_overrides[m.get_current_user] = lambda: {"id": ME, "email": "me@example.com"}
    return TestClient(m.app)


def test_mutual_like_creates_match_and_notifies_both(monkeypatch):
    client = _client(monkeypatch)
    published = []
    monkeypatch.setattr(swipe_routes, "publish_to_user", lambda user_id, event_type, payload: published.append((user_id, event_type, payload)))
    match = {"id": MATCH_ID, "conversation_id": CONVERSATION_ID, "user1_id": ME, "user2_id": THEM, "created_at": "2026-01-01T00:00:00Z"}
    monkeypatch.setattr(
        m.auth_repo,
        "record_swipe",
        lambda swiper, swiped, action, day, use_bonus_super_like: {"swipe": {"action": action}, "match": match, "notifications": []},
    )

    res = client.post("/swipes", json={"swiped_id": THEM, "action": "like"})
    assert res.status_code == 201
    body = res.json()
    assert body["is_match"] is True
    assert body["match"]["conversation_id"] == CONVERSATION_ID
    assert {(p[0], p[1]) for p in published} == {(ME, "match.created"), (THEM, "match.created")}
    assert {p[2]["other_user_id"] for p in published} == {ME, THEM}

    m.app.dependency_overrides = {}


def test_swipe_validation_errors(monkeypatch):
    client = _client(monkeypatch)

    assert client.post("/swipes", json={"swiped_id": THEM, "action": "love"}).status_code == 400
    assert client.post("/swipes", json={"swiped_id": "nope", "action": "like"}).status_code == 400
    assert client.post("/swipes", json={"swiped_id": ME, "action": "like"}).status_code == 400

    monkeypatch.setattr(m.auth_repo, "get_swipe", lambda a, b: {"action": "pass"})
    assert client.post("/swipes", json={"swiped_id": THEM, "action": "like"}).status_code == 409

    monkeypatch.setattr(m.auth_repo, "is_blocked_pair", lambda a, b: True)
    assert client.post("/swipes", json={"swiped_id": THEM, "action": "like"}).status_code == 403

    monkeypatch.setattr(m.auth_repo, "get_profile", lambda user_id: None)
    assert client.post("/swipes", json={"swiped_id": THEM, "action": "like"}).status_code == 404

    m.app.dependency_overrides = {}


def test_free_tier_daily_limit_and_super_like(monkeypatch):
    client = _client(monkeypatch, usage={"swipes_used": 50, "super_likes_used": 0, "boosts_used": 0})
    res = client.post("/swipes", json={"swiped_id": THEM, "action": "like"})
    assert res.status_code == 429
    assert "Daily swipe limit" in res.json()["detail"]

    client = _client(monkeypatch)
    res = client.post("/swipes", json={"swiped_id": THEM, "action": "super_like"})
    assert res.status_code == 403

    m.app.dependency_overrides = {}


def test_bonus_super_like_is_consumed(monkeypatch):
    client = _client(monkeypatch, bonus_super_likes=1)
    calls = {}

    def fake_record(swiper, swiped, action, day, use_bonus_super_like):
        calls["use_bonus"] = use_bonus_super_like
        return {"swipe": {"action": action}, "match": None, "notifications": []}

    monkeypatch.setattr(m.auth_repo, "record_swipe", fake_record)
    res = client.post("/swipes", json={"swiped_id": THEM, "action": "super_like"})
    assert res.status_code == 201
    assert res.json()["used_bonus_super_like"] is True
    assert calls["use_bonus"] is True

    m.app.dependency_overrides = {}


def test_swipe_limits_for_basic_tier(monkeypatch):
    client = _client(monkeypatch, tier="basic", usage={"swipes_used": 120, "super_likes_used": 2, "boosts_used": 0})
    body = client.get("/swipes/limits").json()
    assert body["tier"] == "basic"
    assert body["remaining_swipes"] is None
    assert body["remaining_super_likes"] == 3

    m.app.dependency_overrides = {}


def test_likes_received_is_gated_for_free_tier(monkeypatch):
    client = _client(monkeypatch)
    monkeypatch.setattr(m.auth_repo, "count_likes_received", lambda user_id: 4)
    body = client.get("/likes/received").json()
    assert body == {"count": 4, "likes": [], "upgrade_required": True}

    client = _client(monkeypatch, tier="basic")
    monkeypatch.setattr(
        m.auth_repo,
        "list_likes_received",
        lambda user_id: [{"id": THEM, "first_name": "Chipo", "action": "super_like", "liked_at": "2026-01-01T00:00:00"}],
    )
    body = client.get("/likes/received").json()
    assert body["upgrade_required"] is False
    assert body["likes"][0]["first_name"] == "Chipo"
    assert body["likes"][0]["action"] == "super_like"

    m.app.dependency_overrides = {}
