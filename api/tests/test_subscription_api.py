import json

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import matchtime.main as m
from matchtime.services import billing

ME = "11111111-1111-1111-1111-111111111111"


def _client(monkeypatch, tier="free", boosts_used=0, bonus_boosts=0, active_boost=None):
    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "run_migrations", lambda *args, **kwargs: None)
    monkeypatch.setattr(m.auth_repo, "get_subscription", lambda uid: {"tier": tier, "status": "active"})
    monkeypatch.setattr(m.auth_repo, "count_boosts_since", lambda uid, since: boosts_used)
    monkeypatch.setattr(m.auth_repo, "get_or_create_stats", lambda uid: {"bonus_boosts": bonus_boosts})
    monkeypatch.setattr(m.auth_repo, "get_active_boost", lambda uid: active_boost)
    m.app.dependency_overrides[m.get_current_user] = lambda: {"id": ME, "email": "me@example.com"}
    return TestClient(m.app)


def _event(event_type, obj):
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


def test_webhook_rejects_bad_signature(monkeypatch):
    client = _client(monkeypatch)

    def reject(payload, signature):
        raise billing.WebhookVerificationError("Invalid signature")

    monkeypatch.setattr(billing, "construct_event", reject)
    res = client.post("/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=bad"})
    assert res.status_code == 400

    def unconfigured(payload, signature):
        raise billing.BillingConfigError("missing")

    monkeypatch.setattr(billing, "construct_event", unconfigured)
    res = client.post("/webhooks/stripe", content=b"{}")
    assert res.status_code == 503

    m.app.dependency_overrides = {}


def test_webhook_subscription_update_applies_tier(monkeypatch):
    client = _client(monkeypatch)
    applied = {}
    subscription = {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "active",
        "metadata": {"user_id": ME},
        "current_period_end": 1769904000,
        "items": {"data": [{"price": {"id": "price_elite_monthly"}}]},
    }
    monkeypatch.setattr(billing, "construct_event", lambda payload, sig: json.loads(payload))

    def fake_apply(user_id, change, *, title, message, event_type):
        applied.update({"user_id": user_id, "tier": change.tier, "title": title, "event_type": event_type})

    monkeypatch.setattr(m.auth_repo, "apply_subscription_change", fake_apply)
    res = client.post(
        "/webhooks/stripe",
        content=json.dumps(_event("customer.subscription.updated", subscription)),
        headers={"stripe-signature": "t=1,v1=ok"},
    )
    assert res.status_code == 200
    assert res.json() == {"received": True, "handled": True}
    assert applied == {
        "user_id": ME,
        "tier": "elite",
        "title": "Subscription Updated",
        "event_type": "customer.subscription.updated",
    }

    m.app.dependency_overrides = {}


def test_webhook_invoice_uses_stored_customer_and_notifies(monkeypatch):
    client = _client(monkeypatch)
    notes = []
    monkeypatch.setattr(billing, "construct_event", lambda payload, sig: json.loads(payload))
    monkeypatch.setattr(billing, "customer_user_id", lambda customer_id: None)
    monkeypatch.setattr(m.auth_repo, "find_user_by_customer", lambda customer_id: ME if customer_id == "cus_9" else None)
    monkeypatch.setattr(m.auth_repo, "add_notification", lambda **kwargs: notes.append(kwargs))

    invoice = {"id": "in_1", "customer": "cus_9", "amount_due": 1999, "currency": "usd"}
    res = client.post("/webhooks/stripe", content=json.dumps(_event("invoice.payment_failed", invoice)), headers={"stripe-signature": "x"})
    assert res.json()["handled"] is True
    assert notes[0]["user_id"] == ME
    assert notes[0]["notification_type"] == "payment"
    assert notes[0]["title"] == "Payment Failed"

    res = client.post("/webhooks/stripe", content=json.dumps(_event("charge.refunded", {})), headers={"stripe-signature": "x"})
    assert res.json() == {"received": True, "handled": False}

    m.app.dependency_overrides = {}


def test_checkout_rejects_unknown_price(monkeypatch):
    client = _client(monkeypatch)
    res = client.post("/subscription/checkout", json={"price_id": "price_nope"})
    assert res.status_code == 400

    m.app.dependency_overrides = {}


def test_subscription_summary(monkeypatch):
    client = _client(monkeypatch, tier="premium")
    monkeypatch.setattr(m.auth_repo, "get_daily_usage", lambda uid, day: {"swipes_used": 3, "super_likes_used": 1, "boosts_used": 0})
    body = client.get("/subscription").json()
    assert body["tier"] == "premium"
    assert body["features"]["advanced_filters"] is True
    assert body["remaining_swipes"] is None

    plans = client.get("/subscription/plans").json()["plans"]
    assert [p["id"] for p in plans] == ["free", "basic", "premium", "elite"]

    m.app.dependency_overrides = {}


def test_boost_quota_then_bonus(monkeypatch):
    created = []

    client = _client(monkeypatch, tier="premium", boosts_used=1)
    monkeypatch.setattr(m.auth_repo, "create_boost", lambda uid, minutes, use_bonus: created.append(use_bonus) or {"id": "b1"})
    res = client.post("/boosts")
    assert res.status_code == 201
    assert res.json()["remaining_boosts"] == 3

    client = _client(monkeypatch, tier="premium", boosts_used=5, bonus_boosts=1)
    monkeypatch.setattr(m.auth_repo, "create_boost", lambda uid, minutes, use_bonus: created.append(use_bonus) or {"id": "b2"})
    res = client.post("/boosts")
    assert res.status_code == 201
    assert res.json()["used_bonus"] is True
    assert created == [False, True]

    client = _client(monkeypatch, tier="premium", boosts_used=5)
    assert client.post("/boosts").status_code == 429

    client = _client(monkeypatch, tier="free")
    assert client.post("/boosts").status_code == 403

    client = _client(monkeypatch, tier="elite", active_boost={"id": "b0"})
    assert client.post("/boosts").status_code == 409

    m.app.dependency_overrides = {}
