import json
from datetime import datetime, timezone

import pytest

pytest.importorskip("stripe")
import stripe

from matchtime.services import billing


def _subscription(price_id="price_premium_monthly", status="active"):
    return {
        "id": "sub_123",
        "customer": "cus_123",
        "status": status,
        "current_period_start": 1767225600,
        "current_period_end": 1769904000,
        "items": {"data": [{"price": {"id": price_id}}]},
    }


def test_subscription_change_maps_price_to_tier():
    change = billing.subscription_change(_subscription())
    assert change.tier == "premium"
    assert change.status == "active"
    assert change.stripe_customer_id == "cus_123"
    assert change.current_period_start == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_subscription_change_reads_period_from_items_when_missing():
    sub = _subscription(price_id="price_elite_yearly")
    sub.pop("current_period_end")
    sub["items"]["data"][0]["current_period_end"] = 1769904000
    change = billing.subscription_change(sub)
    assert change.tier == "elite"
    assert change.current_period_end == datetime(2026, 2, 1, tzinfo=timezone.utc)


def test_deleted_subscription_falls_back_to_free():
    change = billing.subscription_change(_subscription(), deleted=True)
    assert (change.tier, change.status) == ("free", "canceled")


def test_unknown_price_is_free():
    assert billing.subscription_change(_subscription(price_id="price_mystery")).tier == "free"
    assert not billing.is_known_price("price_mystery")
    assert billing.is_known_price("price_basic_monthly")


def test_notification_for_invoice_events():
    title, message = billing.notification_for_event("invoice.payment_succeeded", {"amount_paid": 1999, "currency": "usd"})
    assert title == "Payment Received"
    assert "19.99 USD" in message

    title, message = billing.notification_for_event("invoice.payment_failed", {"amount_due": 999, "currency": "eur"})
    assert title == "Payment Failed"
    assert "9.99 EUR" in message

    change = billing.subscription_change(_subscription(price_id="price_basic_monthly"))
    title, message = billing.notification_for_event("customer.subscription.updated", {}, change)
    assert message == "Your plan is now Basic (active)."
    assert billing.notification_for_event("charge.refunded", {}) is None


def test_construct_event_requires_configured_secret(monkeypatch):
    monkeypatch.setattr(billing, "STRIPE_WEBHOOK_SECRET", "")
    with pytest.raises(billing.BillingConfigError):
        billing.construct_event(b"{}", "t=1,v1=abc")


def test_construct_event_verifies_signature(monkeypatch):
    monkeypatch.setattr(billing, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    payload = json.dumps({"id": "evt_1", "type": "invoice.payment_succeeded", "data": {"object": {}}}).encode()

    with pytest.raises(billing.WebhookVerificationError, match="Missing"):
        billing.construct_event(payload, None)

    def bad_signature(*args, **kwargs):
        raise stripe.SignatureVerificationError("no match", "t=1,v1=bad")

    monkeypatch.setattr(stripe.Webhook, "construct_event", bad_signature)
    with pytest.raises(billing.WebhookVerificationError, match="Invalid signature"):
        billing.construct_event(payload, "t=1,v1=bad")

    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda *args, **kwargs: object())
    event = billing.construct_event(payload, "t=1,v1=good")
    assert event["type"] == "invoice.payment_succeeded"
