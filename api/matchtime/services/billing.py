"""
Stripe checkout, billing portal and webhook translation.

Webhook events are turned into plain ``SubscriptionChange`` / notification
records here; persisting them is left to the repository layer so this module
stays testable with a monkeypatched ``stripe``.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import stripe

from ..config import (
    CHECKOUT_CANCEL_URL,
    CHECKOUT_SUCCESS_URL,
    PORTAL_RETURN_URL,
    STRIPE_PRICE_TIERS,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
)
from .tiers import tier_for_price

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = {"customer.subscription.created", "customer.subscription.updated"}


class BillingConfigError(RuntimeError):
    pass


class WebhookVerificationError(ValueError):
    pass


@dataclass
class SubscriptionChange:
    tier: str
    status: str
    stripe_customer_id: str | None
    stripe_subscription_id: str | None
    current_period_start: datetime | None
    current_period_end: datetime | None


def _configure() -> None:
    if not STRIPE_SECRET_KEY:
        raise BillingConfigError("Stripe secret key not configured")
    stripe.api_key = STRIPE_SECRET_KEY


def _field(obj: Any, key: str, default: Any = None) -> Any:
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _ts(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def is_known_price(price_id: str | None) -> bool:
    return bool(price_id) and price_id in STRIPE_PRICE_TIERS


def get_or_create_customer(user_id: str, email: str, existing_customer_id: str | None = None) -> str:
    _configure()
    if existing_customer_id:
        try:
            customer = stripe.Customer.retrieve(existing_customer_id)
            if not _field(customer, "deleted", False):
                return str(customer["id"])
        except stripe.InvalidRequestError:
            logger.warning(f"[billing] stored customer {existing_customer_id} missing, creating a new one")
    customer = stripe.Customer.create(email=email, metadata={"user_id": user_id})
    logger.info(f"[billing] created customer {customer['id']} user_id={user_id}")
    return str(customer["id"])


def create_checkout_session(user_id: str, customer_id: str, price_id: str) -> str:
    _configure()
    session = stripe.checkout.Session.create(
        customer=customer_id,
        mode="subscription",
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=CHECKOUT_SUCCESS_URL,
        cancel_url=CHECKOUT_CANCEL_URL,
        client_reference_id=user_id,
        metadata={"user_id": user_id},
        subscription_data={"metadata": {"user_id": user_id}},
    )
    return str(session["url"])


def create_portal_session(customer_id: str) -> str:
    _configure()
    session = stripe.billing_portal.Session.create(customer=customer_id, return_url=PORTAL_RETURN_URL)
    return str(session["url"])


def construct_event(payload: bytes, signature: str | None) -> dict[str, Any]:
    if not STRIPE_WEBHOOK_SECRET:
        raise BillingConfigError("Stripe webhook secret not configured")
    if not signature:
        raise WebhookVerificationError("Missing Stripe-Signature header")
    try:
        stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    except ValueError as exc:
        raise WebhookVerificationError("Invalid payload") from exc
    except stripe.SignatureVerificationError as exc:
        raise WebhookVerificationError("Invalid signature") from exc
    return json.loads(payload)


def customer_user_id(customer_id: str | None) -> str | None:
    if not customer_id or not STRIPE_SECRET_KEY:
        return None
    stripe.api_key = STRIPE_SECRET_KEY
    try:
        customer = stripe.Customer.retrieve(customer_id)
    except stripe.StripeError as exc:
        logger.warning(f"[billing] could not load customer {customer_id}: {exc}")
        return None
    metadata = _field(customer, "metadata", {}) or {}
    return _field(metadata, "user_id")


def subscription_price_id(subscription: dict[str, Any]) -> str | None:
    items = _field(_field(subscription, "items", {}), "data", []) or []
    if not items:
        return None
    return _field(_field(items[0], "price", {}), "id")


def subscription_change(subscription: dict[str, Any], deleted: bool = False) -> SubscriptionChange:
    items = _field(_field(subscription, "items", {}), "data", []) or []
    first_item = items[0] if items else {}
    period_start = _field(subscription, "current_period_start") or _field(first_item, "current_period_start")
    period_end = _field(subscription, "current_period_end") or _field(first_item, "current_period_end")
    if deleted:
        tier = "free"
        status = "canceled"
    else:
        tier = tier_for_price(subscription_price_id(subscription), STRIPE_PRICE_TIERS)
        status = str(_field(subscription, "status", "active"))
    return SubscriptionChange(
        tier=tier,
        status=status,
        stripe_customer_id=_field(subscription, "customer"),
        stripe_subscription_id=_field(subscription, "id"),
        current_period_start=_ts(period_start),
        current_period_end=_ts(period_end),
    )


def format_amount(amount_cents: Any, currency: Any) -> str:
    try:
        amount = int(amount_cents or 0) / 100
    except (TypeError, ValueError):
        amount = 0.0
    return f"{amount:.2f} {str(currency or 'usd').upper()}"


def notification_for_event(event_type: str, obj: dict[str, Any], change: SubscriptionChange | None = None) -> tuple[str, str] | None:
    if event_type in SUBSCRIPTION_EVENTS and change is not None:
        return "Subscription Updated", f"Your plan is now {change.tier.title()} ({change.status})."
    if event_type == "customer.subscription.deleted":
        return "Subscription Canceled", "Your subscription has ended. You are now on the Free plan."
    if event_type == "invoice.payment_succeeded":
        paid = format_amount(_field(obj, "amount_paid"), _field(obj, "currency"))
        return "Payment Received", f"We received your payment of {paid}. Thank you!"
    if event_type == "invoice.payment_failed":
        due = format_amount(_field(obj, "amount_due"), _field(obj, "currency"))
        return "Payment Failed", f"Your payment of {due} failed. Please update your payment method."
    return None
