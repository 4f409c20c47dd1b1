import logging
from datetime import datetime, timezone
from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..config import BOOST_DURATION_MINUTES
from ..deps import tier_for_user
from ..services import billing
from ..services.tiers import PLANS, boosts_remaining, features_for, remaining_super_likes, remaining_swipes

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

HANDLED_EVENTS = billing.SUBSCRIPTION_EVENTS | {
    "customer.subscription.deleted",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
}


@scaffold_router.get("/health")
def subscription_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "subscription"}


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


@router.get("/subscription")
def get_subscription(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    subscription = auth_repo.get_subscription(user_id) or {}
    tier = tier_for_user(user_id)
    usage = auth_repo.get_daily_usage(user_id, datetime.now(timezone.utc).date())
    return {
        "tier": tier,
        "status": subscription.get("status") or "active",
        "current_period_end": subscription.get("current_period_end"),
        "has_billing_account": bool(subscription.get("stripe_customer_id")),
        "features": features_for(tier).as_dict(),
        "remaining_swipes": remaining_swipes(tier, usage["swipes_used"]),
        "remaining_super_likes": remaining_super_likes(tier, usage["super_likes_used"]),
    }


@router.get("/subscription/plans")
def list_plans() -> dict[str, Any]:
    return {"plans": PLANS}


def _billing_error(exc: Exception) -> HTTPException:
    if isinstance(exc, billing.BillingConfigError):
        return HTTPException(status_code=503, detail="Billing is not configured")
    logger.error(f"[billing] stripe request failed: {exc}")
    return HTTPException(status_code=502, detail="Payment provider error")


@router.post("/subscription/checkout")
def create_checkout(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    price_id = str(payload.get("price_id") or "").strip()
    if not billing.is_known_price(price_id):
        raise HTTPException(status_code=400, detail="Unknown price_id")
    existing = (auth_repo.get_subscription(user_id) or {}).get("stripe_customer_id")
    try:
        customer_id = billing.get_or_create_customer(user_id, str(current_user["email"]), existing)
        if customer_id != existing:
            auth_repo.set_stripe_customer(user_id, customer_id)
        url = billing.create_checkout_session(user_id, customer_id, price_id)
    except (billing.BillingConfigError, stripe.StripeError) as exc:
        raise _billing_error(exc)
    logger.info(f"[billing] checkout session created user_id={user_id} price_id={price_id}")
    return {"url": url}


@router.post("/subscription/portal")
def create_portal(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    customer_id = (auth_repo.get_subscription(str(current_user["id"])) or {}).get("stripe_customer_id")
    if not customer_id:
        raise HTTPException(status_code=404, detail="No billing account found")
    try:
        url = billing.create_portal_session(customer_id)
    except (billing.BillingConfigError, stripe.StripeError) as exc:
        raise _billing_error(exc)
    return {"url": url}


def _resolve_user_id(obj: dict[str, Any]) -> str | None:
    metadata = obj.get("metadata") or {}
    if metadata.get("user_id"):
        return str(metadata["user_id"])
    customer_id = obj.get("customer")
    from_customer = billing.customer_user_id(customer_id)
    if from_customer:
        return str(from_customer)
    if customer_id:
        return auth_repo.find_user_by_customer(str(customer_id))
    return None


def _handle_event(event: dict[str, Any]) -> dict[str, Any]:
    event_type = str(event.get("type") or "")
    obj = ((event.get("data") or {}).get("object")) or {}
    if event_type not in HANDLED_EVENTS:
        logger.info(f"[billing] ignoring webhook event type={event_type}")
        return {"received": True, "handled": False}

    user_id = _resolve_user_id(obj)
    if not user_id:
        logger.warning(f"[billing] no user for webhook event type={event_type} id={event.get('id')}")
        return {"received": True, "handled": False}

    if event_type in billing.SUBSCRIPTION_EVENTS or event_type == "customer.subscription.deleted":
        change = billing.subscription_change(obj, deleted=event_type == "customer.subscription.deleted")
        title, message = billing.notification_for_event(event_type, obj, change)
        auth_repo.apply_subscription_change(user_id, change, title=title, message=message, event_type=event_type)
        logger.info(f"[billing] subscription {event_type} user_id={user_id} tier={change.tier} status={change.status}")
    else:
        title, message = billing.notification_for_event(event_type, obj)
        auth_repo.add_notification(
            user_id=user_id,
            notification_type="payment",
            title=title,
            message=message,
            metadata={"event_type": event_type, "invoice_id": obj.get("id")},
        )
        logger.info(f"[billing] invoice {event_type} user_id={user_id}")
    return {"received": True, "handled": True}


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request) -> dict[str, Any]:
    payload = await request.body()
    try:
        event = billing.construct_event(payload, request.headers.get("stripe-signature"))
    except billing.BillingConfigError:
        raise HTTPException(status_code=503, detail="Billing is not configured")
    except billing.WebhookVerificationError as exc:
        logger.warning(f"[billing] webhook rejected: {exc}")
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        return _handle_event(event)
    except Exception as exc:
        logger.exception(f"[billing] webhook handler failed type={event.get('type')}")
        raise HTTPException(status_code=500, detail="Webhook handler failed") from exc


@router.get("/boosts/active")
def get_active_boost(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    tier = tier_for_user(user_id)
    used = auth_repo.count_boosts_since(user_id, _month_start(datetime.now(timezone.utc)))
    stats = auth_repo.get_or_create_stats(user_id)
    return {
        "boost": auth_repo.get_active_boost(user_id),
        "remaining_boosts": boosts_remaining(tier, used, int(stats.get("bonus_boosts") or 0)),
    }


@router.post("/boosts", status_code=201)
def start_boost(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    if auth_repo.get_active_boost(user_id):
        raise HTTPException(status_code=409, detail="A boost is already active")

    tier = tier_for_user(user_id)
    monthly = features_for(tier).monthly_boosts
    used = auth_repo.count_boosts_since(user_id, _month_start(datetime.now(timezone.utc)))
    bonus = int(auth_repo.get_or_create_stats(user_id).get("bonus_boosts") or 0)

    if used < monthly:
        use_bonus = False
    elif bonus > 0:
        use_bonus = True
    elif monthly == 0:
        raise HTTPException(status_code=403, detail="Boosts require the premium plan or higher")
    else:
        raise HTTPException(status_code=429, detail="Monthly boost limit reached")

    boost = auth_repo.create_boost(user_id, BOOST_DURATION_MINUTES, use_bonus=use_bonus)
    logger.info(f"[boosts] started user_id={user_id} bonus={use_bonus}")
    return {
        "boost": boost,
        "used_bonus": use_bonus,
        "remaining_boosts": boosts_remaining(tier, used + (0 if use_bonus else 1), bonus - (1 if use_bonus else 0)),
    }
