"""
Subscription tiers and the per-day allowances they unlock.

Everything here is pure so the swipe, boost and discovery routes can share one
source of truth for what a tier is allowed to do.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fastapi import HTTPException

from ..config import (
    BASIC_DAILY_SUPER_LIKES,
    ELITE_MONTHLY_BOOSTS,
    FREE_DAILY_SWIPES,
    PREMIUM_MONTHLY_BOOSTS,
)

TIER_ORDER = {"free": 0, "basic": 1, "premium": 2, "elite": 3}
ACTIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}

PLANS: list[dict[str, Any]] = [
    {
        "id": "free",
        "name": "Free",
        "price": 0,
        "interval": "forever",
        "price_id": None,
        "features": ["50 swipes per day", "Basic matching", "Send messages to matches"],
    },
    {
        "id": "basic",
        "name": "Basic",
        "price": 9.99,
        "interval": "month",
        "price_id": "price_basic_monthly",
        "features": ["Unlimited swipes", "See who liked you", "5 super likes per day"],
    },
    {
        "id": "premium",
        "name": "Premium",
        "price": 19.99,
        "interval": "month",
        "price_id": "price_premium_monthly",
        "features": ["Everything in Basic", "Unlimited super likes", "5 boosts per month", "Advanced filters", "Read receipts"],
    },
    {
        "id": "elite",
        "name": "Elite",
        "price": 29.99,
        "interval": "month",
        "price_id": "price_elite_monthly",
        "features": ["Everything in Premium", "10 boosts per month"],
    },
]


@dataclass(frozen=True)
class TierFeatures:
    daily_swipes: int | None
    daily_super_likes: int | None
    monthly_boosts: int
    see_who_liked_you: bool
    profile_views: bool
    advanced_filters: bool
    read_receipts: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "daily_swipes": self.daily_swipes,
            "daily_super_likes": self.daily_super_likes,
            "monthly_boosts": self.monthly_boosts,
            "see_who_liked_you": self.see_who_liked_you,
            "profile_views": self.profile_views,
            "advanced_filters": self.advanced_filters,
            "read_receipts": self.read_receipts,
        }


TIER_FEATURES: dict[str, TierFeatures] = {
    "free": TierFeatures(FREE_DAILY_SWIPES, 0, 0, False, False, False, False),
    "basic": TierFeatures(None, BASIC_DAILY_SUPER_LIKES, 0, True, True, False, False),
    "premium": TierFeatures(None, None, PREMIUM_MONTHLY_BOOSTS, True, True, True, True),
    "elite": TierFeatures(None, None, ELITE_MONTHLY_BOOSTS, True, True, True, True),
}


def effective_tier(subscription: dict[str, Any] | None, now: datetime | None = None) -> str:
    if not subscription:
        return "free"
    tier = str(subscription.get("tier") or "free")
    status = str(subscription.get("status") or "active")
    if tier not in TIER_ORDER or status not in ACTIVE_SUBSCRIPTION_STATUSES:
        return "free"
    period_end = subscription.get("current_period_end")
    if now is not None and isinstance(period_end, datetime) and period_end < now:
        return "free"
    return tier


def features_for(tier: str) -> TierFeatures:
    return TIER_FEATURES.get(tier, TIER_FEATURES["free"])


def has_tier(tier: str, required: str) -> bool:
    return TIER_ORDER.get(tier, 0) >= TIER_ORDER[required]


def require_tier(tier: str, required: str, feature: str) -> None:
    if not has_tier(tier, required):
        raise HTTPException(status_code=403, detail=f"{feature} requires the {required} plan or higher")


@dataclass
class SwipeAllowance:
    allowed: bool
    use_bonus_super_like: bool = False
    reason: str | None = None


def remaining_swipes(tier: str, swipes_used: int) -> int | None:
    limit = features_for(tier).daily_swipes
    if limit is None:
        return None
    return max(0, limit - int(swipes_used or 0))


def remaining_super_likes(tier: str, super_likes_used: int) -> int | None:
    limit = features_for(tier).daily_super_likes
    if limit is None:
        return None
    return max(0, limit - int(super_likes_used or 0))


def check_swipe_allowance(tier: str, action: str, usage: dict[str, Any], bonus_super_likes: int = 0) -> SwipeAllowance:
    swipes_left = remaining_swipes(tier, int(usage.get("swipes_used") or 0))
    if swipes_left is not None and swipes_left <= 0:
        return SwipeAllowance(False, reason="Daily swipe limit reached. Upgrade to premium for unlimited swipes!")

    if action != "super_like":
        return SwipeAllowance(True)

    super_left = remaining_super_likes(tier, int(usage.get("super_likes_used") or 0))
    if super_left is None or super_left > 0:
        return SwipeAllowance(True)
    if int(bonus_super_likes or 0) > 0:
        return SwipeAllowance(True, use_bonus_super_like=True)
    if tier == "free":
        return SwipeAllowance(False, reason="Super likes are available for premium users only!")
    return SwipeAllowance(False, reason="Daily super like limit reached")


def boosts_remaining(tier: str, boosts_this_month: int, bonus_boosts: int = 0) -> int:
    return max(0, features_for(tier).monthly_boosts - int(boosts_this_month or 0)) + max(0, int(bonus_boosts or 0))


def tier_for_price(price_id: str | None, price_tiers: dict[str, str]) -> str:
    if not price_id:
        return "free"
    return price_tiers.get(price_id, "free")
