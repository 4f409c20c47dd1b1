import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..deps import parse_uuid, profile_card, tier_for_user
from ..services.realtime import publish_to_user
from ..services.tiers import check_swipe_allowance, features_for, remaining_super_likes, remaining_swipes

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

SWIPE_ACTIONS = {"like", "pass", "super_like"}


def _utc_today():
    return datetime.now(timezone.utc).date()


@scaffold_router.get("/health")
def swipes_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "swipes"}


@router.post("/swipes", status_code=201)
def create_swipe(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    action = str(payload.get("action") or "").strip().lower()
    if action not in SWIPE_ACTIONS:
        raise HTTPException(status_code=400, detail="action must be one of: like, pass, super_like")
    swiped_id = parse_uuid(payload.get("swiped_id"), "swiped_id")
    if swiped_id == user_id:
        raise HTTPException(status_code=400, detail="You cannot swipe on yourself")

    target = auth_repo.get_profile(swiped_id)
    if not target or not target.get("is_active"):
        raise HTTPException(status_code=404, detail="Profile not found")
    if auth_repo.is_blocked_pair(user_id, swiped_id):
        raise HTTPException(status_code=403, detail="You cannot interact with this user")
    if auth_repo.get_swipe(user_id, swiped_id):
        raise HTTPException(status_code=409, detail="You have already swiped on this profile")

    today = _utc_today()
    tier = tier_for_user(user_id)
    usage = auth_repo.get_daily_usage(user_id, today)
    stats = auth_repo.get_or_create_stats(user_id)
    allowance = check_swipe_allowance(tier, action, usage, int(stats.get("bonus_super_likes") or 0))
    if not allowance.allowed:
        status = 403 if action == "super_like" and tier == "free" else 429
        raise HTTPException(status_code=status, detail=allowance.reason)

    result = auth_repo.record_swipe(
        user_id,
        swiped_id,
        action,
        day=today,
        use_bonus_super_like=allowance.use_bonus_super_like,
    )
    if result is None:
        raise HTTPException(status_code=409, detail="You have already swiped on this profile")

    match = result.get("match")
    if match:
        logger.info(f"[swipes] match created match_id={match['id']}")
        for uid, other in ((user_id, swiped_id), (swiped_id, user_id)):
            publish_to_user(uid, "match.created", {**match, "other_user_id": other})

    return {
        "swipe": result["swipe"],
        "is_match": bool(match),
        "match": match,
        "used_bonus_super_like": allowance.use_bonus_super_like,
    }


@router.get("/swipes/limits")
def get_swipe_limits(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    tier = tier_for_user(user_id)
    usage = auth_repo.get_daily_usage(user_id, _utc_today())
    stats = auth_repo.get_or_create_stats(user_id)
    return {
        "tier": tier,
        "swipes_used": usage["swipes_used"],
        "super_likes_used": usage["super_likes_used"],
        "remaining_swipes": remaining_swipes(tier, usage["swipes_used"]),
        "remaining_super_likes": remaining_super_likes(tier, usage["super_likes_used"]),
        "bonus_super_likes": int(stats.get("bonus_super_likes") or 0),
        "bonus_boosts": int(stats.get("bonus_boosts") or 0),
    }


@router.get("/likes/received")
def get_likes_received(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    tier = tier_for_user(user_id)
    if not features_for(tier).see_who_liked_you:
        return {"count": auth_repo.count_likes_received(user_id), "likes": [], "upgrade_required": True}
    likes = []
    for row in auth_repo.list_likes_received(user_id):
        card = profile_card(row)
        card["action"] = row.get("action")
        card["liked_at"] = row.get("liked_at")
        likes.append(card)
    return {"count": len(likes), "likes": likes, "upgrade_required": False}
