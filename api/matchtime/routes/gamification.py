from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..services.gamification import stats_view

router = APIRouter()
scaffold_router = APIRouter()


def _utc_today():
    return datetime.now(timezone.utc).date()


@scaffold_router.get("/health")
def gamification_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "gamification"}


@router.get("/stats")
def get_stats(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"stats": stats_view(auth_repo.get_or_create_stats(str(current_user["id"])))}


@router.get("/achievements")
def list_achievements(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    achievements = auth_repo.list_achievements(str(current_user["id"]))
    for a in achievements:
        a["earned"] = a.get("earned_at") is not None
    return {"achievements": achievements}


@router.post("/achievements/check")
def check_achievements(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    awarded = auth_repo.award_achievements(user_id)
    return {
        "awarded": awarded,
        "stats": stats_view(auth_repo.get_or_create_stats(user_id)),
    }


@router.get("/rewards/daily")
def get_daily_reward(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"reward": auth_repo.get_or_create_daily_reward(str(current_user["id"]), _utc_today())}


@router.post("/rewards/daily/claim")
def claim_daily_reward(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    reward = auth_repo.claim_daily_reward(user_id, _utc_today())
    if reward is None:
        raise HTTPException(status_code=409, detail="Today's reward has already been claimed")
    return {"reward": reward, "stats": stats_view(auth_repo.get_or_create_stats(user_id))}
