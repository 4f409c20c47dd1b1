import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..config import DISCOVERY_CANDIDATE_POOL, DISCOVERY_PAGE_SIZE, DISCOVERY_RATE_LIMIT, DISCOVERY_RATE_WINDOW_SECONDS
from ..deps import parse_uuid, tier_for_user
from ..http_helpers import client_meta
from ..services.discovery import birth_date_bounds, build_filters, rank_candidates
from ..services.rate_limit import enforce_user_limit
from ..services.sanitization import optional_clean
from ..services.tiers import features_for

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

SAVED_SEARCH_NAME_MAX_LENGTH = 60


@scaffold_router.get("/health")
def discover_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "discover"}


@router.get("/discover")
def discover_profiles(request: Request, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    viewer = auth_repo.get_profile(user_id)
    if not viewer:
        raise HTTPException(status_code=404, detail="Profile not found")

    try:
        filters = build_filters(dict(request.query_params), viewer)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    tier = tier_for_user(user_id)
    if filters.uses_advanced() and not features_for(tier).advanced_filters:
        raise HTTPException(status_code=403, detail="Advanced filters require the premium plan or higher")

    decision = enforce_user_limit(
        "discovery",
        user_id,
        DISCOVERY_RATE_LIMIT,
        DISCOVERY_RATE_WINDOW_SECONDS,
        message="Too many discovery requests",
    )

    now = datetime.now(timezone.utc)
    earliest, latest = birth_date_bounds(filters.age_min, filters.age_max, now.date())
    candidates = auth_repo.fetch_discovery_candidates(
        viewer,
        dob_earliest=earliest,
        dob_latest=latest,
        limit=DISCOVERY_CANDIDATE_POOL,
        filters=filters,
    )
    page_size = DISCOVERY_PAGE_SIZE
    raw_limit = request.query_params.get("limit")
    if raw_limit and raw_limit.isdigit():
        page_size = max(1, min(int(raw_limit), 50))
    profiles = rank_candidates(viewer, candidates, filters, now, page_size)

    auth_repo.log_audit(
        action="discovery_profiles_accessed",
        resource_type="profiles",
        user_id=user_id,
        details={"returned": len(profiles), "advanced_filters": filters.uses_advanced()},
        **client_meta(request),
    )
    logger.debug(f"[discover] user_id={user_id} candidates={len(candidates)} returned={len(profiles)}")
    return {"profiles": profiles, "remaining_queries": decision.remaining, "tier": tier}


@router.get("/search/saved")
def list_saved_searches(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"searches": auth_repo.list_saved_searches(str(current_user["id"]))}


@router.post("/search/saved", status_code=201)
def create_saved_search(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    try:
        name = optional_clean(payload.get("name"), SAVED_SEARCH_NAME_MAX_LENGTH, "name")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    criteria = payload.get("criteria") or {}
    if not isinstance(criteria, dict):
        raise HTTPException(status_code=400, detail="criteria must be an object")
    try:
        build_filters(criteria)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    search = auth_repo.create_saved_search(str(current_user["id"]), name, criteria, bool(payload.get("is_default")))
    return {"search": search}


@router.delete("/search/saved/{search_id}")
def delete_saved_search(search_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    if not auth_repo.delete_saved_search(str(current_user["id"]), parse_uuid(search_id, "search_id")):
        raise HTTPException(status_code=404, detail="Saved search not found")
    return {"ok": True}
