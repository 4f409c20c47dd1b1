from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..config import MAX_PROFILE_PHOTOS, ONLINE_WINDOW_SECONDS
from ..deps import own_profile_view, parse_uuid, profile_card, profile_completion, public_profile_view, tier_for_user
from ..http_helpers import sanitize_profile_payload, store_uploaded_photo
from ..services.realtime import hub
from ..services.tiers import require_tier

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def profile_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "profile"}


def _own_profile(user_id: str) -> dict[str, Any]:
    profile = auth_repo.get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return own_profile_view(profile, auth_repo.list_photos(user_id))


@router.get("/profile/me")
def get_my_profile(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"profile": _own_profile(str(current_user["id"]))}


@router.put("/profile/me")
def update_my_profile(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    current = auth_repo.get_profile(user_id)
    if not current:
        raise HTTPException(status_code=404, detail="Profile not found")
    updates = sanitize_profile_payload(payload, current)
    auth_repo.update_profile(user_id, updates)
    return {"profile": _own_profile(user_id)}


@router.get("/profile/completion")
def get_profile_completion(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    profile = auth_repo.get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile_completion(profile, auth_repo.list_photos(user_id))


@router.get("/profile/views")
def get_profile_views(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    require_tier(tier_for_user(user_id), "basic", "Seeing who viewed your profile")
    viewers = []
    for row in auth_repo.list_profile_viewers(user_id):
        card = profile_card(row)
        card["viewed_at"] = row.get("viewed_at")
        viewers.append(card)
    return {"viewers": viewers}


@router.get("/profiles/{profile_id}")
def get_public_profile(profile_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    viewer_id = str(current_user["id"])
    target_id = parse_uuid(profile_id, "profile_id")
    profile = auth_repo.get_profile(target_id)
    if not profile or not profile.get("is_active"):
        raise HTTPException(status_code=404, detail="Profile not found")
    if target_id != viewer_id:
        if auth_repo.is_blocked_pair(viewer_id, target_id):
            raise HTTPException(status_code=404, detail="Profile not found")
        auth_repo.record_profile_view(viewer_id, target_id)
    view = public_profile_view(
        profile,
        auth_repo.list_photos(target_id),
        auth_repo.list_prompt_responses(target_id, public_only=True),
    )
    return {"profile": view}


@router.post("/profile/photos", status_code=201)
async def upload_profile_photo(
    request: Request,
    photo: UploadFile = File(...),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    user_id = str(current_user["id"])
    if len(auth_repo.list_photos(user_id)) >= MAX_PROFILE_PHOTOS:
        raise HTTPException(status_code=400, detail=f"You can upload up to {MAX_PROFILE_PHOTOS} photos")
    url = await store_uploaded_photo(photo, user_id, request)
    created = auth_repo.add_photo(user_id, url, MAX_PROFILE_PHOTOS)
    if not created:
        raise HTTPException(status_code=400, detail=f"You can upload up to {MAX_PROFILE_PHOTOS} photos")
    return {"photo": created, "photos": auth_repo.list_photos(user_id)}


@router.delete("/profile/photos/{photo_id}")
def delete_profile_photo(photo_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    if not auth_repo.delete_photo(user_id, parse_uuid(photo_id, "photo_id")):
        raise HTTPException(status_code=404, detail="Photo not found")
    return {"photos": auth_repo.list_photos(user_id)}


@router.post("/profile/photos/{photo_id}/primary")
def set_primary_profile_photo(photo_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    if not auth_repo.set_primary_photo(user_id, parse_uuid(photo_id, "photo_id")):
        raise HTTPException(status_code=404, detail="Photo not found")
    return {"photos": auth_repo.list_photos(user_id)}


@router.put("/profile/photos/order")
def reorder_profile_photos(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    raw = payload.get("photo_ids")
    if not isinstance(raw, list) or not raw:
        raise HTTPException(status_code=400, detail="photo_ids must be a non-empty array")
    photo_ids = [parse_uuid(p, "photo_ids") for p in raw]
    photos = auth_repo.reorder_photos(str(current_user["id"]), photo_ids)
    if photos is None:
        raise HTTPException(status_code=400, detail="photo_ids must list each of your photos exactly once")
    return {"photos": photos}


@router.post("/presence/heartbeat")
def presence_heartbeat(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    auth_repo.touch_last_active(str(current_user["id"]))
    return {"ok": True}


@router.get("/presence")
def get_presence(user_ids: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    _ = current_user
    ids = [parse_uuid(u, "user_ids") for u in user_ids.split(",") if u.strip()][:100]
    last_active = auth_repo.get_last_active_map(ids)
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=ONLINE_WINDOW_SECONDS)
    presence = {}
    for uid in ids:
        seen = last_active.get(uid)
        recently_active = isinstance(seen, datetime) and seen >= cutoff
        presence[uid] = {"online": hub.is_connected(uid) or recently_active, "last_active": seen}
    return {"presence": presence}
