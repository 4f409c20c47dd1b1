from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..deps import parse_uuid

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def notifications_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "notifications"}


@router.get("/notifications")
def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    limit = max(1, min(int(limit), 100))
    return {"notifications": auth_repo.list_notifications(str(current_user["id"]), unread_only=unread_only, limit=limit)}


@router.get("/notifications/unread-count")
def unread_count(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"unread_count": auth_repo.unread_notification_count(str(current_user["id"]))}


@router.post("/notifications/read")
def mark_read(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    ids = payload.get("ids")
    if not isinstance(ids, list):
        raise HTTPException(status_code=400, detail="ids must be an array")
    updated = auth_repo.mark_notifications_read(str(current_user["id"]), [parse_uuid(i, "ids") for i in ids])
    return {"updated": updated}


@router.post("/notifications/read-all")
def mark_all_read(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"updated": auth_repo.mark_notifications_read(str(current_user["id"]))}


@router.post("/push/subscriptions", status_code=201)
def save_push_subscription(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    subscription = payload.get("subscription")
    if not isinstance(subscription, dict):
        raise HTTPException(status_code=400, detail="subscription must be an object")
    endpoint = str(subscription.get("endpoint") or "").strip()
    if not endpoint.startswith("https://"):
        raise HTTPException(status_code=400, detail="subscription.endpoint must be an https URL")
    auth_repo.upsert_push_subscription(str(current_user["id"]), endpoint, subscription)
    return {"ok": True}


@router.delete("/push/subscriptions")
def delete_push_subscription(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    endpoint = str(payload.get("endpoint") or "").strip()
    if not endpoint:
        raise HTTPException(status_code=400, detail="endpoint is required")
    deleted = auth_repo.delete_push_subscription(str(current_user["id"]), endpoint)
    return {"deleted": deleted}
