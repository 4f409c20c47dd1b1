import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..config import RL_REPORT_LIMIT, RL_REPORT_WINDOW_SECONDS
from ..deps import parse_uuid
from ..http_helpers import store_private_file
from ..services.rate_limit import enforce_user_limit
from ..services.sanitization import optional_clean

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

REPORT_REASONS = {"inappropriate_content", "harassment", "fake_profile", "spam", "underage", "scam", "other"}
REPORT_CONTENT_TYPES = {"profile", "message", "photo"}
VERIFICATION_TYPES = {"photo", "professional"}


@scaffold_router.get("/health")
def safety_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "safety"}


def _existing_profile(user_id: str) -> dict[str, Any]:
    profile = auth_repo.get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@router.post("/safety/block")
def block_user(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    blocked_id = parse_uuid(payload.get("blocked_id"), "blocked_id")
    if blocked_id == user_id:
        raise HTTPException(status_code=400, detail="You cannot block yourself")
    _existing_profile(blocked_id)
    try:
        reason = optional_clean(payload.get("reason"), 500, "reason")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    auth_repo.create_block(user_id, blocked_id, reason)
    logger.info(f"[safety] block created blocker_id={user_id} blocked_id={blocked_id}")
    return {"ok": True, "blocked_id": blocked_id}


@router.delete("/safety/blocks/{blocked_id}")
def unblock_user(blocked_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    if not auth_repo.remove_block(str(current_user["id"]), parse_uuid(blocked_id, "blocked_id")):
        raise HTTPException(status_code=404, detail="Block not found")
    return {"ok": True}


@router.get("/safety/blocks")
def list_blocks(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"blocks": auth_repo.list_blocks(str(current_user["id"]))}


@router.post("/safety/report", status_code=201)
def report_user(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    reported_id = parse_uuid(payload.get("reported_id"), "reported_id")
    if reported_id == user_id:
        raise HTTPException(status_code=400, detail="You cannot report yourself")
    reason = str(payload.get("reason") or "").strip().lower()
    if reason not in REPORT_REASONS:
        raise HTTPException(status_code=400, detail=f"reason must be one of: {', '.join(sorted(REPORT_REASONS))}")
    content_type = str(payload.get("content_type") or "profile").strip().lower()
    if content_type not in REPORT_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail=f"content_type must be one of: {', '.join(sorted(REPORT_CONTENT_TYPES))}")
    content_metadata = payload.get("content_metadata") or {}
    if not isinstance(content_metadata, dict):
        raise HTTPException(status_code=400, detail="content_metadata must be an object")
    try:
        description = optional_clean(payload.get("description"), 1000, "description")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    _existing_profile(reported_id)

    enforce_user_limit("report", user_id, RL_REPORT_LIMIT, RL_REPORT_WINDOW_SECONDS, message="Too many reports")
    report = auth_repo.create_report(
        reporter_id=user_id,
        reported_id=reported_id,
        reason=reason,
        description=description,
        content_type=content_type,
        content_metadata=content_metadata,
    )
    logger.info(f"[safety] report created report_id={report['id']} reason={reason}")
    return {"report": report}


@router.post("/verification", status_code=201)
async def submit_verification(
    verification_type: str = Form(...),
    selfie: UploadFile = File(...),
    document: UploadFile | None = File(None),
    profession: str | None = Form(None),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    user_id = str(current_user["id"])
    verification_type = verification_type.strip().lower()
    if verification_type not in VERIFICATION_TYPES:
        raise HTTPException(status_code=400, detail="verification_type must be photo or professional")
    if verification_type == "professional" and document is None:
        raise HTTPException(status_code=400, detail="A professional document is required")
    try:
        profession_clean = optional_clean(profession, 100, "profession")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    latest = auth_repo.get_latest_verification(user_id)
    if latest and latest.get("status") == "pending":
        raise HTTPException(status_code=409, detail="You already have a pending verification request")

    selfie_file = await store_private_file(selfie, user_id, "image")
    document_file = await store_private_file(document, user_id, "document") if document is not None else None
    request_row = auth_repo.create_verification_request(
        user_id=user_id,
        verification_type=verification_type,
        selfie_file=selfie_file,
        document_file=document_file,
        profession=profession_clean,
    )
    return {"verification": request_row}


@router.get("/verification/status")
def verification_status(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return {"verification": auth_repo.get_latest_verification(str(current_user["id"]))}
