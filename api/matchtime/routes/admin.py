import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import FileResponse

from .. import admin_repo
from .. import repo as auth_repo
from ..auth.admin_deps import APP_ROLES, get_current_admin
from ..database import SessionLocal
from ..deps import parse_uuid
from ..http_helpers import client_meta, normalize_email, private_file_path
from ..services.seeding import (
    DEFAULT_BACKFILL_LIMIT,
    MAX_BACKFILL_LIMIT,
    MAX_FAKE_USERS_PER_RUN,
    backfill_profile_photos,
    cleanup_fake_users,
    generate_fake_users,
)

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()


def _json(data: Any) -> Any:
    return jsonable_encoder(data)


def _audit(request: Request, admin_user: dict[str, Any], action: str, resource_type: str, resource_id: str | None = None, details: dict[str, Any] | None = None) -> None:
    auth_repo.log_audit(
        action=action,
        resource_type=resource_type,
        user_id=str(admin_user["id"]),
        resource_id=resource_id,
        details=details,
        **client_meta(request),
    )


@scaffold_router.get("/health")
def admin_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "admin"}


@router.get("/admin/statistics")
def admin_statistics(admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    _ = admin_user
    return _json({"statistics": admin_repo.get_statistics()})


@router.get("/admin/reports")
def admin_reports_list(
    status: str | None = None,
    limit: int = 100,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    if status and status not in admin_repo.REPORT_STATUSES:
        raise HTTPException(status_code=400, detail="status must be one of: dismissed, pending, resolved")
    rows = admin_repo.list_reports(status=status, limit=max(1, min(int(limit), 500)))
    return _json({"reports": rows, "count": len(rows)})


@router.post("/admin/reports/{report_id}/resolve")
def admin_reports_resolve(
    report_id: str,
    payload: dict[str, Any],
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    status = str(payload.get("status") or "resolved").strip().lower()
    if status not in {"resolved", "dismissed"}:
        raise HTTPException(status_code=400, detail="status must be resolved or dismissed")
    row = admin_repo.resolve_report(
        report_id=parse_uuid(report_id, "report_id"),
        admin_user_id=str(admin_user["id"]),
        status=status,
        suspend_user=bool(payload.get("suspend_user")),
    )
    if not row:
        raise HTTPException(status_code=404, detail="Report not found")
    logger.info(f"[admin] report resolved report_id={report_id} status={status} suspended={row['user_suspended']}")
    return _json({"report": row})


@router.get("/admin/verifications")
def admin_verifications_list(
    status: str | None = "pending",
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    status = (status or "").strip().lower() or None
    if status and status not in admin_repo.VERIFICATION_STATUSES:
        raise HTTPException(status_code=400, detail="status must be one of: pending, rejected, verified")
    return _json({"verifications": admin_repo.list_verifications(status=status)})


@router.post("/admin/verifications/{verification_id}/review")
def admin_verifications_review(
    verification_id: str,
    payload: dict[str, Any],
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    if not isinstance(payload.get("approved"), bool):
        raise HTTPException(status_code=400, detail="approved must be true or false")
    badge = str(payload.get("badge") or "").strip()[:60] or None
    row = admin_repo.review_verification(
        verification_id=parse_uuid(verification_id, "verification_id"),
        admin_user_id=str(admin_user["id"]),
        approved=payload["approved"],
        badge=badge,
    )
    if not row:
        raise HTTPException(status_code=404, detail="Pending verification request not found")
    return _json({"verification": row})


@router.get("/admin/verifications/{verification_id}/document")
def admin_verification_document(
    verification_id: str,
    request: Request,
    kind: str = "selfie",
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> FileResponse:
    if kind not in {"selfie", "document"}:
        raise HTTPException(status_code=400, detail="kind must be selfie or document")
    vid = parse_uuid(verification_id, "verification_id")
    row = admin_repo.get_verification(vid)
    if not row:
        raise HTTPException(status_code=404, detail="Verification request not found")
    filename = row.get("selfie_url") if kind == "selfie" else row.get("professional_document_url")
    path = private_file_path(str(filename or ""))
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    _audit(request, admin_user, "verification_document_accessed", "verification_request", vid, {"kind": kind})
    return FileResponse(path)


@router.post("/admin/roles")
def admin_grant_role(payload: dict[str, Any], request: Request, admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    role = str(payload.get("role") or "").strip().lower()
    if role not in APP_ROLES:
        raise HTTPException(status_code=400, detail=f"role must be one of: {', '.join(sorted(APP_ROLES))}")
    user = auth_repo.get_user_by_email(normalize_email(str(payload.get("email") or "")))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    auth_repo.grant_role(str(user["id"]), role)
    _audit(request, admin_user, "role_granted", "user", str(user["id"]), {"role": role})
    return {"ok": True, "user_id": str(user["id"]), "roles": auth_repo.get_user_roles(str(user["id"]))}


@router.post("/admin/fake-users/generate")
def admin_generate_fake_users(payload: dict[str, Any], request: Request, admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    try:
        count = int(payload.get("count", 10))
        female_ratio = float(payload.get("female_ratio", 0.7))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="count and female_ratio must be numbers")
    if count < 1 or count > MAX_FAKE_USERS_PER_RUN:
        raise HTTPException(status_code=400, detail=f"count must be between 1 and {MAX_FAKE_USERS_PER_RUN}")
    if not 0 <= female_ratio <= 1:
        raise HTTPException(status_code=400, detail="female_ratio must be between 0 and 1")
    with SessionLocal() as db:
        out = generate_fake_users(db, count=count, female_ratio=female_ratio)
    _audit(request, admin_user, "fake_users_generated", "user", details={"created": out["created"]})
    return out


@router.post("/admin/fake-users/cleanup")
def admin_cleanup_fake_users(request: Request, admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    with SessionLocal() as db:
        deleted = cleanup_fake_users(db)
    _audit(request, admin_user, "fake_users_deleted", "user", details={"deleted": deleted})
    return {"deleted": deleted}


@router.post("/admin/photos/backfill")
def admin_backfill_photos(request: Request, payload: dict[str, Any] | None = None, admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    raw_limit = (payload or {}).get("limit", DEFAULT_BACKFILL_LIMIT)
    try:
        limit = int(raw_limit)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="limit must be an integer")
    if limit < 1 or limit > MAX_BACKFILL_LIMIT:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {MAX_BACKFILL_LIMIT}")
    with SessionLocal() as db:
        out = backfill_profile_photos(db, limit=limit)
    _audit(request, admin_user, "profile_photos_backfilled", "profile_photo", details=out)
    return out


@router.get("/admin/suspicious-activity")
def admin_suspicious_activity(admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    _ = admin_user
    return _json(admin_repo.suspicious_activity())


@router.post("/admin/maintenance/inactive")
def admin_deactivate_inactive(admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    deactivated = admin_repo.deactivate_inactive_profiles(admin_user_id=str(admin_user["id"]))
    return {"deactivated": deactivated}


@router.get("/admin/audit-log")
def admin_audit_log(
    limit: int = 100,
    action: str | None = None,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    return _json({"events": admin_repo.list_audit_log(limit=max(1, min(int(limit), 500)), action=action)})
