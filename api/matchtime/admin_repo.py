from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text

from .config import INACTIVE_ACCOUNT_DAYS, SUSPICIOUS_THRESHOLDS
from .database import SessionLocal
from .services.events import log_security_event
from .services.notifications import create_notification

REPORT_STATUSES = {"pending", "resolved", "dismissed"}
VERIFICATION_STATUSES = {"pending", "verified", "rejected"}


def _normalize_row(row: Any) -> dict[str, Any]:
    out = dict(row)
    for key in ("id", "user_id", "reporter_id", "reported_id", "resolved_by", "reviewed_by"):
        if key in out and out[key] is not None:
            out[key] = str(out[key])
    return out


def get_statistics() -> dict[str, Any]:
    with SessionLocal() as db:
        counts = db.execute(
            text(
                """
                SELECT
                  (SELECT COUNT(*) FROM profiles) AS total_users,
                  (SELECT COUNT(*) FROM profiles WHERE last_active >= NOW() - INTERVAL '7 days') AS active_users_7d,
                  (SELECT COUNT(*) FROM profiles WHERE created_at >= NOW() - INTERVAL '24 hours') AS new_users_24h,
                  (SELECT COUNT(*) FROM profiles WHERE is_verified = TRUE) AS verified_users,
                  (SELECT COUNT(*) FROM matches WHERE is_active = TRUE) AS total_matches,
                  (SELECT COUNT(*) FROM messages) AS total_messages,
                  (SELECT COUNT(*) FROM reports WHERE status = 'pending') AS pending_reports,
                  (SELECT COUNT(*) FROM verification_requests WHERE status = 'pending') AS pending_verifications,
                  (SELECT COUNT(*) FROM user_account WHERE is_fake = TRUE) AS fake_users
                """
            )
        ).mappings().first()
        tiers = db.execute(
            text(
                """
                SELECT tier::text AS tier, COUNT(*) AS count
                FROM user_subscriptions
                WHERE status IN ('active', 'trialing')
                GROUP BY tier
                """
            )
        ).mappings().all()
    stats = {k: int(v or 0) for k, v in dict(counts or {}).items()}
    by_tier = {"free": 0, "basic": 0, "premium": 0, "elite": 0}
    for row in tiers:
        by_tier[str(row["tier"])] = int(row["count"] or 0)
    paid = sum(v for k, v in by_tier.items() if k != "free")
    by_tier["free"] = max(0, stats.get("total_users", 0) - paid)
    stats["subscriptions_by_tier"] = by_tier
    return stats


def list_reports(status: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT r.id, r.reporter_id, r.reported_id, r.reason, r.description, r.content_type,
                       r.content_metadata, r.status, r.resolved_by, r.resolved_at, r.created_at,
                       reporter.first_name AS reporter_name, reported.first_name AS reported_name
                FROM reports r
                LEFT JOIN profiles reporter ON reporter.id = r.reporter_id
                LEFT JOIN profiles reported ON reported.id = r.reported_id
                WHERE (CAST(:status AS text) IS NULL OR r.status = :status)
                ORDER BY r.created_at DESC
                LIMIT :limit
                """
            ),
            {"status": status, "limit": limit},
        ).mappings().all()
    return [_normalize_row(r) for r in rows]


def resolve_report(*, report_id: str, admin_user_id: str, status: str, suspend_user: bool) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                UPDATE reports
                SET status=:status, resolved_by=CAST(:admin_id AS uuid), resolved_at=NOW()
                WHERE id=CAST(:id AS uuid)
                RETURNING id, reporter_id, reported_id, reason, status, resolved_by, resolved_at
                """
            ),
            {"id": report_id, "status": status, "admin_id": admin_user_id},
        ).mappings().first()
        if not row:
            db.rollback()
            return None
        report = _normalize_row(row)
        if suspend_user:
            db.execute(
                text("UPDATE profiles SET is_active=FALSE, updated_at=NOW() WHERE id=CAST(:id AS uuid)"),
                {"id": report["reported_id"]},
            )
            db.execute(
                text("UPDATE user_account SET disabled_at=COALESCE(disabled_at, NOW()) WHERE id=CAST(:id AS uuid)"),
                {"id": report["reported_id"]},
            )
        log_security_event(
            db,
            action="report_resolved",
            resource_type="report",
            user_id=admin_user_id,
            resource_id=report_id,
            details={"status": status, "suspend_user": suspend_user, "reported_id": report["reported_id"]},
        )
        db.commit()
    report["user_suspended"] = bool(suspend_user)
    return report


def list_verifications(status: str | None = "pending", limit: int = 100) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT v.id, v.user_id, v.verification_type, v.profession, v.status::text AS status,
                       v.reviewed_by, v.reviewed_at, v.created_at,
                       (v.professional_document_url IS NOT NULL) AS has_document,
                       p.first_name, p.email
                FROM verification_requests v
                JOIN profiles p ON p.id = v.user_id
                WHERE (CAST(:status AS text) IS NULL OR v.status::text = :status)
                ORDER BY v.created_at ASC
                LIMIT :limit
                """
            ),
            {"status": status, "limit": limit},
        ).mappings().all()
    return [_normalize_row(r) for r in rows]


def get_verification(verification_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id, user_id, verification_type, selfie_url, professional_document_url, profession,
                       status::text AS status, reviewed_by, reviewed_at, created_at
                FROM verification_requests WHERE id=CAST(:id AS uuid)
                """
            ),
            {"id": verification_id},
        ).mappings().first()
    return _normalize_row(row) if row else None


def review_verification(*, verification_id: str, admin_user_id: str, approved: bool, badge: str | None) -> dict[str, Any] | None:
    status = "verified" if approved else "rejected"
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                UPDATE verification_requests
                SET status=CAST(:status AS verification_status), reviewed_by=CAST(:admin_id AS uuid), reviewed_at=NOW()
                WHERE id=CAST(:id AS uuid) AND status='pending'
                RETURNING id, user_id, verification_type, profession, status::text AS status, reviewed_at
                """
            ),
            {"id": verification_id, "status": status, "admin_id": admin_user_id},
        ).mappings().first()
        if not row:
            db.rollback()
            return None
        request = _normalize_row(row)
        db.execute(
            text(
                """
                UPDATE profiles
                SET is_verified = (is_verified OR :approved),
                    verification_status = CAST(:status AS verification_status),
                    professional_badge = CASE WHEN :approved THEN COALESCE(:badge, professional_badge) ELSE professional_badge END,
                    updated_at = NOW()
                WHERE id = CAST(:user_id AS uuid)
                """
            ),
            {"user_id": request["user_id"], "status": status, "approved": approved, "badge": badge},
        )
        if approved:
            title, message = "Verification Approved", "Your profile is now verified."
        else:
            title, message = "Verification Rejected", "Your verification request was not approved. You can submit a new one."
        create_notification(
            db,
            user_id=request["user_id"],
            notification_type="verification",
            title=title,
            message=message,
            metadata={"verification_id": request["id"], "status": status},
        )
        log_security_event(
            db,
            action="verification_reviewed",
            resource_type="verification_request",
            user_id=admin_user_id,
            resource_id=verification_id,
            details={"status": status, "badge": badge, "subject_user_id": request["user_id"]},
        )
        db.commit()
    return request


def suspicious_activity(thresholds: dict[str, Any] | None = None) -> dict[str, list[dict[str, Any]]]:
    limits = {**SUSPICIOUS_THRESHOLDS, **(thresholds or {})}
    with SessionLocal() as db:
        swipers = db.execute(
            text(
                """
                SELECT s.swiper_id::text AS user_id, p.first_name, COUNT(*) AS count
                FROM swipes s
                JOIN profiles p ON p.id = s.swiper_id
                WHERE s.created_at >= NOW() - INTERVAL '1 hour'
                GROUP BY s.swiper_id, p.first_name
                HAVING COUNT(*) >= :limit
                ORDER BY count DESC
                """
            ),
            {"limit": int(limits["swipes_per_hour"])},
        ).mappings().all()
        senders = db.execute(
            text(
                """
                SELECT m.sender_id::text AS user_id, p.first_name, COUNT(*) AS count
                FROM messages m
                JOIN profiles p ON p.id = m.sender_id
                WHERE m.created_at >= NOW() - INTERVAL '1 hour'
                GROUP BY m.sender_id, p.first_name
                HAVING COUNT(*) >= :limit
                ORDER BY count DESC
                """
            ),
            {"limit": int(limits["messages_per_hour"])},
        ).mappings().all()
        reported = db.execute(
            text(
                """
                SELECT r.reported_id::text AS user_id, p.first_name, COUNT(*) AS count
                FROM reports r
                JOIN profiles p ON p.id = r.reported_id
                WHERE r.created_at >= NOW() - INTERVAL '7 days'
                GROUP BY r.reported_id, p.first_name
                HAVING COUNT(*) >= :limit
                ORDER BY count DESC
                """
            ),
            {"limit": int(limits["reports_per_week"])},
        ).mappings().all()
    return {
        "excessive_swipes": [dict(r) for r in swipers],
        "excessive_messages": [dict(r) for r in senders],
        "frequently_reported": [dict(r) for r in reported],
    }


def deactivate_inactive_profiles(*, admin_user_id: str | None, days: int = INACTIVE_ACCOUNT_DAYS) -> int:
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    with SessionLocal() as db:
        res = db.execute(
            text(
                """
                UPDATE profiles SET is_active=FALSE, updated_at=NOW()
                WHERE is_active = TRUE AND last_active < :cutoff
                """
            ),
            {"cutoff": cutoff},
        )
        deactivated = int(res.rowcount or 0)
        log_security_event(
            db,
            action="inactive_profiles_deactivated",
            resource_type="profile",
            user_id=admin_user_id,
            details={"days": days, "deactivated": deactivated},
        )
        db.commit()
    return deactivated


def list_audit_log(limit: int = 100, action: str | None = None) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id, user_id, action, resource_type, resource_id, details, ip_address, user_agent, created_at
                FROM security_audit_log
                WHERE (CAST(:action AS text) IS NULL OR action = :action)
                ORDER BY created_at DESC
                LIMIT :limit
                """
            ),
            {"action": action, "limit": limit},
        ).mappings().all()
    return [_normalize_row(r) for r in rows]
