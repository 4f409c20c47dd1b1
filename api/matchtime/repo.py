import json
import random
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from .database import SessionLocal
from .services.discovery import DiscoveryFilters, bounding_box
from .services.events import log_security_event
from .services.gamification import achievements_to_award, level_for, next_login_streak, roll_daily_reward
from .services.notifications import create_notification

PROFILE_ENUM_CASTS = {
    "gender": "CAST(:gender AS gender_type)",
    "interested_in": "CAST(:interested_in AS gender_type[])",
    "education": "CAST(:education AS education_level)",
    "relationship_goals": "CAST(:relationship_goals AS relationship_goal[])",
}

UPDATABLE_PROFILE_FIELDS = {
    "first_name",
    "last_name",
    "bio",
    "occupation",
    "gender",
    "interested_in",
    "education",
    "height_cm",
    "interests",
    "relationship_goals",
    "body_type",
    "ethnicity",
    "religion",
    "smoking",
    "drinking",
    "location_city",
    "location_state",
    "location_lat",
    "location_lng",
    "max_distance",
    "age_min",
    "age_max",
    "has_accommodation_available",
}

PROFILE_COLUMNS = """
    p.id::text AS id, p.email, p.first_name, p.last_name, p.date_of_birth,
    p.gender::text AS gender, p.interested_in::text[] AS interested_in,
    p.bio, p.occupation, p.education::text AS education, p.height_cm,
    p.interests, p.relationship_goals::text[] AS relationship_goals,
    p.body_type, p.ethnicity, p.religion, p.smoking, p.drinking,
    p.location_city, p.location_state, p.location_lat, p.location_lng,
    p.max_distance, p.age_min, p.age_max, p.has_accommodation_available,
    p.is_active, p.is_verified, p.verification_status::text AS verification_status,
    p.professional_badge, p.last_active, p.created_at, p.updated_at
"""

PRIMARY_PHOTO_SQL = """
    (SELECT ph.photo_url FROM profile_photos ph
     WHERE ph.user_id = p.id
     ORDER BY ph.is_primary DESC, ph.order_index ASC, ph.created_at ASC
     LIMIT 1)
"""


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_stats(db, user_id: str) -> None:
    db.execute(
        text("INSERT INTO user_stats (user_id) VALUES (CAST(:user_id AS uuid)) ON CONFLICT (user_id) DO NOTHING"),
        {"user_id": user_id},
    )


def _bump_stat(db, user_id: str, column: str, amount: int = 1) -> None:
    if column not in {
        "total_matches",
        "total_conversations",
        "profile_views",
        "likes_given",
        "likes_received",
        "super_likes_given",
        "super_likes_received",
        "bonus_super_likes",
        "bonus_boosts",
        "experience_points",
    }:
        raise ValueError(f"Unknown stat column: {column}")
    _ensure_stats(db, user_id)
    db.execute(
        text(
            f"""
            UPDATE user_stats
            SET {column} = GREATEST(0, COALESCE({column}, 0) + :amount), updated_at = NOW()
            WHERE user_id = CAST(:user_id AS uuid)
            """
        ),
        {"user_id": user_id, "amount": amount},
    )


def log_audit(
    *,
    action: str,
    resource_type: str,
    user_id: str | None = None,
    resource_id: str | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    with SessionLocal() as db:
        log_security_event(
            db,
            action=action,
            resource_type=resource_type,
            user_id=user_id,
            resource_id=resource_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.commit()


def add_notification(
    *,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    related_user_id: str | None = None,
    related_match_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    with SessionLocal() as db:
        notification = create_notification(
            db,
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            related_user_id=related_user_id,
            related_match_id=related_match_id,
            metadata=metadata,
        )
        db.commit()
    return notification


# users & tokens


def create_user_with_profile(
    *,
    email: str,
    password_hash: str,
    first_name: str,
    last_name: str | None,
    date_of_birth: date,
    gender: str,
    interested_in: list[str],
) -> dict[str, Any] | None:
    user_id = str(uuid.uuid4())
    try:
        with SessionLocal() as db:
            db.execute(
                text(
                    """
                    INSERT INTO user_account (id, email, password_hash)
                    VALUES (CAST(:id AS uuid), :email, :password_hash)
                    """
                ),
                {"id": user_id, "email": email, "password_hash": password_hash},
            )
            db.execute(
                text(
                    """
                    INSERT INTO profiles (id, email, first_name, last_name, date_of_birth, gender, interested_in)
                    VALUES (
                      CAST(:id AS uuid), :email, :first_name, :last_name, :date_of_birth,
                      CAST(:gender AS gender_type), CAST(:interested_in AS gender_type[])
                    )
                    """
                ),
                {
                    "id": user_id,
                    "email": email,
                    "first_name": first_name,
                    "last_name": last_name,
                    "date_of_birth": date_of_birth,
                    "gender": gender,
                    "interested_in": interested_in,
                },
            )
            _ensure_stats(db, user_id)
            db.commit()
    except IntegrityError:
        return None
    return get_user_by_id(user_id)


def get_user_by_email(email: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(text("SELECT * FROM user_account WHERE email=:email"), {"email": email}).mappings().first()
    return dict(row) if row else None


def get_user_by_id(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(text("SELECT * FROM user_account WHERE id=CAST(:id AS uuid)"), {"id": user_id}).mappings().first()
    return dict(row) if row else None


def _set_password_and_revoke_sessions(db, user_id: str, password_hash: str) -> None:
    db.execute(
        text("UPDATE user_account SET password_hash=:password_hash WHERE id=CAST(:id AS uuid)"),
        {"id": user_id, "password_hash": password_hash},
    )
    db.execute(
        text("UPDATE refresh_token SET revoked_at=NOW() WHERE user_id=CAST(:id AS uuid) AND revoked_at IS NULL"),
        {"id": user_id},
    )


def update_user_password(user_id: str, password_hash: str) -> None:
    with SessionLocal() as db:
        _set_password_and_revoke_sessions(db, user_id, password_hash)
        db.commit()


def create_password_reset_token(user_id: str, token_hash: str, expires_at: datetime) -> None:
    """Store a reset token; any earlier unused token for the user stops working."""
    with SessionLocal() as db:
        db.execute(
            text("UPDATE password_reset_token SET used_at=NOW() WHERE user_id=CAST(:user_id AS uuid) AND used_at IS NULL"),
            {"user_id": user_id},
        )
        db.execute(
            text(
                """
                INSERT INTO password_reset_token (id, user_id, token_hash, expires_at)
                VALUES (CAST(:id AS uuid), CAST(:user_id AS uuid), :token_hash, :expires_at)
                """
            ),
            {"id": str(uuid.uuid4()), "user_id": user_id, "token_hash": token_hash, "expires_at": expires_at},
        )
        db.commit()


def consume_password_reset_token(token_hash: str, password_hash: str) -> str | None:
    """Spend a live reset token and set the new password; returns the user id or None."""
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                UPDATE password_reset_token SET used_at=NOW()
                WHERE token_hash=:token_hash AND used_at IS NULL AND expires_at > NOW()
                RETURNING user_id::text AS user_id
                """
            ),
            {"token_hash": token_hash},
        ).mappings().first()
        if not row:
            db.rollback()
            return None
        _set_password_and_revoke_sessions(db, row["user_id"], password_hash)
        db.commit()
    return row["user_id"]


def create_refresh_token_row(user_id: str, token_hash: str, expires_at: datetime) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO refresh_token (id, user_id, token_hash, expires_at)
                VALUES (CAST(:id AS uuid), CAST(:user_id AS uuid), :token_hash, :expires_at)
                """
            ),
            {"id": str(uuid.uuid4()), "user_id": user_id, "token_hash": token_hash, "expires_at": expires_at},
        )
        db.commit()


def get_refresh_token_row(token_hash: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(text("SELECT * FROM refresh_token WHERE token_hash=:token_hash"), {"token_hash": token_hash}).mappings().first()
    return dict(row) if row else None


def revoke_refresh_token_row(token_hash: str) -> None:
    with SessionLocal() as db:
        db.execute(
            text("UPDATE refresh_token SET revoked_at=NOW() WHERE token_hash=:token_hash AND revoked_at IS NULL"),
            {"token_hash": token_hash},
        )
        db.commit()


def rotate_refresh_token(old_token_hash: str, user_id: str, new_token_hash: str, expires_at: datetime) -> None:
    with SessionLocal() as db:
        db.execute(
            text("UPDATE refresh_token SET revoked_at=NOW() WHERE token_hash=:token_hash AND revoked_at IS NULL"),
            {"token_hash": old_token_hash},
        )
        db.execute(
            text(
                """
                INSERT INTO refresh_token (id, user_id, token_hash, expires_at)
                VALUES (CAST(:id AS uuid), CAST(:user_id AS uuid), :token_hash, :expires_at)
                """
            ),
            {"id": str(uuid.uuid4()), "user_id": user_id, "token_hash": new_token_hash, "expires_at": expires_at},
        )
        db.commit()


def record_login(user_id: str, today: date) -> dict[str, Any]:
    with SessionLocal() as db:
        db.execute(text("UPDATE user_account SET last_login_at=NOW() WHERE id=CAST(:id AS uuid)"), {"id": user_id})
        db.execute(text("UPDATE profiles SET last_active=NOW() WHERE id=CAST(:id AS uuid)"), {"id": user_id})
        _ensure_stats(db, user_id)
        stats = db.execute(
            text("SELECT login_streak, last_login_date FROM user_stats WHERE user_id=CAST(:id AS uuid)"),
            {"id": user_id},
        ).mappings().first() or {}
        streak = next_login_streak(stats.get("last_login_date"), int(stats.get("login_streak") or 0), today)
        db.execute(
            text(
                """
                UPDATE user_stats
                SET login_streak=:streak, last_login_date=:today, updated_at=NOW()
                WHERE user_id=CAST(:id AS uuid)
                """
            ),
            {"id": user_id, "streak": streak, "today": today},
        )
        db.commit()
    return {"login_streak": streak}


def get_user_roles(user_id: str) -> list[str]:
    with SessionLocal() as db:
        rows = db.execute(
            text("SELECT role::text AS role FROM user_roles WHERE user_id=CAST(:id AS uuid)"),
            {"id": user_id},
        ).mappings().all()
    return [str(r["role"]) for r in rows]


def grant_role(user_id: str, role: str) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO user_roles (user_id, role)
                VALUES (CAST(:user_id AS uuid), CAST(:role AS app_role))
                ON CONFLICT (user_id, role) DO NOTHING
                """
            ),
            {"user_id": user_id, "role": role},
        )
        db.commit()


# profiles & photos


def get_profile(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                f"""
                SELECT {PROFILE_COLUMNS}
                FROM profiles p
                WHERE p.id=CAST(:id AS uuid)
                """
            ),
            {"id": user_id},
        ).mappings().first()
    return dict(row) if row else None


def list_photos(user_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id, photo_url, is_primary, is_verified, order_index, created_at
                FROM profile_photos
                WHERE user_id=CAST(:id AS uuid)
                ORDER BY is_primary DESC, order_index ASC, created_at ASC
                """
            ),
            {"id": user_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def update_profile(user_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
    fields = [k for k in updates if k in UPDATABLE_PROFILE_FIELDS]
    if fields:
        assignments = ", ".join(f"{k} = {PROFILE_ENUM_CASTS.get(k, ':' + k)}" for k in fields)
        params = {k: updates[k] for k in fields}
        params["id"] = user_id
        with SessionLocal() as db:
            db.execute(
                text(f"UPDATE profiles SET {assignments}, updated_at = NOW() WHERE id = CAST(:id AS uuid)"),
                params,
            )
            db.commit()
    return get_profile(user_id)


def add_photo(user_id: str, photo_url: str, max_photos: int) -> dict[str, Any] | None:
    with SessionLocal() as db:
        count = int(
            db.execute(
                text("SELECT COUNT(*) FROM profile_photos WHERE user_id=CAST(:id AS uuid)"),
                {"id": user_id},
            ).scalar()
            or 0
        )
        if count >= max_photos:
            return None
        row = db.execute(
            text(
                """
                INSERT INTO profile_photos (user_id, photo_url, is_primary, order_index)
                VALUES (CAST(:user_id AS uuid), :photo_url, :is_primary, :order_index)
                RETURNING id, photo_url, is_primary, is_verified, order_index, created_at
                """
            ),
            {"user_id": user_id, "photo_url": photo_url, "is_primary": count == 0, "order_index": count},
        ).mappings().first()
        db.commit()
    return dict(row) if row else None


def delete_photo(user_id: str, photo_id: str) -> bool:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                DELETE FROM profile_photos
                WHERE id=CAST(:photo_id AS uuid) AND user_id=CAST(:user_id AS uuid)
                RETURNING is_primary
                """
            ),
            {"photo_id": photo_id, "user_id": user_id},
        ).mappings().first()
        if not row:
            return False
        if row["is_primary"]:
            db.execute(
                text(
                    """
                    UPDATE profile_photos SET is_primary = TRUE
                    WHERE id = (
                      SELECT id FROM profile_photos
                      WHERE user_id=CAST(:user_id AS uuid)
                      ORDER BY order_index ASC, created_at ASC
                      LIMIT 1
                    )
                    """
                ),
                {"user_id": user_id},
            )
        db.commit()
    return True


def set_primary_photo(user_id: str, photo_id: str) -> bool:
    with SessionLocal() as db:
        exists = db.execute(
            text("SELECT 1 FROM profile_photos WHERE id=CAST(:photo_id AS uuid) AND user_id=CAST(:user_id AS uuid)"),
            {"photo_id": photo_id, "user_id": user_id},
        ).first()
        if not exists:
            return False
        db.execute(
            text(
                """
                UPDATE profile_photos
                SET is_primary = (id = CAST(:photo_id AS uuid))
                WHERE user_id = CAST(:user_id AS uuid)
                """
            ),
            {"photo_id": photo_id, "user_id": user_id},
        )
        db.commit()
    return True


def reorder_photos(user_id: str, photo_ids: list[str]) -> list[dict[str, Any]] | None:
    existing = {str(p["id"]) for p in list_photos(user_id)}
    if set(photo_ids) != existing or len(photo_ids) != len(existing):
        return None
    with SessionLocal() as db:
        for index, photo_id in enumerate(photo_ids):
            db.execute(
                text(
                    """
                    UPDATE profile_photos SET order_index=:order_index
                    WHERE id=CAST(:photo_id AS uuid) AND user_id=CAST(:user_id AS uuid)
                    """
                ),
                {"order_index": index, "photo_id": photo_id, "user_id": user_id},
            )
        db.commit()
    return list_photos(user_id)


def record_profile_view(viewer_id: str, viewed_id: str) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO profile_views (viewer_id, viewed_id)
                VALUES (CAST(:viewer_id AS uuid), CAST(:viewed_id AS uuid))
                """
            ),
            {"viewer_id": viewer_id, "viewed_id": viewed_id},
        )
        _bump_stat(db, viewed_id, "profile_views")
        db.commit()


def list_profile_viewers(user_id: str, limit: int = 50) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                f"""
                SELECT v.viewer_id AS id, MAX(v.created_at) AS viewed_at,
                       p.first_name, p.date_of_birth, p.location_city, p.location_state, p.is_verified,
                       {PRIMARY_PHOTO_SQL} AS primary_photo_url
                FROM profile_views v
                JOIN profiles p ON p.id = v.viewer_id
                WHERE v.viewed_id = CAST(:user_id AS uuid) AND p.is_active = TRUE
                GROUP BY v.viewer_id, p.id
                ORDER BY viewed_at DESC
                LIMIT :limit
                """
            ),
            {"user_id": user_id, "limit": limit},
        ).mappings().all()
    return [dict(r) for r in rows]


def touch_last_active(user_id: str) -> None:
    with SessionLocal() as db:
        db.execute(text("UPDATE profiles SET last_active=NOW() WHERE id=CAST(:id AS uuid)"), {"id": user_id})
        db.commit()


def get_last_active_map(user_ids: list[str]) -> dict[str, Any]:
    if not user_ids:
        return {}
    with SessionLocal() as db:
        rows = db.execute(
            text("SELECT id::text AS id, last_active FROM profiles WHERE id = ANY(CAST(:ids AS uuid[]))"),
            {"ids": user_ids},
        ).mappings().all()
    return {str(r["id"]): r["last_active"] for r in rows}


# icebreaker prompts


def list_prompts(category: str | None = None) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id, category, prompt_text, created_at
                FROM icebreaker_prompts
                WHERE is_active = TRUE AND (CAST(:category AS text) IS NULL OR category = :category)
                ORDER BY created_at DESC
                """
            ),
            {"category": category},
        ).mappings().all()
    return [dict(r) for r in rows]


def random_prompt(category: str | None = None, rng: random.Random | None = None) -> dict[str, Any] | None:
    prompts = list_prompts(category)
    if not prompts:
        return None
    return (rng or random).choice(prompts)


def get_prompt(prompt_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text("SELECT * FROM icebreaker_prompts WHERE id=CAST(:id AS uuid)"),
            {"id": prompt_id},
        ).mappings().first()
    return dict(row) if row else None


def list_prompt_responses(user_id: str, public_only: bool = False) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT r.id, r.prompt_id, r.response_text, r.is_public, r.created_at,
                       ip.prompt_text, ip.category
                FROM user_prompt_responses r
                JOIN icebreaker_prompts ip ON ip.id = r.prompt_id
                WHERE r.user_id = CAST(:user_id AS uuid)
                  AND (:public_only = FALSE OR r.is_public = TRUE)
                ORDER BY r.created_at DESC
                """
            ),
            {"user_id": user_id, "public_only": public_only},
        ).mappings().all()
    return [dict(r) for r in rows]


def upsert_prompt_response(user_id: str, prompt_id: str, response_text: str, is_public: bool) -> dict[str, Any]:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO user_prompt_responses (user_id, prompt_id, response_text, is_public)
                VALUES (CAST(:user_id AS uuid), CAST(:prompt_id AS uuid), :response_text, :is_public)
                ON CONFLICT (user_id, prompt_id)
                DO UPDATE SET response_text = EXCLUDED.response_text, is_public = EXCLUDED.is_public
                RETURNING id, prompt_id, response_text, is_public, created_at
                """
            ),
            {"user_id": user_id, "prompt_id": prompt_id, "response_text": response_text, "is_public": is_public},
        ).mappings().first()
        db.commit()
    return dict(row)


def delete_prompt_response(user_id: str, prompt_id: str) -> int:
    with SessionLocal() as db:
        res = db.execute(
            text(
                """
                DELETE FROM user_prompt_responses
                WHERE user_id=CAST(:user_id AS uuid) AND prompt_id=CAST(:prompt_id AS uuid)
                """
            ),
            {"user_id": user_id, "prompt_id": prompt_id},
        )
        db.commit()
        return int(res.rowcount or 0)


# discovery & saved searches


def _discovery_filter_clauses(viewer: dict[str, Any], filters: DiscoveryFilters | None) -> tuple[list[str], dict[str, Any]]:
    clauses: list[str] = []
    params: dict[str, Any] = {}
    if filters is None:
        return clauses, params

    lat, lng = viewer.get("location_lat"), viewer.get("location_lng")
    if lat is not None and lng is not None:
        box = bounding_box(float(lat), float(lng), filters.max_distance)
        # profiles without coordinates stay eligible, distance is unknown
        inside = "p.location_lat BETWEEN :lat_min AND :lat_max"
        params.update({"lat_min": box.lat_min, "lat_max": box.lat_max})
        if box.lng_min is not None:
            inside += " AND p.location_lng BETWEEN :lng_min AND :lng_max"
            params.update({"lng_min": box.lng_min, "lng_max": box.lng_max})
        clauses.append(f"(p.location_lat IS NULL OR p.location_lng IS NULL OR ({inside}))")

    if filters.height_min is not None:
        clauses.append("p.height_cm >= :height_min")
        params["height_min"] = filters.height_min
    if filters.height_max is not None:
        clauses.append("p.height_cm <= :height_max")
        params["height_max"] = filters.height_max
    if filters.education:
        clauses.append("lower(p.education::text) = ANY(CAST(:education AS text[]))")
        params["education"] = filters.education
    if filters.interests:
        clauses.append("EXISTS (SELECT 1 FROM unnest(p.interests) AS i(v) WHERE lower(i.v) = ANY(CAST(:interests AS text[])))")
        params["interests"] = filters.interests
    if filters.relationship_goals:
        clauses.append("p.relationship_goals::text[] && CAST(:relationship_goals AS text[])")
        params["relationship_goals"] = filters.relationship_goals
    if filters.body_types:
        clauses.append("lower(p.body_type) = ANY(CAST(:body_types AS text[]))")
        params["body_types"] = filters.body_types
    if filters.ethnicities:
        clauses.append("lower(p.ethnicity) = ANY(CAST(:ethnicities AS text[]))")
        params["ethnicities"] = filters.ethnicities
    for key in ("religion", "smoking", "drinking"):
        wanted = getattr(filters, key)
        if wanted:
            clauses.append(f"lower(p.{key}) = :{key}")
            params[key] = wanted
    return clauses, params


def fetch_discovery_candidates(
    viewer: dict[str, Any],
    *,
    dob_earliest: date,
    dob_latest: date,
    limit: int,
    filters: DiscoveryFilters | None = None,
) -> list[dict[str, Any]]:
    clauses, filter_params = _discovery_filter_clauses(viewer, filters)
    extra_where = "".join(f"\n                  AND {clause}" for clause in clauses)
    with SessionLocal() as db:
        rows = db.execute(
            text(
                f"""
                SELECT p.id::text AS id, p.first_name, p.date_of_birth, p.gender::text AS gender,
                       p.bio, p.occupation, p.education::text AS education, p.height_cm,
                       p.interests, p.relationship_goals::text[] AS relationship_goals,
                       p.body_type, p.ethnicity, p.religion, p.smoking, p.drinking,
                       p.location_city, p.location_state, p.location_lat, p.location_lng,
                       p.is_verified, p.professional_badge, p.last_active,
                       {PRIMARY_PHOTO_SQL} AS primary_photo_url,
                       EXISTS (
                         SELECT 1 FROM boosts b
                         WHERE b.user_id = p.id AND b.is_active = TRUE AND b.expires_at > NOW()
                       ) AS boost_active
                FROM profiles p
                JOIN user_account u ON u.id = p.id AND u.disabled_at IS NULL
                WHERE p.is_active = TRUE
                  AND p.id <> CAST(:viewer_id AS uuid)
                  AND NOT EXISTS (
                    SELECT 1 FROM swipes s
                    WHERE s.swiper_id = CAST(:viewer_id AS uuid) AND s.swiped_id = p.id
                  )
                  AND NOT EXISTS (
                    SELECT 1 FROM user_blocks ub
                    WHERE (ub.blocker_id = CAST(:viewer_id AS uuid) AND ub.blocked_id = p.id)
                       OR (ub.blocker_id = p.id AND ub.blocked_id = CAST(:viewer_id AS uuid))
                  )
                  AND (
                    cardinality(CAST(:interested_in AS gender_type[])) = 0
                    OR p.gender = ANY(CAST(:interested_in AS gender_type[]))
                  )
                  AND (
                    cardinality(p.interested_in) = 0
                    OR CAST(:viewer_gender AS gender_type) = ANY(p.interested_in)
                  )
                  AND p.date_of_birth BETWEEN :dob_earliest AND :dob_latest{extra_where}
                ORDER BY boost_active DESC, p.last_active DESC NULLS LAST
                LIMIT :limit
                """
            ),
            {
                "viewer_id": str(viewer["id"]),
                "interested_in": list(viewer.get("interested_in") or []),
                "viewer_gender": viewer.get("gender"),
                "dob_earliest": dob_earliest,
                "dob_latest": dob_latest,
                "limit": limit,
                **filter_params,
            },
        ).mappings().all()
    return [dict(r) for r in rows]


def list_saved_searches(user_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id, name, search_criteria, is_default, created_at, updated_at
                FROM saved_searches
                WHERE user_id=CAST(:user_id AS uuid)
                ORDER BY is_default DESC, created_at DESC
                """
            ),
            {"user_id": user_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def create_saved_search(user_id: str, name: str, criteria: dict[str, Any], is_default: bool) -> dict[str, Any]:
    with SessionLocal() as db:
        if is_default:
            db.execute(
                text("UPDATE saved_searches SET is_default=FALSE, updated_at=NOW() WHERE user_id=CAST(:user_id AS uuid)"),
                {"user_id": user_id},
            )
        row = db.execute(
            text(
                """
                INSERT INTO saved_searches (user_id, name, search_criteria, is_default)
                VALUES (CAST(:user_id AS uuid), :name, CAST(:criteria AS jsonb), :is_default)
                RETURNING id, name, search_criteria, is_default, created_at, updated_at
                """
            ),
            {"user_id": user_id, "name": name, "criteria": json.dumps(criteria), "is_default": is_default},
        ).mappings().first()
        db.commit()
    return dict(row)


def delete_saved_search(user_id: str, search_id: str) -> int:
    with SessionLocal() as db:
        res = db.execute(
            text("DELETE FROM saved_searches WHERE id=CAST(:id AS uuid) AND user_id=CAST(:user_id AS uuid)"),
            {"id": search_id, "user_id": user_id},
        )
        db.commit()
        return int(res.rowcount or 0)


# swipes & matches


def get_swipe(swiper_id: str, swiped_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id, swiper_id, swiped_id, action::text AS action, created_at
                FROM swipes
                WHERE swiper_id=CAST(:swiper_id AS uuid) AND swiped_id=CAST(:swiped_id AS uuid)
                """
            ),
            {"swiper_id": swiper_id, "swiped_id": swiped_id},
        ).mappings().first()
    return dict(row) if row else None


def get_daily_usage(user_id: str, day: date) -> dict[str, int]:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT swipes_used, super_likes_used, boosts_used
                FROM daily_limits
                WHERE user_id=CAST(:user_id AS uuid) AND date=:day
                """
            ),
            {"user_id": user_id, "day": day},
        ).mappings().first()
    row = row or {}
    return {
        "swipes_used": int(row.get("swipes_used") or 0),
        "super_likes_used": int(row.get("super_likes_used") or 0),
        "boosts_used": int(row.get("boosts_used") or 0),
    }


def _first_name(db, user_id: str) -> str:
    row = db.execute(
        text("SELECT first_name FROM profiles WHERE id=CAST(:id AS uuid)"),
        {"id": user_id},
    ).mappings().first()
    return str((row or {}).get("first_name") or "Someone")


def record_swipe(swiper_id: str, swiped_id: str, action: str, *, day: date, use_bonus_super_like: bool = False) -> dict[str, Any] | None:
    """Persist a swipe and its side effects; returns None when the pair was already swiped."""
    with SessionLocal() as db:
        swipe = db.execute(
            text(
                """
                INSERT INTO swipes (swiper_id, swiped_id, action)
                VALUES (CAST(:swiper_id AS uuid), CAST(:swiped_id AS uuid), CAST(:action AS swipe_action))
                ON CONFLICT (swiper_id, swiped_id) DO NOTHING
                RETURNING id, created_at
                """
            ),
            {"swiper_id": swiper_id, "swiped_id": swiped_id, "action": action},
        ).mappings().first()
        if not swipe:
            db.rollback()
            return None

        counts_super_like = action == "super_like" and not use_bonus_super_like
        db.execute(
            text(
                """
                INSERT INTO daily_limits (user_id, date, swipes_used, super_likes_used)
                VALUES (CAST(:user_id AS uuid), :day, 1, :super_likes)
                ON CONFLICT (user_id, date) DO UPDATE SET
                  swipes_used = daily_limits.swipes_used + 1,
                  super_likes_used = daily_limits.super_likes_used + EXCLUDED.super_likes_used,
                  updated_at = NOW()
                """
            ),
            {"user_id": swiper_id, "day": day, "super_likes": 1 if counts_super_like else 0},
        )

        if action == "like":
            _bump_stat(db, swiper_id, "likes_given")
            _bump_stat(db, swiped_id, "likes_received")
        elif action == "super_like":
            _bump_stat(db, swiper_id, "super_likes_given")
            _bump_stat(db, swiped_id, "super_likes_received")
            if use_bonus_super_like:
                _bump_stat(db, swiper_id, "bonus_super_likes", -1)

        result: dict[str, Any] = {
            "swipe": {"id": str(swipe["id"]), "action": action, "created_at": swipe["created_at"]},
            "match": None,
            "notifications": [],
        }
        if action == "pass":
            db.commit()
            return result

        swiper_name = _first_name(db, swiper_id)
        reciprocal = db.execute(
            text(
                """
                SELECT 1 FROM swipes
                WHERE swiper_id=CAST(:swiped_id AS uuid) AND swiped_id=CAST(:swiper_id AS uuid)
                  AND action IN ('like', 'super_like')
                """
            ),
            {"swiper_id": swiper_id, "swiped_id": swiped_id},
        ).first()

        if reciprocal:
            user1_id, user2_id = sorted([str(swiper_id), str(swiped_id)])
            match = db.execute(
                text(
                    """
                    INSERT INTO matches (user1_id, user2_id)
                    VALUES (CAST(:user1_id AS uuid), CAST(:user2_id AS uuid))
                    ON CONFLICT (user1_id, user2_id) DO UPDATE SET is_active = TRUE
                    RETURNING id::text AS id, created_at
                    """
                ),
                {"user1_id": user1_id, "user2_id": user2_id},
            ).mappings().first()
            db.execute(
                text("INSERT INTO conversations (match_id) VALUES (CAST(:match_id AS uuid)) ON CONFLICT (match_id) DO NOTHING"),
                {"match_id": match["id"]},
            )
            conversation = db.execute(
                text("SELECT id::text AS id FROM conversations WHERE match_id=CAST(:match_id AS uuid)"),
                {"match_id": match["id"]},
            ).mappings().first()
            _bump_stat(db, swiper_id, "total_matches")
            _bump_stat(db, swiped_id, "total_matches")

            swiped_name = _first_name(db, swiped_id)
            for target, other, other_name in ((swiper_id, swiped_id, swiped_name), (swiped_id, swiper_id, swiper_name)):
                result["notifications"].append(
                    create_notification(
                        db,
                        user_id=target,
                        notification_type="match",
                        title="It's a Match!",
                        message=f"You and {other_name} liked each other.",
                        related_user_id=other,
                        related_match_id=match["id"],
                    )
                )
            result["match"] = {
                "id": match["id"],
                "conversation_id": conversation["id"] if conversation else None,
                "user1_id": user1_id,
                "user2_id": user2_id,
                "created_at": match["created_at"],
            }
        elif action == "super_like":
            result["notifications"].append(
                create_notification(
                    db,
                    user_id=swiped_id,
                    notification_type="super_like",
                    title="You got a Super Like!",
                    message=f"{swiper_name} super liked you.",
                    related_user_id=swiper_id,
                )
            )
        db.commit()
    return result


def count_likes_received(user_id: str) -> int:
    with SessionLocal() as db:
        value = db.execute(
            text(
                """
                SELECT COUNT(*) FROM swipes s
                WHERE s.swiped_id = CAST(:user_id AS uuid)
                  AND s.action IN ('like', 'super_like')
                  AND NOT EXISTS (
                    SELECT 1 FROM swipes back
                    WHERE back.swiper_id = CAST(:user_id AS uuid) AND back.swiped_id = s.swiper_id
                  )
                """
            ),
            {"user_id": user_id},
        ).scalar()
    return int(value or 0)


def list_likes_received(user_id: str, limit: int = 50) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                f"""
                SELECT p.id::text AS id, s.action::text AS action, s.created_at AS liked_at,
                       p.first_name, p.date_of_birth, p.location_city, p.location_state, p.is_verified,
                       {PRIMARY_PHOTO_SQL} AS primary_photo_url
                FROM swipes s
                JOIN profiles p ON p.id = s.swiper_id
                WHERE s.swiped_id = CAST(:user_id AS uuid)
                  AND s.action IN ('like', 'super_like')
                  AND p.is_active = TRUE
                  AND NOT EXISTS (
                    SELECT 1 FROM swipes back
                    WHERE back.swiper_id = CAST(:user_id AS uuid) AND back.swiped_id = s.swiper_id
                  )
                ORDER BY (s.action = 'super_like') DESC, s.created_at DESC
                LIMIT :limit
                """
            ),
            {"user_id": user_id, "limit": limit},
        ).mappings().all()
    return [dict(r) for r in rows]


def list_matches(user_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                f"""
                SELECT m.id::text AS match_id, m.created_at AS matched_at,
                       c.id::text AS conversation_id, c.last_message_at,
                       p.id::text AS other_id, p.first_name, p.date_of_birth,
                       p.location_city, p.location_state, p.is_verified, p.last_active,
                       {PRIMARY_PHOTO_SQL} AS primary_photo_url,
                       (SELECT msg.content FROM messages msg
                        WHERE msg.conversation_id = c.id
                        ORDER BY msg.created_at DESC LIMIT 1) AS last_message,
                       (SELECT COUNT(*) FROM messages msg
                        WHERE msg.conversation_id = c.id
                          AND msg.sender_id <> CAST(:user_id AS uuid)
                          AND msg.is_read = FALSE) AS unread_count
                FROM matches m
                LEFT JOIN conversations c ON c.match_id = m.id
                JOIN profiles p ON p.id = CASE WHEN m.user1_id = CAST(:user_id AS uuid) THEN m.user2_id ELSE m.user1_id END
                WHERE m.is_active = TRUE
                  AND (m.user1_id = CAST(:user_id AS uuid) OR m.user2_id = CAST(:user_id AS uuid))
                ORDER BY COALESCE(c.last_message_at, m.created_at) DESC
                """
            ),
            {"user_id": user_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def get_match(match_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id::text AS id, user1_id::text AS user1_id, user2_id::text AS user2_id, is_active, created_at
                FROM matches WHERE id=CAST(:id AS uuid)
                """
            ),
            {"id": match_id},
        ).mappings().first()
    return dict(row) if row else None


def deactivate_match(match_id: str) -> None:
    with SessionLocal() as db:
        db.execute(text("UPDATE matches SET is_active=FALSE WHERE id=CAST(:id AS uuid)"), {"id": match_id})
        db.commit()


def get_conversation(conversation_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT c.id::text AS id, c.match_id::text AS match_id, c.last_message_at,
                       m.user1_id::text AS user1_id, m.user2_id::text AS user2_id, m.is_active
                FROM conversations c
                JOIN matches m ON m.id = c.match_id
                WHERE c.id=CAST(:id AS uuid)
                """
            ),
            {"id": conversation_id},
        ).mappings().first()
    return dict(row) if row else None


def list_messages(conversation_id: str, before: datetime | None = None, limit: int = 50) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT * FROM (
                  SELECT id::text AS id, conversation_id::text AS conversation_id, sender_id::text AS sender_id,
                         content, message_type::text AS message_type, media_url, is_read, read_at, created_at
                  FROM messages
                  WHERE conversation_id = CAST(:conversation_id AS uuid)
                    AND (CAST(:before AS timestamptz) IS NULL OR created_at < CAST(:before AS timestamptz))
                  ORDER BY created_at DESC
                  LIMIT :limit
                ) recent
                ORDER BY created_at ASC
                """
            ),
            {"conversation_id": conversation_id, "before": before, "limit": limit},
        ).mappings().all()
    return [dict(r) for r in rows]


def create_message(
    *,
    conversation_id: str,
    sender_id: str,
    recipient_id: str,
    content: str | None,
    message_type: str = "text",
    media_url: str | None = None,
) -> dict[str, Any]:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO messages (conversation_id, sender_id, content, message_type, media_url)
                VALUES (CAST(:conversation_id AS uuid), CAST(:sender_id AS uuid), :content, CAST(:message_type AS message_type), :media_url)
                RETURNING id::text AS id, conversation_id::text AS conversation_id, sender_id::text AS sender_id,
                          content, message_type::text AS message_type, media_url, is_read, read_at, created_at
                """
            ),
            {
                "conversation_id": conversation_id,
                "sender_id": sender_id,
                "content": content,
                "message_type": message_type,
                "media_url": media_url,
            },
        ).mappings().first()
        message = dict(row)
        previous = db.execute(
            text("SELECT last_message_at FROM conversations WHERE id=CAST(:id AS uuid)"),
            {"id": conversation_id},
        ).mappings().first()
        if previous is not None and previous.get("last_message_at") is None:
            _bump_stat(db, sender_id, "total_conversations")
            _bump_stat(db, recipient_id, "total_conversations")
        db.execute(
            text("UPDATE conversations SET last_message_at=:ts WHERE id=CAST(:id AS uuid)"),
            {"id": conversation_id, "ts": message["created_at"]},
        )
        preview = content if message_type == "text" else f"Sent a {message_type}"
        create_notification(
            db,
            user_id=recipient_id,
            notification_type="message",
            title=f"New message from {_first_name(db, sender_id)}",
            message=(preview or "")[:120],
            related_user_id=sender_id,
            metadata={"conversation_id": conversation_id, "message_id": message["id"]},
        )
        db.commit()
    return message


def mark_messages_read(conversation_id: str, reader_id: str) -> list[str]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                UPDATE messages SET is_read = TRUE, read_at = NOW()
                WHERE conversation_id = CAST(:conversation_id AS uuid)
                  AND sender_id <> CAST(:reader_id AS uuid)
                  AND is_read = FALSE
                RETURNING id::text AS id
                """
            ),
            {"conversation_id": conversation_id, "reader_id": reader_id},
        ).mappings().all()
        db.commit()
    return [str(r["id"]) for r in rows]


# subscriptions & boosts


def get_subscription(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT user_id::text AS user_id, tier::text AS tier, status, stripe_customer_id,
                       stripe_subscription_id, current_period_start, current_period_end, updated_at
                FROM user_subscriptions WHERE user_id=CAST(:user_id AS uuid)
                """
            ),
            {"user_id": user_id},
        ).mappings().first()
    return dict(row) if row else None


def find_user_by_customer(customer_id: str) -> str | None:
    with SessionLocal() as db:
        row = db.execute(
            text("SELECT user_id::text AS user_id FROM user_subscriptions WHERE stripe_customer_id=:customer_id LIMIT 1"),
            {"customer_id": customer_id},
        ).mappings().first()
    return str(row["user_id"]) if row else None


def set_stripe_customer(user_id: str, customer_id: str) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO user_subscriptions (user_id, tier, status, stripe_customer_id)
                VALUES (CAST(:user_id AS uuid), 'free', 'active', :customer_id)
                ON CONFLICT (user_id) DO UPDATE SET stripe_customer_id = EXCLUDED.stripe_customer_id, updated_at = NOW()
                """
            ),
            {"user_id": user_id, "customer_id": customer_id},
        )
        db.commit()


def apply_subscription_change(user_id: str, change, *, title: str, message: str, event_type: str) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO user_subscriptions (
                  user_id, tier, status, stripe_customer_id, stripe_subscription_id,
                  current_period_start, current_period_end
                )
                VALUES (
                  CAST(:user_id AS uuid), CAST(:tier AS subscription_tier), :status, :customer_id,
                  :subscription_id, :period_start, :period_end
                )
                ON CONFLICT (user_id) DO UPDATE SET
                  tier = EXCLUDED.tier,
                  status = EXCLUDED.status,
                  stripe_customer_id = COALESCE(EXCLUDED.stripe_customer_id, user_subscriptions.stripe_customer_id),
                  stripe_subscription_id = COALESCE(EXCLUDED.stripe_subscription_id, user_subscriptions.stripe_subscription_id),
                  current_period_start = EXCLUDED.current_period_start,
                  current_period_end = EXCLUDED.current_period_end,
                  updated_at = NOW()
                """
            ),
            {
                "user_id": user_id,
                "tier": change.tier,
                "status": change.status,
                "customer_id": change.stripe_customer_id,
                "subscription_id": change.stripe_subscription_id,
                "period_start": change.current_period_start,
                "period_end": change.current_period_end,
            },
        )
        create_notification(
            db,
            user_id=user_id,
            notification_type="subscription",
            title=title,
            message=message,
            metadata={"event_type": event_type, "tier": change.tier, "status": change.status},
        )
        db.commit()


def get_active_boost(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id::text AS id, boost_type, started_at, expires_at
                FROM boosts
                WHERE user_id=CAST(:user_id AS uuid) AND is_active = TRUE AND expires_at > NOW()
                ORDER BY expires_at DESC
                LIMIT 1
                """
            ),
            {"user_id": user_id},
        ).mappings().first()
    return dict(row) if row else None


def count_boosts_since(user_id: str, since: datetime) -> int:
    with SessionLocal() as db:
        value = db.execute(
            text(
                """
                SELECT COUNT(*) FROM boosts
                WHERE user_id=CAST(:user_id AS uuid) AND boost_type <> 'bonus' AND started_at >= :since
                """
            ),
            {"user_id": user_id, "since": since},
        ).scalar()
    return int(value or 0)


def create_boost(user_id: str, duration_minutes: int, *, use_bonus: bool) -> dict[str, Any]:
    now = _now_utc()
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO boosts (user_id, boost_type, started_at, expires_at)
                VALUES (CAST(:user_id AS uuid), :boost_type, :started_at, :expires_at)
                RETURNING id::text AS id, boost_type, started_at, expires_at
                """
            ),
            {
                "user_id": user_id,
                "boost_type": "bonus" if use_bonus else "standard",
                "started_at": now,
                "expires_at": now + timedelta(minutes=duration_minutes),
            },
        ).mappings().first()
        if use_bonus:
            _bump_stat(db, user_id, "bonus_boosts", -1)
        db.commit()
    return dict(row)


# gamification


def get_or_create_stats(user_id: str) -> dict[str, Any]:
    with SessionLocal() as db:
        _ensure_stats(db, user_id)
        row = db.execute(
            text("SELECT * FROM user_stats WHERE user_id=CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        ).mappings().first()
        db.commit()
    return dict(row) if row else {}


def list_achievements(user_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT a.id::text AS id, a.name, a.description, a.icon, a.requirement_type,
                       a.requirement_value, a.points_reward, ua.earned_at
                FROM achievements a
                LEFT JOIN user_achievements ua
                  ON ua.achievement_id = a.id AND ua.user_id = CAST(:user_id AS uuid)
                ORDER BY a.requirement_type, a.requirement_value
                """
            ),
            {"user_id": user_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def award_achievements(user_id: str) -> list[dict[str, Any]]:
    catalogue = list_achievements(user_id)
    earned = {a["id"] for a in catalogue if a.get("earned_at")}
    with SessionLocal() as db:
        _ensure_stats(db, user_id)
        stats = db.execute(
            text("SELECT * FROM user_stats WHERE user_id=CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        ).mappings().first() or {}
        awarded = achievements_to_award(dict(stats), catalogue, earned)
        for achievement in awarded:
            inserted = db.execute(
                text(
                    """
                    INSERT INTO user_achievements (user_id, achievement_id)
                    VALUES (CAST(:user_id AS uuid), CAST(:achievement_id AS uuid))
                    ON CONFLICT (user_id, achievement_id) DO NOTHING
                    RETURNING earned_at
                    """
                ),
                {"user_id": user_id, "achievement_id": achievement["id"]},
            ).mappings().first()
            if not inserted:
                continue
            achievement["earned_at"] = inserted["earned_at"]
            _add_experience(db, user_id, int(achievement.get("points_reward") or 0))
            create_notification(
                db,
                user_id=user_id,
                notification_type="achievement",
                title="Achievement Unlocked!",
                message=f"You earned \"{achievement['name']}\" (+{int(achievement.get('points_reward') or 0)} XP).",
                metadata={"achievement_id": achievement["id"]},
            )
        db.commit()
    return awarded


def _add_experience(db, user_id: str, points: int) -> None:
    if points <= 0:
        return
    _bump_stat(db, user_id, "experience_points", points)
    row = db.execute(
        text("SELECT experience_points FROM user_stats WHERE user_id=CAST(:user_id AS uuid)"),
        {"user_id": user_id},
    ).mappings().first()
    db.execute(
        text("UPDATE user_stats SET level=:level WHERE user_id=CAST(:user_id AS uuid)"),
        {"user_id": user_id, "level": level_for(int((row or {}).get("experience_points") or 0))},
    )


def get_or_create_daily_reward(user_id: str, day: date, rng: random.Random | None = None) -> dict[str, Any]:
    reward_type, reward_value = roll_daily_reward(rng)
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO daily_rewards (user_id, reward_date, reward_type, reward_value)
                VALUES (CAST(:user_id AS uuid), :day, :reward_type, :reward_value)
                ON CONFLICT (user_id, reward_date) DO NOTHING
                """
            ),
            {"user_id": user_id, "day": day, "reward_type": reward_type, "reward_value": reward_value},
        )
        row = db.execute(
            text(
                """
                SELECT id::text AS id, reward_date, reward_type, reward_value, claimed
                FROM daily_rewards WHERE user_id=CAST(:user_id AS uuid) AND reward_date=:day
                """
            ),
            {"user_id": user_id, "day": day},
        ).mappings().first()
        db.commit()
    return dict(row)


def claim_daily_reward(user_id: str, day: date) -> dict[str, Any] | None:
    """Returns the claimed reward, or None when today's reward was already claimed."""
    get_or_create_daily_reward(user_id, day)
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                UPDATE daily_rewards SET claimed = TRUE
                WHERE user_id=CAST(:user_id AS uuid) AND reward_date=:day AND claimed = FALSE
                RETURNING id::text AS id, reward_date, reward_type, reward_value, claimed
                """
            ),
            {"user_id": user_id, "day": day},
        ).mappings().first()
        if not row:
            db.rollback()
            return None
        reward = dict(row)
        value = int(reward.get("reward_value") or 0)
        if reward["reward_type"] == "points":
            _add_experience(db, user_id, value)
        elif reward["reward_type"] == "super_like":
            _bump_stat(db, user_id, "bonus_super_likes", value)
        elif reward["reward_type"] == "boost":
            _bump_stat(db, user_id, "bonus_boosts", value)
        db.commit()
    return reward


# notifications


def list_notifications(user_id: str, unread_only: bool = False, limit: int = 50) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id::text AS id, type, title, message, is_read, metadata,
                       related_match_id::text AS related_match_id, related_user_id::text AS related_user_id, created_at
                FROM notifications
                WHERE user_id=CAST(:user_id AS uuid) AND (:unread_only = FALSE OR is_read = FALSE)
                ORDER BY created_at DESC
                LIMIT :limit
                """
            ),
            {"user_id": user_id, "unread_only": unread_only, "limit": limit},
        ).mappings().all()
    return [dict(r) for r in rows]


def mark_notifications_read(user_id: str, notification_ids: list[str] | None = None) -> int:
    if notification_ids is not None and not notification_ids:
        return 0
    with SessionLocal() as db:
        if notification_ids is None:
            res = db.execute(
                text(
                    """
                    UPDATE notifications SET is_read=TRUE, updated_at=NOW()
                    WHERE user_id=CAST(:user_id AS uuid) AND is_read=FALSE
                    """
                ),
                {"user_id": user_id},
            )
        else:
            res = db.execute(
                text(
                    """
                    UPDATE notifications SET is_read=TRUE, updated_at=NOW()
                    WHERE user_id=CAST(:user_id AS uuid) AND id = ANY(CAST(:ids AS uuid[]))
                    """
                ),
                {"user_id": user_id, "ids": notification_ids},
            )
        db.commit()
        return int(res.rowcount or 0)


def unread_notification_count(user_id: str) -> int:
    with SessionLocal() as db:
        value = db.execute(
            text("SELECT COUNT(*) FROM notifications WHERE user_id=CAST(:user_id AS uuid) AND is_read=FALSE"),
            {"user_id": user_id},
        ).scalar()
    return int(value or 0)


def upsert_push_subscription(user_id: str, endpoint: str, subscription: dict[str, Any]) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO push_subscriptions (user_id, endpoint, subscription)
                VALUES (CAST(:user_id AS uuid), :endpoint, CAST(:subscription AS jsonb))
                ON CONFLICT (user_id, endpoint)
                DO UPDATE SET subscription = EXCLUDED.subscription, updated_at = NOW()
                """
            ),
            {"user_id": user_id, "endpoint": endpoint, "subscription": json.dumps(subscription)},
        )
        db.commit()


def delete_push_subscription(user_id: str, endpoint: str) -> int:
    with SessionLocal() as db:
        res = db.execute(
            text("DELETE FROM push_subscriptions WHERE user_id=CAST(:user_id AS uuid) AND endpoint=:endpoint"),
            {"user_id": user_id, "endpoint": endpoint},
        )
        db.commit()
        return int(res.rowcount or 0)


# safety & verification


def is_blocked_pair(user_a: str, user_b: str) -> bool:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT 1
                FROM user_blocks
                WHERE (blocker_id=CAST(:a AS uuid) AND blocked_id=CAST(:b AS uuid))
                   OR (blocker_id=CAST(:b AS uuid) AND blocked_id=CAST(:a AS uuid))
                LIMIT 1
                """
            ),
            {"a": user_a, "b": user_b},
        ).first()
    return bool(row)


def create_block(blocker_id: str, blocked_id: str, reason: str | None = None) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO user_blocks (blocker_id, blocked_id, reason)
                VALUES (CAST(:blocker_id AS uuid), CAST(:blocked_id AS uuid), :reason)
                ON CONFLICT (blocker_id, blocked_id) DO NOTHING
                """
            ),
            {"blocker_id": blocker_id, "blocked_id": blocked_id, "reason": reason},
        )
        user1_id, user2_id = sorted([str(blocker_id), str(blocked_id)])
        db.execute(
            text(
                """
                UPDATE matches SET is_active = FALSE
                WHERE user1_id=CAST(:user1_id AS uuid) AND user2_id=CAST(:user2_id AS uuid)
                """
            ),
            {"user1_id": user1_id, "user2_id": user2_id},
        )
        db.commit()


def remove_block(blocker_id: str, blocked_id: str) -> int:
    with SessionLocal() as db:
        res = db.execute(
            text("DELETE FROM user_blocks WHERE blocker_id=CAST(:blocker_id AS uuid) AND blocked_id=CAST(:blocked_id AS uuid)"),
            {"blocker_id": blocker_id, "blocked_id": blocked_id},
        )
        db.commit()
        return int(res.rowcount or 0)


def list_blocks(blocker_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT b.blocked_id::text AS blocked_id, b.reason, b.created_at, p.first_name
                FROM user_blocks b
                LEFT JOIN profiles p ON p.id = b.blocked_id
                WHERE b.blocker_id=CAST(:blocker_id AS uuid)
                ORDER BY b.created_at DESC
                """
            ),
            {"blocker_id": blocker_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def create_report(
    *,
    reporter_id: str,
    reported_id: str,
    reason: str,
    description: str | None,
    content_type: str,
    content_metadata: dict[str, Any] | None,
) -> dict[str, Any]:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO reports (reporter_id, reported_id, reason, description, content_type, content_metadata)
                VALUES (
                  CAST(:reporter_id AS uuid), CAST(:reported_id AS uuid), :reason, :description,
                  :content_type, CAST(:content_metadata AS jsonb)
                )
                RETURNING id::text AS id, reason, content_type, status, created_at
                """
            ),
            {
                "reporter_id": reporter_id,
                "reported_id": reported_id,
                "reason": reason,
                "description": description,
                "content_type": content_type,
                "content_metadata": json.dumps(content_metadata or {}),
            },
        ).mappings().first()
        db.commit()
    return dict(row)


def get_latest_verification(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id::text AS id, verification_type, profession, status::text AS status,
                       reviewed_at, created_at
                FROM verification_requests
                WHERE user_id=CAST(:user_id AS uuid)
                ORDER BY created_at DESC
                LIMIT 1
                """
            ),
            {"user_id": user_id},
        ).mappings().first()
    return dict(row) if row else None


def create_verification_request(
    *,
    user_id: str,
    verification_type: str,
    selfie_file: str,
    document_file: str | None,
    profession: str | None,
) -> dict[str, Any]:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO verification_requests (user_id, verification_type, selfie_url, professional_document_url, profession)
                VALUES (CAST(:user_id AS uuid), :verification_type, :selfie_url, :document_url, :profession)
                RETURNING id::text AS id, verification_type, profession, status::text AS status, created_at
                """
            ),
            {
                "user_id": user_id,
                "verification_type": verification_type,
                "selfie_url": selfie_file,
                "document_url": document_file,
                "profession": profession,
            },
        ).mappings().first()
        db.execute(
            text("UPDATE profiles SET verification_status='pending', updated_at=NOW() WHERE id=CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        )
        db.commit()
    return dict(row)


# events & accommodations


def list_events(city: str | None = None) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id::text AS id, title, description, event_date, location_city, location_country,
                       venue, image_url, max_attendees
                FROM events
                WHERE event_date >= NOW()
                  AND (CAST(:city AS text) IS NULL OR LOWER(location_city) = LOWER(:city))
                ORDER BY event_date ASC
                """
            ),
            {"city": city},
        ).mappings().all()
    return [dict(r) for r in rows]


def get_event(event_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT id::text AS id, title, description, event_date, location_city, location_country,
                       venue, image_url, max_attendees
                FROM events WHERE id=CAST(:id AS uuid)
                """
            ),
            {"id": event_id},
        ).mappings().first()
        if not row:
            return None
        accommodations = db.execute(
            text(
                """
                SELECT a.id::text AS id, a.name, a.type::text AS type, a.description, a.price_per_night,
                       a.location_city, a.location_country, a.image_url
                FROM event_accommodations ea
                JOIN accommodations a ON a.id = ea.accommodation_id
                WHERE ea.event_id = CAST(:id AS uuid)
                ORDER BY a.price_per_night ASC
                """
            ),
            {"id": event_id},
        ).mappings().all()
    event = dict(row)
    event["accommodations"] = [dict(a) for a in accommodations]
    return event


def list_accommodations(city: str | None = None, accommodation_type: str | None = None) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.execute(
            text(
                """
                SELECT id::text AS id, owner_id::text AS owner_id, name, type::text AS type, description,
                       price_per_night, location_city, location_country, image_url, created_at
                FROM accommodations
                WHERE (CAST(:city AS text) IS NULL OR LOWER(location_city) = LOWER(:city))
                  AND (CAST(:type AS text) IS NULL OR type::text = :type)
                ORDER BY created_at DESC
                """
            ),
            {"city": city, "type": accommodation_type},
        ).mappings().all()
    return [dict(r) for r in rows]


def create_accommodation(owner_id: str, fields: dict[str, Any]) -> dict[str, Any]:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                INSERT INTO accommodations (owner_id, name, type, description, price_per_night, location_city, location_country, image_url)
                VALUES (
                  CAST(:owner_id AS uuid), :name, CAST(:type AS accommodation_type), :description,
                  :price_per_night, :location_city, :location_country, :image_url
                )
                RETURNING id::text AS id, owner_id::text AS owner_id, name, type::text AS type, description,
                          price_per_night, location_city, location_country, image_url, created_at
                """
            ),
            {"owner_id": owner_id, **fields},
        ).mappings().first()
        db.commit()
    return dict(row)
