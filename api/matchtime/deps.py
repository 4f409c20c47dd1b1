import uuid
from datetime import date, datetime, timezone
from typing import Any

from fastapi import HTTPException

from . import repo
from .services.discovery import age_on, general_location
from .services.tiers import effective_tier


def parse_uuid(raw: Any, field: str = "id") -> str:
    value = str(raw or "").strip()
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be a valid UUID")


def tier_for_user(user_id: str) -> str:
    return effective_tier(repo.get_subscription(str(user_id)), datetime.now(timezone.utc))


def other_participant(record: dict[str, Any], user_id: str) -> str:
    """Return the other member of a match/conversation or raise 403 for outsiders."""
    uid = str(user_id)
    a = str(record["user1_id"])
    b = str(record["user2_id"])
    if uid not in {a, b}:
        raise HTTPException(status_code=403, detail="Forbidden")
    return b if uid == a else a


def own_profile_view(profile: dict[str, Any], photos: list[dict[str, Any]]) -> dict[str, Any]:
    out = dict(profile)
    out["photos"] = photos
    out["photo_urls"] = [p["photo_url"] for p in photos]
    out["age"] = age_on(profile.get("date_of_birth"), date.today())
    return out


def public_profile_view(profile: dict[str, Any], photos: list[dict[str, Any]], prompts: list[dict[str, Any]]) -> dict[str, Any]:
    """Profile as seen by other users: no birth date, email or coordinates."""
    return {
        "id": str(profile["id"]),
        "first_name": profile.get("first_name"),
        "age": age_on(profile.get("date_of_birth"), date.today()),
        "gender": profile.get("gender"),
        "bio": profile.get("bio"),
        "occupation": profile.get("occupation"),
        "education": profile.get("education"),
        "height_cm": profile.get("height_cm"),
        "interests": list(profile.get("interests") or []),
        "relationship_goals": list(profile.get("relationship_goals") or []),
        "body_type": profile.get("body_type"),
        "religion": profile.get("religion"),
        "smoking": profile.get("smoking"),
        "drinking": profile.get("drinking"),
        "general_location": general_location(profile),
        "is_verified": bool(profile.get("is_verified")),
        "professional_badge": profile.get("professional_badge"),
        "last_active": profile.get("last_active"),
        "photos": [{"id": str(p["id"]), "photo_url": p["photo_url"], "is_primary": bool(p.get("is_primary"))} for p in photos],
        "prompts": [
            {"prompt_id": str(r["prompt_id"]), "prompt_text": r.get("prompt_text"), "response_text": r.get("response_text")}
            for r in prompts
        ],
    }


def profile_card(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "first_name": row.get("first_name"),
        "age": age_on(row.get("date_of_birth"), date.today()),
        "general_location": general_location(row),
        "is_verified": bool(row.get("is_verified")),
        "primary_photo_url": row.get("primary_photo_url"),
    }


def profile_completion(profile: dict[str, Any], photos: list[dict[str, Any]]) -> dict[str, Any]:
    sections = {
        "basic_info": bool(profile.get("first_name") and profile.get("date_of_birth") and profile.get("gender")),
        "photos": len(photos) >= 1,
        "bio": len(str(profile.get("bio") or "").strip()) > 20,
        "location": bool(profile.get("location_city") and profile.get("location_state")),
    }
    done = sum(1 for ok in sections.values() if ok)
    return {
        "percentage": round(done / len(sections) * 100),
        "sections": sections,
        "missing": [name for name, ok in sections.items() if not ok],
    }
