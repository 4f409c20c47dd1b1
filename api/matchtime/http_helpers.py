import re
from datetime import date
from pathlib import Path
from typing import Any

from fastapi import HTTPException, Request, UploadFile

from .config import MIN_SIGNUP_AGE, PRIVATE_UPLOADS_DIR, UPLOADS_DIR
from .services.discovery import age_on
from .services.file_validation import secure_filename, validate_file
from .services.sanitization import optional_clean

GENDERS = {"male", "female", "non_binary", "other", "prefer_not_to_say"}
EDUCATION_LEVELS = {"high_school", "some_college", "bachelors", "masters", "phd", "trade_school", "other"}
RELATIONSHIP_GOALS = {"casual", "serious", "friendship", "networking"}

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def client_meta(request: Request) -> dict[str, str | None]:
    xff = request.headers.get("x-forwarded-for", "").strip()
    ip = xff.split(",")[0].strip() if xff else (request.client.host if request.client else None)
    return {"ip_address": ip, "user_agent": request.headers.get("user-agent")}


def parse_birth_date(value: Any, field: str = "date_of_birth") -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value or "").strip()[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be a date (YYYY-MM-DD)")


def _enum_value(value: Any, allowed: set[str], field: str) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower()
    if not v:
        return None
    if v not in allowed:
        raise HTTPException(status_code=400, detail=f"{field} must be one of: {', '.join(sorted(allowed))}")
    return v


def _enum_list(values: Any, allowed: set[str], field: str) -> list[str]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise HTTPException(status_code=400, detail=f"{field} must be an array")
    out: list[str] = []
    for value in values:
        item = _enum_value(value, allowed, field)
        if item and item not in out:
            out.append(item)
    return out


def validate_registration_input(payload: dict[str, Any], today: date | None = None) -> dict[str, Any]:
    email = normalize_email(str(payload.get("email") or ""))
    if len(email) > 254 or not _EMAIL_RE.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    password = str(payload.get("password") or "")
    if len(password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")

    first_name = _clean(payload.get("first_name"), 50, "first_name")
    if not first_name:
        raise HTTPException(status_code=400, detail="first_name is required")
    last_name = _clean(payload.get("last_name"), 50, "last_name")

    dob = parse_birth_date(payload.get("date_of_birth"))
    age = age_on(dob, today or date.today())
    if age is None or age < MIN_SIGNUP_AGE:
        raise HTTPException(status_code=400, detail=f"You must be at least {MIN_SIGNUP_AGE} years old to register")
    if age > 120:
        raise HTTPException(status_code=400, detail="date_of_birth is not valid")

    gender = _enum_value(payload.get("gender"), GENDERS, "gender")
    if not gender:
        raise HTTPException(status_code=400, detail="gender is required")

    return {
        "email": email,
        "password": password,
        "first_name": first_name,
        "last_name": last_name,
        "date_of_birth": dob,
        "gender": gender,
        "interested_in": _enum_list(payload.get("interested_in"), GENDERS, "interested_in"),
    }


def _clean(value: Any, max_length: int, field: str) -> str | None:
    try:
        return optional_clean(value, max_length, field)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _int_in_range(value: Any, low: int, high: int, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        v = int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} must be an integer")
    if v < low or v > high:
        raise HTTPException(status_code=400, detail=f"{field} must be between {low} and {high}")
    return v


def _float_in_range(value: Any, low: float, high: float, field: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} must be a number")
    if v < low or v > high:
        raise HTTPException(status_code=400, detail=f"{field} must be between {low:g} and {high:g}")
    return v


def sanitize_profile_payload(payload: dict[str, Any], current: dict[str, Any] | None = None) -> dict[str, Any]:
    """Validate a partial profile update; only keys present in ``payload`` are returned."""
    updates: dict[str, Any] = {}
    current = current or {}

    for field, limit in (("first_name", 50), ("last_name", 50), ("bio", 500), ("occupation", 100)):
        if field in payload:
            updates[field] = _clean(payload.get(field), limit, field)
    if "first_name" in updates and not updates["first_name"]:
        raise HTTPException(status_code=400, detail="first_name cannot be empty")

    for field in ("body_type", "ethnicity", "religion", "smoking", "drinking", "location_city", "location_state"):
        if field in payload:
            updates[field] = _clean(payload.get(field), 50, field)

    if "gender" in payload:
        gender = _enum_value(payload.get("gender"), GENDERS, "gender")
        if not gender:
            raise HTTPException(status_code=400, detail="gender cannot be empty")
        updates["gender"] = gender
    if "interested_in" in payload:
        updates["interested_in"] = _enum_list(payload.get("interested_in"), GENDERS, "interested_in")
    if "education" in payload:
        updates["education"] = _enum_value(payload.get("education"), EDUCATION_LEVELS, "education")
    if "relationship_goals" in payload:
        updates["relationship_goals"] = _enum_list(payload.get("relationship_goals"), RELATIONSHIP_GOALS, "relationship_goals")

    if "interests" in payload:
        raw = payload.get("interests") or []
        if not isinstance(raw, list):
            raise HTTPException(status_code=400, detail="interests must be an array")
        interests: list[str] = []
        for value in raw:
            item = _clean(value, 30, "Each interest")
            if item and item.lower() not in [i.lower() for i in interests]:
                interests.append(item)
        if len(interests) > 10:
            raise HTTPException(status_code=400, detail="You can list up to 10 interests")
        updates["interests"] = interests

    if "height_cm" in payload:
        updates["height_cm"] = _int_in_range(payload.get("height_cm"), 100, 250, "height_cm")
    if "age_min" in payload:
        updates["age_min"] = _int_in_range(payload.get("age_min"), 18, 100, "age_min")
    if "age_max" in payload:
        updates["age_max"] = _int_in_range(payload.get("age_max"), 18, 100, "age_max")
    age_min = updates.get("age_min", current.get("age_min"))
    age_max = updates.get("age_max", current.get("age_max"))
    if age_min is not None and age_max is not None and int(age_min) > int(age_max):
        raise HTTPException(status_code=400, detail="age_min must be less than or equal to age_max")
    if "max_distance" in payload:
        updates["max_distance"] = _int_in_range(payload.get("max_distance"), 1, 500, "max_distance")
    if "location_lat" in payload:
        updates["location_lat"] = _float_in_range(payload.get("location_lat"), -90, 90, "location_lat")
    if "location_lng" in payload:
        updates["location_lng"] = _float_in_range(payload.get("location_lng"), -180, 180, "location_lng")
    if "has_accommodation_available" in payload:
        updates["has_accommodation_available"] = bool(payload.get("has_accommodation_available"))

    return updates


def public_upload_url(request: Request, filename: str) -> str:
    return f"{str(request.base_url).rstrip('/')}/uploads/{filename}"


async def _read_validated(file: UploadFile, owner_user_id: str, category: str) -> tuple[str, bytes]:
    data = await file.read()
    result = validate_file(file.filename, file.content_type, data, category)
    if not result.is_valid:
        raise HTTPException(status_code=400, detail=result.error)
    return secure_filename(file.filename or "", owner_user_id), data


def _write(directory: Path, filename: str, data: bytes) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_bytes(data)
    return path


async def store_uploaded_photo(file: UploadFile, owner_user_id: str, request: Request) -> str:
    fname, data = await _read_validated(file, owner_user_id, "image")
    _write(UPLOADS_DIR, fname, data)
    return public_upload_url(request, fname)


async def store_private_file(file: UploadFile, owner_user_id: str, category: str) -> str:
    """Store a verification file outside the public mount; returns the stored file name."""
    fname, data = await _read_validated(file, owner_user_id, category)
    _write(PRIVATE_UPLOADS_DIR, fname, data)
    return fname


def private_file_path(filename: str) -> Path | None:
    name = Path(str(filename or "")).name
    if not name or name != filename:
        return None
    path = PRIVATE_UPLOADS_DIR / name
    return path if path.is_file() else None
