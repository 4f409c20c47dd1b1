import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from ..config import DEFAULT_MAX_DISTANCE_KM

EARTH_RADIUS_KM = 6371.0

INTEREST_WEIGHT = 40.0
GOAL_WEIGHT = 30.0
DISTANCE_WEIGHT = 20.0
ACTIVITY_WEIGHT = 10.0
RECENT_ACTIVITY_DAYS = 7

ADVANCED_FILTER_KEYS = (
    "height_min",
    "height_max",
    "education",
    "interests",
    "relationship_goals",
    "body_types",
    "ethnicities",
    "religion",
    "smoking",
    "drinking",
)


@dataclass
class DiscoveryFilters:
    age_min: int = 18
    age_max: int = 99
    max_distance: int = DEFAULT_MAX_DISTANCE_KM
    height_min: int | None = None
    height_max: int | None = None
    education: list[str] = field(default_factory=list)
    interests: list[str] = field(default_factory=list)
    relationship_goals: list[str] = field(default_factory=list)
    body_types: list[str] = field(default_factory=list)
    ethnicities: list[str] = field(default_factory=list)
    religion: str | None = None
    smoking: str | None = None
    drinking: str | None = None

    def uses_advanced(self) -> bool:
        for key in ADVANCED_FILTER_KEYS:
            value = getattr(self, key)
            if value not in (None, [], ""):
                return True
        return False


def _csv(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    out: list[str] = []
    for item in items:
        v = str(item or "").strip().lower()
        if v and v not in out:
            out.append(v)
    return out


def _opt_int(value: Any, name: str) -> int | None:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer")


def build_filters(params: dict[str, Any], profile: dict[str, Any] | None = None) -> DiscoveryFilters:
    profile = profile or {}
    age_min = _opt_int(params.get("age_min"), "age_min")
    age_max = _opt_int(params.get("age_max"), "age_max")
    max_distance = _opt_int(params.get("max_distance"), "max_distance")

    filters = DiscoveryFilters(
        age_min=age_min if age_min is not None else int(profile.get("age_min") or 18),
        age_max=age_max if age_max is not None else int(profile.get("age_max") or 99),
        max_distance=max_distance if max_distance is not None else int(profile.get("max_distance") or DEFAULT_MAX_DISTANCE_KM),
        height_min=_opt_int(params.get("height_min"), "height_min"),
        height_max=_opt_int(params.get("height_max"), "height_max"),
        education=_csv(params.get("education")),
        interests=_csv(params.get("interests")),
        relationship_goals=_csv(params.get("relationship_goals")),
        body_types=_csv(params.get("body_types")),
        ethnicities=_csv(params.get("ethnicities")),
        religion=str(params.get("religion") or "").strip().lower() or None,
        smoking=str(params.get("smoking") or "").strip().lower() or None,
        drinking=str(params.get("drinking") or "").strip().lower() or None,
    )

    filters.age_min = max(18, filters.age_min)
    filters.age_max = min(100, filters.age_max)
    if filters.age_min > filters.age_max:
        raise ValueError("age_min must be less than or equal to age_max")
    if not 1 <= filters.max_distance <= 500:
        raise ValueError("max_distance must be between 1 and 500 km")
    if filters.height_min is not None and filters.height_max is not None and filters.height_min > filters.height_max:
        raise ValueError("height_min must be less than or equal to height_max")
    return filters


def age_on(date_of_birth: date | str | None, today: date) -> int | None:
    if date_of_birth is None:
        return None
    if isinstance(date_of_birth, str):
        try:
            date_of_birth = date.fromisoformat(date_of_birth[:10])
        except ValueError:
            return None
    if isinstance(date_of_birth, datetime):
        date_of_birth = date_of_birth.date()
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def birth_date_bounds(age_min: int, age_max: int, today: date) -> tuple[date, date]:
    """Return (earliest, latest) birth dates for people aged age_min..age_max today."""
    latest = _shift_years(today, -age_min)
    earliest = _shift_years(today, -(age_max + 1)) + timedelta(days=1)
    return earliest, latest


def _shift_years(d: date, years: int) -> date:
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        return d.replace(year=d.year + years, day=28)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lng2 - lng1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


@dataclass(frozen=True)
class BoundingBox:
    lat_min: float
    lat_max: float
    lng_min: float | None = None
    lng_max: float | None = None


def bounding_box(lat: float, lng: float, radius_km: float) -> BoundingBox:
    """Lat/lng box enclosing every point within ``radius_km`` of (lat, lng).

    Longitude bounds are None when the box reaches a pole or crosses the
    antimeridian; callers then filter on latitude only.
    """
    angular = radius_km / EARTH_RADIUS_KM
    dlat = math.degrees(angular)
    lat_min = max(-90.0, lat - dlat)
    lat_max = min(90.0, lat + dlat)
    if lat_min <= -90.0 or lat_max >= 90.0:
        return BoundingBox(lat_min, lat_max)
    ratio = math.sin(angular) / math.cos(math.radians(lat))
    if ratio >= 1.0:
        return BoundingBox(lat_min, lat_max)
    dlng = math.degrees(math.asin(ratio))
    if lng - dlng < -180.0 or lng + dlng > 180.0:
        return BoundingBox(lat_min, lat_max)
    return BoundingBox(lat_min, lat_max, lng - dlng, lng + dlng)


def distance_between(a: dict[str, Any], b: dict[str, Any]) -> float | None:
    coords = (a.get("location_lat"), a.get("location_lng"), b.get("location_lat"), b.get("location_lng"))
    if any(c is None for c in coords):
        return None
    return haversine_km(float(coords[0]), float(coords[1]), float(coords[2]), float(coords[3]))


def _as_set(values: Any) -> set[str]:
    if not values:
        return set()
    return {str(v).strip().lower() for v in values if str(v or "").strip()}


def _jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def compatibility_score(
    viewer: dict[str, Any],
    candidate: dict[str, Any],
    distance_km: float | None,
    max_distance: int,
    now: datetime,
) -> int:
    interests = _jaccard(_as_set(viewer.get("interests")), _as_set(candidate.get("interests")))

    viewer_goals = _as_set(viewer.get("relationship_goals"))
    candidate_goals = _as_set(candidate.get("relationship_goals"))
    goals = 1.0 if viewer_goals & candidate_goals else 0.0

    if distance_km is None:
        closeness = 0.5
    else:
        closeness = max(0.0, 1.0 - distance_km / max(1, max_distance))

    last_active = candidate.get("last_active")
    recent = 0.0
    if isinstance(last_active, datetime):
        if last_active.tzinfo is None:
            last_active = last_active.replace(tzinfo=timezone.utc)
        recent = 1.0 if now - last_active <= timedelta(days=RECENT_ACTIVITY_DAYS) else 0.0

    score = INTEREST_WEIGHT * interests + GOAL_WEIGHT * goals + DISTANCE_WEIGHT * closeness + ACTIVITY_WEIGHT * recent
    return int(round(min(100.0, max(0.0, score))))


def passes_advanced_filters(candidate: dict[str, Any], filters: DiscoveryFilters) -> bool:
    height = candidate.get("height_cm")
    if filters.height_min is not None and (height is None or int(height) < filters.height_min):
        return False
    if filters.height_max is not None and (height is None or int(height) > filters.height_max):
        return False
    if filters.education and str(candidate.get("education") or "").lower() not in filters.education:
        return False
    if filters.interests and not (_as_set(candidate.get("interests")) & set(filters.interests)):
        return False
    if filters.relationship_goals and not (_as_set(candidate.get("relationship_goals")) & set(filters.relationship_goals)):
        return False
    if filters.body_types and str(candidate.get("body_type") or "").lower() not in filters.body_types:
        return False
    if filters.ethnicities and str(candidate.get("ethnicity") or "").lower() not in filters.ethnicities:
        return False
    for key in ("religion", "smoking", "drinking"):
        wanted = getattr(filters, key)
        if wanted and str(candidate.get(key) or "").lower() != wanted:
            return False
    return True


def general_location(profile: dict[str, Any]) -> str | None:
    parts = [str(p).strip() for p in (profile.get("location_city"), profile.get("location_state")) if p and str(p).strip()]
    return ", ".join(parts) or None


def discovery_card(candidate: dict[str, Any], score: int, distance_km: float | None, today: date) -> dict[str, Any]:
    return {
        "id": str(candidate["id"]),
        "first_name": candidate.get("first_name"),
        "age": age_on(candidate.get("date_of_birth"), today),
        "bio": candidate.get("bio"),
        "occupation": candidate.get("occupation"),
        "education": candidate.get("education"),
        "height_cm": candidate.get("height_cm"),
        "interests": list(candidate.get("interests") or []),
        "relationship_goals": list(candidate.get("relationship_goals") or []),
        "general_location": general_location(candidate),
        "distance_km": int(round(distance_km)) if distance_km is not None else None,
        "is_verified": bool(candidate.get("is_verified")),
        "professional_badge": candidate.get("professional_badge"),
        "compatibility_score": score,
        "boost_active": bool(candidate.get("boost_active")),
        "primary_photo_url": candidate.get("primary_photo_url"),
        "last_active": candidate.get("last_active"),
    }


def rank_candidates(
    viewer: dict[str, Any],
    candidates: list[dict[str, Any]],
    filters: DiscoveryFilters,
    now: datetime,
    limit: int,
) -> list[dict[str, Any]]:
    today = now.date()
    ranked: list[tuple[tuple, dict[str, Any]]] = []
    for candidate in candidates:
        if str(candidate.get("id")) == str(viewer.get("id")):
            continue
        age = age_on(candidate.get("date_of_birth"), today)
        if age is None or age < filters.age_min or age > filters.age_max:
            continue
        distance_km = distance_between(viewer, candidate)
        if distance_km is not None and distance_km > filters.max_distance:
            continue
        if not passes_advanced_filters(candidate, filters):
            continue
        score = compatibility_score(viewer, candidate, distance_km, filters.max_distance, now)
        card = discovery_card(candidate, score, distance_km, today)
        sort_key = (
            0 if card["boost_active"] else 1,
            -score,
            distance_km if distance_km is not None else float("inf"),
            card["id"],
        )
        ranked.append((sort_key, card))
    ranked.sort(key=lambda item: item[0])
    return [card for _, card in ranked[: max(0, limit)]]
