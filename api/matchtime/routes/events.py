from decimal import Decimal, InvalidOperation
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo as auth_repo
from ..auth.admin_deps import require_role
from ..auth.deps import get_current_user
from ..deps import parse_uuid
from ..services.sanitization import optional_clean

router = APIRouter()
scaffold_router = APIRouter()

ACCOMMODATION_TYPES = {"hotel", "apartment", "resort", "villa", "cabin"}


@scaffold_router.get("/health")
def events_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "events"}


@router.get("/events")
def list_events(city: str | None = None, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    _ = current_user
    return {"events": auth_repo.list_events((city or "").strip() or None)}


@router.get("/events/{event_id}")
def get_event(event_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    _ = current_user
    event = auth_repo.get_event(parse_uuid(event_id, "event_id"))
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return {"event": event}


@router.get("/accommodations")
def list_accommodations(
    city: str | None = None,
    type: str | None = None,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    _ = current_user
    accommodation_type = (type or "").strip().lower() or None
    if accommodation_type and accommodation_type not in ACCOMMODATION_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of: {', '.join(sorted(ACCOMMODATION_TYPES))}")
    return {"accommodations": auth_repo.list_accommodations((city or "").strip() or None, accommodation_type)}


def _clean(payload: dict[str, Any], field: str, limit: int) -> str | None:
    try:
        return optional_clean(payload.get(field), limit, field)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/accommodations", status_code=201)
def create_accommodation(
    payload: dict[str, Any],
    current_user: dict[str, Any] = Depends(require_role("lodge_manager", "admin")),
) -> dict[str, Any]:
    name = _clean(payload, "name", 120)
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    accommodation_type = str(payload.get("type") or "").strip().lower()
    if accommodation_type not in ACCOMMODATION_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of: {', '.join(sorted(ACCOMMODATION_TYPES))}")
    try:
        price = Decimal(str(payload.get("price_per_night")))
    except (InvalidOperation, ValueError):
        raise HTTPException(status_code=400, detail="price_per_night must be a number")
    if not price.is_finite() or price < 0:
        raise HTTPException(status_code=400, detail="price_per_night must be zero or more")

    accommodation = auth_repo.create_accommodation(
        str(current_user["id"]),
        {
            "name": name,
            "type": accommodation_type,
            "description": _clean(payload, "description", 1000),
            "price_per_night": price,
            "location_city": _clean(payload, "location_city", 80),
            "location_country": _clean(payload, "location_country", 80),
            "image_url": _clean(payload, "image_url", 500),
        },
    )
    return {"accommodation": accommodation}
