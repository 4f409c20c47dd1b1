from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo as auth_repo
from ..auth.deps import get_current_user
from ..config import MESSAGE_MAX_LENGTH, RL_MESSAGE_SEND_LIMIT, RL_WINDOW_SECONDS
from ..deps import other_participant, parse_uuid, profile_card, tier_for_user
from ..services.rate_limit import enforce_user_limit
from ..services.realtime import publish_to_conversation
from ..services.sanitization import validate_message
from ..services.tiers import features_for

router = APIRouter()
scaffold_router = APIRouter()

MESSAGE_TYPES = {"text", "image", "voice", "video"}


@scaffold_router.get("/health")
def matches_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "matches"}


def _conversation_for(conversation_id: str, user_id: str) -> tuple[dict[str, Any], str]:
    conversation = auth_repo.get_conversation(parse_uuid(conversation_id, "conversation_id"))
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation, other_participant(conversation, user_id)


@router.get("/matches")
def list_matches(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    matches = []
    for r in auth_repo.list_matches(str(current_user["id"])):
        card = profile_card({**r, "id": r["other_id"]})
        card["last_active"] = r.get("last_active")
        matches.append(
            {
                "id": str(r["match_id"]),
                "matched_at": r.get("matched_at"),
                "conversation_id": r.get("conversation_id"),
                "other_profile": card,
                "last_message": {"content": r.get("last_message"), "created_at": r.get("last_message_at")},
                "unread_count": int(r.get("unread_count") or 0),
            }
        )
    return {"matches": matches}


@router.delete("/matches/{match_id}")
def unmatch(match_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    match = auth_repo.get_match(parse_uuid(match_id, "match_id"))
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    other_participant(match, str(current_user["id"]))
    auth_repo.deactivate_match(str(match["id"]))
    return {"ok": True}


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: str,
    before: datetime | None = None,
    limit: int = 50,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    user_id = str(current_user["id"])
    conversation, other_id = _conversation_for(conversation_id, user_id)
    limit = max(1, min(int(limit), 100))
    read_receipts = features_for(tier_for_user(user_id)).read_receipts
    messages = []
    for m in auth_repo.list_messages(str(conversation["id"]), before=before, limit=limit):
        if str(m["sender_id"]) == user_id and not read_receipts:
            m["is_read"] = None
            m["read_at"] = None
        messages.append(m)
    return {
        "conversation": {
            "id": str(conversation["id"]),
            "match_id": conversation["match_id"],
            "is_active": bool(conversation.get("is_active")),
            "other_user_id": other_id,
        },
        "messages": messages,
    }


@router.post("/conversations/{conversation_id}/messages", status_code=201)
def send_message(
    conversation_id: str,
    payload: dict[str, Any],
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    user_id = str(current_user["id"])
    conversation, other_id = _conversation_for(conversation_id, user_id)
    if not conversation.get("is_active"):
        raise HTTPException(status_code=403, detail="This match is no longer active")
    if auth_repo.is_blocked_pair(user_id, other_id):
        raise HTTPException(status_code=403, detail="You cannot message this user")

    message_type = str(payload.get("message_type") or "text").strip().lower()
    if message_type not in MESSAGE_TYPES:
        raise HTTPException(status_code=400, detail="message_type must be one of: image, text, video, voice")
    media_url = str(payload.get("media_url") or "").strip() or None
    raw_content = payload.get("content")
    try:
        if message_type == "text" or (raw_content is not None and str(raw_content).strip()):
            content = validate_message(raw_content, MESSAGE_MAX_LENGTH)
        else:
            content = None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if message_type != "text" and not media_url:
        raise HTTPException(status_code=400, detail="media_url is required for media messages")

    enforce_user_limit("message_send", user_id, RL_MESSAGE_SEND_LIMIT, RL_WINDOW_SECONDS, message="Too many messages")

    message = auth_repo.create_message(
        conversation_id=str(conversation["id"]),
        sender_id=user_id,
        recipient_id=other_id,
        content=content,
        message_type=message_type,
        media_url=media_url,
    )
    publish_to_conversation(str(conversation["id"]), "message.created", message)
    return {"message": message}


@router.post("/conversations/{conversation_id}/read")
def mark_conversation_read(conversation_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    conversation, sender_id = _conversation_for(conversation_id, user_id)
    message_ids = auth_repo.mark_messages_read(str(conversation["id"]), user_id)
    # only senders whose tier includes read receipts learn their messages were read
    if message_ids and features_for(tier_for_user(sender_id)).read_receipts:
        publish_to_conversation(
            str(conversation["id"]),
            "messages.read",
            {"reader_id": user_id, "message_ids": message_ids},
            exclude_user_id=user_id,
        )
    return {"marked_read": len(message_ids)}
