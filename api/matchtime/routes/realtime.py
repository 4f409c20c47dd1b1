import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder

from .. import repo as auth_repo
from ..auth.deps import SESSION_COOKIE_NAME, resolve_socket_user
from ..deps import other_participant, parse_uuid
from ..services.realtime import (
    Subscription,
    conversation_channel,
    hub,
    publish_to_conversation,
    typing_tracker,
    user_channel,
)

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

POLICY_VIOLATION = 1008
TYPING_EXPIRY_GRACE_SECONDS = 0.1


@scaffold_router.get("/health")
def realtime_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "realtime"}


async def _authenticate(websocket: WebSocket, token: str | None) -> dict[str, Any] | None:
    user = await run_in_threadpool(resolve_socket_user, token, websocket.cookies.get(SESSION_COOKIE_NAME))
    if not user:
        await websocket.close(code=POLICY_VIOLATION)
    return user


async def _pump(websocket: WebSocket, sub: Subscription) -> None:
    while True:
        event = await sub.queue.get()
        await websocket.send_json(jsonable_encoder(event))


def _publish_presence(conversation_id: str) -> None:
    online = hub.online_user_ids(conversation_channel(conversation_id))
    publish_to_conversation(conversation_id, "presence", {"conversation_id": conversation_id, "online_user_ids": online})


def _publish_typing(conversation_id: str, user_id: str, is_typing: bool) -> None:
    publish_to_conversation(
        conversation_id,
        "typing",
        {
            "user_id": user_id,
            "is_typing": is_typing,
            "typing_user_ids": typing_tracker.typing_users(conversation_id),
        },
        exclude_user_id=user_id,
    )


def _expire_typing(conversation_id: str, user_id: str) -> None:
    if typing_tracker.clear_if_expired(conversation_id, user_id):
        _publish_typing(conversation_id, user_id, False)


async def _conversation_frames(websocket: WebSocket, conversation_id: str, user_id: str) -> None:
    while True:
        try:
            frame = await websocket.receive_json()
        except ValueError:
            await websocket.send_json({"type": "error", "payload": {"detail": "Frames must be JSON objects"}})
            continue
        kind = str((frame or {}).get("type") or "") if isinstance(frame, dict) else ""
        if kind == "typing":
            is_typing = bool(frame.get("is_typing"))
            typing_tracker.set_typing(conversation_id, user_id, is_typing)
            _publish_typing(conversation_id, user_id, is_typing)
            if is_typing:
                asyncio.get_running_loop().call_later(
                    typing_tracker.ttl + TYPING_EXPIRY_GRACE_SECONDS, _expire_typing, conversation_id, user_id
                )
        elif kind == "ping":
            await run_in_threadpool(auth_repo.touch_last_active, user_id)
            await websocket.send_json({"type": "pong", "payload": {}})
        else:
            await websocket.send_json({"type": "error", "payload": {"detail": f"Unknown frame type: {kind or '<none>'}"}})


async def _personal_frames(websocket: WebSocket, user_id: str) -> None:
    while True:
        frame = await websocket.receive_json()
        if isinstance(frame, dict) and frame.get("type") == "ping":
            await run_in_threadpool(auth_repo.touch_last_active, user_id)
            await websocket.send_json({"type": "pong", "payload": {}})


async def _run_until_first_exits(*coros) -> None:
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc
    finally:
        for task in tasks:
            task.cancel()


@router.websocket("/realtime/conversations/{conversation_id}")
async def conversation_socket(websocket: WebSocket, conversation_id: str, token: str | None = None) -> None:
    user = await _authenticate(websocket, token)
    if not user:
        return
    user_id = str(user["id"])
    try:
        cid = parse_uuid(conversation_id, "conversation_id")
        conversation = await run_in_threadpool(auth_repo.get_conversation, cid)
        if not conversation:
            raise HTTPException(status_code=404, detail="Conversation not found")
        other_participant(conversation, user_id)
    except HTTPException as exc:
        logger.info(f"[realtime] rejected conversation socket user_id={user_id} reason={exc.detail}")
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()
    sub = hub.subscribe(conversation_channel(cid), user_id)
    _publish_presence(cid)
    try:
        await _run_until_first_exits(_pump(websocket, sub), _conversation_frames(websocket, cid, user_id))
    finally:
        hub.unsubscribe(sub)
        if typing_tracker.set_typing(cid, user_id, False):
            _publish_typing(cid, user_id, False)
        _publish_presence(cid)
        logger.debug(f"[realtime] conversation socket closed user_id={user_id} conversation_id={cid}")


@router.websocket("/realtime/user")
async def personal_socket(websocket: WebSocket, token: str | None = None) -> None:
    user = await _authenticate(websocket, token)
    if not user:
        return
    user_id = str(user["id"])
    await websocket.accept()
    sub = hub.subscribe(user_channel(user_id), user_id)
    try:
        await _run_until_first_exits(_pump(websocket, sub), _personal_frames(websocket, user_id))
    finally:
        hub.unsubscribe(sub)
        logger.debug(f"[realtime] personal socket closed user_id={user_id}")
