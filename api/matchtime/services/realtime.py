"""
In-process realtime fan-out.

Websocket handlers subscribe to named channels (``conversation:{id}`` and
``user:{id}``) and drain an asyncio queue. Route handlers run in the worker
threadpool, so ``publish`` hands events to each subscriber's own loop with
``call_soon_threadsafe``.
"""

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from ..config import TYPING_TTL_SECONDS

logger = logging.getLogger(__name__)


def conversation_channel(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


@dataclass
class Subscription:
    channel: str
    user_id: str
    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class RealtimeHub:
    def __init__(self) -> None:
        self._channels: dict[str, dict[str, Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str, user_id: str) -> Subscription:
        sub = Subscription(channel=channel, user_id=str(user_id), queue=asyncio.Queue(), loop=asyncio.get_running_loop())
        with self._lock:
            self._channels.setdefault(channel, {})[sub.id] = sub
        logger.debug(f"[realtime] subscribe channel={channel} user_id={user_id}")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._channels.get(sub.channel)
            if subs is None:
                return
            subs.pop(sub.id, None)
            if not subs:
                self._channels.pop(sub.channel, None)
        logger.debug(f"[realtime] unsubscribe channel={sub.channel} user_id={sub.user_id}")

    def online_user_ids(self, channel: str) -> list[str]:
        with self._lock:
            subs = list(self._channels.get(channel, {}).values())
        return sorted({s.user_id for s in subs})

    def is_connected(self, user_id: str) -> bool:
        uid = str(user_id)
        with self._lock:
            return any(s.user_id == uid for subs in self._channels.values() for s in subs.values())

    def publish(self, channel: str, event: dict[str, Any], exclude_user_id: str | None = None) -> int:
        with self._lock:
            subs = list(self._channels.get(channel, {}).values())
        delivered = 0
        for sub in subs:
            if exclude_user_id is not None and sub.user_id == str(exclude_user_id):
                continue
            try:
                sub.loop.call_soon_threadsafe(sub.queue.put_nowait, event)
                delivered += 1
            except RuntimeError:
                # loop already closed; the socket handler will unsubscribe
                logger.debug(f"[realtime] dropped event for closed loop channel={channel}")
        return delivered

    def reset(self) -> None:
        with self._lock:
            self._channels.clear()


class TypingTracker:
    """Per-conversation typing flags that lapse after ``ttl`` seconds."""

    def __init__(self, ttl: float = TYPING_TTL_SECONDS, now: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._now = now
        self._state: dict[tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def set_typing(self, conversation_id: str, user_id: str, is_typing: bool) -> bool:
        """Record a typing flag; when clearing, returns whether a flag was held."""
        key = (str(conversation_id), str(user_id))
        with self._lock:
            if is_typing:
                self._state[key] = self._now() + self.ttl
                return True
            return self._state.pop(key, None) is not None

    def clear_if_expired(self, conversation_id: str, user_id: str) -> bool:
        key = (str(conversation_id), str(user_id))
        with self._lock:
            deadline = self._state.get(key)
            if deadline is None or deadline > self._now():
                return False
            del self._state[key]
            return True

    def typing_users(self, conversation_id: str) -> list[str]:
        # lapsed flags stay stored until clear_if_expired announces them
        now = self._now()
        cid = str(conversation_id)
        with self._lock:
            return sorted(uid for (c, uid), deadline in self._state.items() if c == cid and deadline > now)

    def is_typing(self, conversation_id: str, user_id: str) -> bool:
        return str(user_id) in self.typing_users(conversation_id)


hub = RealtimeHub()
typing_tracker = TypingTracker()


def publish_to_user(user_id: str, event_type: str, payload: dict[str, Any]) -> int:
    return hub.publish(user_channel(str(user_id)), {"type": event_type, "payload": payload})


def publish_to_conversation(conversation_id: str, event_type: str, payload: dict[str, Any], exclude_user_id: str | None = None) -> int:
    return hub.publish(
        conversation_channel(str(conversation_id)),
        {"type": event_type, "payload": payload},
        exclude_user_id=exclude_user_id,
    )
