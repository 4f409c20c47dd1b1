import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request


@dataclass
class RateDecision:
    allowed: bool
    retry_after_seconds: int
    remaining: int = 0


class InMemoryRateLimiter:
    def __init__(self) -> None:
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def check(self, key: str, limit: int, window_seconds: int, now: float | None = None) -> RateDecision:
        now = time.time() if now is None else now
        cutoff = now - window_seconds
        with self._lock:
            dq = self._events[key]
            while dq and dq[0] <= cutoff:
                dq.popleft()
            if len(dq) >= limit:
                retry_after = max(1, int(dq[0] + window_seconds - now))
                return RateDecision(allowed=False, retry_after_seconds=retry_after, remaining=0)
            dq.append(now)
            return RateDecision(allowed=True, retry_after_seconds=0, remaining=max(0, limit - len(dq)))

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


limiter = InMemoryRateLimiter()


def _client_identifier(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for", "").strip()
    if xff:
        return xff.split(",")[0].strip()
    auth = request.headers.get("authorization", "").strip()
    if auth.lower().startswith("bearer "):
        return f"token:{auth[7:23]}"
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _too_many(decision: RateDecision, message: str = "Too many requests") -> HTTPException:
    return HTTPException(
        status_code=429,
        detail=f"{message}. Retry in {decision.retry_after_seconds}s",
        headers={"Retry-After": str(decision.retry_after_seconds)},
    )


def rate_limit_dependency(route_key: str, limit: int, window_seconds: int):
    def _dep(request: Request) -> None:
        ident = _client_identifier(request)
        key = f"{route_key}:{ident}"
        decision = limiter.check(key, limit=limit, window_seconds=window_seconds)
        if not decision.allowed:
            raise _too_many(decision)

    return Depends(_dep)


def enforce_user_limit(action: str, user_id: str, limit: int, window_seconds: int, message: str = "Too many requests") -> RateDecision:
    decision = limiter.check(f"{action}:user:{user_id}", limit=limit, window_seconds=window_seconds)
    if not decision.allowed:
        raise _too_many(decision, message)
    return decision
