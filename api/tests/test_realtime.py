import asyncio

from matchtime.services.rate_limit import InMemoryRateLimiter
from matchtime.services.realtime import (
    RealtimeHub,
    TypingTracker,
    conversation_channel,
    user_channel,
)


class _Clock:
    def __init__(self):
        self.t = 1000.0

    def __call__(self):
        return self.t


def test_typing_flags_expire_after_ttl():
    clock = _Clock()
    tracker = TypingTracker(ttl=3, now=clock)

    tracker.set_typing("c1", "u1", True)
    tracker.set_typing("c1", "u2", True)
    tracker.set_typing("c2", "u3", True)
    assert tracker.typing_users("c1") == ["u1", "u2"]

    tracker.set_typing("c1", "u2", False)
    assert tracker.typing_users("c1") == ["u1"]

    clock.t += 3.5
    assert tracker.typing_users("c1") == []
    assert not tracker.is_typing("c2", "u3")


def test_lapsed_typing_flag_is_cleared_once():
    clock = _Clock()
    tracker = TypingTracker(ttl=3, now=clock)

    tracker.set_typing("c1", "u1", True)
    assert not tracker.clear_if_expired("c1", "u1")

    clock.t += 3
    assert tracker.typing_users("c1") == []
    assert tracker.clear_if_expired("c1", "u1")
    assert not tracker.clear_if_expired("c1", "u1")

    tracker.set_typing("c1", "u1", True)
    assert tracker.set_typing("c1", "u1", False) is True
    assert tracker.set_typing("c1", "u1", False) is False


def test_hub_delivers_to_channel_subscribers_except_sender():
    async def scenario():
        hub = RealtimeHub()
        channel = conversation_channel("c1")
        alice = hub.subscribe(channel, "alice")
        bob = hub.subscribe(channel, "bob")
        other = hub.subscribe(user_channel("carol"), "carol")

        delivered = hub.publish(channel, {"type": "typing", "payload": {"user_id": "alice"}}, exclude_user_id="alice")
        assert delivered == 1

        event = await asyncio.wait_for(bob.queue.get(), timeout=1)
        assert event["type"] == "typing"
        assert alice.queue.empty()
        assert other.queue.empty()

        assert hub.online_user_ids(channel) == ["alice", "bob"]
        assert hub.is_connected("carol")

        hub.unsubscribe(bob)
        assert hub.online_user_ids(channel) == ["alice"]
        hub.unsubscribe(alice)
        hub.unsubscribe(other)
        assert not hub.is_connected("carol")
        assert hub.publish(channel, {"type": "noop"}) == 0

    asyncio.run(scenario())


def test_rate_limiter_window():
    limiter = InMemoryRateLimiter()
    assert limiter.check("k", limit=2, window_seconds=60, now=0).allowed
    assert limiter.check("k", limit=2, window_seconds=60, now=1).allowed
    blocked = limiter.check("k", limit=2, window_seconds=60, now=2)
    assert not blocked.allowed
    assert blocked.retry_after_seconds == 58
    assert limiter.check("k", limit=2, window_seconds=60, now=61).allowed
    assert limiter.check("other", limit=2, window_seconds=60, now=2).allowed
