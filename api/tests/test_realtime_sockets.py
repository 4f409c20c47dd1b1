import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import matchtime.main as m
from matchtime.auth import security
from matchtime.routes import realtime as realtime_routes
from matchtime.services.realtime import TypingTracker, hub, publish_to_user

ME = "11111111-1111-1111-1111-111111111111"
THEM = "22222222-2222-2222-2222-222222222222"
STRANGER = "99999999-9999-9999-9999-999999999999"
CONVERSATION_ID = "44444444-4444-4444-4444-444444444444"
SECRET = "test-secret-key-for-testing-only"


def _client(monkeypatch, typing_ttl=3.0):
    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "run_migrations", lambda *args, **kwargs: None)
    monkeypatch.setattr(security, "JWT_SECRET", SECRET)
    monkeypatch.setattr(m.auth_repo, "get_user_by_id", lambda user_id: {"id": user_id, "email": f"{user_id[:4]}@example.com"})
    monkeypatch.setattr(
        m.auth_repo,
        "get_conversation",
        lambda conversation_id: {"id": conversation_id, "match_id": "m1", "user1_id": ME, "user2_id": THEM, "is_active": True},
    )
    monkeypatch.setattr(m.auth_repo, "touch_last_active", lambda user_id: None)
    monkeypatch.setattr(realtime_routes, "typing_tracker", TypingTracker(ttl=typing_ttl))
    hub.reset()
    return TestClient(m.app)


def _token(user_id):
    return security.create_access_token(user_id, f"{user_id[:4]}@example.com")


def _conversation_url(user_id):
    return f"/realtime/conversations/{CONVERSATION_ID}?token={_token(user_id)}"


def test_socket_rejects_bad_token_and_outsiders(monkeypatch):
    client = _client(monkeypatch)

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/realtime/conversations/{CONVERSATION_ID}?token=not-a-jwt"):
            pass
    assert exc.value.code == 1008

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(_conversation_url(STRANGER)):
            pass
    assert exc.value.code == 1008

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/realtime/user"):
            pass
    assert exc.value.code == 1008


def test_presence_typing_and_pong(monkeypatch):
    client = _client(monkeypatch)

    with client.websocket_connect(_conversation_url(ME)) as mine:
        assert mine.receive_json() == {
            "type": "presence",
            "payload": {"conversation_id": CONVERSATION_ID, "online_user_ids": [ME]},
        }
        mine.send_json({"type": "ping"})
        assert mine.receive_json() == {"type": "pong", "payload": {}}

        with client.websocket_connect(_conversation_url(THEM)) as theirs:
            assert theirs.receive_json()["payload"]["online_user_ids"] == [ME, THEM]
            assert mine.receive_json()["payload"]["online_user_ids"] == [ME, THEM]

            theirs.send_json({"type": "typing", "is_typing": True})
            assert mine.receive_json() == {
                "type": "typing",
                "payload": {"user_id": THEM, "is_typing": True, "typing_user_ids": [THEM]},
            }

            theirs.send_json({"type": "shout"})
            assert theirs.receive_json()["type"] == "error"

        # closing mid-typing clears the indicator before presence updates
        assert mine.receive_json() == {
            "type": "typing",
            "payload": {"user_id": THEM, "is_typing": False, "typing_user_ids": []},
        }
        assert mine.receive_json()["payload"]["online_user_ids"] == [ME]


def test_typing_lapses_without_a_stop_frame(monkeypatch):
    client = _client(monkeypatch, typing_ttl=0.05)

    with client.websocket_connect(_conversation_url(ME)) as mine:
        mine.receive_json()
        with client.websocket_connect(_conversation_url(THEM)) as theirs:
            theirs.receive_json()
            mine.receive_json()

            theirs.send_json({"type": "typing", "is_typing": True})
            assert mine.receive_json()["payload"]["is_typing"] is True
            assert mine.receive_json() == {
                "type": "typing",
                "payload": {"user_id": THEM, "is_typing": False, "typing_user_ids": []},
            }

        # the lapse was already announced, so only presence follows the close
        assert mine.receive_json()["type"] == "presence"


def test_personal_socket_receives_user_events(monkeypatch):
    client = _client(monkeypatch)

    with client.websocket_connect(f"/realtime/user?token={_token(ME)}") as mine:
        mine.send_json({"type": "ping"})
        assert mine.receive_json() == {"type": "pong", "payload": {}}

        assert publish_to_user(ME, "notification", {"title": "It's a Match!"}) == 1
        assert mine.receive_json() == {"type": "notification", "payload": {"title": "It's a Match!"}}
