import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import matchtime.main as m
from matchtime.auth import security
from matchtime.routes import auth as auth_routes
from matchtime.services import rate_limit

USER_ID = "11111111-1111-1111-1111-111111111111"


def _client(monkeypatch):
    class _DummyResult:
        def mappings(self):
            return self

        def first(self):
            return None

        def all(self):
            return []

    class _DummySession:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def execute(self, *args, **kwargs):
            return _DummyResult()

        def commit(self):
            return None

    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "run_migrations", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "SessionLocal", lambda: _DummySession())
    monkeypatch.setattr(security, "JWT_SECRET", "test-secret-key-for-testing-only")
    monkeypatch.setattr(auth_routes, "hash_password", lambda password: f"hashed:{password}")
    monkeypatch.setattr(auth_routes, "verify_password", lambda password, password_hash: password_hash == f"hashed:{password}")
    monkeypatch.setattr(m.auth_repo, "log_audit", lambda **kwargs: None)
    monkeypatch.setattr(m.auth_repo, "create_refresh_token_row", lambda *args, **kwargs: None)
    rate_limit.limiter.reset()
    return TestClient(m.app)


def _registration(**overrides):
    body = {
        "email": "  Besa@Example.com ",
        "password": "correct-horse",
        "first_name": "Besa",
        "date_of_birth": "1998-04-02",
        "gender": "female",
        "interested_in": ["male"],
    }
    body.update(overrides)
    return body


def test_register_returns_tokens_in_bearer_mode(monkeypatch):
    client = _client(monkeypatch)
    created = {}

    def fake_create(**kwargs):
        created.update(kwargs)
        return {"id": USER_ID, "email": kwargs["email"]}

    monkeypatch.setattr(m.auth_repo, "get_user_by_email", lambda email: None)
    monkeypatch.setattr(m.auth_repo, "create_user_with_profile", fake_create)

    res = client.post("/auth/register", json=_registration(), headers={"X-Auth-Mode": "bearer"})
    assert res.status_code == 201
    body = res.json()
    assert body["user"] == {"id": USER_ID, "email": "besa@example.com"}
    assert body["token_type"] == "bearer"
    assert security.decode_access_token(body["access_token"])["sub"] == USER_ID
    assert created["password_hash"] == "hashed:correct-horse"
    assert created["interested_in"] == ["male"]


def test_register_rejects_underage_and_duplicates(monkeypatch):
    client = _client(monkeypatch)
    monkeypatch.setattr(m.auth_repo, "get_user_by_email", lambda email: None)

    res = client.post("/auth/register", json=_registration(date_of_birth="2015-01-01"))
    assert res.status_code == 400
    assert "18 years" in res.json()["detail"]

    res = client.post("/auth/register", json=_registration(password="short"))
    assert res.status_code == 400

    res = client.post("/auth/register", json=_registration(gender="robot"))
    assert res.status_code == 400

    monkeypatch.setattr(m.auth_repo, "get_user_by_email", lambda email: {"id": USER_ID, "email": email})
    res = client.post("/auth/register", json=_registration())
    assert res.status_code == 409


def test_login_sets_session_cookie(monkeypatch):
    client = _client(monkeypatch)
    user = {"id": USER_ID, "email": "besa@example.com", "password_hash": "hashed:correct-horse", "disabled_at": None}
    monkeypatch.setattr(m.auth_repo, "get_user_by_email", lambda email: user if email == "besa@example.com" else None)
    monkeypatch.setattr(m.auth_repo, "record_login", lambda user_id, today: {"login_streak": 3})

    res = client.post("/auth/login", json={"email": "BESA@example.com", "password": "correct-horse"})
    assert res.status_code == 200
    body = res.json()
    assert body["login_streak"] == 3
    assert "access_token" not in body
    assert body["refresh_token"]
    assert "matchtime_session" in res.cookies


def test_login_failure_is_audited(monkeypatch):
    client = _client(monkeypatch)
    audits = []
    monkeypatch.setattr(m.auth_repo, "log_audit", lambda **kwargs: audits.append(kwargs))
    monkeypatch.setattr(
        m.auth_repo,
        "get_user_by_email",
        lambda email: {"id": USER_ID, "email": email, "password_hash": "hashed:correct-horse"},
    )

    res = client.post("/auth/login", json={"email": "besa@example.com", "password": "wrong-password"})
    assert res.status_code == 401
    assert audits[0]["action"] == "login_failed"
    assert audits[0]["details"] == {"email": "besa@example.com"}


def test_disabled_account_cannot_log_in(monkeypatch):
    client = _client(monkeypatch)
    monkeypatch.setattr(
        m.auth_repo,
        "get_user_by_email",
        lambda email: {"id": USER_ID, "email": email, "password_hash": "hashed:pw123456", "disabled_at": "2026-01-01"},
    )
    res = client.post("/auth/login", json={"email": "besa@example.com", "password": "pw123456"})
    assert res.status_code == 403


def test_refresh_rejects_revoked_token(monkeypatch):
    client = _client(monkeypatch)
    monkeypatch.setattr(m.auth_repo, "get_refresh_token_row", lambda token_hash: {"user_id": USER_ID, "revoked_at": "2026-01-01"})
    res = client.post("/auth/refresh", json={"refresh_token": "abc"})
    assert res.status_code == 401
    assert client.post("/auth/refresh", json={}).status_code == 400


def test_refresh_rotates_token(monkeypatch):
    client = _client(monkeypatch)
    rotated = []
    monkeypatch.setattr(m.auth_repo, "get_refresh_token_row", lambda token_hash: {"user_id": USER_ID, "revoked_at": None, "expires_at": None})
    monkeypatch.setattr(m.auth_repo, "get_user_by_id", lambda user_id: {"id": USER_ID, "email": "besa@example.com"})
    monkeypatch.setattr(m.auth_repo, "rotate_refresh_token", lambda *args: rotated.append(args))

    res = client.post("/auth/refresh", json={"refresh_token": "old-token"}, headers={"X-Auth-Mode": "bearer"})
    assert res.status_code == 200
    body = res.json()
    assert body["refresh_token"] != "old-token"
    assert rotated[0][0] == security.hash_refresh_token("old-token")
    assert rotated[0][2] == security.hash_refresh_token(body["refresh_token"])


def test_me_requires_authentication(monkeypatch):
    client = _client(monkeypatch)
    m.app.dependency_overrides = {}
    res = client.get("/auth/me")
    assert res.status_code == 401


def test_bearer_token_authenticates_me(monkeypatch):
    client = _client(monkeypatch)
    m.app.dependency_overrides = {}
    monkeypatch.setattr(m.auth_repo, "get_user_by_id", lambda user_id: {"id": user_id, "email": "besa@example.com", "disabled_at": None})
    monkeypatch.setattr(m.auth_repo, "get_profile", lambda user_id: {"first_name": "Besa", "is_verified": True})
    monkeypatch.setattr(m.auth_repo, "get_subscription", lambda user_id: {"tier": "premium"})
    monkeypatch.setattr(m.auth_repo, "get_user_roles", lambda user_id: [])

    token = security.create_access_token(USER_ID, "besa@example.com")
    res = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json() == {
        "id": USER_ID,
        "email": "besa@example.com",
        "first_name": "Besa",
        "is_verified": True,
        "tier": "premium",
        "roles": [],
    }

    res = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_decode_rejects_tokens_without_access_type(monkeypatch):
    monkeypatch.setattr(security, "JWT_SECRET", "test-secret-key-for-testing-only")
    forged = security.jwt.encode({"sub": USER_ID, "exp": 4102444800}, "test-secret-key-for-testing-only", algorithm="HS256")
    with pytest.raises(Exception) as exc:
        security.decode_access_token(forged)
    assert exc.value.status_code == 401

    token = security.create_access_token(USER_ID, "besa@example.com")
    assert security.decode_access_token(token)["typ"] == "access"


def test_forgot_password_stores_hashed_token_and_hides_unknown_emails(monkeypatch):
    client = _client(monkeypatch)
    monkeypatch.setattr(auth_routes, "DEV_MODE", True)
    stored = []
    monkeypatch.setattr(m.auth_repo, "create_password_reset_token", lambda user_id, token_hash, expires_at: stored.append((user_id, token_hash)))
    monkeypatch.setattr(
        m.auth_repo,
        "get_user_by_email",
        lambda email: {"id": USER_ID, "email": email, "disabled_at": None} if email == "besa@example.com" else None,
    )

    res = client.post("/auth/password/forgot", json={"email": " Besa@Example.com "})
    assert res.status_code == 200
    reset_token = res.json()["dev_only"]["reset_token"]
    assert stored == [(USER_ID, security.hash_password_reset_token(reset_token))]
    assert stored[0][1] != reset_token

    res = client.post("/auth/password/forgot", json={"email": "nobody@example.com"})
    assert res.json() == {"message": auth_routes.PASSWORD_RESET_MESSAGE}
    assert len(stored) == 1

    assert client.post("/auth/password/forgot", json={}).status_code == 400


def test_forgot_password_omits_token_outside_dev_mode(monkeypatch):
    client = _client(monkeypatch)
    monkeypatch.setattr(auth_routes, "DEV_MODE", False)
    monkeypatch.setattr(m.auth_repo, "create_password_reset_token", lambda *args: None)
    monkeypatch.setattr(m.auth_repo, "get_user_by_email", lambda email: {"id": USER_ID, "email": email})

    res = client.post("/auth/password/forgot", json={"email": "besa@example.com"})
    assert res.json() == {"message": auth_routes.PASSWORD_RESET_MESSAGE}


def test_reset_password_consumes_token_once(monkeypatch):
    client = _client(monkeypatch)
    live = {security.hash_password_reset_token("good-token"): USER_ID}
    applied = []

    def fake_consume(token_hash, password_hash):
        user_id = live.pop(token_hash, None)
        if user_id:
            applied.append((user_id, password_hash))
        return user_id

    monkeypatch.setattr(m.auth_repo, "consume_password_reset_token", fake_consume)

    body = {"token": "good-token", "new_password": "new-horse-battery"}
    assert client.post("/auth/password/reset", json=body).json() == {"ok": True}
    assert applied == [(USER_ID, "hashed:new-horse-battery")]

    res = client.post("/auth/password/reset", json=body)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid or expired reset token"

    assert client.post("/auth/password/reset", json={"token": "good-token", "new_password": "short"}).status_code == 400
    assert client.post("/auth/password/reset", json={"new_password": "long-enough"}).status_code == 400
