import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from .. import repo as auth_repo
from ..auth.deps import SESSION_COOKIE_NAME, get_current_user
from ..auth.security import (
    create_access_token,
    create_one_time_token,
    create_refresh_token,
    hash_password,
    hash_password_reset_token,
    hash_refresh_token,
    verify_password,
)
from ..config import (
    ACCESS_TOKEN_TTL_MINUTES,
    DEV_MODE,
    PASSWORD_RESET_TTL_MINUTES,
    REFRESH_TOKEN_TTL_DAYS,
    RL_AUTH_LOGIN_LIMIT,
    RL_AUTH_PASSWORD_RESET_LIMIT,
    RL_AUTH_REFRESH_LIMIT,
    RL_AUTH_REGISTER_LIMIT,
    RL_WINDOW_SECONDS,
)
from ..http_helpers import client_meta, normalize_email, validate_registration_input
from ..services.rate_limit import rate_limit_dependency

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

RL_AUTH_REGISTER = rate_limit_dependency("auth_register", RL_AUTH_REGISTER_LIMIT, RL_WINDOW_SECONDS)
RL_AUTH_LOGIN = rate_limit_dependency("auth_login", RL_AUTH_LOGIN_LIMIT, RL_WINDOW_SECONDS)
RL_AUTH_REFRESH = rate_limit_dependency("auth_refresh", RL_AUTH_REFRESH_LIMIT, RL_WINDOW_SECONDS)
RL_AUTH_PASSWORD_RESET = rate_limit_dependency("auth_password_reset", RL_AUTH_PASSWORD_RESET_LIMIT, RL_WINDOW_SECONDS)

PASSWORD_RESET_MESSAGE = "If an account exists for that email, a password reset link has been sent."


def _issue_tokens(user: dict[str, Any]) -> dict[str, Any]:
    """Issue access and refresh tokens for a user."""
    user_id = str(user["id"])
    access_token = create_access_token(user_id=user_id, email=str(user["email"]), ttl_minutes=ACCESS_TOKEN_TTL_MINUTES)
    refresh_token = create_refresh_token()
    expires_at = datetime.now(timezone.utc) + timedelta(days=REFRESH_TOKEN_TTL_DAYS)
    auth_repo.create_refresh_token_row(user_id, hash_refresh_token(refresh_token), expires_at)
    logger.info(f"[auth] issued tokens user_id={user_id}")
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_TTL_MINUTES * 60,
    }


def _is_bearer_mode(request: Request) -> bool:
    """Mobile clients ask for tokens in the body with ``X-Auth-Mode: bearer``."""
    return str(request.headers.get("X-Auth-Mode") or "").strip().lower() == "bearer"


def _set_session_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=False,  # Set to True in production with HTTPS
        samesite="lax",
        path="/",
        max_age=ACCESS_TOKEN_TTL_MINUTES * 60,
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")


def _auth_response(request: Request, response: Response, user: dict[str, Any], tokens: dict[str, Any]) -> dict[str, Any]:
    body: dict[str, Any] = {"user": {"id": str(user["id"]), "email": user["email"]}}
    if _is_bearer_mode(request):
        body.update(tokens)
    else:
        _set_session_cookie(response, tokens["access_token"])
        body["refresh_token"] = tokens["refresh_token"]
    return body


@scaffold_router.get("/health")
def auth_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "auth"}


@router.post("/register", status_code=201)
def auth_register(payload: dict[str, Any], request: Request, response: Response, _: None = RL_AUTH_REGISTER) -> dict[str, Any]:
    data = validate_registration_input(payload)
    if auth_repo.get_user_by_email(data["email"]):
        raise HTTPException(status_code=409, detail="Email already registered")

    created = auth_repo.create_user_with_profile(
        email=data["email"],
        password_hash=hash_password(data["password"]),
        first_name=data["first_name"],
        last_name=data["last_name"],
        date_of_birth=data["date_of_birth"],
        gender=data["gender"],
        interested_in=data["interested_in"],
    )
    if not created:
        raise HTTPException(status_code=409, detail="Email already registered")

    auth_repo.log_audit(action="user_registered", resource_type="user", user_id=str(created["id"]), **client_meta(request))
    return _auth_response(request, response, created, _issue_tokens(created))


@router.post("/login")
def auth_login(payload: dict[str, Any], request: Request, response: Response, _: None = RL_AUTH_LOGIN) -> dict[str, Any]:
    email = normalize_email(str(payload.get("email") or ""))
    password = str(payload.get("password") or "")
    user = auth_repo.get_user_by_email(email) if email else None
    if not user or not verify_password(password, str(user["password_hash"])):
        auth_repo.log_audit(
            action="login_failed",
            resource_type="user",
            user_id=str(user["id"]) if user else None,
            details={"email": email},
            **client_meta(request),
        )
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if user.get("disabled_at"):
        raise HTTPException(status_code=403, detail="Account disabled")

    streak = auth_repo.record_login(str(user["id"]), date.today())
    body = _auth_response(request, response, user, _issue_tokens(user))
    body["login_streak"] = streak["login_streak"]
    return body


@router.post("/refresh")
def auth_refresh(payload: dict[str, Any], request: Request, response: Response, _: None = RL_AUTH_REFRESH) -> dict[str, Any]:
    refresh_token = str(payload.get("refresh_token") or "").strip()
    if not refresh_token:
        raise HTTPException(status_code=400, detail="refresh_token is required")
    row = auth_repo.get_refresh_token_row(hash_refresh_token(refresh_token))
    if not row or row.get("revoked_at"):
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    expires_at = row.get("expires_at")
    if isinstance(expires_at, datetime) and expires_at < datetime.now(timezone.utc):
        raise HTTPException(status_code=401, detail="Refresh token expired")

    user = auth_repo.get_user_by_id(str(row["user_id"]))
    if not user:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    if user.get("disabled_at"):
        raise HTTPException(status_code=403, detail="Account disabled")

    new_refresh = create_refresh_token()
    new_expires = datetime.now(timezone.utc) + timedelta(days=REFRESH_TOKEN_TTL_DAYS)
    auth_repo.rotate_refresh_token(hash_refresh_token(refresh_token), str(user["id"]), hash_refresh_token(new_refresh), new_expires)
    access_token = create_access_token(user_id=str(user["id"]), email=str(user["email"]), ttl_minutes=ACCESS_TOKEN_TTL_MINUTES)
    tokens = {
        "access_token": access_token,
        "refresh_token": new_refresh,
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_TTL_MINUTES * 60,
    }
    return _auth_response(request, response, user, tokens)


@router.post("/logout")
def auth_logout(response: Response, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    refresh_token = str((payload or {}).get("refresh_token") or "").strip()
    if refresh_token:
        auth_repo.revoke_refresh_token_row(hash_refresh_token(refresh_token))
    _clear_session_cookie(response)
    return {"ok": True}


@router.get("/me")
def auth_me(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    profile = auth_repo.get_profile(user_id) or {}
    subscription = auth_repo.get_subscription(user_id)
    return {
        "id": user_id,
        "email": current_user["email"],
        "first_name": profile.get("first_name"),
        "is_verified": bool(profile.get("is_verified")),
        "tier": (subscription or {}).get("tier") or "free",
        "roles": auth_repo.get_user_roles(user_id),
    }


@router.post("/password")
def auth_change_password(
    payload: dict[str, Any],
    request: Request,
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    current_password = str(payload.get("current_password") or "")
    new_password = str(payload.get("new_password") or "")
    if len(new_password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    user = auth_repo.get_user_by_id(str(current_user["id"]))
    if not user or not verify_password(current_password, str(user["password_hash"])):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    auth_repo.update_user_password(str(user["id"]), hash_password(new_password))
    auth_repo.log_audit(action="password_changed", resource_type="user", user_id=str(user["id"]), **client_meta(request))
    return {"ok": True}


@router.post("/password/forgot")
def auth_forgot_password(payload: dict[str, Any], request: Request, _: None = RL_AUTH_PASSWORD_RESET) -> dict[str, Any]:
    email = normalize_email(str(payload.get("email") or ""))
    if not email:
        raise HTTPException(status_code=400, detail="email is required")
    response: dict[str, Any] = {"message": PASSWORD_RESET_MESSAGE}
    user = auth_repo.get_user_by_email(email)
    if not user or user.get("disabled_at"):
        return response

    user_id = str(user["id"])
    reset_token = create_one_time_token()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=PASSWORD_RESET_TTL_MINUTES)
    auth_repo.create_password_reset_token(user_id, hash_password_reset_token(reset_token), expires_at)
    auth_repo.log_audit(action="password_reset_requested", resource_type="user", user_id=user_id, **client_meta(request))
    logger.info(f"[auth] password reset requested user_id={user_id}")
    if DEV_MODE:
        response["dev_only"] = {"reset_token": reset_token}
    return response


@router.post("/password/reset")
def auth_reset_password(payload: dict[str, Any], request: Request, _: None = RL_AUTH_PASSWORD_RESET) -> dict[str, Any]:
    reset_token = str(payload.get("token") or "").strip()
    new_password = str(payload.get("new_password") or "")
    if not reset_token:
        raise HTTPException(status_code=400, detail="token is required")
    if len(new_password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    user_id = auth_repo.consume_password_reset_token(hash_password_reset_token(reset_token), hash_password(new_password))
    if not user_id:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    auth_repo.log_audit(action="password_reset", resource_type="user", user_id=user_id, **client_meta(request))
    return {"ok": True}
