import json
import os
from pathlib import Path
from typing import Any

_api_root = Path(__file__).resolve().parents[1]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"
ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080").split(",")
    if o.strip()
]
SUPER_ADMIN_EMAILS = {
    e.strip().lower() for e in os.getenv("SUPER_ADMIN_EMAILS", "").split(",") if e.strip()
}

JWT_SECRET = os.getenv("JWT_SECRET", "")
ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "15"))
REFRESH_TOKEN_TTL_DAYS = int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "30"))
PASSWORD_RESET_TTL_MINUTES = int(os.getenv("PASSWORD_RESET_TTL_MINUTES", "60"))
MIN_SIGNUP_AGE = int(os.getenv("MIN_SIGNUP_AGE", "18"))

FREE_DAILY_SWIPES = int(os.getenv("FREE_DAILY_SWIPES", "50"))
BASIC_DAILY_SUPER_LIKES = int(os.getenv("BASIC_DAILY_SUPER_LIKES", "5"))
BOOST_DURATION_MINUTES = int(os.getenv("BOOST_DURATION_MINUTES", "30"))
PREMIUM_MONTHLY_BOOSTS = int(os.getenv("PREMIUM_MONTHLY_BOOSTS", "5"))
ELITE_MONTHLY_BOOSTS = int(os.getenv("ELITE_MONTHLY_BOOSTS", "10"))

DISCOVERY_RATE_LIMIT = int(os.getenv("DISCOVERY_RATE_LIMIT", "30"))
DISCOVERY_RATE_WINDOW_SECONDS = int(os.getenv("DISCOVERY_RATE_WINDOW_SECONDS", "300"))
DISCOVERY_PAGE_SIZE = int(os.getenv("DISCOVERY_PAGE_SIZE", "20"))
DISCOVERY_CANDIDATE_POOL = int(os.getenv("DISCOVERY_CANDIDATE_POOL", "200"))
DEFAULT_MAX_DISTANCE_KM = int(os.getenv("DEFAULT_MAX_DISTANCE_KM", "50"))

MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", "2000"))
TYPING_TTL_SECONDS = float(os.getenv("TYPING_TTL_SECONDS", "3"))
ONLINE_WINDOW_SECONDS = int(os.getenv("ONLINE_WINDOW_SECONDS", "300"))
MAX_PROFILE_PHOTOS = int(os.getenv("MAX_PROFILE_PHOTOS", "6"))

RL_AUTH_REGISTER_LIMIT = int(os.getenv("RL_AUTH_REGISTER_LIMIT", "20"))
RL_AUTH_LOGIN_LIMIT = int(os.getenv("RL_AUTH_LOGIN_LIMIT", "30"))
RL_AUTH_REFRESH_LIMIT = int(os.getenv("RL_AUTH_REFRESH_LIMIT", "120"))
RL_AUTH_PASSWORD_RESET_LIMIT = int(os.getenv("RL_AUTH_PASSWORD_RESET_LIMIT", "5"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))
RL_MESSAGE_SEND_LIMIT = int(os.getenv("RL_MESSAGE_SEND_LIMIT", "60"))
RL_REPORT_LIMIT = int(os.getenv("RL_REPORT_LIMIT", "5"))
RL_REPORT_WINDOW_SECONDS = int(os.getenv("RL_REPORT_WINDOW_SECONDS", "3600"))

UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str(_api_root / "uploads")))
PRIVATE_UPLOADS_DIR = Path(os.getenv("PRIVATE_UPLOADS_DIR", str(_api_root / "private_uploads")))

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
CHECKOUT_SUCCESS_URL = os.getenv("CHECKOUT_SUCCESS_URL", "http://localhost:5173/subscription?checkout=success")
CHECKOUT_CANCEL_URL = os.getenv("CHECKOUT_CANCEL_URL", "http://localhost:5173/subscription?checkout=cancel")
PORTAL_RETURN_URL = os.getenv("PORTAL_RETURN_URL", "http://localhost:5173/subscription")

STRIPE_PRICE_TIERS: dict[str, str] = {
    "price_basic_monthly": "basic",
    "price_basic_yearly": "basic",
    "price_premium_monthly": "premium",
    "price_premium_yearly": "premium",
    "price_elite_monthly": "elite",
    "price_elite_yearly": "elite",
}

if os.getenv("STRIPE_PRICE_TIERS"):
    STRIPE_PRICE_TIERS.update(json.loads(os.getenv("STRIPE_PRICE_TIERS", "{}")))

FAKE_USER_EMAIL_DOMAIN = os.getenv("FAKE_USER_EMAIL_DOMAIN", "matchtime.com").strip().lower()
FAKE_USER_PASSWORD = os.getenv("FAKE_USER_PASSWORD", "password123")
INACTIVE_ACCOUNT_DAYS = int(os.getenv("INACTIVE_ACCOUNT_DAYS", "180"))

SUSPICIOUS_THRESHOLDS: dict[str, Any] = {
    "swipes_per_hour": int(os.getenv("SUSPICIOUS_SWIPES_PER_HOUR", "300")),
    "messages_per_hour": int(os.getenv("SUSPICIOUS_MESSAGES_PER_HOUR", "120")),
    "reports_per_week": int(os.getenv("SUSPICIOUS_REPORTS_PER_WEEK", "3")),
}
