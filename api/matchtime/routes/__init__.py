from fastapi import APIRouter, FastAPI

from .admin import router as admin_router, scaffold_router as admin_scaffold_router
from .auth import router as auth_router, scaffold_router as auth_scaffold_router
from .discover import router as discover_router, scaffold_router as discover_scaffold_router
from .events import router as events_router, scaffold_router as events_scaffold_router
from .gamification import router as gamification_router, scaffold_router as gamification_scaffold_router
from .matches import router as matches_router, scaffold_router as matches_scaffold_router
from .notifications import router as notifications_router, scaffold_router as notifications_scaffold_router
from .profile import router as profile_router, scaffold_router as profile_scaffold_router
from .prompts import router as prompts_router, scaffold_router as prompts_scaffold_router
from .realtime import router as realtime_router, scaffold_router as realtime_scaffold_router
from .safety import router as safety_router, scaffold_router as safety_scaffold_router
from .subscription import router as subscription_router, scaffold_router as subscription_scaffold_router
from .swipes import router as swipes_router, scaffold_router as swipes_scaffold_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(profile_router, tags=["profiles"])
    app.include_router(prompts_router, tags=["prompts"])
    app.include_router(discover_router, tags=["discover"])
    app.include_router(swipes_router, tags=["swipes"])
    app.include_router(matches_router, tags=["matches"])
    app.include_router(realtime_router, tags=["realtime"])
    app.include_router(subscription_router, tags=["subscription"])
    app.include_router(gamification_router, tags=["gamification"])
    app.include_router(notifications_router, tags=["notifications"])
    app.include_router(safety_router, tags=["safety"])
    app.include_router(events_router, tags=["events"])
    app.include_router(admin_router, tags=["admin"])

    app.include_router(auth_scaffold_router, prefix="/_scaffold/auth", tags=["scaffold-auth"])
    app.include_router(profile_scaffold_router, prefix="/_scaffold/profile", tags=["scaffold-profile"])
    app.include_router(prompts_scaffold_router, prefix="/_scaffold/prompts", tags=["scaffold-prompts"])
    app.include_router(discover_scaffold_router, prefix="/_scaffold/discover", tags=["scaffold-discover"])
    app.include_router(swipes_scaffold_router, prefix="/_scaffold/swipes", tags=["scaffold-swipes"])
    app.include_router(matches_scaffold_router, prefix="/_scaffold/matches", tags=["scaffold-matches"])
    app.include_router(realtime_scaffold_router, prefix="/_scaffold/realtime", tags=["scaffold-realtime"])
    app.include_router(subscription_scaffold_router, prefix="/_scaffold/subscription", tags=["scaffold-subscription"])
    app.include_router(gamification_scaffold_router, prefix="/_scaffold/gamification", tags=["scaffold-gamification"])
    app.include_router(notifications_scaffold_router, prefix="/_scaffold/notifications", tags=["scaffold-notifications"])
    app.include_router(safety_scaffold_router, prefix="/_scaffold/safety", tags=["scaffold-safety"])
    app.include_router(events_scaffold_router, prefix="/_scaffold/events", tags=["scaffold-events"])
    app.include_router(admin_scaffold_router, prefix="/_scaffold/admin", tags=["scaffold-admin"])


__all__ = ["include_modular_routers", "APIRouter"]
