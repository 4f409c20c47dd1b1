from typing import Any

from fastapi import Depends, HTTPException

from .. import repo
from .. import config
from .deps import get_current_user

APP_ROLES = {"lodge_manager", "admin"}


def is_super_admin(user: dict[str, Any]) -> bool:
    return str(user.get("email") or "").strip().lower() in config.SUPER_ADMIN_EMAILS


def roles_for(user: dict[str, Any]) -> set[str]:
    roles = set(repo.get_user_roles(str(user["id"])))
    if is_super_admin(user):
        roles.add("admin")
    return roles


def require_role(*allowed: str):
    unknown = set(allowed) - APP_ROLES
    if unknown:
        raise ValueError(f"Unknown role: {', '.join(sorted(unknown))}")

    def _dep(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
        roles = roles_for(current_user)
        if not roles & set(allowed):
            raise HTTPException(status_code=403, detail="Insufficient role")
        return {**current_user, "roles": sorted(roles)}

    return _dep


get_current_admin = require_role("admin")
