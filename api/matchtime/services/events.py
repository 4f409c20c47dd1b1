import json
import uuid
from typing import Any

from sqlalchemy import text


def log_security_event(
    db,
    *,
    action: str,
    resource_type: str,
    user_id: str | None = None,
    resource_id: str | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    details = details or {}
    db.execute(
        text(
            """
            INSERT INTO security_audit_log (id, user_id, action, resource_type, resource_id, details, ip_address, user_agent)
            VALUES (
              :id,
              CAST(NULLIF(:user_id, '') AS uuid),
              :action,
              :resource_type,
              :resource_id,
              CAST(:details AS jsonb),
              :ip_address,
              :user_agent
            )
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "user_id": user_id or "",
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "details": json.dumps(details, default=str),
            "ip_address": ip_address,
            "user_agent": user_agent,
        },
    )


def insert_notification(
    db,
    *,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    related_user_id: str | None = None,
    related_match_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    notification_id = str(uuid.uuid4())
    db.execute(
        text(
            """
            INSERT INTO notifications (id, user_id, type, title, message, related_user_id, related_match_id, metadata)
            VALUES (
              :id,
              CAST(:user_id AS uuid),
              :type,
              :title,
              :message,
              CAST(NULLIF(:related_user_id, '') AS uuid),
              CAST(NULLIF(:related_match_id, '') AS uuid),
              CAST(:metadata AS jsonb)
            )
            """
        ),
        {
            "id": notification_id,
            "user_id": user_id,
            "type": notification_type,
            "title": title,
            "message": message,
            "related_user_id": related_user_id or "",
            "related_match_id": related_match_id or "",
            "metadata": json.dumps(metadata or {}, default=str),
        },
    )
    return {
        "id": notification_id,
        "user_id": user_id,
        "type": notification_type,
        "title": title,
        "message": message,
        "related_user_id": related_user_id,
        "related_match_id": related_match_id,
        "metadata": metadata or {},
        "is_read": False,
    }
