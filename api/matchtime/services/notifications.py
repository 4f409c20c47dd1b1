from typing import Any

from .events import insert_notification
from .realtime import publish_to_user


def create_notification(
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
    notification = insert_notification(
        db,
        user_id=str(user_id),
        notification_type=notification_type,
        title=title,
        message=message,
        related_user_id=related_user_id,
        related_match_id=related_match_id,
        metadata=metadata,
    )
    publish_to_user(str(user_id), "notification", notification)
    return notification
