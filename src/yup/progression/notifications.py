"""XP notifications: persisted row plus pub/sub push for per-user WebSocket delivery."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from yup.db.models import Notification

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

LEVEL_UP_CHANNEL = "pubsub:level_up"


def user_channel(user_id: int) -> str:
    return f"ws:user:{user_id}"


async def push_notification_to_user(redis: object | None, notification: Notification) -> None:
    """Publish a formatted notification dict to ws:user:{user_id}.

    The notification must already be flushed (have an ``id``). Publishing
    failures are logged and never reach the caller.
    """
    if redis is None:
        return

    ws_payload = {
        "event": "notification",
        "data": {
            "id": str(notification.id),
            "type": notification.type,
            "subtype": notification.subtype,
            "title": notification.title,
            "description": notification.description,
            "timestamp": (
                notification.created_at.isoformat()
                if notification.created_at
                else None
            ),
            "read": False,
            "metadata": notification.notification_metadata or {},
        },
    }
    try:
        await redis.publish(  # type: ignore[union-attr]
            user_channel(notification.user_id),
            json.dumps(ws_payload),
        )
    except Exception:
        logger.warning(
            "Failed to push notification via ws:user:%s",
            notification.user_id,
            exc_info=True,
        )


async def emit_xp_notification(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    amount: int,
    previous_level: int,
    level: int,
    contributions: Sequence[dict],
    source: str,
    video_id: str | None = None,
) -> Notification:
    """Persist and push the "gained XP" / "leveled up" notification for a positive award."""
    now = datetime.now(timezone.utc)
    leveled_up = level > previous_level

    if leveled_up:
        subtype = "level_up"
        title = f"You leveled up to level {level}!"
    else:
        subtype = "xp_gained"
        title = f"You gained {amount} XP"

    notification = Notification(
        user_id=user_id,
        type="progression",
        subtype=subtype,
        title=title,
        description=", ".join(f"{c['label']} +{c['value']}" for c in contributions) or None,
        notification_metadata={
            "amount": amount,
            "source": source,
            "video_id": video_id,
            "previous_level": previous_level,
            "level": level,
        },
        created_at=now,
    )
    db.add(notification)
    await db.flush()  # Assign notification.id for WS push

    await push_notification_to_user(redis, notification)

    if leveled_up and redis is not None:
        try:
            await redis.publish(  # type: ignore[union-attr]
                LEVEL_UP_CHANNEL,
                json.dumps({
                    "user_id": user_id,
                    "old_level": previous_level,
                    "new_level": level,
                }),
            )
        except Exception:
            logger.warning("Failed to publish level_up broadcast", exc_info=True)

    return notification
