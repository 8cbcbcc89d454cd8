"""Notification creation and delivery service.

Notifications are:
1. Persisted in the database (append-only; only the read flag changes)
2. Pushed to the user via Redis pub/sub when a client is available

Types: top_3_ranking, challenge_start, challenge_end

``create_notification`` only flushes, so callers can batch notifications into
a larger transaction (weekly rotation) and commit once.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import Notification
from parkrank.errors import InvalidNotificationTypeError, degrade_on_unavailable

logger = logging.getLogger(__name__)

VALID_TYPES = {"top_3_ranking", "challenge_start", "challenge_end"}


def notification_payload(notification: Notification) -> dict[str, Any]:
    """WebSocket event body for a freshly created notification."""
    return {
        "event": "notification",
        "data": {
            "id": str(notification.id),
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "rank": notification.rank,
            "badgeIcon": notification.badge_icon,
            "windowId": notification.window_id,
            "timestamp": notification.created_at.isoformat() if notification.created_at else None,
            "read": False,
        },
    }


async def push_notification(redis: Any, notification: Notification) -> None:
    """Best-effort publish to the user's WebSocket channel."""
    if redis is None:
        return
    try:
        await redis.publish(
            f"ws:user:{notification.user_id}", json.dumps(notification_payload(notification))
        )
    except Exception:
        logger.warning("Failed to push notification via WebSocket", exc_info=True)


async def create_notification(
    db: AsyncSession,
    user_id: int,
    type_: str,
    title: str,
    message: str,
    window_id: int | None = None,
    rank: int | None = None,
    badge_icon: str | None = None,
    redis: Any | None = None,
) -> Notification:
    """Create a notification and push it via WebSocket."""
    if type_ not in VALID_TYPES:
        raise InvalidNotificationTypeError(
            f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}"
        )

    notification = Notification(
        user_id=user_id,
        window_id=window_id,
        type=type_,
        title=title,
        message=message,
        rank=rank,
        badge_icon=badge_icon,
        is_read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()

    await push_notification(redis, notification)
    return notification


@degrade_on_unavailable(default=list)
async def get_user_notifications(
    db: AsyncSession, user_id: int, limit: int = 20
) -> list[Notification]:
    """Most recent notifications first."""
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


@degrade_on_unavailable(default=lambda: 0)
async def get_unread_notification_count(db: AsyncSession, user_id: int) -> int:
    """Get count of unread notifications."""
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()


@degrade_on_unavailable(default=lambda: False)
async def mark_notification_as_read(
    db: AsyncSession, notification_id: int, user_id: int | None = None
) -> bool:
    """Mark a single notification as read. Returns True if found.

    When ``user_id`` is given the notification must belong to that user.
    """
    stmt = (
        update(Notification)
        .where(Notification.id == notification_id)
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if user_id is not None:
        stmt = stmt.where(Notification.user_id == user_id)
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount > 0


@degrade_on_unavailable(default=lambda: False)
async def mark_all_notifications_as_read(db: AsyncSession, user_id: int) -> bool:
    """Mark all unread notifications as read."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.debug("Marked %d notifications read for user %d", result.rowcount, user_id)
    return True
