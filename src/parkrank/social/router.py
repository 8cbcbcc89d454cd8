"""Notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.auth.dependencies import get_current_user
from parkrank.config import Settings
from parkrank.db.models import User
from parkrank.dependencies import get_app_settings, get_db
from parkrank.social.notification_service import (
    get_unread_notification_count,
    get_user_notifications,
    mark_all_notifications_as_read,
    mark_notification_as_read,
)
from parkrank.social.schemas import (
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


@router.get("/users/me/notifications", response_model=NotificationListResponse)
async def my_notifications(
    limit: int | None = Query(None, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Most recent notifications for the current user."""
    notifications = await get_user_notifications(
        db, user.id, limit or settings.notification_default_limit
    )
    unread = await get_unread_notification_count(db, user.id)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread,
    )


@router.get("/users/me/notifications/unread-count", response_model=UnreadCountResponse)
async def my_unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCountResponse(unread_count=await get_unread_notification_count(db, user.id))


@router.post("/notifications/{notification_id}/read", response_model=MarkReadResponse)
async def read_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark one of the current user's notifications as read."""
    if not await mark_notification_as_read(db, notification_id, user_id=user.id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return MarkReadResponse(success=True)


@router.post("/users/me/notifications/read-all", response_model=MarkReadResponse)
async def read_all_notifications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return MarkReadResponse(success=await mark_all_notifications_as_read(db, user.id))
