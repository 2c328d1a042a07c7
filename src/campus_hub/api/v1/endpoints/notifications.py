"""Notification inbox endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from campus_hub.models import Notification
from campus_hub.schemas.notification import NotificationResponse, UnreadCountResponse
from campus_hub.services import notifications as notification_service

from ..dependencies import ChangeFeedDep, CurrentProfileDep, SessionDep

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(current_profile: CurrentProfileDep, db: SessionDep) -> list[NotificationResponse]:
    """The caller's most recent notifications, newest first."""
    return notification_service.list_notifications(db, recipient=current_profile)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(current_profile: CurrentProfileDep, db: SessionDep) -> UnreadCountResponse:
    return UnreadCountResponse(unread=notification_service.unread_count(db, recipient=current_profile))


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> dict[str, int | bool]:
    notification: Notification = notification_service.mark_read(
        db, feed, recipient=current_profile, notification_id=notification_id
    )
    return {"id": notification.id, "is_read": notification.is_read}


@router.post("/read-all")
async def mark_all_read(
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> dict[str, int]:
    updated = notification_service.mark_all_read(db, feed, recipient=current_profile)
    return {"updated": updated}
