"""Notification schemas."""

from datetime import datetime

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    type: str
    actor_id: int | None
    actor_name: str | None
    post_id: int | None
    community_post_id: int | None
    description: str
    is_read: bool
    created_at: datetime


class UnreadCountResponse(BaseModel):
    unread: int
