"""Notification rows delivered to a single recipient."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from campus_hub.db.session import Base
from campus_hub.db.time import utcnow


class NotificationType(StrEnum):
    LIKE = "like"
    COMMENT = "comment"
    FOLLOW = "follow"
    COMMUNITY_POST = "community_post"
    MENTION = "mention"
    SYSTEM = "system"
    ACHIEVEMENT = "achievement"
    REPOST = "repost"
    BOOKMARK = "bookmark"


class Notification(Base):
    """Something that happened to one of the recipient's posts or to them.

    Only ``is_read`` is ever updated after insert.
    """

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    post_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    community_post_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Free text for system/achievement notifications.
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
