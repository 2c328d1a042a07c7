"""Models capturing likes, reposts, bookmarks and comments on posts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from campus_hub.db.session import Base
from campus_hub.db.time import utcnow


class TargetType(StrEnum):
    """Kinds of rows that can receive interactions and comments."""

    POST = "post"
    COMMUNITY_POST = "community_post"


class InteractionKind(StrEnum):
    """Toggleable per-user interactions."""

    LIKE = "like"
    REPOST = "repost"
    BOOKMARK = "bookmark"


# Counter column on the target row for each interaction kind.
COUNTER_FIELDS: dict[InteractionKind, str] = {
    InteractionKind.LIKE: "likes_count",
    InteractionKind.REPOST: "reposts_count",
    InteractionKind.BOOKMARK: "bookmarks_count",
}
COMMENTS_COUNTER_FIELD = "comments_count"


class Interaction(Base):
    """One user's like/repost/bookmark on a post or community post."""

    __tablename__ = "interactions"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('like', 'repost', 'bookmark')", name="ck_interactions_kind"
        ),
        CheckConstraint(
            "target_type IN ('post', 'community_post')", name="ck_interactions_target_type"
        ),
        Index("ix_interactions_target", "target_type", "target_id", "kind"),
    )

    # Composite primary key is the uniqueness constraint: one row per
    # (target, user, kind), so concurrent double inserts collide.
    target_type: Mapped[str] = mapped_column(String(16), primary_key=True)
    target_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Comment(Base):
    """Comment on a post or community post."""

    __tablename__ = "comments"
    __table_args__ = (Index("ix_comments_target", "target_type", "target_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    target_type: Mapped[str] = mapped_column(String(16), nullable=False)
    target_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    anonymous_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
