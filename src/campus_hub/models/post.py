"""SQLAlchemy models for posts and the counters cached on them."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from campus_hub.db.session import Base
from campus_hub.db.time import utcnow

POST_CATEGORIES = ("Academics", "Rant", "Support", "Campus", "General")
DEFAULT_POST_CATEGORY = "General"
DEFAULT_COMMUNITY_POST_CATEGORY = "Discussion"
DEFAULT_ANONYMOUS_NAME = "Anonymous User"


class CountersMixin:
    """Display-cache counters shared by posts and community posts.

    The authoritative value of each counter is an aggregate over the
    ``interactions``/``comments`` tables. The columns are rewritten from that
    aggregate on every write and ``counts_version`` is bumped each time, so
    clients can discard stale change events.
    """

    likes_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    comments_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reposts_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bookmarks_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    counts_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Post(CountersMixin, Base):
    """Campus-wide feed post."""

    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    anonymous_name: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_ANONYMOUS_NAME
    )
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(
        String(32), nullable=False, default=DEFAULT_POST_CATEGORY
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CommunityPost(CountersMixin, Base):
    """Post scoped to a single community feed."""

    __tablename__ = "community_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    anonymous_name: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_ANONYMOUS_NAME
    )
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(
        String(32), nullable=False, default=DEFAULT_COMMUNITY_POST_CATEGORY
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
