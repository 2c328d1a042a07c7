"""SQLAlchemy models for user profiles and the follow graph."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from campus_hub.db.session import Base
from campus_hub.db.time import utcnow

USER_TYPE_STUDENT = "student"
USER_TYPE_FACULTY = "faculty"
USER_TYPES = (USER_TYPE_STUDENT, USER_TYPE_FACULTY)


class Profile(Base):
    """Authenticated campus identity plus its public profile fields."""

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    # Derived from the local part of the school email at sign-up.
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_type: Mapped[str] = mapped_column(String(16), nullable=False, default=USER_TYPE_STUDENT)
    department: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)

    # Written by the client heartbeat; NULL until the first beat.
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def is_faculty(self) -> bool:
        return self.user_type == USER_TYPE_FACULTY

    @property
    def name_for_display(self) -> str:
        """Best human label, falling back the way the notification list does."""
        if self.display_name:
            return self.display_name
        if self.username:
            return self.username
        return self.email.split("@", 1)[0] if self.email else "User"


class Follow(Base):
    """Directed follow edge; the composite key prevents duplicates."""

    __tablename__ = "follows"

    follower_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    following_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
