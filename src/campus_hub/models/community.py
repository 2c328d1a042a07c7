"""SQLAlchemy models for communities, membership and invitations."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from campus_hub.db.session import Base
from campus_hub.db.time import utcnow

PRIVACY_PUBLIC = "public"
PRIVACY_PRIVATE = "private"

ROLE_MEMBER = "member"
ROLE_ADMIN = "admin"

INVITATION_PENDING = "pending"


class Community(Base):
    """Community metadata used for grouping posts and members."""

    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="General")
    privacy: Mapped[str] = mapped_column(String(16), nullable=False, default=PRIVACY_PUBLIC)
    rules: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str] = mapped_column(String(64), nullable=False, default="people-outline")
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    # Display cache; recomputed from community_members on every membership write.
    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CommunityMember(Base):
    """Join table mapping users into communities with a role."""

    __tablename__ = "community_members"

    community_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("communities.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_MEMBER)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CommunityInvitation(Base):
    """Pending invitation for a user to join a community."""

    __tablename__ = "community_invitations"
    __table_args__ = (
        UniqueConstraint(
            "community_id", "invited_user_id", "status", name="uq_invitation_pending"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    invited_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invited_by: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_MEMBER)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=INVITATION_PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
