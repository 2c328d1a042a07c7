"""Community-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CommunityCreate(BaseModel):
    """Schema for creating a new community."""

    name: str = Field(..., min_length=1, max_length=120)
    description: str | None = None
    category: str = "General"
    privacy: Literal["public", "private"] = "public"
    rules: str | None = None
    icon: str | None = None
    max_members: int | None = Field(None, ge=2, le=10_000)


class CommunityResponse(BaseModel):
    """Schema for community information returned by the API."""

    id: int
    name: str
    description: str | None
    category: str
    privacy: str
    rules: str | None
    icon: str
    max_members: int
    member_count: int
    created_by: int
    created_at: datetime
    is_member: bool = False
    is_admin: bool = False
    user_role: str | None = None

    model_config = ConfigDict(from_attributes=True)


class CommunityLimitResponse(BaseModel):
    can_create: bool
    created_count: int
    max_free: int


class MemberResponse(BaseModel):
    user_id: int
    role: str
    joined_at: datetime
    username: str
    display_name: str | None
    avatar_url: str | None


class InvitationCreate(BaseModel):
    invited_user_ids: list[int] = Field(..., min_length=1, max_length=100)
    role: Literal["member", "admin"] = "member"


class InvitationResponse(BaseModel):
    id: int
    community_id: int
    invited_user_id: int
    invited_by: int
    role: str
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
