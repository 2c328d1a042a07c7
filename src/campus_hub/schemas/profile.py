"""Profile and authentication schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SignUpRequest(BaseModel):
    """Schema for creating an account with a school email."""

    email: str = Field(..., pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$", max_length=320)
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str | None = Field(None, max_length=120)
    user_type: Literal["student", "faculty"] = "student"
    department: str | None = None


class SignInRequest(BaseModel):
    email: str
    password: str


class ProfileResponse(BaseModel):
    """Public profile information returned by the API."""

    id: int
    username: str
    display_name: str | None
    user_type: str
    department: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    cover_url: str | None = None
    last_active_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: ProfileResponse


class ProfileUpdate(BaseModel):
    """Editable profile fields; omitted fields are left untouched."""

    display_name: str | None = Field(None, max_length=120)
    department: str | None = None
    bio: str | None = Field(None, max_length=500)
    avatar_url: str | None = None
    cover_url: str | None = None


class HeartbeatResponse(BaseModel):
    last_active_at: datetime


class FollowCounts(BaseModel):
    followers: int
    following: int


class FollowStatus(BaseModel):
    following: bool
