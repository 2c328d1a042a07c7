"""Post-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PostCreate(BaseModel):
    """Schema for creating a new feed post."""

    content: str = Field(..., min_length=1, max_length=5000)
    category: str = Field("General", max_length=32)
    is_anonymous: bool = True
    anonymous_name: str | None = Field(None, max_length=64)


class CommunityPostCreate(BaseModel):
    """Schema for posting into a community."""

    content: str = Field(..., min_length=1, max_length=5000)
    category: str = Field("Discussion", max_length=32)
    is_anonymous: bool = False
    anonymous_name: str | None = Field(None, max_length=64)


class CountersResponse(BaseModel):
    likes_count: int
    comments_count: int
    reposts_count: int
    bookmarks_count: int
    counts_version: int


class PostResponse(CountersResponse):
    """Schema for post information returned by the API."""

    id: int
    author_id: int
    anonymous_name: str
    is_anonymous: bool
    content: str
    category: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommunityPostResponse(PostResponse):
    community_id: int
