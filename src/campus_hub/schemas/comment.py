"""Comment schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    is_anonymous: bool = False
    anonymous_name: str | None = Field(None, max_length=64)
    idempotency_key: str | None = Field(None, max_length=128)


class CommentResponse(BaseModel):
    id: int
    target_type: str
    target_id: int
    user_id: int
    content: str
    is_anonymous: bool
    anonymous_name: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommentMutationResponse(BaseModel):
    """Result of adding or deleting a comment, with the recomputed counter."""

    comment: CommentResponse | None
    comments_count: int
    has_commented: bool
    version: int
