"""Moderation schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class BannedWordCreate(BaseModel):
    word: str = Field(..., min_length=1, max_length=120)


class BannedWordResponse(BaseModel):
    id: int
    word: str

    model_config = ConfigDict(from_attributes=True)


class ContentCheckRequest(BaseModel):
    text: str


class ContentCheckResponse(BaseModel):
    matches: list[str]


class ReportCreate(BaseModel):
    post_id: int
    reason: str = Field(..., min_length=1, max_length=1000)


class ReportResponse(BaseModel):
    id: int
    post_id: int
    reporter_id: int
    reason: str
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReportActionRequest(BaseModel):
    action: Literal["dismiss", "delete_post", "warn_user"]
    notes: str | None = None
