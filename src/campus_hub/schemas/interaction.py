"""Interaction (like/repost/bookmark) schemas."""

from pydantic import BaseModel, Field


class InteractionRequest(BaseModel):
    """Desired state of one interaction.

    ``idempotency_key`` identifies the client operation; it is echoed back on
    the change events the write produces so the issuing client can match
    them against its pending state.
    """

    active: bool
    idempotency_key: str = Field(..., min_length=1, max_length=128)


class InteractionOutcomeResponse(BaseModel):
    target_type: str
    target_id: int
    kind: str
    active: bool
    count: int
    version: int
    changed: bool
    idempotency_key: str | None = None


class InteractionSnapshot(BaseModel):
    """Authoritative counts and the caller's flags, computed by aggregate."""

    target_type: str
    target_id: int
    counts: dict[str, int]
    active: dict[str, bool]
    comments_count: int
    has_commented: bool
    version: int
