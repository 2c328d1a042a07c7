"""Realtime change-feed schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel


class ChangeEventResponse(BaseModel):
    seq: int
    table: str
    type: Literal["INSERT", "UPDATE", "DELETE"]
    record: dict[str, Any] | None
    old_record: dict[str, Any] | None
    idempotency_key: str | None
    committed_at: datetime


class ChangeBatchResponse(BaseModel):
    """A page of the change feed.

    ``reset`` is true when the requested cursor has fallen out of the
    retention window; the client must refetch whatever it displays.
    """

    cursor: int
    reset: bool
    events: list[ChangeEventResponse]
