"""Cursor-based access to the realtime change feed."""

from __future__ import annotations

from fastapi import APIRouter, Query

from campus_hub.core.settings import settings
from campus_hub.schemas.realtime import ChangeBatchResponse, ChangeEventResponse

from ..dependencies import ChangeFeedDep

router = APIRouter(prefix="/realtime", tags=["realtime"])


@router.get("/changes", response_model=ChangeBatchResponse)
async def read_changes(
    feed: ChangeFeedDep,
    cursor: int | None = Query(
        None, ge=0, description="seq of the last event already seen; omit to start at the head"
    ),
    tables: str | None = Query(None, description="Comma-separated table names"),
    wait: float = Query(0.0, ge=0.0, description="Seconds to hold the request open for new events"),
) -> ChangeBatchResponse:
    """Return events after ``cursor``.

    When ``reset`` is true the cursor fell out of retention and the caller
    must refetch everything it displays before continuing from ``cursor``.
    """
    if cursor is None:
        return ChangeBatchResponse(cursor=feed.last_seq, reset=False, events=[])
    table_list = [t.strip() for t in tables.split(",") if t.strip()] if tables else None
    batch = await feed.wait_since(
        cursor,
        tables=table_list,
        wait_seconds=min(wait, settings.changefeed_max_wait_seconds),
    )
    return ChangeBatchResponse(
        cursor=batch.cursor,
        reset=batch.reset,
        events=[ChangeEventResponse(**event.to_payload()) for event in batch.events],
    )
