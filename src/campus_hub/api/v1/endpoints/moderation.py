"""Moderation endpoints: banned words and reports."""

from __future__ import annotations

from fastapi import APIRouter, status

from campus_hub.models import BannedWord, Report
from campus_hub.schemas.moderation import (
    BannedWordCreate,
    BannedWordResponse,
    ContentCheckRequest,
    ContentCheckResponse,
    ReportActionRequest,
    ReportCreate,
    ReportResponse,
)
from campus_hub.services import moderation as moderation_service

from ..dependencies import ChangeFeedDep, CurrentProfileDep, SessionDep

router = APIRouter(prefix="/moderation", tags=["moderation"])


@router.get("/banned-words", response_model=list[BannedWordResponse])
async def list_banned_words(db: SessionDep) -> list[BannedWord]:
    return db.query(BannedWord).order_by(BannedWord.word).all()


@router.post(
    "/banned-words",
    response_model=BannedWordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_banned_word(
    payload: BannedWordCreate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
) -> BannedWord:
    """Ban a word (faculty only)."""
    return moderation_service.add_banned_word(db, actor=current_profile, word=payload.word)


@router.post("/check-content", response_model=ContentCheckResponse)
async def check_content(payload: ContentCheckRequest, db: SessionDep) -> ContentCheckResponse:
    """Report which banned words ``text`` contains without rejecting anything."""
    return ContentCheckResponse(matches=moderation_service.find_banned_words(db, payload.text))


@router.post("/reports", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    payload: ReportCreate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> Report:
    return moderation_service.create_report(
        db, feed, reporter=current_profile, post_id=payload.post_id, reason=payload.reason
    )


@router.get("/reports", response_model=list[ReportResponse])
async def list_reports(current_profile: CurrentProfileDep, db: SessionDep) -> list[Report]:
    return moderation_service.list_reports(db, actor=current_profile)


@router.post("/reports/{report_id}/actions", response_model=ReportResponse)
async def act_on_report(
    report_id: int,
    payload: ReportActionRequest,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> Report:
    """Dismiss a report, delete the reported post or warn its author."""
    return moderation_service.act_on_report(
        db,
        feed,
        actor=current_profile,
        report_id=report_id,
        action=payload.action,
        notes=payload.notes,
    )
