"""Banned-word screening and report handling."""

from __future__ import annotations

import logging
import re

from sqlalchemy.orm import Session

from campus_hub.core.errors import (
    ConflictError,
    ContentRejectedError,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
)
from campus_hub.models import BannedWord, Post, Profile, Report, ReportAction
from campus_hub.models.moderation import (
    ACTION_DELETE_POST,
    ACTION_DISMISS,
    ACTION_WARN_USER,
    REPORT_DELETED,
    REPORT_DISMISSED,
    REPORT_WARNED,
)
from campus_hub.services.changefeed import ChangeFeed

logger = logging.getLogger(__name__)

_ACTION_STATUS = {
    ACTION_DISMISS: REPORT_DISMISSED,
    ACTION_DELETE_POST: REPORT_DELETED,
    ACTION_WARN_USER: REPORT_WARNED,
}


def match_banned_words(text: str, words: list[str]) -> list[str]:
    """Return the banned words that occur in ``text`` as whole words, case-insensitively."""
    if not text:
        return []
    matches: list[str] = []
    for raw in words:
        word = raw.strip().lower()
        if not word:
            continue
        if re.search(rf"\b{re.escape(word)}\b", text, flags=re.IGNORECASE):
            matches.append(word)
    return matches


def find_banned_words(db: Session, text: str) -> list[str]:
    words = [row.word for row in db.query(BannedWord).all()]
    return match_banned_words(text, words)


def ensure_clean(db: Session, text: str) -> None:
    """Raise ContentRejectedError when ``text`` contains banned words."""
    matches = find_banned_words(db, text)
    if matches:
        raise ContentRejectedError(matches)


def require_faculty(profile: Profile) -> None:
    if not profile.is_faculty:
        raise PermissionDeniedError("Only faculty moderators may do this")


def add_banned_word(db: Session, *, actor: Profile, word: str) -> BannedWord:
    require_faculty(actor)
    normalized = word.strip().lower()
    if not normalized:
        raise InvalidOperationError("Banned word cannot be blank")
    if db.query(BannedWord).filter(BannedWord.word == normalized).first():
        raise ConflictError("Word is already banned")
    banned = BannedWord(word=normalized)
    db.add(banned)
    db.commit()
    db.refresh(banned)
    return banned


def create_report(db: Session, feed: ChangeFeed, *, reporter: Profile, post_id: int, reason: str) -> Report:
    if db.get(Post, post_id) is None:
        raise NotFoundError("Post", post_id)
    report = Report(post_id=post_id, reporter_id=reporter.id, reason=reason)
    db.add(report)
    db.commit()
    db.refresh(report)
    feed.publish(
        "reports",
        "INSERT",
        record={"id": report.id, "post_id": report.post_id, "status": report.status},
    )
    return report


def list_reports(db: Session, *, actor: Profile) -> list[Report]:
    require_faculty(actor)
    return db.query(Report).order_by(Report.created_at.desc(), Report.id.desc()).all()


def act_on_report(
    db: Session,
    feed: ChangeFeed,
    *,
    actor: Profile,
    report_id: int,
    action: str,
    notes: str | None = None,
) -> Report:
    """Apply a moderator action and record it in the audit table."""
    require_faculty(actor)
    report = db.get(Report, report_id)
    if report is None:
        raise NotFoundError("Report", report_id)
    if action not in _ACTION_STATUS:
        raise InvalidOperationError(f"Unknown report action {action!r}")

    if action == ACTION_DELETE_POST:
        # Imported here to avoid a cycle: posts imports moderation for ensure_clean.
        from campus_hub.services.posts import delete_post

        if db.get(Post, report.post_id) is not None:
            delete_post(db, feed, actor=actor, post_id=report.post_id, moderator=True)

    report.status = _ACTION_STATUS[action]
    db.add(ReportAction(report_id=report.id, moderator_id=actor.id, action=action, notes=notes))
    db.commit()
    db.refresh(report)
    logger.info("Report %d resolved with %s by %d", report.id, action, actor.id)
    feed.publish(
        "reports",
        "UPDATE",
        record={"id": report.id, "post_id": report.post_id, "status": report.status},
    )
    return report
