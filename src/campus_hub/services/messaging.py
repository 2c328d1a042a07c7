"""Direct messages between two profiles."""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_hub.core.errors import InvalidOperationError, NotFoundError, PermissionDeniedError
from campus_hub.models import Conversation, Follow, Message, Profile
from campus_hub.schemas.message import ContactResponse
from campus_hub.services.changefeed import ChangeFeed
from campus_hub.services.presence import is_online
from campus_hub.services.records import message_record

logger = logging.getLogger(__name__)


def get_or_create_conversation(db: Session, *, actor: Profile, user1_id: int, user2_id: int) -> Conversation:
    """Return the conversation between two users, creating it on first use.

    The pair is stored ordered, so argument order does not matter and
    repeated calls return the same row.
    """
    if actor.id not in (user1_id, user2_id):
        raise PermissionDeniedError("You can only open conversations you take part in")
    if user1_id == user2_id:
        raise InvalidOperationError("Cannot open a conversation with yourself")
    other_id = user2_id if actor.id == user1_id else user1_id
    if db.get(Profile, other_id) is None:
        raise NotFoundError("Profile", other_id)

    low, high = sorted((user1_id, user2_id))
    stmt = select(Conversation).where(Conversation.user_low_id == low, Conversation.user_high_id == high)
    conversation = db.execute(stmt).scalar_one_or_none()
    if conversation is not None:
        return conversation

    conversation = Conversation(user_low_id=low, user_high_id=high)
    db.add(conversation)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return db.execute(stmt).scalar_one()
    db.refresh(conversation)
    logger.debug("Opened conversation %d between %d and %d", conversation.id, low, high)
    return conversation


def get_conversation_for(db: Session, *, actor: Profile, conversation_id: int) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None or not conversation.includes(actor.id):
        raise NotFoundError("Conversation", conversation_id)
    return conversation


def list_messages(db: Session, *, actor: Profile, conversation_id: int) -> list[Message]:
    get_conversation_for(db, actor=actor, conversation_id=conversation_id)
    return list(
        db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        ).scalars()
    )


def send_message(
    db: Session,
    feed: ChangeFeed,
    *,
    actor: Profile,
    conversation_id: int,
    content: str,
) -> Message:
    get_conversation_for(db, actor=actor, conversation_id=conversation_id)
    text = content.strip()
    if not text:
        raise InvalidOperationError("Message cannot be empty")
    message = Message(conversation_id=conversation_id, sender_id=actor.id, content=text)
    db.add(message)
    db.commit()
    db.refresh(message)
    feed.publish("messages", "INSERT", record=message_record(message))
    return message


def list_contacts(db: Session, *, actor: Profile) -> list[ContactResponse]:
    """Followers and followed profiles, with presence and the latest message."""
    following = select(Follow.following_id).where(Follow.follower_id == actor.id)
    followers = select(Follow.follower_id).where(Follow.following_id == actor.id)
    profiles = db.execute(
        select(Profile)
        .where(or_(Profile.id.in_(following), Profile.id.in_(followers)), Profile.id != actor.id)
        .order_by(Profile.username.asc())
    ).scalars()

    contacts = []
    for profile in profiles:
        conversation = get_or_create_conversation(
            db, actor=actor, user1_id=actor.id, user2_id=profile.id
        )
        last = db.execute(
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        contacts.append(
            ContactResponse(
                user_id=profile.id,
                username=profile.username,
                display_name=profile.display_name,
                avatar_url=profile.avatar_url,
                conversation_id=conversation.id,
                last_message=last.content if last else None,
                last_message_at=last.created_at if last else None,
                last_active_at=profile.last_active_at,
                is_online=is_online(profile.last_active_at),
            )
        )
    return contacts
