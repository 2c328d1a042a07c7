"""Direct-message endpoints and the conversation lookup procedure."""

from __future__ import annotations

from fastapi import APIRouter, status

from campus_hub.models import Message
from campus_hub.schemas.message import (
    ContactResponse,
    ConversationRequest,
    ConversationResponse,
    MessageCreate,
    MessageResponse,
)
from campus_hub.services import messaging as messaging_service

from ..dependencies import ChangeFeedDep, CurrentProfileDep, SessionDep

router = APIRouter(prefix="/conversations", tags=["messages"])
rpc_router = APIRouter(prefix="/rpc", tags=["rpc"])


@rpc_router.post("/get_or_create_conversation", response_model=ConversationResponse)
async def get_or_create_conversation(
    payload: ConversationRequest,
    current_profile: CurrentProfileDep,
    db: SessionDep,
) -> ConversationResponse:
    """Return the id of the conversation between two users, creating it if needed."""
    conversation = messaging_service.get_or_create_conversation(
        db, actor=current_profile, user1_id=payload.user1_id, user2_id=payload.user2_id
    )
    return ConversationResponse(conversation_id=conversation.id)


@router.get("/contacts", response_model=list[ContactResponse])
async def list_contacts(current_profile: CurrentProfileDep, db: SessionDep) -> list[ContactResponse]:
    return messaging_service.list_contacts(db, actor=current_profile)


@router.get("/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
) -> list[Message]:
    """Messages oldest first (participants only)."""
    return messaging_service.list_messages(db, actor=current_profile, conversation_id=conversation_id)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: int,
    payload: MessageCreate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> Message:
    return messaging_service.send_message(
        db, feed, actor=current_profile, conversation_id=conversation_id, content=payload.content
    )
