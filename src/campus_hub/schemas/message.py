"""Direct-message schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ConversationRequest(BaseModel):
    """Arguments of the ``get_or_create_conversation`` procedure."""

    user1_id: int
    user2_id: int


class ConversationResponse(BaseModel):
    conversation_id: int


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ContactResponse(BaseModel):
    user_id: int
    username: str
    display_name: str | None
    avatar_url: str | None
    conversation_id: int
    last_message: str | None
    last_message_at: datetime | None
    last_active_at: datetime | None
    is_online: bool
