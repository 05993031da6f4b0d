"""Conversation-related Pydantic schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNREAD_INCREMENT: Literal["increment"] = "increment"


class PeerProfile(BaseModel):
    """Public profile snapshot of the other participant."""

    user_id: str = Field(..., min_length=1)
    username: str = ""
    display_name: str = ""
    phone_number: str = ""
    photo_url: str = ""
    is_online: bool = False
    last_seen: int | None = None


class ConversationCreate(BaseModel):
    """Schema for starting a chat with a peer."""

    profile: PeerProfile


class ConversationUpdate(BaseModel):
    """Partial update of conversation metadata.

    ``unread_count`` is either an absolute value or ``"increment"``, which is
    applied as a single SQL increment so rapid successive updates never lose
    a count.
    """

    last_message_text: str | None = None
    last_message_timestamp: int | None = None
    unread_count: int | Literal["increment"] | None = Field(default=None)
    is_pinned: bool | None = None
    is_muted: bool | None = None

    @field_validator("unread_count")
    @classmethod
    def _non_negative(cls, value: int | str | None) -> int | str | None:
        if isinstance(value, int) and value < 0:
            raise ValueError("unread_count must be non-negative")
        return value


class ConversationResponse(BaseModel):
    """Schema for conversation information returned by the API."""

    conversation_id: str
    other_user_id: str
    other_user_username: str
    other_user_name: str
    other_user_phone: str
    other_user_photo: str
    last_message_text: str | None
    last_message_timestamp: int | None
    unread_count: int
    is_pinned: bool
    is_muted: bool
    created_at: int
    updated_at: int

    model_config = ConfigDict(from_attributes=True)
