"""Pydantic schemas for the chat relay."""

from .conversation import (
    UNREAD_INCREMENT,
    ConversationCreate,
    ConversationResponse,
    ConversationUpdate,
    PeerProfile,
)
from .message import (
    MessageEdit,
    MessageRecord,
    MessageResponse,
    OutgoingMessage,
    RetryEntryResponse,
    SendResponse,
    SweepReportResponse,
)
from .push import PushPayload, PushType

__all__ = [
    "UNREAD_INCREMENT",
    "ConversationCreate",
    "ConversationResponse",
    "ConversationUpdate",
    "PeerProfile",
    "MessageEdit",
    "MessageRecord",
    "MessageResponse",
    "OutgoingMessage",
    "RetryEntryResponse",
    "SendResponse",
    "SweepReportResponse",
    "PushPayload",
    "PushType",
]
