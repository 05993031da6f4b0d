"""Message-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chat_relay.models.message import DeliveryStatus, MessageType


class MessageRecord(BaseModel):
    """Row-level input for ``MessageStore.insert_message``."""

    message_id: str | None = None
    conversation_id: str | None = None
    sender_id: str
    receiver_id: str
    message_text: str = ""
    message_type: MessageType = MessageType.TEXT
    image_uri: str | None = None
    transaction_request_data: str | None = None
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    is_read: bool = False
    timestamp: int | None = None


class OutgoingMessage(BaseModel):
    """Schema for a message submitted by the local user."""

    receiver_id: str = Field(..., min_length=1)
    message_text: str = ""
    message_type: MessageType = MessageType.TEXT
    image_uri: str | None = None
    transaction_request_data: str | None = None
    conversation_id: str | None = Field(
        None, description="Checked against the id derived from sender and receiver, which wins"
    )
    message_id: str | None = Field(None, description="Client-generated id for idempotent resubmits")
    timestamp: int | None = None


class MessageEdit(BaseModel):
    """Schema for editing the text of a message."""

    message_text: str


class MessageResponse(BaseModel):
    """Schema for message information returned by the API."""

    message_id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    message_text: str
    message_type: str
    image_uri: str | None
    transaction_request_data: str | None
    delivery_status: str
    is_read: bool
    is_deleted: bool
    deleted_at: int | None
    edit_history: list[dict[str, Any]]
    timestamp: int
    created_at: int

    model_config = ConfigDict(from_attributes=True)


class SendResponse(BaseModel):
    """Result of an outbound send."""

    message_id: str
    delivery_status: str


class RetryEntryResponse(BaseModel):
    """Schema for retry queue entries returned by the API."""

    queue_id: int
    message_id: str
    conversation_id: str
    receiver_id: str
    retry_count: int
    last_retry_at: int | None
    created_at: int
    exhausted: bool = False

    model_config = ConfigDict(from_attributes=True)


class SweepReportResponse(BaseModel):
    """Outcome of a retry sweep."""

    attempted: int
    sent: int
    failed: int
    skipped: bool
