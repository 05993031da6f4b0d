"""Schemas for push payloads delivered to the device."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chat_relay.models.message import MessageType


class PushType(str, Enum):
    """Recognized push payload types."""

    CHAT_MESSAGE = "chat_message"
    DELIVERY_RECEIPT = "delivery_receipt"
    READ_RECEIPT = "read_receipt"


class PushPayload(BaseModel):
    """Decoded data section of an inbound push.

    Push transports deliver every value as a string, so ``timestamp`` is
    coerced to an integer.
    """

    type: PushType
    conversation_id: str | None = Field(None, alias="conversationId")
    sender_id: str | None = Field(None, alias="senderId")
    sender_name: str | None = Field(None, alias="senderName")
    message_id: str | None = Field(None, alias="messageId")
    message_text: str = Field("", alias="messageText")
    message_type: MessageType = Field(MessageType.TEXT, alias="messageType")
    image_uri: str | None = Field(None, alias="imageUri")
    transaction_request_data: str | None = Field(None, alias="transactionRequestData")
    timestamp: int | None = None
    status: str | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: object) -> object:
        if value in (None, ""):
            return None
        if isinstance(value, str):
            try:
                return int(float(value))
            except (ValueError, OverflowError) as exc:
                raise ValueError(f"unusable timestamp {value!r}") from exc
        return value

    @field_validator("message_type", mode="before")
    @classmethod
    def _default_message_type(cls, value: object) -> object:
        return value or MessageType.TEXT
