"""Models describing chat messages and their delivery lifecycle."""

from __future__ import annotations

from enum import Enum
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chat_relay.db.session import Base
from chat_relay.db.time import now_ms


class MessageType(str, Enum):
    """Kinds of message body carried by the relay."""

    TEXT = "text"
    IMAGE = "image"
    TRANSACTION_REQUEST = "transaction_request"


class DeliveryStatus(str, Enum):
    """How far a message has progressed toward being read by its recipient.

    Statuses only move forward. ``QUEUED`` sits between ``SENDING`` and
    ``SENT`` so a retried message can still advance to ``SENT``, while a
    late ``SENT`` can never pull a delivered message back.
    """

    PENDING = "pending"
    SENDING = "sending"
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_advance_to(self, target: DeliveryStatus) -> bool:
        """Return True if moving from this status to ``target`` is a forward transition."""
        return _STATUS_RANK[target] > _STATUS_RANK[self]


_STATUS_RANK: dict[DeliveryStatus, int] = {
    DeliveryStatus.PENDING: 0,
    DeliveryStatus.SENDING: 1,
    DeliveryStatus.QUEUED: 2,
    DeliveryStatus.SENT: 3,
    DeliveryStatus.DELIVERED: 4,
    DeliveryStatus.READ: 5,
}


class Message(Base):
    """A single message owned by a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_timestamp", "conversation_id", "timestamp"),
    )

    message_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Cascade on conversation deletion is enforced by MessageStore.
    conversation_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(128), nullable=False)

    message_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    message_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=MessageType.TEXT.value
    )
    image_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_request_data: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivery_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DeliveryStatus.PENDING.value
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    edit_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    @property
    def status(self) -> DeliveryStatus:
        return DeliveryStatus(self.delivery_status)
