"""SQLAlchemy model for outbound messages awaiting a resend."""

from typing import Any

from sqlalchemy import JSON, BigInteger, Integer, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from chat_relay.db.session import Base
from chat_relay.db.time import now_ms


class RetryQueueEntry(Base):
    """A message whose relay send failed, with everything needed to resend it."""

    __tablename__ = "message_queue"

    queue_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    conversation_id: Mapped[str] = mapped_column(String(255), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(128), nullable=False)
    message_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    retry_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    last_retry_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
