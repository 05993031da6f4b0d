"""Models describing conversations between the local user and a peer."""

from sqlalchemy import BigInteger, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chat_relay.db.session import Base
from chat_relay.db.time import now_ms


class Conversation(Base):
    """Two-party thread keyed by the sorted pair of participant ids.

    Last-message fields are denormalized so the conversation list can be
    rendered without touching the messages table.
    """

    __tablename__ = "conversations"

    conversation_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    other_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    other_user_username: Mapped[str] = mapped_column(Text, nullable=False, default="")
    other_user_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    other_user_phone: Mapped[str] = mapped_column(Text, nullable=False, default="")
    other_user_photo: Mapped[str] = mapped_column(Text, nullable=False, default="")

    last_message_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_timestamp: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_muted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
