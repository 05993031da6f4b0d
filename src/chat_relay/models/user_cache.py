"""Local cache of remote user profiles."""

from sqlalchemy import BigInteger, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chat_relay.db.session import Base
from chat_relay.db.time import now_ms


class UserCacheEntry(Base):
    """Time-stamped snapshot of a peer's public profile."""

    __tablename__ = "user_cache"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, default="")
    display_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    phone_number: Mapped[str] = mapped_column(Text, nullable=False, default="")
    photo_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_seen: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    cached_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
