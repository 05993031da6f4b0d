"""SQLAlchemy models for the local chat store."""

from .conversation import Conversation
from .message import DeliveryStatus, Message, MessageType
from .message_queue import RetryQueueEntry
from .user_cache import UserCacheEntry

__all__ = [
    "Conversation",
    "DeliveryStatus", "Message", "MessageType",
    "RetryQueueEntry",
    "UserCacheEntry",
]
