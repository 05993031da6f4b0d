"""API endpoint modules for version 1."""

from .conversations import router as conversations_router
from .messages import router as messages_router
from .push import router as push_router
from .queue import router as queue_router
from .system import router as system_router

__all__ = [
    "conversations_router",
    "messages_router",
    "push_router",
    "queue_router",
    "system_router",
]
