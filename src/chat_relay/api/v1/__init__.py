"""Version 1 API endpoints."""

from .endpoints import (
    conversations_router,
    messages_router,
    push_router,
    queue_router,
    system_router,
)

__all__ = [
    "conversations_router",
    "messages_router",
    "push_router",
    "queue_router",
    "system_router",
]
