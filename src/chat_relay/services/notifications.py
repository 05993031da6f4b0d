"""Local notifications and change events surfaced to the UI layer."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from chat_relay.core.settings import settings
from chat_relay.db.time import now_ms

logger = logging.getLogger(__name__)

CHANNEL_ID = "chat_messages"

ChatListener = Callable[[str, Mapping[str, Any]], None]


@dataclass(frozen=True)
class LocalNotification:
    """User-visible notification; ``data`` carries what a tap needs to deep-link."""

    title: str
    body: str
    conversation_id: str
    sender_id: str
    channel_id: str = CHANNEL_ID
    created_at: int = field(default_factory=now_ms)

    @property
    def data(self) -> dict[str, str]:
        return {"conversationId": self.conversation_id, "senderId": self.sender_id}


class Notifier:
    """Displays local notifications and keeps a bounded history of them."""

    def __init__(self, history: int | None = None) -> None:
        self._recent: deque[LocalNotification] = deque(
            maxlen=history if history is not None else settings.notification_history
        )

    def display(self, notification: LocalNotification) -> None:
        logger.info(
            "Notification for conversation %s from %s: %s",
            notification.conversation_id,
            notification.sender_id,
            notification.title,
        )
        self._recent.append(notification)

    def recent(self) -> list[LocalNotification]:
        return list(self._recent)


class ChatEvents:
    """Fan-out of chat events with per-conversation version counters.

    Listeners receive ``(event, data)``. Events are ``incoming_message`` and
    ``delivery_stalled``. A failing listener is logged and does not stop the
    others.
    """

    INCOMING_MESSAGE = "incoming_message"
    DELIVERY_STALLED = "delivery_stalled"

    def __init__(self) -> None:
        self._listeners: list[ChatListener] = []
        self.version = 0
        self.conversation_versions: dict[str, int] = defaultdict(int)

    def subscribe(self, listener: ChatListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: str, data: Mapping[str, Any]) -> None:
        conversation_id = str(data.get("conversationId") or "")
        self.version += 1
        self.conversation_versions[conversation_id] += 1

        for listener in list(self._listeners):
            try:
                listener(event, data)
            except Exception:
                logger.error("Chat listener failed on %s", event, exc_info=True)
