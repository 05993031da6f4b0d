"""Offline-first message delivery pipeline.

The pipeline owns the delivery state machine of every message:

- Outbound: optimistic local insert (``sending``), relay send, then ``sent``
  or ``queued`` with a retry queue entry.
- Inbound: push payloads become ``delivered`` messages, bump unread
  counters, emit a delivery receipt and raise a local notification.
  Receipts advance the status of our own messages.
- Retry sweeps resend queued messages until they succeed or reach the
  attempt ceiling, where they stay ``queued`` until forced.

Network failures never escape the pipeline; they become state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PayloadValidationError

from chat_relay.core.errors import AuthError, NotFoundError, TransportError, ValidationError
from chat_relay.core.settings import settings
from chat_relay.db.time import now_ms
from chat_relay.models import DeliveryStatus, RetryQueueEntry
from chat_relay.schemas.conversation import PeerProfile
from chat_relay.schemas.message import MessageRecord, OutgoingMessage
from chat_relay.schemas.push import PushPayload, PushType
from chat_relay.services.cancellation import CancellationToken
from chat_relay.services.delivery import DeliveryChannel, get_delivery_channel
from chat_relay.services.notifications import ChatEvents, LocalNotification, Notifier
from chat_relay.services.store import (
    MessageStore,
    conversation_id_for,
    generate_message_id,
)

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, DeliveryStatus], None]


@dataclass(frozen=True)
class SweepReport:
    """Outcome of one retry sweep."""

    attempted: int = 0
    sent: int = 0
    failed: int = 0
    skipped: bool = False


def build_relay_payload(
    message_id: str,
    conversation_id: str,
    sender_id: str,
    outgoing: OutgoingMessage,
    timestamp: int,
) -> dict[str, Any]:
    """Serialize everything the relay needs to (re)send a message."""
    return {
        "conversationId": conversation_id,
        "senderId": sender_id,
        "messageId": message_id,
        "messageText": outgoing.message_text,
        "messageType": outgoing.message_type.value,
        "imageUri": outgoing.image_uri,
        "transactionRequestData": outgoing.transaction_request_data,
        "timestamp": timestamp,
    }


class MessagePipeline:
    """Coordinates the store and the delivery channel for every message."""

    def __init__(
        self,
        store: MessageStore,
        channel: DeliveryChannel,
        *,
        notifier: Notifier | None = None,
        events: ChatEvents | None = None,
        max_attempts: int | None = None,
        user_cache_ttl_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.channel = channel
        self.notifier = notifier or Notifier()
        self.events = events or ChatEvents()
        self.max_attempts = max_attempts if max_attempts is not None else settings.retry_max_attempts
        self.user_cache_ttl_seconds = (
            user_cache_ttl_seconds
            if user_cache_ttl_seconds is not None
            else settings.user_cache_ttl_seconds
        )
        self._sweep_lock = asyncio.Lock()
        self._inflight: set[asyncio.Task[DeliveryStatus]] = set()

    async def initialize(self, push_token: str | None = None) -> None:
        """Route both push contexts to ``handle_incoming`` and register the push token."""
        self.channel.on_foreground_message(self.handle_incoming)
        self.channel.on_background_message(self.handle_incoming)

        if push_token:
            await self.on_push_token_refresh(push_token)
        else:
            logger.warning("No push token available; inbound delivery relies on polling")

    async def on_push_token_refresh(self, token: str) -> bool:
        """Re-register the device push token after the transport rotates it."""
        if not token:
            raise ValidationError("push token must not be empty")
        return await self.channel.register_token(token)

    # ---- conversations ----

    def start_chat(self, current_user_id: str, profile: PeerProfile) -> str:
        """Cache the peer's profile and make sure the conversation exists."""
        self.store.cache_user(profile)
        return self.store.upsert_conversation(current_user_id, profile)

    def _ensure_conversation(
        self, current_user_id: str, peer_id: str, display_name: str | None = None
    ) -> str:
        conversation_id = conversation_id_for(current_user_id, peer_id)
        if self.store.get_conversation(conversation_id) is not None:
            return conversation_id

        cached = self.store.get_cached_user(peer_id, self.user_cache_ttl_seconds)
        if cached is not None:
            profile = cached.profile
        else:
            profile = PeerProfile(user_id=peer_id, display_name=display_name or "")
        return self.store.upsert_conversation(current_user_id, profile)

    async def open_conversation(self, current_user_id: str, conversation_id: str) -> int:
        """Mark a conversation read and send read receipts for the peer's messages."""
        changed = self.store.mark_conversation_read(conversation_id)
        incoming = [m for m in changed if m.sender_id != current_user_id and not m.is_deleted]
        for message in incoming:
            await self._send_receipt(message.sender_id, message.message_id, DeliveryStatus.READ)
        return len(changed)

    # ---- outbound ----

    async def send_message(
        self,
        current_user_id: str,
        outgoing: OutgoingMessage,
        *,
        cancel_token: CancellationToken | None = None,
        on_status: StatusCallback | None = None,
    ) -> str:
        """Persist a message optimistically and try to relay it.

        The local row is committed before any network call; the relay attempt
        runs in a shielded task so a caller that goes away never aborts it.
        ``on_status`` is skipped when ``cancel_token`` has been cancelled.
        """
        if not current_user_id:
            raise ValidationError("current_user_id is required to send a message")

        timestamp = outgoing.timestamp if outgoing.timestamp is not None else now_ms()
        message_id = outgoing.message_id or generate_message_id(timestamp)

        if self.store.get_message(message_id) is not None:
            logger.info("Message %s already recorded; not sending again", message_id)
            return message_id

        conversation_id = self._ensure_conversation(current_user_id, outgoing.receiver_id)
        if outgoing.conversation_id and outgoing.conversation_id != conversation_id:
            logger.warning(
                "Outgoing conversation %s does not match participants; using %s",
                outgoing.conversation_id,
                conversation_id,
            )
        self.store.insert_message(
            MessageRecord(
                message_id=message_id,
                conversation_id=conversation_id,
                sender_id=current_user_id,
                receiver_id=outgoing.receiver_id,
                message_text=outgoing.message_text,
                message_type=outgoing.message_type,
                image_uri=outgoing.image_uri,
                transaction_request_data=outgoing.transaction_request_data,
                delivery_status=DeliveryStatus.SENDING,
                is_read=True,
                timestamp=timestamp,
            ),
            update_conversation=True,
        )

        payload = build_relay_payload(
            message_id, conversation_id, current_user_id, outgoing, timestamp
        )
        task = asyncio.ensure_future(self._deliver(message_id, outgoing.receiver_id, payload))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

        status = await asyncio.shield(task)
        if on_status is not None and not (cancel_token is not None and cancel_token.cancelled):
            on_status(message_id, status)
        return message_id

    async def _deliver(
        self, message_id: str, receiver_id: str, payload: Mapping[str, Any]
    ) -> DeliveryStatus:
        if await self._try_send(message_id, receiver_id, payload):
            self.store.set_message_status(message_id, DeliveryStatus.SENT)
            return DeliveryStatus.SENT

        self.store.enqueue_retry(message_id, receiver_id, payload, mark_queued=True)
        logger.info("Message %s queued for retry", message_id)
        return DeliveryStatus.QUEUED

    async def _try_send(
        self, message_id: str, receiver_id: str, payload: Mapping[str, Any]
    ) -> bool:
        try:
            return await self.channel.send(receiver_id, payload)
        except AuthError as exc:
            logger.warning(
                "No auth token for message %s; it stays queued until re-authentication: %s",
                message_id,
                exc,
            )
        except TransportError as exc:
            logger.warning("Transport error sending message %s: %s", message_id, exc)
        except Exception:
            logger.error("Unexpected error sending message %s", message_id, exc_info=True)
        return False

    async def wait_inflight(self) -> None:
        """Wait for relay attempts whose callers were cancelled."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ---- inbound ----

    async def handle_incoming(self, current_user_id: str, data: Mapping[str, Any]) -> None:
        """Apply an inbound push, whichever context delivered it."""
        try:
            payload = PushPayload.model_validate(dict(data))
        except PayloadValidationError as exc:
            logger.warning("Dropping unrecognized push payload (type=%s): %s", data.get("type"), exc)
            return

        if payload.type is PushType.CHAT_MESSAGE:
            await self._apply_chat_message(current_user_id, payload)
        else:
            self._apply_receipt(payload)

    async def _apply_chat_message(self, current_user_id: str, payload: PushPayload) -> None:
        if not payload.message_id or not payload.sender_id:
            logger.warning("Dropping chat push without messageId or senderId")
            return

        if self.store.get_message(payload.message_id) is not None:
            logger.info("Duplicate message %s skipped", payload.message_id)
            return

        conversation_id = self._ensure_conversation(
            current_user_id, payload.sender_id, payload.sender_name
        )
        if payload.conversation_id and payload.conversation_id != conversation_id:
            logger.warning(
                "Push conversation %s does not match participants; using %s",
                payload.conversation_id,
                conversation_id,
            )

        self.store.insert_message(
            MessageRecord(
                message_id=payload.message_id,
                conversation_id=conversation_id,
                sender_id=payload.sender_id,
                receiver_id=current_user_id,
                message_text=payload.message_text,
                message_type=payload.message_type,
                image_uri=payload.image_uri,
                transaction_request_data=payload.transaction_request_data,
                delivery_status=DeliveryStatus.DELIVERED,
                is_read=False,
                timestamp=payload.timestamp,
            ),
            update_conversation=True,
            increment_unread=True,
        )
        logger.info("Message %s saved to conversation %s", payload.message_id, conversation_id)

        await self._send_receipt(payload.sender_id, payload.message_id, DeliveryStatus.DELIVERED)

        event_data = {
            "conversationId": conversation_id,
            "senderId": payload.sender_id,
            "messageId": payload.message_id,
        }
        self.events.emit(ChatEvents.INCOMING_MESSAGE, event_data)

        conversation = self.store.get_conversation(conversation_id)
        if conversation is not None and conversation.is_muted:
            return
        self.notifier.display(
            LocalNotification(
                title=payload.sender_name or "New Message",
                body=payload.message_text or "You have a new message",
                conversation_id=conversation_id,
                sender_id=payload.sender_id,
            )
        )

    def _apply_receipt(self, payload: PushPayload) -> None:
        if not payload.message_id:
            logger.warning("Dropping %s without messageId", payload.type.value)
            return

        if payload.type is PushType.READ_RECEIPT or payload.status == DeliveryStatus.READ.value:
            status = DeliveryStatus.READ
        else:
            status = DeliveryStatus.DELIVERED

        try:
            changed = self.store.set_message_status(payload.message_id, status)
        except NotFoundError:
            logger.warning("Receipt for unknown message %s ignored", payload.message_id)
            return
        if changed:
            logger.info("Message %s status updated to %s", payload.message_id, status.value)

    async def _send_receipt(self, sender_id: str, message_id: str, status: DeliveryStatus) -> None:
        try:
            await self.channel.send_receipt(sender_id, message_id, status)
        except Exception:
            logger.warning("Receipt for message %s was lost", message_id, exc_info=True)

    # ---- retry queue ----

    async def run_retry_sweep(self) -> SweepReport:
        """Resend every queue entry below the attempt ceiling, oldest first.

        Overlapping triggers (timer and connectivity) do not run concurrently;
        the later one reports ``skipped``.
        """
        if self._sweep_lock.locked():
            return SweepReport(skipped=True)

        async with self._sweep_lock:
            entries = self.store.list_retryable(self.max_attempts)
            if not entries:
                return SweepReport()

            logger.info("Processing %d pending messages", len(entries))
            attempted = sent = 0
            for entry in entries:
                result = await self._resend(entry)
                if result is None:
                    continue
                attempted += 1
                sent += int(result)

            return SweepReport(attempted=attempted, sent=sent, failed=attempted - sent)

    async def _resend(self, entry: RetryQueueEntry) -> bool | None:
        """Resend one entry; None when the entry was discarded instead."""
        message = self.store.get_message(entry.message_id)
        if message is None or message.is_deleted:
            self.store.remove_retry(entry.queue_id)
            logger.info("Dropped queue entry for deleted message %s", entry.message_id)
            return None

        if await self._try_send(entry.message_id, entry.receiver_id, entry.message_data):
            self.store.resolve_retry(entry.queue_id)
            logger.info("Message %s sent on retry", entry.message_id)
            return True

        try:
            attempts = self.store.increment_retry_attempt(entry.queue_id)
        except NotFoundError:
            logger.warning("Queue entry %s vanished during retry", entry.queue_id)
            return False

        logger.info(
            "Message %s retry %d/%d failed", entry.message_id, attempts, self.max_attempts
        )
        if attempts >= self.max_attempts:
            logger.warning(
                "Message %s reached the retry ceiling and stays queued", entry.message_id
            )
            self.events.emit(
                ChatEvents.DELIVERY_STALLED,
                {
                    "conversationId": entry.conversation_id,
                    "messageId": entry.message_id,
                    "attempts": attempts,
                },
            )
        return False

    def list_stalled(self) -> list[RetryQueueEntry]:
        """Entries at the attempt ceiling, which sweeps no longer touch."""
        return self.store.list_exhausted(self.max_attempts)

    async def force_retry(self, message_id: str) -> DeliveryStatus:
        """Resend a queued message now, regardless of its attempt count."""
        entry = self.store.get_retry_for_message(message_id)
        if entry is None:
            raise NotFoundError(f"Message {message_id} is not queued")

        async with self._sweep_lock:
            # A sweep may have resolved or removed the entry while we waited.
            entry = self.store.get_retry_for_message(message_id)
            if entry is not None:
                if entry.retry_count >= self.max_attempts:
                    self.store.reset_retry(entry.queue_id)
                await self._resend(entry)

        message = self.store.get_message(message_id)
        return message.status if message is not None else DeliveryStatus.QUEUED


class _PipelineSingleton:
    """Singleton wrapper for the application's MessagePipeline."""

    _instance: MessagePipeline | None = None

    @classmethod
    def get_instance(cls) -> MessagePipeline:
        if cls._instance is None:
            cls._instance = MessagePipeline(MessageStore(), get_delivery_channel())
        return cls._instance


def get_pipeline() -> MessagePipeline:
    """Return the shared pipeline bound to the default store and channel."""
    return _PipelineSingleton.get_instance()
