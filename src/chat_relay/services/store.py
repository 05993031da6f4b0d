"""Local durable store for conversations, messages, the retry queue and the user cache.

Every public method runs in its own transaction, so multi-step operations
(insert a message and touch its conversation, mark a conversation read) are
never observed half-applied. The store holds no delivery logic; it only
enforces the data invariants: ids, monotonic statuses, non-negative unread
counters and soft deletion.

Missing-row policy: lookups return ``None`` (or an empty result), mutations
of a specific row raise ``NotFoundError``. Two mutations are idempotent
instead: soft-deleting an already-deleted message and removing a retry entry
that is already gone.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from chat_relay.core.errors import NotFoundError, ValidationError
from chat_relay.db.session import SessionLocal
from chat_relay.db.time import now_ms
from chat_relay.models import (
    Conversation,
    DeliveryStatus,
    Message,
    RetryQueueEntry,
    UserCacheEntry,
)
from chat_relay.schemas.conversation import UNREAD_INCREMENT, ConversationUpdate, PeerProfile
from chat_relay.schemas.message import MessageRecord

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LENGTH = 9


def generate_message_id(timestamp: int | None = None) -> str:
    """Return a client-side message id: ``msg_<ms>_<random base36 suffix>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
    return f"msg_{timestamp if timestamp is not None else now_ms()}_{suffix}"


def conversation_id_for(user_a: str, user_b: str) -> str:
    """Return the conversation id shared by both participants.

    The pair is sorted so each side derives the same id without negotiation.
    """
    if not user_a or not user_b:
        raise ValidationError("Both participant ids are required")
    return "_".join(sorted((user_a, user_b)))


@dataclass(frozen=True)
class CachedUser:
    """A cached profile and whether it has outlived its freshness window."""

    profile: PeerProfile
    cached_at: int
    is_stale: bool


class MessageStore:
    """Transactional persistence for the message pipeline."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        # Rows handed back to callers must stay readable after the session closes.
        with self._session_factory(expire_on_commit=False) as db, db.begin():
            yield db

    # ---- conversations ----

    def upsert_conversation(self, current_user_id: str, profile: PeerProfile) -> str:
        """Create the conversation with ``profile.user_id`` or refresh its profile snapshot.

        Counters, flags and last-message fields of an existing row are kept.
        """
        conversation_id = conversation_id_for(current_user_id, profile.user_id)
        now = now_ms()

        with self._transaction() as db:
            conversation = db.get(Conversation, conversation_id)
            if conversation is None:
                conversation = Conversation(
                    conversation_id=conversation_id,
                    other_user_id=profile.user_id,
                    unread_count=0,
                    is_pinned=False,
                    is_muted=False,
                    created_at=now,
                )
                db.add(conversation)
            conversation.other_user_id = profile.user_id
            conversation.other_user_username = profile.username
            conversation.other_user_name = profile.display_name
            conversation.other_user_phone = profile.phone_number
            conversation.other_user_photo = profile.photo_url
            conversation.updated_at = now

        return conversation_id

    def list_conversations(self) -> list[Conversation]:
        """Return pinned conversations first, each group newest message first."""
        with self._transaction() as db:
            return list(
                db.scalars(
                    select(Conversation).order_by(
                        Conversation.is_pinned.desc(),
                        Conversation.last_message_timestamp.is_(None),
                        Conversation.last_message_timestamp.desc(),
                        Conversation.conversation_id,
                    )
                )
            )

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._transaction() as db:
            return db.get(Conversation, conversation_id)

    def search_conversations(self, query: str) -> list[Conversation]:
        """Match peer name, username or last message text."""
        term = f"%{query}%"
        with self._transaction() as db:
            return list(
                db.scalars(
                    select(Conversation)
                    .where(
                        or_(
                            Conversation.other_user_name.like(term),
                            Conversation.other_user_username.like(term),
                            Conversation.last_message_text.like(term),
                        )
                    )
                    .order_by(
                        Conversation.last_message_timestamp.is_(None),
                        Conversation.last_message_timestamp.desc(),
                        Conversation.conversation_id,
                    )
                )
            )

    def get_unread_count(self, conversation_id: str) -> int:
        with self._transaction() as db:
            count = db.scalar(
                select(Conversation.unread_count).where(
                    Conversation.conversation_id == conversation_id
                )
            )
            return count or 0

    def update_conversation_meta(self, conversation_id: str, changes: ConversationUpdate) -> None:
        """Apply a partial update; raises ``NotFoundError`` for an unknown conversation."""
        with self._transaction() as db:
            self._update_conversation(db, conversation_id, changes)

    def _update_conversation(
        self, db: Session, conversation_id: str, changes: ConversationUpdate
    ) -> None:
        values: dict[str, Any] = {"updated_at": now_ms()}
        if changes.last_message_text is not None:
            values["last_message_text"] = changes.last_message_text
        if changes.last_message_timestamp is not None:
            values["last_message_timestamp"] = changes.last_message_timestamp
        if changes.unread_count == UNREAD_INCREMENT:
            values["unread_count"] = Conversation.unread_count + 1
        elif changes.unread_count is not None:
            values["unread_count"] = changes.unread_count
        if changes.is_pinned is not None:
            values["is_pinned"] = changes.is_pinned
        if changes.is_muted is not None:
            values["is_muted"] = changes.is_muted

        result = db.execute(
            update(Conversation)
            .where(Conversation.conversation_id == conversation_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Conversation {conversation_id} not found")

    def delete_conversation(self, conversation_id: str) -> None:
        """Remove a conversation together with its messages and queued resends."""
        with self._transaction() as db:
            conversation = db.get(Conversation, conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            db.execute(delete(Message).where(Message.conversation_id == conversation_id))
            db.execute(
                delete(RetryQueueEntry).where(RetryQueueEntry.conversation_id == conversation_id)
            )
            db.delete(conversation)

    # ---- messages ----

    def insert_message(
        self,
        record: MessageRecord,
        *,
        update_conversation: bool = False,
        increment_unread: bool = False,
    ) -> str:
        """Persist a message and return its id.

        With ``update_conversation`` the conversation's last-message fields
        move to this message unless a newer one is already shown; with
        ``increment_unread`` its unread counter grows by one. Both happen in
        the same transaction as the insert.
        """
        if not record.conversation_id:
            raise ValidationError("conversation_id is required to insert a message")

        timestamp = record.timestamp if record.timestamp is not None else now_ms()
        message_id = record.message_id or generate_message_id(timestamp)

        with self._transaction() as db:
            if db.get(Message, message_id) is not None:
                raise ValidationError(f"Message {message_id} already exists")

            db.add(
                Message(
                    message_id=message_id,
                    conversation_id=record.conversation_id,
                    sender_id=record.sender_id,
                    receiver_id=record.receiver_id,
                    message_text=record.message_text,
                    message_type=record.message_type.value,
                    image_uri=record.image_uri,
                    transaction_request_data=record.transaction_request_data,
                    delivery_status=record.delivery_status.value,
                    is_read=record.is_read,
                    is_deleted=False,
                    edit_history=[],
                    timestamp=timestamp,
                    created_at=now_ms(),
                )
            )

            if update_conversation or increment_unread:
                conversation = db.get(Conversation, record.conversation_id)
                if conversation is None:
                    raise NotFoundError(f"Conversation {record.conversation_id} not found")
                shown = conversation.last_message_timestamp
                if update_conversation and (shown is None or timestamp >= shown):
                    conversation.last_message_text = record.message_text
                    conversation.last_message_timestamp = timestamp
                if increment_unread:
                    conversation.unread_count = Conversation.unread_count + 1
                conversation.updated_at = now_ms()

        return message_id

    def get_message(self, message_id: str) -> Message | None:
        """Direct lookup; soft-deleted rows are returned too."""
        with self._transaction() as db:
            return db.get(Message, message_id)

    def list_messages(
        self, conversation_id: str, limit: int = 50, offset: int = 0
    ) -> list[Message]:
        """Return visible messages newest first, by logical timestamp."""
        if limit <= 0 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")

        with self._transaction() as db:
            return list(
                db.scalars(
                    select(Message)
                    .where(
                        Message.conversation_id == conversation_id,
                        Message.is_deleted.is_(False),
                    )
                    .order_by(
                        Message.timestamp.desc(),
                        Message.created_at.desc(),
                        Message.message_id.desc(),
                    )
                    .limit(limit)
                    .offset(offset)
                )
            )

    def set_message_status(self, message_id: str, status: DeliveryStatus) -> bool:
        """Advance a message's delivery status.

        Returns False without writing when the move would not go forward
        (duplicate or late receipts).
        """
        with self._transaction() as db:
            message = self._require_message(db, message_id)
            return self._advance_status(message, status)

    @staticmethod
    def _advance_status(message: Message, status: DeliveryStatus) -> bool:
        current = message.status
        if not current.can_advance_to(status):
            logger.debug(
                "Ignoring status change %s -> %s for message %s",
                current.value,
                status.value,
                message.message_id,
            )
            return False
        message.delivery_status = status.value
        return True

    def edit_message(self, message_id: str, new_text: str) -> Message:
        """Overwrite a message's text, appending the previous text to its edit history."""
        with self._transaction() as db:
            message = self._require_message(db, message_id)
            if message.is_deleted:
                raise NotFoundError(f"Message {message_id} has been deleted")

            # Reassign so the JSON column is flagged dirty.
            message.edit_history = [
                *(message.edit_history or []),
                {"text": message.message_text, "edited_at": now_ms()},
            ]
            message.message_text = new_text
            return message

    def soft_delete_message(self, message_id: str) -> bool:
        """Hide a message from listings; returns False if it was already deleted."""
        with self._transaction() as db:
            message = self._require_message(db, message_id)
            if message.is_deleted:
                return False
            message.is_deleted = True
            message.deleted_at = now_ms()
            return True

    def mark_conversation_read(self, conversation_id: str) -> list[Message]:
        """Mark every unread message read and zero the unread counter together.

        Returns the messages that changed.
        """
        with self._transaction() as db:
            conversation = db.get(Conversation, conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")

            unread = list(
                db.scalars(
                    select(Message).where(
                        Message.conversation_id == conversation_id,
                        Message.is_read.is_(False),
                    )
                )
            )
            for message in unread:
                message.is_read = True
            conversation.unread_count = 0
            conversation.updated_at = now_ms()
            return unread

    @staticmethod
    def _require_message(db: Session, message_id: str) -> Message:
        message = db.get(Message, message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found")
        return message

    # ---- retry queue ----

    def enqueue_retry(
        self,
        message_id: str,
        receiver_id: str,
        payload: Mapping[str, Any],
        *,
        mark_queued: bool = False,
    ) -> int:
        """Queue a failed send for later and return the queue id.

        A message is queued at most once; re-enqueueing returns the existing
        entry. With ``mark_queued`` the message status moves to ``queued`` in
        the same transaction.
        """
        if not message_id or not receiver_id:
            raise ValidationError("message_id and receiver_id are required to queue a message")

        with self._transaction() as db:
            message = db.get(Message, message_id)
            conversation_id = payload.get("conversationId") or (
                message.conversation_id if message is not None else None
            )
            if not conversation_id:
                raise ValidationError(f"Cannot resolve conversation for message {message_id}")

            entry = db.scalar(
                select(RetryQueueEntry).where(RetryQueueEntry.message_id == message_id)
            )
            if entry is None:
                entry = RetryQueueEntry(
                    message_id=message_id,
                    conversation_id=conversation_id,
                    receiver_id=receiver_id,
                    message_data=dict(payload),
                    retry_count=0,
                    created_at=now_ms(),
                )
                db.add(entry)
                db.flush()

            if mark_queued:
                if message is None:
                    raise NotFoundError(f"Message {message_id} not found")
                self._advance_status(message, DeliveryStatus.QUEUED)

            return entry.queue_id

    def list_retryable(self, max_attempts: int) -> list[RetryQueueEntry]:
        """Entries still below the attempt ceiling, oldest first."""
        with self._transaction() as db:
            return list(
                db.scalars(
                    select(RetryQueueEntry)
                    .where(RetryQueueEntry.retry_count < max_attempts)
                    .order_by(RetryQueueEntry.created_at, RetryQueueEntry.queue_id)
                )
            )

    def list_exhausted(self, max_attempts: int) -> list[RetryQueueEntry]:
        """Entries that reached the attempt ceiling and are skipped by sweeps."""
        with self._transaction() as db:
            return list(
                db.scalars(
                    select(RetryQueueEntry)
                    .where(RetryQueueEntry.retry_count >= max_attempts)
                    .order_by(RetryQueueEntry.created_at, RetryQueueEntry.queue_id)
                )
            )

    def list_queue(self) -> list[RetryQueueEntry]:
        with self._transaction() as db:
            return list(
                db.scalars(
                    select(RetryQueueEntry).order_by(
                        RetryQueueEntry.created_at, RetryQueueEntry.queue_id
                    )
                )
            )

    def get_retry_for_message(self, message_id: str) -> RetryQueueEntry | None:
        with self._transaction() as db:
            return db.scalar(
                select(RetryQueueEntry).where(RetryQueueEntry.message_id == message_id)
            )

    def remove_retry(self, queue_id: int) -> bool:
        """Delete a queue entry; returns False if it was already gone."""
        with self._transaction() as db:
            result = db.execute(delete(RetryQueueEntry).where(RetryQueueEntry.queue_id == queue_id))
            return result.rowcount > 0

    def resolve_retry(self, queue_id: int) -> bool:
        """Remove a queue entry and mark its message ``sent`` in one transaction."""
        with self._transaction() as db:
            entry = db.get(RetryQueueEntry, queue_id)
            if entry is None:
                return False
            message = db.get(Message, entry.message_id)
            if message is not None:
                self._advance_status(message, DeliveryStatus.SENT)
            db.delete(entry)
            return True

    def increment_retry_attempt(self, queue_id: int) -> int:
        """Record a failed resend and return the new attempt count."""
        with self._transaction() as db:
            entry = db.get(RetryQueueEntry, queue_id)
            if entry is None:
                raise NotFoundError(f"Queue entry {queue_id} not found")
            entry.retry_count = RetryQueueEntry.retry_count + 1
            entry.last_retry_at = now_ms()
            db.flush()
            return db.scalar(
                select(RetryQueueEntry.retry_count).where(RetryQueueEntry.queue_id == queue_id)
            )

    def reset_retry(self, queue_id: int) -> None:
        """Put an exhausted entry back into the sweep rotation."""
        with self._transaction() as db:
            entry = db.get(RetryQueueEntry, queue_id)
            if entry is None:
                raise NotFoundError(f"Queue entry {queue_id} not found")
            entry.retry_count = 0

    # ---- user cache ----

    def cache_user(self, profile: PeerProfile) -> None:
        now = now_ms()
        with self._transaction() as db:
            entry = db.get(UserCacheEntry, profile.user_id)
            if entry is None:
                entry = UserCacheEntry(user_id=profile.user_id)
                db.add(entry)
            entry.username = profile.username
            entry.display_name = profile.display_name
            entry.phone_number = profile.phone_number
            entry.photo_url = profile.photo_url
            entry.is_online = profile.is_online
            entry.last_seen = profile.last_seen if profile.last_seen is not None else now
            entry.cached_at = now

    def get_cached_user(self, user_id: str, ttl_seconds: int) -> CachedUser | None:
        """Return the cached profile, flagged stale once older than ``ttl_seconds``."""
        with self._transaction() as db:
            entry = db.get(UserCacheEntry, user_id)
            if entry is None:
                return None
            profile = PeerProfile(
                user_id=entry.user_id,
                username=entry.username,
                display_name=entry.display_name,
                phone_number=entry.phone_number,
                photo_url=entry.photo_url,
                is_online=entry.is_online,
                last_seen=entry.last_seen,
            )
            age_ms = now_ms() - entry.cached_at
            return CachedUser(
                profile=profile,
                cached_at=entry.cached_at,
                is_stale=age_ms > ttl_seconds * 1000,
            )

    # ---- maintenance ----

    def clear_all(self) -> None:
        """Wipe every table; used on logout or data reset."""
        with self._transaction() as db:
            for model in (RetryQueueEntry, Message, Conversation, UserCacheEntry):
                db.execute(delete(model))
        logger.info("Chat data cleared")
