"""Tests for push payload and conversation update parsing."""

import pytest
from pydantic import ValidationError

from chat_relay.models import MessageType
from chat_relay.schemas.conversation import ConversationUpdate
from chat_relay.schemas.push import PushPayload, PushType


def test_push_payload_reads_transport_strings():
    """Push transports deliver every value as a string."""
    payload = PushPayload.model_validate(
        {
            "type": "chat_message",
            "senderId": "bob",
            "senderName": "Bob",
            "messageId": "msg_1_abc",
            "messageText": "hi",
            "messageType": "image",
            "imageUri": "https://cdn.example/1.jpg",
            "timestamp": "1700000000000",
            "unexpected": "ignored",
        }
    )

    assert payload.type is PushType.CHAT_MESSAGE
    assert payload.sender_id == "bob"
    assert payload.message_type is MessageType.IMAGE
    assert payload.timestamp == 1_700_000_000_000


@pytest.mark.parametrize("raw", [None, ""])
def test_push_payload_defaults(raw):
    payload = PushPayload.model_validate(
        {"type": "chat_message", "messageType": raw, "timestamp": raw}
    )

    assert payload.message_type is MessageType.TEXT
    assert payload.timestamp is None
    assert payload.message_text == ""


def test_push_payload_rejects_unknown_type():
    with pytest.raises(ValidationError):
        PushPayload.model_validate({"type": "typing_indicator"})


@pytest.mark.parametrize("raw", ["inf", "nan", "1e400", "soon"])
def test_push_payload_rejects_unusable_timestamp(raw):
    with pytest.raises(ValidationError, match="unusable timestamp"):
        PushPayload.model_validate({"type": "chat_message", "timestamp": raw})


def test_conversation_update_accepts_increment():
    assert ConversationUpdate(unread_count="increment").unread_count == "increment"
    assert ConversationUpdate(unread_count=0).unread_count == 0
    with pytest.raises(ValidationError):
        ConversationUpdate(unread_count="double")
