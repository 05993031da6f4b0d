# tests/v1/test_push.py
"""Tests for inbound push delivery endpoints."""

from fastapi import status
from fastapi.testclient import TestClient

from chat_relay.services.store import MessageStore
from tests.conftest import chat_push


def test_foreground_push_stores_message(
    client: TestClient, alice_headers: dict[str, str], store: MessageStore
) -> None:
    r = client.post("/api/v1/push", json=chat_push("m1", text="hey"), headers=alice_headers)

    assert r.status_code == status.HTTP_202_ACCEPTED
    assert r.json() == {"status": "accepted", "handled": 1}
    message = store.get_message("m1")
    assert message.delivery_status == "delivered"
    assert message.message_text == "hey"

    [conversation] = client.get("/api/v1/conversations").json()
    assert conversation["unread_count"] == 1
    assert conversation["last_message_text"] == "hey"


def test_background_push_is_handled_the_same_way(
    client: TestClient, alice_headers: dict[str, str], store: MessageStore
) -> None:
    r = client.post("/api/v1/push/background", json=chat_push("m1"), headers=alice_headers)

    assert r.status_code == status.HTTP_202_ACCEPTED
    assert store.get_message("m1") is not None


def test_duplicate_push_counts_once(
    client: TestClient, alice_headers: dict[str, str], store: MessageStore
) -> None:
    client.post("/api/v1/push", json=chat_push("m1"), headers=alice_headers)
    client.post("/api/v1/push/background", json=chat_push("m1"), headers=alice_headers)

    assert store.get_unread_count("alice_bob") == 1


def test_receipt_push_advances_status(
    client: TestClient, alice_headers: dict[str, str]
) -> None:
    r = client.post(
        "/api/v1/messages", json={"receiver_id": "bob", "message_text": "hi"}, headers=alice_headers
    )
    message_id = r.json()["message_id"]

    client.post(
        "/api/v1/push",
        json={"type": "read_receipt", "messageId": message_id},
        headers=alice_headers,
    )

    assert client.get(f"/api/v1/messages/{message_id}").json()["delivery_status"] == "read"


def test_unrecognized_push_is_accepted_and_dropped(
    client: TestClient, alice_headers: dict[str, str], store: MessageStore
) -> None:
    r = client.post("/api/v1/push", json={"type": "typing", "senderId": "bob"}, headers=alice_headers)

    assert r.status_code == status.HTTP_202_ACCEPTED
    assert store.list_conversations() == []


def test_push_requires_user(client: TestClient) -> None:
    r = client.post("/api/v1/push", json=chat_push("m1"))

    assert r.status_code == status.HTTP_401_UNAUTHORIZED
