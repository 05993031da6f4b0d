# tests/conftest.py
from __future__ import annotations

import json
import os
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CHAT_RELAY_RETRY_SWEEP_ENABLED"] = "false"
os.environ.pop("CHAT_RELAY_PUSH_TOKEN", None)

from chat_relay.api.v1.dependencies import (
    get_channel_dep,
    get_pipeline_dep,
    get_retry_worker_dep,
)
from chat_relay.db.session import Base
from chat_relay.main import app as fastapi_app
from chat_relay.services.auth import StaticTokenProvider
from chat_relay.services.delivery import DeliveryChannel, DeliveryConfig, HttpDeliveryChannel
from chat_relay.services.notifications import ChatEvents, Notifier
from chat_relay.services.pipeline import MessagePipeline
from chat_relay.services.retry_worker import RetrySweepWorker
from chat_relay.services.store import MessageStore

TEST_DB_URL = "sqlite://"
RELAY_BASE_URL = "https://relay.test/api"
TEST_TOKEN = "test-token"

ALICE = "alice"
BOB = "bob"


class RelayRecorder:
    """In-process stand-in for the backend relay, mounted via ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.offline = False
        self.timeout = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("Network unreachable", request=request)
        if self.timeout:
            raise httpx.ReadTimeout("Relay timed out", request=request)
        return httpx.Response(self.status_code, json={"success": self.status_code < 300})

    def bodies(self, path: str) -> list[dict[str, Any]]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path.endswith(path)
        ]


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def store(session_factory: sessionmaker[Session]) -> MessageStore:
    return MessageStore(session_factory)


@pytest.fixture()
def relay() -> RelayRecorder:
    return RelayRecorder()


@pytest.fixture()
def token_provider() -> StaticTokenProvider:
    return StaticTokenProvider(TEST_TOKEN)


@pytest.fixture()
def channel(relay: RelayRecorder, token_provider: StaticTokenProvider) -> HttpDeliveryChannel:
    """Real relay client whose requests never leave the process."""
    return HttpDeliveryChannel(
        DeliveryConfig(base_url=RELAY_BASE_URL, timeout_seconds=1.0),
        token_provider,
        transport=httpx.MockTransport(relay),
    )


@pytest.fixture()
def mock_channel() -> AsyncMock:
    channel = AsyncMock(spec=DeliveryChannel)
    channel.send.return_value = True
    channel.register_token.return_value = True
    return channel


@pytest.fixture()
def events() -> ChatEvents:
    return ChatEvents()


@pytest.fixture()
def notifier() -> Notifier:
    return Notifier(history=10)


@pytest.fixture()
def pipeline(
    store: MessageStore,
    channel: HttpDeliveryChannel,
    notifier: Notifier,
    events: ChatEvents,
) -> MessagePipeline:
    return MessagePipeline(
        store,
        channel,
        notifier=notifier,
        events=events,
        max_attempts=3,
        user_cache_ttl_seconds=3600,
    )


@pytest.fixture()
def mock_pipeline(
    store: MessageStore,
    mock_channel: AsyncMock,
    notifier: Notifier,
    events: ChatEvents,
) -> MessagePipeline:
    """Pipeline over the real store with a fully mocked delivery channel."""
    return MessagePipeline(
        store,
        mock_channel,
        notifier=notifier,
        events=events,
        max_attempts=3,
        user_cache_ttl_seconds=3600,
    )


@pytest.fixture()
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(
    app: FastAPI,
    pipeline: MessagePipeline,
    channel: HttpDeliveryChannel,
) -> Iterator[TestClient]:
    channel.on_foreground_message(pipeline.handle_incoming)
    channel.on_background_message(pipeline.handle_incoming)
    worker = RetrySweepWorker(pipeline, interval_seconds=60)

    app.dependency_overrides[get_pipeline_dep] = lambda: pipeline
    app.dependency_overrides[get_channel_dep] = lambda: channel
    app.dependency_overrides[get_retry_worker_dep] = lambda: worker
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def alice_headers() -> dict[str, str]:
    """Headers identifying the signed-in user."""
    return {"X-User-Id": ALICE}


def chat_push(
    message_id: str,
    *,
    sender_id: str = BOB,
    receiver_id: str = ALICE,
    text: str = "hello",
    timestamp: int | str = 1_700_000_000_000,
    sender_name: str = "Bob",
) -> dict[str, Any]:
    """Build the data section of a ``chat_message`` push as the transport delivers it."""
    return {
        "type": "chat_message",
        "conversationId": "_".join(sorted((sender_id, receiver_id))),
        "senderId": sender_id,
        "senderName": sender_name,
        "messageId": message_id,
        "messageText": text,
        "messageType": "text",
        "timestamp": str(timestamp),
    }
