from unittest.mock import AsyncMock

import httpx
import pytest

from chat_relay.core.errors import AuthError, TransportError
from chat_relay.core.settings import settings
from chat_relay.models import DeliveryStatus
from chat_relay.services.auth import CallbackTokenProvider, StaticTokenProvider
from chat_relay.services.delivery import (
    RECEIPT_PATH,
    SEND_PATH,
    TOKEN_PATH,
    DeliveryConfig,
    HttpDeliveryChannel,
    load_delivery_config,
)
from tests.conftest import ALICE, BOB, RELAY_BASE_URL, TEST_TOKEN, RelayRecorder

PAYLOAD = {"messageId": "msg_1_abc", "senderId": ALICE, "messageText": "hi"}


@pytest.mark.asyncio
async def test_send_posts_payload_with_receiver(channel: HttpDeliveryChannel, relay: RelayRecorder):
    assert await channel.send(BOB, PAYLOAD) is True

    [request] = relay.requests
    assert request.method == "POST"
    assert str(request.url) == f"{RELAY_BASE_URL}{SEND_PATH}"
    assert request.headers["Authorization"] == f"Bearer {TEST_TOKEN}"
    assert relay.bodies(SEND_PATH) == [{**PAYLOAD, "receiverId": BOB}]


@pytest.mark.asyncio
async def test_send_non_2xx_returns_false(channel: HttpDeliveryChannel, relay: RelayRecorder):
    relay.status_code = 503

    assert await channel.send(BOB, PAYLOAD) is False

    metrics = channel.get_metrics()
    assert metrics["error_count"] == 1
    assert metrics["error_counts_by_type"] == {"http_503": 1}


@pytest.mark.asyncio
async def test_send_timeout_raises_transport_error(
    channel: HttpDeliveryChannel, relay: RelayRecorder
):
    relay.timeout = True

    with pytest.raises(TransportError, match="timed out"):
        await channel.send(BOB, PAYLOAD)

    assert channel.get_metrics()["error_counts_by_type"] == {"timeout": 1}


@pytest.mark.asyncio
async def test_send_offline_raises_transport_error(
    channel: HttpDeliveryChannel, relay: RelayRecorder
):
    relay.offline = True

    with pytest.raises(TransportError):
        await channel.send(BOB, PAYLOAD)

    assert channel.get_metrics()["error_counts_by_type"] == {"network_error": 1}


@pytest.mark.asyncio
async def test_send_without_token_raises_auth_error(
    channel: HttpDeliveryChannel, relay: RelayRecorder, token_provider: StaticTokenProvider
):
    token_provider.set_token(None)

    with pytest.raises(AuthError):
        await channel.send(BOB, PAYLOAD)

    assert relay.requests == []


@pytest.mark.asyncio
async def test_callback_token_provider_is_consulted_per_request(relay: RelayRecorder):
    callback = AsyncMock(side_effect=["first-token", "second-token"])
    channel = HttpDeliveryChannel(
        DeliveryConfig(base_url=RELAY_BASE_URL, timeout_seconds=1.0),
        CallbackTokenProvider(callback),
        transport=httpx.MockTransport(relay),
    )

    await channel.send(BOB, PAYLOAD)
    await channel.send(BOB, PAYLOAD)

    assert [r.headers["Authorization"] for r in relay.requests] == [
        "Bearer first-token",
        "Bearer second-token",
    ]
    await channel.close()


@pytest.mark.asyncio
async def test_send_receipt_posts_status(channel: HttpDeliveryChannel, relay: RelayRecorder):
    await channel.send_receipt(BOB, "msg_1_abc", DeliveryStatus.READ)

    assert relay.bodies(RECEIPT_PATH) == [
        {"senderId": BOB, "messageId": "msg_1_abc", "status": "read"}
    ]


@pytest.mark.asyncio
async def test_send_receipt_never_raises(
    channel: HttpDeliveryChannel, relay: RelayRecorder, token_provider: StaticTokenProvider
):
    relay.offline = True
    await channel.send_receipt(BOB, "msg_1_abc", DeliveryStatus.DELIVERED)

    token_provider.clear()
    await channel.send_receipt(BOB, "msg_1_abc", DeliveryStatus.DELIVERED)


@pytest.mark.asyncio
async def test_register_token(channel: HttpDeliveryChannel, relay: RelayRecorder):
    assert await channel.register_token("fcm-abc") is True
    assert relay.bodies(TOKEN_PATH) == [{"fcmToken": "fcm-abc"}]

    relay.status_code = 401
    assert await channel.register_token("fcm-abc") is False

    relay.offline = True
    assert await channel.register_token("fcm-abc") is False


@pytest.mark.asyncio
async def test_dispatch_routes_by_context(channel: HttpDeliveryChannel):
    foreground = AsyncMock()
    background = AsyncMock()
    channel.on_foreground_message(foreground)
    channel.on_background_message(background)

    assert await channel.dispatch(ALICE, {"type": "chat_message"}) == 1
    assert await channel.dispatch(ALICE, {"type": "read_receipt"}, background=True) == 1

    foreground.assert_awaited_once_with(ALICE, {"type": "chat_message"})
    background.assert_awaited_once_with(ALICE, {"type": "read_receipt"})


@pytest.mark.asyncio
async def test_dispatch_isolates_failing_handlers(channel: HttpDeliveryChannel):
    failing = AsyncMock(side_effect=RuntimeError("handler bug"))
    working = AsyncMock()
    channel.on_foreground_message(failing)
    channel.on_foreground_message(working)

    assert await channel.dispatch(ALICE, {"type": "chat_message"}) == 1
    working.assert_awaited_once()


@pytest.mark.asyncio
async def test_dispatch_without_handlers_drops_payload(channel: HttpDeliveryChannel):
    assert await channel.dispatch(ALICE, {"type": "chat_message"}, background=True) == 0


@pytest.mark.asyncio
async def test_registering_same_handler_twice_is_ignored(channel: HttpDeliveryChannel):
    handler = AsyncMock()
    channel.on_foreground_message(handler)
    channel.on_foreground_message(handler)

    await channel.dispatch(ALICE, {"type": "chat_message"})

    handler.assert_awaited_once()


@pytest.mark.asyncio
async def test_health_check_reports_config_and_metrics(
    channel: HttpDeliveryChannel, relay: RelayRecorder
):
    channel.on_foreground_message(AsyncMock())
    await channel.send(BOB, PAYLOAD)

    health = await channel.health_check()

    assert health["base_url"] == RELAY_BASE_URL
    assert health["authenticated"] is True
    assert health["foreground_handlers"] == 1
    assert health["background_handlers"] == 0
    assert health["metrics"]["success_count"] == 1
    assert health["metrics"]["endpoint_counts"] == {f"POST {SEND_PATH}": 1}
    assert set(health["metrics"]) == {
        "request_count",
        "success_count",
        "error_count",
        "error_counts_by_type",
        "endpoint_counts",
    }


@pytest.mark.asyncio
async def test_close_releases_client(channel: HttpDeliveryChannel, relay: RelayRecorder):
    await channel.send(BOB, PAYLOAD)
    assert channel._client is not None

    await channel.close()

    assert channel._client is None
    assert await channel.send(BOB, PAYLOAD) is True


def test_load_delivery_config_uses_settings(mocker):
    mocker.patch.object(settings, "api_url", "https://relay.example/api")
    mocker.patch.object(settings, "http_timeout_seconds", 3.5)

    config = load_delivery_config()

    assert config == DeliveryConfig(base_url="https://relay.example/api", timeout_seconds=3.5)
