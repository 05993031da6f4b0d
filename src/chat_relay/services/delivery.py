"""Delivery channel between this device and the backend relay.

This module provides the push-transport boundary used by the message
pipeline. It includes:

- An abstract ``DeliveryChannel`` contract
- ``HttpDeliveryChannel``, an httpx client for the relay endpoints
- Foreground/background inbound handler registration and dispatch
- Metrics collection for monitoring
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from chat_relay.core.errors import AuthError, TransportError
from chat_relay.core.settings import settings
from chat_relay.models.message import DeliveryStatus
from chat_relay.services.auth import TokenProvider, token_provider_from_settings

# Configure logger for this module
logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_MULTIPLE_CHOICES = 300

SEND_PATH = "/messages/send"
RECEIPT_PATH = "/messages/delivery-receipt"
TOKEN_PATH = "/users/update-fcm-token"

PushHandler = Callable[[str, Mapping[str, Any]], Awaitable[None]]


@dataclass
class DeliveryMetrics:
    """Request counters for relay calls."""

    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    endpoint_counts: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record_request(self, endpoint: str, success: bool, error_type: str | None = None) -> None:
        self.request_count += 1
        self.endpoint_counts[endpoint] += 1
        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1


@dataclass(frozen=True)
class DeliveryConfig:
    """Immutable configuration for relay operations."""

    base_url: str
    timeout_seconds: float


def load_delivery_config() -> DeliveryConfig:
    """Build configuration object from global settings."""
    return DeliveryConfig(
        base_url=settings.api_url,
        timeout_seconds=float(settings.http_timeout_seconds),
    )


class DeliveryChannel(ABC):
    """Push-transport boundary: outbound relay calls and inbound push routing.

    Inbound pushes arrive in one of two contexts (app in foreground, or
    woken in the background); both are routed to handlers registered here.
    """

    def __init__(self) -> None:
        self._foreground_handlers: list[PushHandler] = []
        self._background_handlers: list[PushHandler] = []

    @abstractmethod
    async def send(self, receiver_id: str, payload: Mapping[str, Any]) -> bool:
        """Relay a message; True when the backend accepted it.

        Raises:
            AuthError: no bearer token is available.
            TransportError: the relay could not be reached or timed out.
        """

    @abstractmethod
    async def send_receipt(self, sender_id: str, message_id: str, status: DeliveryStatus) -> None:
        """Best-effort receipt back to the original sender; never raises."""

    @abstractmethod
    async def register_token(self, token: str) -> bool:
        """Tell the backend which push address reaches this device."""

    def on_foreground_message(self, handler: PushHandler) -> None:
        if handler not in self._foreground_handlers:
            self._foreground_handlers.append(handler)

    def on_background_message(self, handler: PushHandler) -> None:
        if handler not in self._background_handlers:
            self._background_handlers.append(handler)

    async def dispatch(
        self, current_user_id: str, data: Mapping[str, Any], *, background: bool = False
    ) -> int:
        """Route an inbound push to the handlers of its delivery context.

        Returns the number of handlers that ran without raising.
        """
        handlers = self._background_handlers if background else self._foreground_handlers
        context = "background" if background else "foreground"
        if not handlers:
            logger.warning("No %s push handler registered; dropping payload", context)
            return 0

        logger.debug("%s push received: type=%s", context.capitalize(), data.get("type"))
        handled = 0
        for handler in handlers:
            try:
                await handler(current_user_id, data)
                handled += 1
            except Exception:
                logger.error("%s push handler failed", context.capitalize(), exc_info=True)
        return handled

    async def health_check(self) -> dict[str, Any]:
        """Report which inbound contexts have handlers."""
        return {
            "foreground_handlers": len(self._foreground_handlers),
            "background_handlers": len(self._background_handlers),
        }

    async def close(self) -> None:
        """Release transport resources."""


class HttpDeliveryChannel(DeliveryChannel):
    """httpx client wrapper for the backend relay endpoints."""

    def __init__(
        self,
        config: DeliveryConfig | None = None,
        token_provider: TokenProvider | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self.config = config or load_delivery_config()
        self.token_provider = token_provider or token_provider_from_settings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._metrics = DeliveryMetrics()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def _build_auth_headers(self) -> dict[str, str]:
        token = await self.token_provider.get_token()
        if not token:
            raise AuthError("User not authenticated")
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        json_data: Any | None = None

    async def _request(self, params: RequestParams) -> httpx.Response:
        client = await self._ensure_client()
        headers = await self._build_auth_headers()

        endpoint = f"{params.method} {params.path}"
        success = False
        error_type = None

        try:
            response = await client.request(
                params.method,
                params.path,
                json=params.json_data,
                headers=headers,
            )
            success = HTTP_OK <= response.status_code < HTTP_MULTIPLE_CHOICES
            if not success:
                error_type = f"http_{response.status_code}"
        except httpx.TimeoutException as exc:
            error_type = "timeout"
            raise TransportError(f"Relay request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            error_type = "network_error"
            raise TransportError(f"Relay request failed: {exc}") from exc
        finally:
            self._metrics.record_request(endpoint, success, error_type)

        return response

    async def send(self, receiver_id: str, payload: Mapping[str, Any]) -> bool:
        body = {**payload, "receiverId": receiver_id}
        response = await self._request(
            self.RequestParams(method="POST", path=SEND_PATH, json_data=body)
        )
        if HTTP_OK <= response.status_code < HTTP_MULTIPLE_CHOICES:
            logger.info("Message %s relayed to backend", payload.get("messageId"))
            return True

        logger.warning(
            "Relay rejected message %s with status %s",
            payload.get("messageId"),
            response.status_code,
        )
        return False

    async def send_receipt(self, sender_id: str, message_id: str, status: DeliveryStatus) -> None:
        try:
            await self._request(
                self.RequestParams(
                    method="POST",
                    path=RECEIPT_PATH,
                    json_data={
                        "senderId": sender_id,
                        "messageId": message_id,
                        "status": DeliveryStatus(status).value,
                    },
                )
            )
        except TransportError as exc:
            logger.warning("Error sending %s receipt for %s: %s", status, message_id, exc)

    async def register_token(self, token: str) -> bool:
        try:
            response = await self._request(
                self.RequestParams(method="POST", path=TOKEN_PATH, json_data={"fcmToken": token})
            )
        except TransportError as exc:
            logger.warning("Error updating push token: %s", exc)
            return False

        if HTTP_OK <= response.status_code < HTTP_MULTIPLE_CHOICES:
            logger.info("Push token registered with backend")
            return True
        logger.error("Backend rejected push token with status %s", response.status_code)
        return False

    async def health_check(self) -> dict[str, Any]:
        """Report configuration and request metrics without calling the relay."""
        return {
            **await super().health_check(),
            "base_url": self.config.base_url,
            "timeout_seconds": self.config.timeout_seconds,
            "authenticated": bool(await self.token_provider.get_token()),
            "metrics": self.get_metrics(),
        }

    def get_metrics(self) -> dict[str, Any]:
        return {
            "request_count": self._metrics.request_count,
            "success_count": self._metrics.success_count,
            "error_count": self._metrics.error_count,
            "error_counts_by_type": dict(self._metrics.error_counts_by_type),
            "endpoint_counts": dict(self._metrics.endpoint_counts),
        }

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _DeliveryChannelSingleton:
    """Singleton wrapper for HttpDeliveryChannel."""

    _instance: HttpDeliveryChannel | None = None

    @classmethod
    def get_instance(cls) -> HttpDeliveryChannel:
        if cls._instance is None:
            cls._instance = HttpDeliveryChannel()
        return cls._instance


def get_delivery_channel() -> HttpDeliveryChannel:
    """Return a singleton delivery channel instance."""
    return _DeliveryChannelSingleton.get_instance()
