"""Bearer-token sources for outbound relay calls."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from chat_relay.core.settings import settings


class TokenProvider(ABC):
    """Supplies the bearer token attached to relay requests."""

    @abstractmethod
    async def get_token(self) -> str | None:
        """Return the current token, or None when the user is signed out."""


class StaticTokenProvider(TokenProvider):
    """Token held in memory, replaced whenever the auth layer refreshes it."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    async def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class CallbackTokenProvider(TokenProvider):
    """Delegates to an async callable, e.g. an identity SDK's ``get_id_token``."""

    def __init__(self, callback: Callable[[], Awaitable[str | None]]) -> None:
        self._callback = callback

    async def get_token(self) -> str | None:
        return await self._callback()


def token_provider_from_settings() -> StaticTokenProvider:
    return StaticTokenProvider(settings.auth_token)
