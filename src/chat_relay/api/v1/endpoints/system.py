"""System endpoints: connectivity signals, configuration and diagnostics."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from chat_relay.core.settings import settings

from ..dependencies import ChannelDep, PipelineDep, RetryWorkerDep

router = APIRouter(prefix="/system", tags=["system"])


class ConnectivityChange(BaseModel):
    """Network state reported by the device."""

    is_connected: bool


@router.post("/connectivity")
async def report_connectivity(
    change: ConnectivityChange, worker: RetryWorkerDep
) -> dict[str, bool]:
    """Record a network-state change; regaining connectivity triggers a retry sweep."""
    triggered = await worker.notify_connectivity(change.is_connected)
    return {"is_connected": change.is_connected, "sweep_triggered": triggered}


class PushTokenUpdate(BaseModel):
    """Push address issued by the transport for this device."""

    token: str = Field(..., min_length=1)


@router.post("/push-token")
async def refresh_push_token(update: PushTokenUpdate, pipeline: PipelineDep) -> dict[str, bool]:
    """Register a rotated push token with the backend."""
    registered = await pipeline.on_push_token_refresh(update.token)
    return {"registered": registered}


@router.get("/config")
async def get_public_config() -> dict[str, Any]:
    """Return a sanitized snapshot of runtime configuration (no tokens)."""
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "relay": {
            "api_url": settings.api_url,
            "http_timeout_seconds": settings.http_timeout_seconds,
        },
        "retry": {
            "max_attempts": settings.retry_max_attempts,
            "sweep_enabled": settings.retry_sweep_enabled,
            "sweep_interval_seconds": settings.retry_sweep_interval_seconds,
        },
        "user_cache_ttl_seconds": settings.user_cache_ttl_seconds,
    }


@router.get("/delivery")
async def get_delivery_status(channel: ChannelDep) -> dict[str, Any]:
    """Report relay client configuration and request metrics."""
    return await channel.health_check()


@router.get("/notifications")
async def list_notifications(pipeline: PipelineDep) -> list[dict[str, Any]]:
    """Recent local notifications, newest last."""
    return [
        {
            "title": n.title,
            "body": n.body,
            "channel_id": n.channel_id,
            "data": n.data,
            "created_at": n.created_at,
        }
        for n in pipeline.notifier.recent()
    ]
