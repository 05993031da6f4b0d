"""Inbound push delivery endpoints.

The platform push service forwards the data section of each push here, in
either delivery context.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, status

from ..dependencies import ChannelDep, CurrentUserDep

router = APIRouter(prefix="/push", tags=["push"])


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def receive_foreground_push(
    current_user_id: CurrentUserDep,
    channel: ChannelDep,
    data: dict[str, Any] = Body(...),
) -> dict[str, object]:
    handled = await channel.dispatch(current_user_id, data)
    return {"status": "accepted", "handled": handled}


@router.post("/background", status_code=status.HTTP_202_ACCEPTED)
async def receive_background_push(
    current_user_id: CurrentUserDep,
    channel: ChannelDep,
    data: dict[str, Any] = Body(...),
) -> dict[str, object]:
    handled = await channel.dispatch(current_user_id, data, background=True)
    return {"status": "accepted", "handled": handled}
