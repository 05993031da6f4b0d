"""Message endpoints for the chat relay API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from chat_relay.schemas.message import (
    MessageEdit,
    MessageResponse,
    OutgoingMessage,
    SendResponse,
)

from ..dependencies import CurrentUserDep, PipelineDep, StoreDep

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: OutgoingMessage,
    current_user_id: CurrentUserDep,
    pipeline: PipelineDep,
    store: StoreDep,
) -> SendResponse:
    """Send a message; it is stored locally even when the relay is unreachable."""
    message_id = await pipeline.send_message(current_user_id, message_data)
    message = store.get_message(message_id)
    return SendResponse(
        message_id=message_id,
        delivery_status=message.delivery_status if message is not None else "sending",
    )


@router.get("/{message_id}")
async def get_message(message_id: str, store: StoreDep) -> MessageResponse:
    message = store.get_message(message_id)
    if message is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    return MessageResponse.model_validate(message)


@router.patch("/{message_id}")
async def edit_message(message_id: str, edit: MessageEdit, store: StoreDep) -> MessageResponse:
    """Edit a message's text, keeping the previous text in its history."""
    message = store.edit_message(message_id, edit.message_text)
    return MessageResponse.model_validate(message)


@router.delete("/{message_id}")
async def delete_message(message_id: str, store: StoreDep) -> dict[str, object]:
    """Soft-delete a message; deleting twice is harmless."""
    deleted = store.soft_delete_message(message_id)
    return {"message_id": message_id, "deleted": deleted}
