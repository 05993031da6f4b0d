"""Conversation endpoints for the chat relay API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Response, status

from chat_relay.schemas.conversation import (
    ConversationCreate,
    ConversationResponse,
    ConversationUpdate,
)
from chat_relay.schemas.message import MessageResponse

from ..dependencies import CurrentUserDep, PipelineDep, StoreDep

router = APIRouter(prefix="/conversations", tags=["conversations"])


def _get_or_404(store: StoreDep, conversation_id: str) -> ConversationResponse:
    conversation = store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    return ConversationResponse.model_validate(conversation)


@router.get("")
async def list_conversations(
    store: StoreDep,
    q: str | None = Query(None, min_length=1, description="Filter by name or last message"),
) -> list[ConversationResponse]:
    """List conversations, pinned first, most recent activity first."""
    rows = store.search_conversations(q) if q else store.list_conversations()
    return [ConversationResponse.model_validate(row) for row in rows]


@router.post("", status_code=status.HTTP_201_CREATED)
async def start_conversation(
    payload: ConversationCreate,
    current_user_id: CurrentUserDep,
    pipeline: PipelineDep,
    store: StoreDep,
) -> ConversationResponse:
    """Start (or refresh) a chat with a peer."""
    conversation_id = pipeline.start_chat(current_user_id, payload.profile)
    return _get_or_404(store, conversation_id)


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str, store: StoreDep) -> ConversationResponse:
    return _get_or_404(store, conversation_id)


@router.patch("/{conversation_id}")
async def update_conversation(
    conversation_id: str,
    changes: ConversationUpdate,
    store: StoreDep,
) -> ConversationResponse:
    """Pin, mute or otherwise update conversation metadata."""
    store.update_conversation_meta(conversation_id, changes)
    return _get_or_404(store, conversation_id)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(conversation_id: str, store: StoreDep) -> Response:
    """Delete a conversation with its messages and queued resends."""
    store.delete_conversation(conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: str,
    current_user_id: CurrentUserDep,
    pipeline: PipelineDep,
) -> dict[str, object]:
    """Mark every message read, reset the unread counter and send read receipts."""
    marked = await pipeline.open_conversation(current_user_id, conversation_id)
    return {"conversation_id": conversation_id, "marked_read": marked}


@router.get("/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    store: StoreDep,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> list[MessageResponse]:
    """Get a page of visible messages, newest first."""
    rows = store.list_messages(conversation_id, limit=limit, offset=offset)
    return [MessageResponse.model_validate(row) for row in rows]
