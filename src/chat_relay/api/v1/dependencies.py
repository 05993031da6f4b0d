"""Shared API dependencies for the local user and the service singletons."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from chat_relay.services.delivery import DeliveryChannel, get_delivery_channel
from chat_relay.services.pipeline import MessagePipeline, get_pipeline
from chat_relay.services.retry_worker import RetrySweepWorker, get_retry_worker
from chat_relay.services.store import MessageStore


def get_pipeline_dep() -> MessagePipeline:
    """Return the shared message pipeline."""
    return get_pipeline()


def get_store(pipeline: Annotated[MessagePipeline, Depends(get_pipeline_dep)]) -> MessageStore:
    """Return the store the pipeline writes to, so both always agree."""
    return pipeline.store


def get_channel_dep() -> DeliveryChannel:
    """Return the shared delivery channel."""
    return get_delivery_channel()


def get_retry_worker_dep() -> RetrySweepWorker:
    """Return the shared retry worker."""
    return get_retry_worker()


def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """Return the signed-in user's id from the request.

    Raises:
        HTTPException: If the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return x_user_id.strip()


PipelineDep = Annotated[MessagePipeline, Depends(get_pipeline_dep)]
StoreDep = Annotated[MessageStore, Depends(get_store)]
ChannelDep = Annotated[DeliveryChannel, Depends(get_channel_dep)]
RetryWorkerDep = Annotated[RetrySweepWorker, Depends(get_retry_worker_dep)]
CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
