"""Retry queue endpoints for the chat relay API."""

from __future__ import annotations

from fastapi import APIRouter

from chat_relay.schemas.message import RetryEntryResponse, SendResponse, SweepReportResponse

from ..dependencies import PipelineDep, StoreDep

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("")
async def list_queue(store: StoreDep, pipeline: PipelineDep) -> list[RetryEntryResponse]:
    """List queued messages; ``exhausted`` entries need a manual retry."""
    return [
        RetryEntryResponse.model_validate(entry).model_copy(
            update={"exhausted": entry.retry_count >= pipeline.max_attempts}
        )
        for entry in store.list_queue()
    ]


@router.post("/sweep")
async def run_sweep(pipeline: PipelineDep) -> SweepReportResponse:
    """Resend every retryable queued message now."""
    report = await pipeline.run_retry_sweep()
    return SweepReportResponse(
        attempted=report.attempted,
        sent=report.sent,
        failed=report.failed,
        skipped=report.skipped,
    )


@router.post("/{message_id}/retry")
async def force_retry(message_id: str, pipeline: PipelineDep) -> SendResponse:
    """Resend one queued message even if it reached the retry ceiling."""
    status = await pipeline.force_retry(message_id)
    return SendResponse(message_id=message_id, delivery_status=status.value)
