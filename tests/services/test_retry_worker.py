import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from chat_relay.core.errors import ValidationError
from chat_relay.services.pipeline import MessagePipeline, SweepReport
from chat_relay.services.retry_worker import RetrySweepWorker


@pytest.fixture
def sweeping_pipeline():
    pipeline = AsyncMock(spec=MessagePipeline)
    pipeline.run_retry_sweep.return_value = SweepReport(attempted=1, sent=1)
    return pipeline


@pytest.mark.asyncio
async def test_reconnect_triggers_sweep(sweeping_pipeline: AsyncMock):
    worker = RetrySweepWorker(pipeline=sweeping_pipeline, interval_seconds=60)

    assert await worker.notify_connectivity(False) is False
    sweeping_pipeline.run_retry_sweep.assert_not_awaited()

    assert await worker.notify_connectivity(True) is True
    sweeping_pipeline.run_retry_sweep.assert_awaited_once()


@pytest.mark.asyncio
async def test_staying_online_does_not_retrigger(sweeping_pipeline: AsyncMock):
    worker = RetrySweepWorker(pipeline=sweeping_pipeline, interval_seconds=60)

    assert await worker.notify_connectivity(True) is True
    assert await worker.notify_connectivity(True) is False
    assert sweeping_pipeline.run_retry_sweep.await_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [ValidationError("bad queue entry"), OperationalError("SELECT 1", {}, Exception("locked"))],
)
async def test_sweep_once_logs_failures(sweeping_pipeline: AsyncMock, error, caplog):
    sweeping_pipeline.run_retry_sweep.side_effect = error
    worker = RetrySweepWorker(pipeline=sweeping_pipeline, interval_seconds=60)

    report = await worker.sweep_once()

    assert report == SweepReport()
    assert "Retry sweep failed" in caplog.text


@pytest.mark.asyncio
async def test_worker_sweeps_on_interval(sweeping_pipeline: AsyncMock):
    worker = RetrySweepWorker(pipeline=sweeping_pipeline, interval_seconds=0.1)

    await worker.start()
    assert worker.running is True
    await asyncio.sleep(0.35)
    await worker.stop()

    assert worker.running is False
    assert sweeping_pipeline.run_retry_sweep.await_count >= 2


@pytest.mark.asyncio
async def test_running_worker_wakes_on_reconnect(sweeping_pipeline: AsyncMock):
    worker = RetrySweepWorker(pipeline=sweeping_pipeline, interval_seconds=60)
    await worker.start()
    await asyncio.sleep(0.05)
    assert sweeping_pipeline.run_retry_sweep.await_count == 1

    assert await worker.notify_connectivity(True) is True
    await asyncio.sleep(0.05)
    await worker.stop()

    assert sweeping_pipeline.run_retry_sweep.await_count == 2


@pytest.mark.asyncio
async def test_stop_without_start_is_harmless(sweeping_pipeline: AsyncMock):
    worker = RetrySweepWorker(pipeline=sweeping_pipeline, interval_seconds=60)

    await worker.stop()

    assert worker.running is False
