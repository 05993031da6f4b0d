"""Background retry sweeps driven by a timer and by connectivity changes.

``RetrySweepWorker`` wakes up every ``retry_sweep_interval_seconds``, or
immediately when the device regains connectivity, and asks the pipeline to
drain its retry queue.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from chat_relay.core.errors import ChatRelayError
from chat_relay.core.settings import settings
from chat_relay.services.pipeline import MessagePipeline, SweepReport, get_pipeline

# Configure logger for this module
logger = logging.getLogger(__name__)


class RetrySweepWorker:
    """Periodically drains the retry queue and reacts to connectivity signals."""

    def __init__(
        self, pipeline: MessagePipeline | None = None, interval_seconds: float | None = None
    ) -> None:
        self.pipeline = pipeline or get_pipeline()
        self.interval_seconds = max(
            0.1,
            float(
                interval_seconds
                if interval_seconds is not None
                else settings.retry_sweep_interval_seconds
            ),
        )
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._wakeup = asyncio.Event()
        self._connected: bool | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if self._task is None:
            return

        self._stopping.set()
        self._wakeup.set()
        await self._task
        self._task = None

    def trigger(self) -> None:
        """Wake the loop for an immediate sweep."""
        self._wakeup.set()

    async def notify_connectivity(self, is_connected: bool) -> bool:
        """Record a network-state change; sweep when connectivity comes back.

        Returns True when a sweep was triggered.
        """
        previously = self._connected
        self._connected = is_connected
        if not is_connected or previously is True:
            return False

        logger.info("Online - processing pending messages")
        if self.running:
            self.trigger()
        else:
            await self.sweep_once()
        return True

    async def sweep_once(self) -> SweepReport:
        """Run a single sweep, logging instead of raising on storage errors."""
        try:
            return await self.pipeline.run_retry_sweep()
        except (SQLAlchemyError, ChatRelayError) as e:
            logger.error("Retry sweep failed: %s", e, exc_info=True)
            return SweepReport()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            report = await self.sweep_once()
            if report.attempted:
                logger.info(
                    "Retry sweep finished: %d sent, %d failed", report.sent, report.failed
                )

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()


class _RetryWorkerSingleton:
    """Singleton wrapper for RetrySweepWorker."""

    _instance: RetrySweepWorker | None = None

    @classmethod
    def get_instance(cls) -> RetrySweepWorker:
        if cls._instance is None:
            cls._instance = RetrySweepWorker()
        return cls._instance


def get_retry_worker() -> RetrySweepWorker:
    """Return the shared retry worker."""
    return _RetryWorkerSingleton.get_instance()
