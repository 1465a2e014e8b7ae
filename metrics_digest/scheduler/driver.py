"""Interval driver that runs collection cycles until stopped."""

from __future__ import annotations

import asyncio
import signal

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..errors import CancellationError, DigestError
from .coordinator import CollectionCoordinator

logger = structlog.get_logger(__name__)

COLLECT_JOB_ID = "collect_metrics"


class DigestDriver:
    """Runs the coordinator every ``interval_seconds``, at most one cycle at a time.

    A failed or crashed cycle stops the driver with exit code 1. ``stop()`` (also wired
    to SIGINT/SIGTERM) sets the shared cancellation event so in-flight
    requests abort, and ends ``run()`` with exit code 0.
    """

    def __init__(self, coordinator: CollectionCoordinator, interval_seconds: float):
        self.coordinator = coordinator
        self.interval_seconds = float(interval_seconds)
        self.cancel = asyncio.Event()
        self.failure: Exception | None = None
        self._stopped = asyncio.Event()
        self._current: asyncio.Task | None = None

    def stop(self) -> None:
        if not self._stopped.is_set():
            logger.info("Stopping")
        self.cancel.set()
        self._stopped.set()

    async def _tick(self) -> None:
        if self._stopped.is_set():
            return
        self._current = asyncio.current_task()
        try:
            await self.coordinator.collect(self.cancel)
        except DigestError as exc:
            if isinstance(exc, CancellationError) and self.cancel.is_set():
                logger.info("Cycle cancelled by shutdown")
                return
            logger.error("Collection cycle failed", error=str(exc))
            self.failure = exc
            self.stop()
        except Exception as exc:
            logger.exception("Collection cycle crashed", error=repr(exc))
            self.failure = exc
            self.stop()
        finally:
            self._current = None

    async def run_once(self) -> int:
        await self._tick()
        return 1 if self.failure else 0

    async def run(self, *, install_signal_handlers: bool = True) -> int:
        loop = asyncio.get_running_loop()
        signals = (signal.SIGINT, signal.SIGTERM) if install_signal_handlers else ()
        for sig in signals:
            loop.add_signal_handler(sig, self.stop)

        scheduler = AsyncIOScheduler(event_loop=loop)
        scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=COLLECT_JOB_ID,
            name="Collect metrics and send reports",
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        logger.info("Starting", interval_seconds=self.interval_seconds)

        try:
            await self._stopped.wait()
        finally:
            scheduler.shutdown(wait=False)
            for sig in signals:
                loop.remove_signal_handler(sig)

        current = self._current
        if current is not None and not current.done():
            await asyncio.gather(current, return_exceptions=True)

        logger.info("Stopped", failed=self.failure is not None)
        return 1 if self.failure else 0
