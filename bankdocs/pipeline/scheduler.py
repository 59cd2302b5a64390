"""Periodic ingestion trigger.

Kept outside :class:`IngestionService`: the service knows nothing about
time, the scheduler only calls ``trigger_ingestion()`` on an interval.  A
tick that finds another run in progress is skipped, not queued.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from bankdocs.utils.errors import IngestionBusyError

if TYPE_CHECKING:
    from bankdocs.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)


class PeriodicIngestionScheduler:
    """Runs ingestion every ``interval_seconds`` until stopped.

    Parameters
    ----------
    service:
        The ingestion service to trigger.
    interval_seconds:
        Delay between the end of one tick and the start of the next.
    run_on_start:
        Trigger immediately on :meth:`start` instead of waiting one interval.
    """

    def __init__(
        self,
        service: IngestionService,
        interval_seconds: float,
        run_on_start: bool = True,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._service = service
        self._interval = interval_seconds
        self._run_on_start = run_on_start
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop; a second call while running is a no-op."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="ingestion-scheduler")
        logger.info("scheduler_started", interval_s=self._interval)

    async def stop(self) -> None:
        """Stop the loop, cancelling a run it is currently waiting on."""
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info("scheduler_stopped", ticks=self.ticks)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        if not self._run_on_start and await self._wait_interval():
            return
        while not self._stop_event.is_set():
            await self._tick()
            if await self._wait_interval():
                return

    async def _tick(self) -> None:
        self.ticks += 1
        try:
            run = await self._service.trigger_ingestion()
        except IngestionBusyError:
            logger.info("scheduled_ingestion_skipped", reason="run_in_progress")
            return
        except Exception as exc:
            logger.exception("scheduled_ingestion_failed", error=str(exc))
            return
        logger.info(
            "scheduled_ingestion_finished",
            run_id=run.id,
            status=run.status.value,
            processed=run.total_processed,
            failed=run.total_failed,
        )

    async def _wait_interval(self) -> bool:
        """Sleep one interval; return ``True`` if :meth:`stop` was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
        except asyncio.TimeoutError:
            return False
        return True
