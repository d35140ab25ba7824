import asyncio
import contextlib

from loggers import get_logger
from src.session.service import SweepReport, TokenService

logger = get_logger(__name__)


class CleanupScheduler:
    """
    Background loop that periodically reclaims spent-token memory.

    Each pass sweeps expired entries from the invalidation store and purges
    families past their absolute deadline. ``stop`` wakes the loop immediately
    and waits for it to finish, so shutdown is deterministic.
    """

    def __init__(self, service: TokenService, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("Cleanup interval must be greater than 0 seconds.")
        self._service = service
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Token cleanup scheduler is already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="token-cleanup")
        logger.info("Token cleanup scheduler started (interval: %ss)", self._interval)

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return

        self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._interval)
        except asyncio.TimeoutError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None
        logger.info("Token cleanup scheduler stopped")

    async def run_once(self) -> SweepReport:
        # Sweeps take the store locks; keep them off the event loop thread.
        report = await asyncio.to_thread(self._service.sweep)
        self.runs += 1
        logger.info(
            "Token cleanup completed: invalidated removed=%s remaining=%s | "
            "families removed=%s remaining=%s",
            report.invalidated_removed,
            report.invalidated_remaining,
            report.families_removed,
            report.families_remaining,
        )
        return report

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Token cleanup pass failed")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
