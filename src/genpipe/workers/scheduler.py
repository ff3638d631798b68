"""Background retention sweep for expired generation results."""

import asyncio
import logging
from datetime import timedelta

from genpipe.config import settings
from genpipe.services.result_store import ResultStore

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Periodically delete results older than the retention window.

    Started and stopped explicitly by the owning process. Only one sweep runs
    at a time; a sweep requested while another is running is skipped.
    """

    def __init__(
        self,
        store: ResultStore,
        retention: timedelta | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        self._store = store
        self.retention = retention or timedelta(seconds=settings.result_retention_seconds)
        self.interval_seconds = interval_seconds or settings.sweep_interval_seconds
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """Run one sweep and return the number of deleted results."""
        if self._lock.locked():
            logger.debug("Retention sweep already running, skipping")
            return 0
        async with self._lock:
            return await self._store.sweep_expired(self.retention)

    async def _run(self) -> None:
        logger.info(
            "Retention sweeper started (interval=%ss, retention=%ss)",
            self.interval_seconds, int(self.retention.total_seconds()),
        )
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.sweep_once()
            except asyncio.CancelledError:
                logger.info("Retention sweeper stopped")
                break
            except Exception as exc:
                logger.exception("Retention sweep error: %s", exc)
                # Continue running despite errors

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
