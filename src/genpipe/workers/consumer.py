"""Worker loop consuming job-start events from the event bus."""

import asyncio
import logging

from genpipe.config import settings
from genpipe.errors.exceptions import UnknownWorkflowError
from genpipe.models.generation import GenerationResultModel, JobStartEvent
from genpipe.services.result_store import ResultStore
from genpipe.workers.queue import EventBus
from genpipe.workers.registry import WorkflowRegistry, default_registry

logger = logging.getLogger(__name__)


class JobWorker:
    """Pull job-start events and run the matching workflow.

    Up to ``concurrency`` jobs run at once; the steps of one job always run
    sequentially inside its workflow.
    """

    def __init__(
        self,
        bus: EventBus,
        store: ResultStore,
        registry: WorkflowRegistry | None = None,
        concurrency: int | None = None,
        receive_timeout: float = 1.0,
    ) -> None:
        self._bus = bus
        self._store = store
        self._registry = registry or default_registry
        self._semaphore = asyncio.Semaphore(max(concurrency or settings.worker_concurrency, 1))
        self._receive_timeout = receive_timeout
        self._in_flight: set[asyncio.Task] = set()
        self._task: asyncio.Task | None = None

    async def handle(self, event: JobStartEvent) -> GenerationResultModel | None:
        """Run one job to its terminal state."""
        workflow = self._registry.get(event.event_name)
        if workflow is None:
            error = UnknownWorkflowError(event.event_name)
            logger.error("%s (result=%s)", error.message, event.id)
            return await self._store.fail(event.id, error.message, step="dispatch")
        return await workflow.execute(event, self._store)

    async def run_once(self, timeout: float | None = None) -> GenerationResultModel | None:
        """Receive and fully process a single event, if one arrives in time."""
        event = await self._bus.receive(timeout=self._receive_timeout if timeout is None else timeout)
        if event is None:
            return None
        return await self.handle(event)

    async def run(self) -> None:
        """Consume events until cancelled."""
        logger.info("Job worker started (events=%s)", ", ".join(self._registry.event_names()))
        try:
            while True:
                await self._semaphore.acquire()
                try:
                    event = await self._bus.receive(timeout=self._receive_timeout)
                except asyncio.CancelledError:
                    self._semaphore.release()
                    raise
                except Exception:
                    self._semaphore.release()
                    logger.exception("Failed to receive job-start event")
                    await asyncio.sleep(self._receive_timeout)
                    continue
                if event is None:
                    self._semaphore.release()
                    continue
                task = asyncio.create_task(self._run_job(event))
                self._in_flight.add(task)
                task.add_done_callback(self._in_flight.discard)
        except asyncio.CancelledError:
            logger.info("Job worker stopping (%d job(s) in flight)", len(self._in_flight))
            for task in list(self._in_flight):
                task.cancel()
            await asyncio.gather(*self._in_flight, return_exceptions=True)
            raise

    async def _run_job(self, event: JobStartEvent) -> None:
        try:
            await self.handle(event)
        except Exception:
            logger.exception("Unhandled error while processing result %s", event.id)
        finally:
            self._semaphore.release()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
