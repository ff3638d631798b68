"""Base workflow interface for async generation jobs."""

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic_core import to_jsonable_python

from genpipe.errors.exceptions import JobCancelledError, StepFailedError
from genpipe.logging_config import job_context
from genpipe.models.generation import GenerationResultModel, JobStartEvent
from genpipe.services.result_store import ResultStore
from genpipe.workers.steps import StepRunner

logger = logging.getLogger(__name__)


class BaseWorkflow(ABC):
    """Abstract base class for generation workflows.

    Subclasses implement :meth:`process` as an ordered sequence of
    ``await step.run(...)`` calls and return the final payload.
    """

    event_name: str = ""
    max_attempts: int | None = None
    backoff_seconds: float | None = None

    @abstractmethod
    async def process(self, event: JobStartEvent, step: StepRunner) -> Any:
        """Run the job's steps and return the final result payload."""
        ...

    def completion_message(self, event: JobStartEvent) -> str:
        return f"{event.event_name} completed"

    def create_step_runner(self, event: JobStartEvent, store: ResultStore) -> StepRunner:
        return StepRunner(
            store,
            event.id,
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
        )

    async def execute(self, event: JobStartEvent, store: ResultStore) -> GenerationResultModel | None:
        """Execute the full job lifecycle: pending -> steps -> completed/error.

        Failures are written as a terminal error row and never raised to the
        caller. Events for missing or already terminal results are ignored.
        """
        with job_context(event.id, event.event_name):
            record = await store.get(event.id)
            if record is None:
                logger.warning("Result %s not found, dropping %s event", event.id, event.event_name)
                return None
            if record.is_terminal:
                logger.info("Result %s already %s, skipping redelivered event", event.id, record.status)
                return record

            if event.event_id:
                await store.set_event_id(event.id, event.event_id)

            step = self.create_step_runner(event, store)
            try:
                payload = to_jsonable_python(await self.process(event, step))
                final = await store.complete(event.id, payload, message=self.completion_message(event))
                logger.info("Job %s completed (steps=%d)", event.id, len(step.completed_steps))
            except JobCancelledError as exc:
                logger.info("Job %s cancelled after steps %s", event.id, step.completed_steps)
                return await store.fail(event.id, exc.message, step="cancelled")
            except StepFailedError as exc:
                logger.error("Job %s failed at step '%s'", event.id, exc.step_name)
                return await store.fail(event.id, exc.message, step=exc.step_name)
            except Exception as exc:
                logger.exception("Job %s failed (event=%s)", event.id, event.event_name)
                return await store.fail(event.id, str(exc) or exc.__class__.__name__)

            if final is None:
                # An overlapping delivery finalized the row first
                return await store.get(event.id)
            return final
