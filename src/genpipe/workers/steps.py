"""Named, independently retried steps of a generation job."""

import asyncio
import base64
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic_core import to_jsonable_python

from genpipe.config import settings
from genpipe.errors.exceptions import JobCancelledError, NonRetryableStepError, StepFailedError
from genpipe.services.result_store import ResultStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BYTES_MARKER = "__bytes_b64__"


def encode_step_output(value: Any) -> Any:
    """Convert a step output to the JSON form kept in the step ledger."""
    if isinstance(value, (bytes, bytearray)):
        return {_BYTES_MARKER: base64.b64encode(bytes(value)).decode("ascii")}
    return to_jsonable_python(value)


def decode_step_output(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {_BYTES_MARKER}:
        return base64.b64decode(value[_BYTES_MARKER])
    return value


class StepRunner:
    """Runs the steps of one job in order and reports progress to the result store.

    Each call to :meth:`run` checks for a cancellation request, replays the
    recorded output if the step already completed for this job (redelivered
    job-start events), and otherwise invokes the step function with retry and
    exponential backoff. A completed step is recorded in the step ledger and a
    progress snapshot is written.

    Step functions are not assumed to be idempotent: a retry re-invokes them,
    so a step with a non-repeatable side effect must guard it itself.
    """

    def __init__(
        self,
        store: ResultStore,
        result_id: str,
        *,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        backoff_multiplier: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.result_id = result_id
        self.max_attempts = max(max_attempts or settings.step_max_attempts, 1)
        self.backoff_seconds = settings.step_backoff_seconds if backoff_seconds is None else backoff_seconds
        self.backoff_multiplier = (
            settings.step_backoff_multiplier if backoff_multiplier is None else backoff_multiplier
        )
        self._sleep = sleep
        self.completed_steps: list[str] = []

    async def run(
        self,
        name: str,
        fn: Callable[..., T | Awaitable[T]],
        *args: Any,
        message: str | None = None,
        expose_output: bool = False,
        max_attempts: int | None = None,
    ) -> T:
        """Run ``fn(*args)`` as the step ``name`` and return its output.

        Args:
            name: Step name, unique within the job.
            fn: Sync or async callable doing the work.
            message: Progress message written after the step completes.
            expose_output: Include the step output in the progress snapshot.
            max_attempts: Override the runner's attempt budget for this step.

        Raises:
            JobCancelledError: cancellation was requested before the step started.
            StepFailedError: all attempts failed.
        """
        await self._check_cancelled()

        found, recorded = await self.store.get_step_output(self.result_id, name)
        if found:
            logger.info("Step '%s' already completed for %s, replaying output", name, self.result_id)
            self.completed_steps.append(name)
            return decode_step_output(recorded)

        attempts_allowed = max(max_attempts or self.max_attempts, 1)
        delay = self.backoff_seconds
        attempt = 0
        for attempt in range(1, attempts_allowed + 1):
            try:
                value = fn(*args)
                if inspect.isawaitable(value):
                    value = await value
                break
            except NonRetryableStepError as exc:
                logger.error("Step '%s' failed permanently for %s: %s", name, self.result_id, exc)
                raise StepFailedError(name, attempt, exc) from exc
            except Exception as exc:
                if attempt >= attempts_allowed:
                    logger.error(
                        "Step '%s' failed for %s after %d attempt(s): %s",
                        name, self.result_id, attempt, exc,
                    )
                    raise StepFailedError(name, attempt, exc) from exc
                logger.warning(
                    "Step '%s' attempt %d/%d failed for %s: %s (retrying in %.2fs)",
                    name, attempt, attempts_allowed, self.result_id, exc, delay,
                )
                await self._sleep(delay)
                delay *= self.backoff_multiplier

        encoded = encode_step_output(value)
        recorded, stored = await self.store.record_step(self.result_id, name, encoded, attempt)
        if not recorded:
            # An overlapping delivery of this job finished the step first; its output stands
            logger.info("Step '%s' was recorded concurrently for %s, using recorded output", name, self.result_id)
            encoded = stored
            value = decode_step_output(stored)
        self.completed_steps.append(name)

        snapshot: dict[str, Any] = {"step": name, "completed_steps": list(self.completed_steps)}
        if expose_output:
            snapshot["output"] = encoded
        await self.store.update_progress(
            self.result_id,
            snapshot,
            step=name,
            message=message or f"Completed step '{name}'",
        )
        logger.debug("Step '%s' completed for %s (attempts=%d)", name, self.result_id, attempt)
        return value

    async def sleep(self, name: str, seconds: float) -> None:
        """Suspend the job for ``seconds`` as a named step."""
        await self.run(name, self._sleep, seconds, message=f"Waited {seconds:g}s")

    async def _check_cancelled(self) -> None:
        record = await self.store.get(self.result_id)
        if record is not None and record.cancel_requested:
            raise JobCancelledError(self.result_id)
