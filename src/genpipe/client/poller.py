"""Client-side polling for generation results."""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pydantic import BaseModel

from genpipe.config import settings
from genpipe.errors.exceptions import (
    JobFailedError,
    PollAbortedError,
    PollTimeoutError,
    ResultNotFoundError,
)
from genpipe.models.enums import ResultStatus
from genpipe.models.generation import GenerationResultModel
from genpipe.models.payloads import decode_payload
from genpipe.services.result_store import ResultStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str | None, str | None, Any], Any]


class ResultSource(Protocol):
    """Anything that can fetch a result record by id."""

    async def get(self, result_id: str) -> GenerationResultModel | None:
        ...


class StoreResultSource:
    """Read results directly from an in-process result store."""

    def __init__(self, store: ResultStore) -> None:
        self._store = store

    async def get(self, result_id: str) -> GenerationResultModel | None:
        return await self._store.get(result_id)


class PollHandle:
    """A running poll that the caller can await or abort.

    After :meth:`abort` no progress callback runs and the poll neither
    returns a result nor raises a job error; awaiting the handle raises
    :class:`PollAbortedError`.
    """

    def __init__(self, result_id: str) -> None:
        self.result_id = result_id
        self._aborted = False
        self._task: asyncio.Task | None = None

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def aborted(self) -> bool:
        return self._aborted

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def abort(self) -> None:
        """Stop polling. Server-side work is not affected."""
        self._aborted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def guard(self, callback: ProgressCallback | None) -> ProgressCallback | None:
        if callback is None:
            return None

        def _guarded(step, message, result):
            if self._aborted:
                return None
            return callback(step, message, result)

        return _guarded

    async def result(self) -> Any:
        if self._task is None:
            raise RuntimeError("PollHandle is not attached to a running poll")
        try:
            value = await self._task
        except (asyncio.CancelledError, Exception):
            if self._aborted:
                raise PollAbortedError(self.result_id) from None
            raise
        # abort() may land after the poll finished but before the caller awaited it
        if self._aborted:
            raise PollAbortedError(self.result_id)
        return value

    def __await__(self):
        return self.result().__await__()


class ResultPoller:
    """Wait for generation results by polling a result source.

    One poller (and its source) can serve any number of unrelated callers;
    each ``await_result`` call keeps its own deadline.
    """

    def __init__(
        self,
        source: ResultSource,
        interval_ms: int | None = None,
        timeout_ms: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self.interval_ms = settings.poll_interval_ms if interval_ms is None else interval_ms
        self.timeout_ms = settings.poll_timeout_ms if timeout_ms is None else timeout_ms
        self._clock = clock
        self._sleep = sleep

    async def await_result(
        self,
        result_id: str,
        *,
        interval_ms: int | None = None,
        timeout_ms: int | None = None,
        on_progress: ProgressCallback | None = None,
        result_model: type[BaseModel] | None = None,
    ) -> Any:
        """Poll until the result is terminal and return its payload.

        The first request is issued immediately, then one every
        ``interval_ms``. Pending records are reported through
        ``on_progress(step, message, partial_result)``.

        Raises:
            JobFailedError: the job ended in the error state.
            PollTimeoutError: no terminal state within ``timeout_ms``. The job
                itself keeps running.
            ResultNotFoundError: the id is unknown or expired.
        """
        if interval_ms is None:
            interval_ms = self.interval_ms
        if timeout_ms is None:
            timeout_ms = self.timeout_ms
        if interval_ms <= 0 or timeout_ms <= 0:
            raise ValueError("interval_ms and timeout_ms must be positive")

        interval = interval_ms / 1000
        deadline = self._clock() + timeout_ms / 1000
        attempts = 0

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise PollTimeoutError(result_id, timeout_ms)
            try:
                record = await asyncio.wait_for(self._source.get(result_id), timeout=remaining)
            except asyncio.TimeoutError:
                raise PollTimeoutError(result_id, timeout_ms) from None
            attempts += 1

            if record is None:
                raise ResultNotFoundError(result_id)
            if record.status == ResultStatus.COMPLETED:
                logger.debug("Result %s completed after %d poll(s)", result_id, attempts)
                return self._decode(record, result_model)
            if record.status == ResultStatus.ERROR:
                raise JobFailedError(result_id, record.error)

            if on_progress is not None:
                outcome = on_progress(record.step, record.message, record.result)
                if inspect.isawaitable(outcome):
                    await outcome

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise PollTimeoutError(result_id, timeout_ms)
            await self._sleep(min(interval, remaining))

    def start(
        self,
        result_id: str,
        *,
        interval_ms: int | None = None,
        timeout_ms: int | None = None,
        on_progress: ProgressCallback | None = None,
        result_model: type[BaseModel] | None = None,
    ) -> PollHandle:
        """Start polling in the background and return an abortable handle."""
        handle = PollHandle(result_id)
        coro = self.await_result(
            result_id,
            interval_ms=interval_ms,
            timeout_ms=timeout_ms,
            on_progress=handle.guard(on_progress),
            result_model=result_model,
        )
        handle._attach(asyncio.create_task(coro))
        return handle

    @staticmethod
    def _decode(record: GenerationResultModel, result_model: type[BaseModel] | None) -> Any:
        if result_model is not None:
            return result_model.model_validate(record.result)
        return decode_payload(record.event_name, record.result)
