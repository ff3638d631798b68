"""Dispatcher: start at most one generation job per logical target."""

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import Any

from genpipe.errors.exceptions import ConflictError
from genpipe.models.enums import ResultStatus
from genpipe.models.generation import GenerationResultModel, JobStartEvent
from genpipe.services.id_generator import RESULT_ID_PREFIX, generate_id
from genpipe.services.result_store import ResultStore
from genpipe.workers.queue import EventBus

logger = logging.getLogger(__name__)

TargetKey = tuple[str, str, str]


class Dispatcher:
    """Deduplicate against existing results, create a pending row and emit the job-start event.

    Concurrent calls for the same target inside one process are serialized by a
    per-target lock. Across processes the partial unique index on pending
    targets rejects the losing insert, which then re-reads the winner.
    """

    def __init__(self, store: ResultStore, bus: EventBus):
        self._store = store
        self._bus = bus
        self._locks: dict[TargetKey, asyncio.Lock] = {}
        self._lock_users: Counter[TargetKey] = Counter()

    @asynccontextmanager
    async def _target_lock(self, key: TargetKey):
        """Hold the lock for one target; the lock is dropped when its last user leaves."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] <= 0:
                del self._lock_users[key]
                del self._locks[key]

    async def dispatch(
        self,
        event_name: str,
        object_type: str,
        object_id: str | None,
        object_key: str | None,
        data: dict[str, Any] | None = None,
        force: bool = False,
    ) -> GenerationResultModel:
        """Return the job that now owns the target: reused or freshly started.

        ``force`` skips reuse of a completed result (explicit regeneration)
        but never starts a second job while one is pending.
        """
        key: TargetKey = (object_type, object_id or "", object_key or "")

        async with self._target_lock(key):
            existing = await self._find_existing(key, force)
            if existing:
                logger.info(
                    "Reusing %s result %s for %s/%s/%s",
                    existing.status, existing.id, *key,
                )
                return existing

            result_id = generate_id(RESULT_ID_PREFIX)
            try:
                result = await self._store.create_pending(result_id, event_name, *key)
            except ConflictError:
                # Another process won the race for this target
                pending = await self._store.find_by_target(*key, ResultStatus.PENDING)
                if pending is None:
                    raise
                return pending

        event = JobStartEvent(
            id=result.id,
            event_name=event_name,
            object_type=key[0],
            object_id=key[1],
            object_key=key[2],
            data=data or {},
        )
        try:
            event_id = await self._bus.publish(event)
            logger.info("Dispatched %s as result %s (event=%s)", event_name, result.id, event_id)
        except Exception:
            # No transaction spans the insert and the emit; the row stays
            # pending until the retention sweep removes it.
            logger.exception("Failed to emit job-start event for result %s", result.id)
        return result

    async def _find_existing(self, key: TargetKey, force: bool) -> GenerationResultModel | None:
        if not force:
            completed = await self._store.find_by_target(*key, ResultStatus.COMPLETED)
            if completed:
                return completed
        return await self._store.find_by_target(*key, ResultStatus.PENDING)
