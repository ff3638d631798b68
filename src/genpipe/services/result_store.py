"""Durable store tracking the lifecycle of generation results.

Every operation runs in its own session and commits before returning, so any
component reading an id afterwards sees the write. Rows leave ``pending``
exactly once; writes against a terminal row are ignored and return None.
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from genpipe.db.base import utcnow
from genpipe.errors.exceptions import ConflictError
from genpipe.models.enums import ResultStatus
from genpipe.models.generation import GenerationResultModel
from genpipe.repositories.result_repo import GenerationResultRepository
from genpipe.repositories.step_repo import StepRecordRepository

logger = logging.getLogger(__name__)


def _to_model(row) -> GenerationResultModel | None:
    if row is None:
        return None
    return GenerationResultModel.model_validate(row)


class ResultStore:
    """Create, progress, finalize, read and expire generation results."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_pending(
        self,
        result_id: str,
        event_name: str,
        object_type: str,
        object_id: str = "",
        object_key: str = "",
    ) -> GenerationResultModel:
        """Insert a new pending row.

        Raises:
            ConflictError: the id exists, or a pending row already exists for
                the same target.
        """
        async with self._session_factory() as session:
            repo = GenerationResultRepository(session)
            if await repo.get(result_id):
                raise ConflictError(f"Result '{result_id}' already exists")
            now = utcnow()
            try:
                row = await repo.create(
                    id=result_id,
                    event_name=event_name,
                    status=ResultStatus.PENDING,
                    object_type=object_type,
                    object_id=object_id,
                    object_key=object_key,
                    cancel_requested=False,
                    created_at=now,
                    updated_at=now,
                )
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(
                    f"A pending result already exists for {object_type}/{object_id}/{object_key}"
                ) from exc
            return _to_model(row)

    async def update_progress(
        self,
        result_id: str,
        payload: Any = None,
        step: str | None = None,
        message: str | None = None,
    ) -> GenerationResultModel | None:
        """Record a progress snapshot; the row stays pending."""
        values: dict[str, Any] = {"status": ResultStatus.PENDING}
        if payload is not None:
            values["result"] = payload
        if step is not None:
            values["step"] = step
        if message is not None:
            values["message"] = message
        return await self._update_pending(result_id, values)

    async def complete(
        self,
        result_id: str,
        payload: Any,
        message: str | None = None,
    ) -> GenerationResultModel | None:
        values = {
            "status": ResultStatus.COMPLETED,
            "result": payload,
            "error": None,
            "step": "completed",
        }
        if message is not None:
            values["message"] = message
        return await self._update_pending(result_id, values)

    async def fail(
        self,
        result_id: str,
        error: str,
        step: str | None = None,
    ) -> GenerationResultModel | None:
        values = {
            "status": ResultStatus.ERROR,
            "error": error,
            "result": None,
            "step": step or "failed",
        }
        return await self._update_pending(result_id, values)

    async def set_event_id(self, result_id: str, event_id: str) -> GenerationResultModel | None:
        return await self._update_pending(result_id, {"event_id": event_id})

    async def request_cancel(self, result_id: str) -> GenerationResultModel | None:
        """Flag a pending job for cancellation before its next step."""
        return await self._update_pending(result_id, {"cancel_requested": True})

    async def get(self, result_id: str) -> GenerationResultModel | None:
        async with self._session_factory() as session:
            repo = GenerationResultRepository(session)
            return _to_model(await repo.get(result_id))

    async def find_by_target(
        self,
        object_type: str,
        object_id: str,
        object_key: str,
        status: ResultStatus,
    ) -> GenerationResultModel | None:
        async with self._session_factory() as session:
            repo = GenerationResultRepository(session)
            row = await repo.find_by_target(object_type, object_id, object_key, status)
            return _to_model(row)

    async def list_by_object(self, object_type: str, object_id: str) -> list[GenerationResultModel]:
        async with self._session_factory() as session:
            repo = GenerationResultRepository(session)
            rows = await repo.list_by_object(object_type, object_id)
            return [_to_model(row) for row in rows]

    async def sweep_expired(self, max_age: timedelta) -> int:
        """Delete every row older than ``max_age`` regardless of status."""
        cutoff = utcnow() - max_age
        async with self._session_factory() as session:
            repo = GenerationResultRepository(session)
            deleted = await repo.delete_created_before(cutoff)
            await session.commit()
        if deleted:
            logger.info("Swept %d expired generation results", deleted)
        return deleted

    # --- step ledger ---

    async def get_step_output(self, result_id: str, step_name: str) -> tuple[bool, Any]:
        """Return ``(found, output)`` for a recorded step."""
        async with self._session_factory() as session:
            row = await StepRecordRepository(session).get(result_id, step_name)
            if row is None:
                return False, None
            return True, row.output

    async def record_step(self, result_id: str, step_name: str, output: Any, attempts: int) -> tuple[bool, Any]:
        """Record a completed step; the first run to record a step wins.

        Returns ``(True, output)`` when this call wrote the entry, or
        ``(False, recorded_output)`` when an overlapping run of the same job
        recorded the step first.
        """
        async with self._session_factory() as session:
            try:
                row, created = await StepRecordRepository(session).record(result_id, step_name, output, attempts)
                await session.commit()
            except IntegrityError:
                # Both runs passed the existence check; the other insert committed first
                await session.rollback()
            else:
                return created, row.output
        found, recorded = await self.get_step_output(result_id, step_name)
        if not found:
            raise ConflictError(f"Step '{step_name}' of result '{result_id}' could not be recorded")
        return False, recorded

    async def list_steps(self, result_id: str) -> list[str]:
        async with self._session_factory() as session:
            rows = await StepRecordRepository(session).list_for_result(result_id)
            return [row.step_name for row in rows]

    async def _update_pending(self, result_id: str, values: dict[str, Any]) -> GenerationResultModel | None:
        async with self._session_factory() as session:
            repo = GenerationResultRepository(session)
            row = await repo.update_pending(result_id, **values)
            await session.commit()
            if row is None:
                logger.debug("Ignored write to missing or terminal result %s", result_id)
            return _to_model(row)
