"""Step ledger repository."""

from typing import Any

from sqlalchemy import select

from genpipe.db.models.step_record import StepRecordRow
from genpipe.repositories.base import BaseRepository


class StepRecordRepository(BaseRepository[StepRecordRow]):
    model_class = StepRecordRow

    async def get(self, result_id: str, step_name: str) -> StepRecordRow | None:
        stmt = select(StepRecordRow).where(
            StepRecordRow.result_id == result_id,
            StepRecordRow.step_name == step_name,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_result(self, result_id: str) -> list[StepRecordRow]:
        return await self.list_by_field("result_id", result_id, order_by="id")

    async def record(self, result_id: str, step_name: str, output: Any, attempts: int) -> tuple[StepRecordRow, bool]:
        """Insert a ledger entry unless one exists; returns ``(row, created)``.

        An existing entry is never overwritten. A concurrent insert surfaces as
        ``IntegrityError`` from the flush.
        """
        existing = await self.get(result_id, step_name)
        if existing:
            return existing, False
        row = await self.create(
            result_id=result_id,
            step_name=step_name,
            output=output,
            attempts=attempts,
        )
        return row, True
