"""Generation result repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update

from genpipe.db.base import utcnow
from genpipe.db.models.generation_result import GenerationResultRow
from genpipe.db.models.step_record import StepRecordRow
from genpipe.models.enums import ResultStatus
from genpipe.repositories.base import BaseRepository


class GenerationResultRepository(BaseRepository[GenerationResultRow]):
    model_class = GenerationResultRow

    async def get(self, result_id: str) -> GenerationResultRow | None:
        return await self.get_by_pk(result_id)

    async def find_by_target(
        self,
        object_type: str,
        object_id: str,
        object_key: str,
        status: str,
    ) -> GenerationResultRow | None:
        """Return the newest row for a dedup key in the given status."""
        stmt = (
            select(GenerationResultRow)
            .where(
                GenerationResultRow.object_type == object_type,
                GenerationResultRow.object_id == object_id,
                GenerationResultRow.object_key == object_key,
                GenerationResultRow.status == status,
            )
            .order_by(GenerationResultRow.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_object(self, object_type: str, object_id: str) -> list[GenerationResultRow]:
        stmt = (
            select(GenerationResultRow)
            .where(
                GenerationResultRow.object_type == object_type,
                GenerationResultRow.object_id == object_id,
            )
            .order_by(GenerationResultRow.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_pending(self, result_id: str, **values: Any) -> GenerationResultRow | None:
        """Apply an update only while the row is still pending.

        Returns the refreshed row, or None when the row is missing or already
        terminal. The status guard is part of the UPDATE statement so a
        terminal row can never be rewritten.
        """
        values.setdefault("updated_at", utcnow())
        stmt = (
            update(GenerationResultRow)
            .where(
                GenerationResultRow.id == result_id,
                GenerationResultRow.status == ResultStatus.PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.session.get(GenerationResultRow, result_id, populate_existing=True)

    async def delete_created_before(self, cutoff: datetime) -> int:
        """Delete results (and their step ledger) created before ``cutoff``."""
        ids_stmt = select(GenerationResultRow.id).where(GenerationResultRow.created_at < cutoff)
        ids = list((await self.session.execute(ids_stmt)).scalars().all())
        if not ids:
            return 0
        await self.session.execute(
            delete(StepRecordRow)
            .where(StepRecordRow.result_id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(GenerationResultRow)
            .where(GenerationResultRow.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        return len(ids)
