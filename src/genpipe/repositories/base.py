"""Base repository with common CRUD operations."""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from genpipe.db.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Generic async repository bound to one ORM model.

    Repositories flush but never commit; the caller owns the transaction.
    """

    model_class: type[T]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_pk(self, pk: Any) -> T | None:
        return await self.session.get(self.model_class, pk)

    async def create(self, **kwargs: Any) -> T:
        """Add a new row and flush it so constraint violations surface here."""
        row = self.model_class(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_by_field(self, field: str, value: Any, order_by: str | None = None) -> list[T]:
        """List rows where ``field`` equals ``value``, optionally ordered by a column."""
        column = getattr(self.model_class, field)
        stmt = select(self.model_class).where(column == value)
        if order_by:
            stmt = stmt.order_by(getattr(self.model_class, order_by))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
