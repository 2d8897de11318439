"""
Base repository.

Lookups and inserts shared by the engine repositories. Bulk writes and
hierarchy queries live in the concrete repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cpa_engine.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Repository bound to one model and one session.

    Repositories never commit: the calling service owns the unit of work.

    Example:
        class OperationLogRepository(BaseRepository[OperationLog]):
            def __init__(self, session: AsyncSession):
                super().__init__(OperationLog, session)
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """Get row by surrogate primary key."""
        return await self.session.get(self.model, id)

    async def get_by(
        self, for_update: bool = False, **filters: Any
    ) -> ModelType | None:
        """
        Get the single row matching filters.

        Args:
            for_update: Lock the row until the transaction ends
            **filters: Column equality filters (must identify one row)

        Returns:
            Row or None
        """
        stmt = select(self.model).filter_by(**filters)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **data: Any) -> ModelType:
        """
        Insert a row and load its server defaults.

        Args:
            **data: Column values

        Returns:
            Flushed row with its primary key
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity
