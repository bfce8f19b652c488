"""Base repository with generic create/read operations."""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.db.models import Base

# Generic type for models
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository providing common create/read operations.

    Review, Evaluation and CostRecord rows are append-only, so there is no
    generic update or delete here.

    Usage:
        class AgentRepository(BaseRepository[Agent]):
            def __init__(self, session: AsyncSession):
                super().__init__(Agent, session)
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def create(self, **kwargs: Any) -> ModelType:
        """Create a new record."""
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: int) -> ModelType | None:
        """Get a record by ID."""
        return await self.session.get(self.model, id)
