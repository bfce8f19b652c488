"""Repository for cost records."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.db.models import CostRecord
from prcritic.db.repositories.base import BaseRepository


class CostRecordRepository(BaseRepository[CostRecord]):
    """Repository for CostRecord model operations."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(CostRecord, session)

    async def list_since(
        self,
        since: datetime,
        *,
        agent_id: int | None = None,
    ) -> Sequence[CostRecord]:
        """Records created at or after ``since``, oldest first."""
        query = select(CostRecord).where(CostRecord.created_at >= since)
        if agent_id is not None:
            query = query.where(CostRecord.agent_id == agent_id)

        query = query.order_by(CostRecord.created_at.asc(), CostRecord.id.asc())
        result = await self.session.execute(query)
        return result.scalars().all()

    async def totals_by_repository(self, since: datetime) -> list[dict[str, Any]]:
        """Token and cost totals grouped by repository."""
        query = (
            select(
                CostRecord.repository_id,
                func.count(CostRecord.id).label("record_count"),
                func.sum(CostRecord.total_tokens).label("total_tokens"),
                func.sum(CostRecord.estimated_cost_usd).label("total_cost"),
            )
            .where(
                CostRecord.created_at >= since,
                CostRecord.repository_id.isnot(None),
            )
            .group_by(CostRecord.repository_id)
            .order_by(func.sum(CostRecord.estimated_cost_usd).desc())
        )

        result = await self.session.execute(query)
        return [
            {
                "repository_id": row.repository_id,
                "total_tokens": int(row.total_tokens or 0),
                "total_cost_usd": float(row.total_cost or 0),
                "review_count": row.record_count,
            }
            for row in result.all()
        ]
