from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.api.dependencies import get_db
from prcritic.db.repositories import ReviewRepository
from prcritic.services.costs.accountant import CostAccountant

router = APIRouter()


@router.get("/costs")
async def get_costs(
    type: Literal["trends", "agent", "repos"] = Query("trends"),
    agent_id: int | None = Query(None),
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Token spend reports.

    - trends: daily totals, optionally for one agent
    - agent: totals and per-review averages for ``agent_id``
    - repos: totals per repository
    """
    accountant = CostAccountant(db)

    if type == "trends":
        return {"trends": await accountant.cost_trends(agent_id=agent_id, days=days)}

    if type == "agent":
        if agent_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="agent_id is required for type=agent",
            )
        return {"stats": await accountant.agent_stats(agent_id, days=days)}

    return {"repos": await accountant.cost_by_repository(days=days)}


@router.get("/comparison")
async def get_agent_comparison(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Agents ranked by their average evaluation score."""
    reviews = ReviewRepository(db)
    return {"agents": await reviews.agent_score_comparison(days=days)}
