from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.core.config import settings
from prcritic.core.metrics import record_estimated_cost
from prcritic.db.models import CostRecord, utcnow
from prcritic.db.repositories.costs import CostRecordRepository

logger = structlog.get_logger()

# USD per 1M tokens
PRICING: dict[str, dict[str, float]] = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "claude-sonnet-4-20250514": {"input": 3.00, "output": 15.00},
    "claude-3-haiku-20240307": {"input": 0.25, "output": 1.25},
}
FALLBACK_PRICING_MODEL = "gpt-4o-mini"

# Usage is only known as a total, so it is split into an assumed mix
INPUT_SHARE = 0.6
OUTPUT_SHARE = 0.4


def estimate_cost(total_tokens: int, model: str) -> float:
    """Estimated USD cost of ``total_tokens`` on ``model``."""
    pricing = PRICING.get(model, PRICING[FALLBACK_PRICING_MODEL])
    input_tokens = total_tokens * INPUT_SHARE
    output_tokens = total_tokens * OUTPUT_SHARE
    return (input_tokens * pricing["input"] + output_tokens * pricing["output"]) / 1_000_000


class CostAccountant:
    """Records token usage per agent and repository and reports on it."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.costs = CostRecordRepository(session)

    async def track(
        self,
        agent_id: int,
        repository_id: int | None,
        generation_tokens: int,
        evaluation_tokens: int,
        model: str | None = None,
        evaluation_model: str | None = None,
    ) -> CostRecord:
        """Record one unit of LLM work.

        ``model`` names the generation model and is what the record stores.
        Evaluation tokens are priced on ``evaluation_model`` when given.
        """
        model = model or settings.default_model
        total_tokens = generation_tokens + evaluation_tokens
        cost = estimate_cost(generation_tokens, model) + estimate_cost(
            evaluation_tokens, evaluation_model or model
        )

        record = await self.costs.create(
            agent_id=agent_id,
            repository_id=repository_id,
            generation_tokens=generation_tokens,
            evaluation_tokens=evaluation_tokens,
            total_tokens=total_tokens,
            estimated_cost_usd=cost,
            model=model,
        )
        record_estimated_cost(model, cost)

        logger.debug(
            "Tracked LLM cost",
            agent_id=agent_id,
            repository_id=repository_id,
            total_tokens=total_tokens,
            estimated_cost_usd=round(cost, 6),
            model=model,
        )
        return record

    @staticmethod
    def _since(days: int) -> datetime:
        return utcnow() - timedelta(days=days)

    async def agent_stats(self, agent_id: int, days: int = 30) -> dict[str, Any]:
        records = await self.costs.list_since(self._since(days), agent_id=agent_id)

        total_tokens = sum(r.total_tokens for r in records)
        total_cost = sum(r.estimated_cost_usd for r in records)
        count = len(records)

        return {
            "agent_id": agent_id,
            "days": days,
            "total_tokens": total_tokens,
            "total_cost_usd": total_cost,
            "review_count": count,
            "avg_tokens_per_review": total_tokens / count if count else 0.0,
            "avg_cost_per_review": total_cost / count if count else 0.0,
        }

    async def cost_by_repository(self, days: int = 30) -> list[dict[str, Any]]:
        return await self.costs.totals_by_repository(self._since(days))

    async def cost_trends(
        self, agent_id: int | None = None, days: int = 30
    ) -> list[dict[str, Any]]:
        """Daily (UTC) token and cost buckets, oldest day first."""
        records = await self.costs.list_since(self._since(days), agent_id=agent_id)

        buckets: OrderedDict[str, dict[str, Any]] = OrderedDict()
        for record in records:
            day = record.created_at.date().isoformat()
            bucket = buckets.setdefault(
                day, {"date": day, "total_tokens": 0, "total_cost_usd": 0.0, "review_count": 0}
            )
            bucket["total_tokens"] += record.total_tokens
            bucket["total_cost_usd"] += record.estimated_cost_usd
            bucket["review_count"] += 1

        return sorted(buckets.values(), key=lambda bucket: bucket["date"])
