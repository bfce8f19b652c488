"""Repository for reviews and their evaluations."""

from collections import defaultdict
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from prcritic.db.models import Evaluation, Review
from prcritic.db.repositories.base import BaseRepository


class ReviewRepository(BaseRepository[Review]):
    """Repository for Review model operations."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Review, session)

    async def get_by_github_comment_id(self, github_comment_id: int) -> Review | None:
        """Find the original (non-reply) review that posted a GitHub comment."""
        query = (
            select(Review)
            .options(selectinload(Review.agent))
            .where(
                Review.github_comment_id == github_comment_id,
                Review.is_thread_reply.is_(False),
            )
            .order_by(Review.id)
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def exists_for_line(
        self,
        *,
        repository_id: int,
        agent_id: int,
        pr_number: int,
        commit_sha: str,
        file_path: str,
        line_number: int,
    ) -> bool:
        """Check whether a line was already reviewed by an agent at a commit."""
        query = (
            select(func.count())
            .select_from(Review)
            .where(
                Review.repository_id == repository_id,
                Review.agent_id == agent_id,
                Review.pr_number == pr_number,
                Review.commit_sha == commit_sha,
                Review.file_path == file_path,
                Review.line_number == line_number,
                Review.is_thread_reply.is_(False),
            )
        )
        result = await self.session.execute(query)
        return (result.scalar() or 0) > 0

    async def list_thread(self, parent_review_id: int) -> Sequence[Review]:
        """Replies posted under a review, oldest first."""
        query = (
            select(Review)
            .where(Review.parent_review_id == parent_review_id)
            .order_by(Review.created_at.asc(), Review.id.asc())
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    # =========================================================================
    # Analytics Queries
    # =========================================================================

    async def agent_score_comparison(self, days: int = 30) -> list[dict[str, Any]]:
        """
        Compare agents by their evaluation scores.

        Returns one entry per agent with review count, per-dimension averages
        and the mean of those averages, best agent first.
        """
        since = datetime.now(UTC) - timedelta(days=days)

        query = (
            select(Review)
            .options(selectinload(Review.evaluations), selectinload(Review.agent))
            .where(
                Review.created_at >= since,
                Review.is_thread_reply.is_(False),
            )
        )
        result = await self.session.execute(query)

        names: dict[int, str] = {}
        review_counts: dict[int, int] = defaultdict(int)
        dimension_scores: dict[int, dict[str, list[float]]] = defaultdict(lambda: defaultdict(list))

        for review in result.scalars().all():
            names[review.agent_id] = review.agent.name
            review_counts[review.agent_id] += 1
            for evaluation in review.evaluations:
                for dim, score in evaluation.scores.items():
                    dimension_scores[review.agent_id][dim].append(float(score))

        comparison = []
        for agent_id, count in review_counts.items():
            dimension_avgs = {
                dim: round(sum(scores) / len(scores), 1)
                for dim, scores in dimension_scores[agent_id].items()
            }
            avg_score = (
                round(sum(dimension_avgs.values()) / len(dimension_avgs), 1)
                if dimension_avgs
                else 0.0
            )
            comparison.append(
                {
                    "agent_id": agent_id,
                    "agent_name": names[agent_id],
                    "review_count": count,
                    "avg_score": avg_score,
                    "dimension_avgs": dimension_avgs,
                }
            )

        comparison.sort(key=lambda entry: entry["avg_score"], reverse=True)
        return comparison


class EvaluationRepository(BaseRepository[Evaluation]):
    """Repository for Evaluation model operations."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Evaluation, session)
