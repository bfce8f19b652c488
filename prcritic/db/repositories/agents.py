"""Repository for agents and their repository bindings."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.db.models import Agent, AgentRepositoryBinding
from prcritic.db.repositories.base import BaseRepository


class AgentRepository(BaseRepository[Agent]):
    """Read access to agents; agents are edited by the dashboard."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Agent, session)

    async def list_enabled_for_repository(self, repository_id: int) -> Sequence[Agent]:
        """
        Agents that should review pull requests on a repository.

        Both the binding and the agent itself must be enabled. Ordered by
        agent id so posting order is stable between runs.
        """
        query = (
            select(Agent)
            .join(AgentRepositoryBinding, AgentRepositoryBinding.agent_id == Agent.id)
            .where(
                AgentRepositoryBinding.repository_id == repository_id,
                AgentRepositoryBinding.enabled.is_(True),
                Agent.enabled.is_(True),
            )
            .order_by(Agent.id)
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def bind(
        self,
        agent_id: int,
        repository_id: int,
        *,
        enabled: bool = True,
    ) -> AgentRepositoryBinding:
        """Create a binding between an agent and a repository."""
        binding = AgentRepositoryBinding(
            agent_id=agent_id,
            repository_id=repository_id,
            enabled=enabled,
        )
        self.session.add(binding)
        await self.session.flush()
        return binding
