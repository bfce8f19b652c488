"""Repository for GitHub repositories (meta, I know)."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.db.models import Repository
from prcritic.db.repositories.base import BaseRepository


class RepositoryRepository(BaseRepository[Repository]):
    """Repository for Repository model operations."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Repository, session)

    async def get_by_full_name(self, full_name: str) -> Repository | None:
        """Get a repository by its full name (owner/repo)."""
        query = select(Repository).where(Repository.full_name == full_name)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create(
        self,
        owner: str,
        name: str,
        github_id: int | None = None,
    ) -> tuple[Repository, bool]:
        """
        Get an existing repository or create a new one.

        Returns:
            Tuple of (repository, created) where created is True if new.
        """
        existing = await self.get_by_full_name(f"{owner}/{name}")
        if existing:
            return existing, False

        repo = await self.create(
            owner=owner,
            name=name,
            full_name=f"{owner}/{name}",
            github_id=github_id,
        )
        return repo, True
