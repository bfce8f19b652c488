"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.db.session import get_session_context
from prcritic.services.github.auth import InstallationTokenCache
from prcritic.services.llm.gateway import LLMGateway
from prcritic.services.llm.router import ChatRouter
from prcritic.worker.jobs import JobRunner


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_session_context() as session:
        yield session


@lru_cache
def get_gateway() -> LLMGateway:
    return LLMGateway(ChatRouter())


@lru_cache
def get_token_cache() -> InstallationTokenCache:
    return InstallationTokenCache.from_settings()


@lru_cache
def get_job_runner() -> JobRunner:
    """Process-wide job runner; jobs share the gateway and token cache."""
    return JobRunner(gateway=get_gateway(), token_cache=get_token_cache())
