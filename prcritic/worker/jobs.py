"""In-process background jobs for webhook-triggered review work."""

import time
import uuid
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prcritic.core.metrics import JOBS_IN_PROGRESS, record_job_finished
from prcritic.db.models import utcnow
from prcritic.db.session import get_session_factory
from prcritic.services.github.auth import InstallationTokenCache
from prcritic.services.github.models import CommentEvent, PullRequestEvent
from prcritic.services.llm.gateway import LLMGateway
from prcritic.services.review.orchestrator import ReviewOrchestrator

logger = structlog.get_logger()

MAX_TRACKED_JOBS = 500


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ReviewJob:
    """One webhook event's worth of work and its outcome."""

    kind: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result,
            "error": self.error,
        }


OrchestratorCall = Callable[[ReviewOrchestrator], Awaitable[Any]]


class JobRunner:
    """
    Runs review jobs after the webhook response has been sent.

    Each job gets its own database session and orchestrator. The gateway and
    the installation token cache are shared across jobs. Failures are logged
    and stored on the job; nothing is raised to the caller.
    """

    def __init__(
        self,
        gateway: LLMGateway,
        token_cache: InstallationTokenCache,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        max_jobs: int = MAX_TRACKED_JOBS,
    ) -> None:
        self.gateway = gateway
        self.token_cache = token_cache
        self._session_factory = session_factory
        self.max_jobs = max_jobs
        self._jobs: OrderedDict[str, ReviewJob] = OrderedDict()

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    def submit(self, kind: str) -> ReviewJob:
        """Register a queued job."""
        job = ReviewJob(kind=kind)
        self._jobs[job.id] = job
        while len(self._jobs) > self.max_jobs:
            self._jobs.popitem(last=False)
        return job

    def get(self, job_id: str) -> ReviewJob | None:
        return self._jobs.get(job_id)

    def build_orchestrator(self, session: AsyncSession) -> ReviewOrchestrator:
        return ReviewOrchestrator(
            session=session,
            gateway=self.gateway,
            token_cache=self.token_cache,
        )

    async def run_pull_request(self, job: ReviewJob, event: PullRequestEvent) -> None:
        await self._execute(job, lambda orchestrator: orchestrator.handle_pull_request(event))

    async def run_comment(self, job: ReviewJob, event: CommentEvent) -> None:
        await self._execute(job, lambda orchestrator: orchestrator.handle_comment(event))

    async def _execute(self, job: ReviewJob, call: OrchestratorCall) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = utcnow()
        start_time = time.perf_counter()
        JOBS_IN_PROGRESS.inc()

        logger.info("Job started", job_id=job.id, kind=job.kind)

        try:
            async with self.session_factory() as session:
                orchestrator = self.build_orchestrator(session)
                try:
                    outcome = await call(orchestrator)
                except Exception:
                    await session.rollback()
                    raise
                finally:
                    await orchestrator.close()
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e) or type(e).__name__
            logger.error(
                "Job failed",
                job_id=job.id,
                kind=job.kind,
                error=job.error,
                exc_info=True,
            )
        else:
            job.status = JobStatus.COMPLETED
            if is_dataclass(outcome) and not isinstance(outcome, type):
                job.result = asdict(outcome)
            logger.info("Job completed", job_id=job.id, kind=job.kind, result=job.result)
        finally:
            job.finished_at = utcnow()
            JOBS_IN_PROGRESS.dec()
            record_job_finished(job.kind, job.status.value, time.perf_counter() - start_time)
