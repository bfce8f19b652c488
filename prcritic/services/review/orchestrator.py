"""Review orchestration: pull request runs and thread replies."""

from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.core.config import settings
from prcritic.core.exceptions import GitHubError
from prcritic.core.metrics import record_review_line, record_thread_reply
from prcritic.db.models import Agent, Repository, Review
from prcritic.db.repositories import (
    AgentRepository,
    EvaluationRepository,
    RepositoryRepository,
    ReviewRepository,
)
from prcritic.services.costs.accountant import CostAccountant
from prcritic.services.github.auth import InstallationTokenCache
from prcritic.services.github.client import GitHubClient
from prcritic.services.github.models import CommentEvent, PullRequestEvent, PullRequestFile
from prcritic.services.llm.gateway import LLMGateway
from prcritic.services.review.diff_parser import (
    ChangedLine,
    parse_unified_diff,
    select_changed_lines,
)

logger = structlog.get_logger()


@dataclass
class ReviewRunResult:
    """Counters for one pull request review run."""

    repository: str
    pr_number: int
    commit_sha: str
    agents: int = 0
    files_processed: int = 0
    lines_generated: int = 0
    lines_skipped: int = 0
    duplicates_skipped: int = 0
    reviews_recorded: int = 0
    comments_posted: int = 0
    post_failures: int = 0
    total_tokens: int = 0
    review_ids: list[int] = field(default_factory=list)


@dataclass
class ThreadReplyResult:
    """Outcome of answering a reply in a review thread."""

    parent_review_id: int
    review_id: int
    posted: bool
    github_comment_id: int | None
    tokens_used: int


def format_review_body(agent_name: str, severity: int, comment: str) -> str:
    return f"**{agent_name}** (Severity: {severity}/5)\n\n{comment}"


def format_reply_body(agent_name: str, reply: str) -> str:
    return f"**{agent_name}** (follow-up)\n\n{reply}"


def file_extension(file_path: str) -> str:
    return file_path.split(".")[-1]


class ReviewOrchestrator:
    """
    Drives a pull request through every bound agent.

    Files, agents and lines are processed strictly in order. Every changed
    line goes through generate, gate, post, record, evaluate and cost
    tracking, and is committed on its own so finished lines survive a later
    failure. LLM and posting failures stay inside the line; failures listing
    files, agents or credentials propagate to the caller.
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: LLMGateway,
        accountant: CostAccountant | None = None,
        token_cache: InstallationTokenCache | None = None,
        github_client: GitHubClient | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.accountant = accountant or CostAccountant(session)
        self.token_cache = token_cache or InstallationTokenCache.from_settings()
        self.github = github_client or GitHubClient()

        self.repositories = RepositoryRepository(session)
        self.agents = AgentRepository(session)
        self.reviews = ReviewRepository(session)
        self.evaluations = EvaluationRepository(session)

    async def close(self) -> None:
        await self.github.close()

    async def _authenticate(self, installation_id: int | None) -> None:
        token = await self.token_cache.get_token(installation_id)
        self.github.authenticate(token)

    # =========================================================================
    # Pull request runs
    # =========================================================================

    async def handle_pull_request(self, event: PullRequestEvent) -> ReviewRunResult:
        result = ReviewRunResult(
            repository=event.full_name,
            pr_number=event.pr_number,
            commit_sha=event.commit_sha,
        )

        repository = await self.repositories.get_by_full_name(event.full_name)
        if repository is None:
            logger.info("Repository not registered, skipping", repository=event.full_name)
            return result

        agents = list(await self.agents.list_enabled_for_repository(repository.id))
        result.agents = len(agents)
        if not agents:
            logger.info("No enabled agents for repository", repository=event.full_name)
            return result

        await self._authenticate(event.installation_id)

        files = await self.github.get_pull_request_files(event.owner, event.repo, event.pr_number)

        logger.info(
            "Starting review run",
            repository=event.full_name,
            pr_number=event.pr_number,
            commit_sha=event.commit_sha,
            files=len(files),
            agents=len(agents),
        )

        for pr_file in files:
            if not pr_file.patch:
                logger.debug("Skipping file without patch", path=pr_file.filename)
                continue

            changed_lines = select_changed_lines(
                parse_unified_diff(pr_file.patch),
                context_window=settings.context_window,
            )
            result.files_processed += 1
            if not changed_lines:
                continue

            for agent in agents:
                if not agent.matches_file(pr_file.filename):
                    continue
                for changed_line in changed_lines:
                    await self._review_line(
                        event, repository, agent, pr_file, changed_line, result
                    )

        logger.info(
            "Review run finished",
            repository=event.full_name,
            pr_number=event.pr_number,
            reviews_recorded=result.reviews_recorded,
            comments_posted=result.comments_posted,
            lines_skipped=result.lines_skipped,
            post_failures=result.post_failures,
            total_tokens=result.total_tokens,
        )
        return result

    async def _review_line(
        self,
        event: PullRequestEvent,
        repository: Repository,
        agent: Agent,
        pr_file: PullRequestFile,
        changed_line: ChangedLine,
        result: ReviewRunResult,
    ) -> None:
        file_path = pr_file.filename
        line_number = changed_line.new_line_no

        if settings.skip_already_reviewed_lines and await self.reviews.exists_for_line(
            repository_id=repository.id,
            agent_id=agent.id,
            pr_number=event.pr_number,
            commit_sha=event.commit_sha,
            file_path=file_path,
            line_number=line_number,
        ):
            result.duplicates_skipped += 1
            record_review_line("duplicate")
            return

        generation = await self.gateway.generate(
            agent,
            {
                "code_chunk": changed_line.context,
                "file_path": file_path,
                "file_type": file_extension(file_path),
            },
        )
        result.lines_generated += 1
        result.total_tokens += generation.tokens_used

        if not generation.comment.strip() or generation.severity < agent.severity_threshold:
            result.lines_skipped += 1
            record_review_line("skipped")
            if generation.tokens_used > 0:
                await self.accountant.track(
                    agent.id, repository.id, generation.tokens_used, 0, generation.model
                )
                await self.session.commit()
            logger.debug(
                "Line below threshold",
                agent=agent.name,
                path=file_path,
                line=line_number,
                severity=generation.severity,
                threshold=agent.severity_threshold,
            )
            return

        github_comment_id: int | None = None
        try:
            posted = await self.github.create_review_comment(
                event.owner,
                event.repo,
                event.pr_number,
                commit_sha=event.commit_sha,
                path=file_path,
                line=line_number,
                body=format_review_body(agent.name, generation.severity, generation.comment),
            )
            github_comment_id = posted.get("id")
            result.comments_posted += 1
            record_review_line("posted")
        except GitHubError as e:
            result.post_failures += 1
            record_review_line("post_failed")
            logger.error(
                "Failed to post review comment",
                agent=agent.name,
                path=file_path,
                line=line_number,
                error=str(e),
            )

        review = await self.reviews.create(
            repository_id=repository.id,
            agent_id=agent.id,
            pr_number=event.pr_number,
            commit_sha=event.commit_sha,
            file_path=file_path,
            line_number=line_number,
            code_chunk=changed_line.context,
            comment=generation.comment,
            severity=generation.severity,
            github_comment_id=github_comment_id,
            raw_llm=generation.raw,
        )
        result.reviews_recorded += 1
        result.review_ids.append(review.id)

        evaluation = await self.gateway.evaluate(
            agent,
            {
                "code_chunk": changed_line.context,
                "review_comment": generation.comment,
                "file_path": file_path,
            },
        )
        await self.evaluations.create(
            review_id=review.id,
            scores=evaluation.scores,
            summary=evaluation.summary,
        )
        result.total_tokens += evaluation.tokens_used

        await self.accountant.track(
            agent.id,
            repository.id,
            generation.tokens_used,
            evaluation.tokens_used,
            generation.model,
            evaluation_model=evaluation.model,
        )
        await self.session.commit()

    # =========================================================================
    # Thread replies
    # =========================================================================

    async def handle_comment(self, event: CommentEvent) -> ThreadReplyResult | None:
        """Answer a developer who replied to one of our review comments."""
        if event.in_reply_to_id is None:
            return None

        if event.is_bot:
            logger.debug("Ignoring bot comment", comment_id=event.comment_id)
            return None

        original = await self.reviews.get_by_github_comment_id(event.in_reply_to_id)
        if original is None:
            logger.debug(
                "Reply is not to a review comment we posted",
                in_reply_to_id=event.in_reply_to_id,
            )
            return None

        agent = original.agent
        reply = await self.gateway.conversational_reply(
            agent,
            {
                "original_code": original.code_chunk,
                "original_comment": original.comment,
                "user_reply": event.body,
            },
        )
        if not reply.reply.strip():
            record_thread_reply("empty")
            logger.info("No reply generated", parent_review_id=original.id)
            return None

        await self._authenticate(event.installation_id)

        body = format_reply_body(agent.name, reply.reply)
        github_comment_id: int | None = None
        try:
            if event.pull_request_review_id is not None:
                posted = await self.github.create_reply_to_review_comment(
                    event.owner, event.repo, original.pr_number, event.in_reply_to_id, body
                )
            else:
                posted = await self.github.create_issue_comment(
                    event.owner, event.repo, original.pr_number, body
                )
            github_comment_id = posted.get("id")
            record_thread_reply("posted")
        except GitHubError as e:
            record_thread_reply("post_failed")
            logger.error(
                "Failed to post thread reply",
                parent_review_id=original.id,
                error=str(e),
            )

        review = await self.reviews.create(
            repository_id=original.repository_id,
            agent_id=original.agent_id,
            pr_number=original.pr_number,
            commit_sha=original.commit_sha,
            file_path=original.file_path,
            line_number=original.line_number,
            code_chunk=original.code_chunk,
            comment=reply.reply,
            severity=0,
            github_comment_id=github_comment_id,
            is_thread_reply=True,
            parent_review_id=original.id,
        )
        await self.accountant.track(
            original.agent_id, original.repository_id, reply.tokens_used, 0, reply.model
        )
        await self.session.commit()

        logger.info(
            "Thread reply completed",
            parent_review_id=original.id,
            review_id=review.id,
            posted=github_comment_id is not None,
        )
        return ThreadReplyResult(
            parent_review_id=original.id,
            review_id=review.id,
            posted=github_comment_id is not None,
            github_comment_id=github_comment_id,
            tokens_used=reply.tokens_used,
        )
