from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prcritic.core.exceptions import GitHubAuthenticationError, GitHubError
from prcritic.db.models import Agent, CostRecord, Evaluation, Repository, Review
from prcritic.db.repositories import ReviewRepository
from prcritic.services.costs.accountant import estimate_cost
from prcritic.services.github.models import CommentEvent, PullRequestEvent, PullRequestFile
from prcritic.services.llm.gateway import EvaluationResult, GenerationResult, ReplyResult
from prcritic.services.review.orchestrator import ReviewOrchestrator
from tests.fixtures.sample_patches import SINGLE_ADDITION, TWO_HUNKS

COMMIT_SHA = "a" * 40


def _generation(comment: str, severity: int, tokens: int = 120) -> GenerationResult:
    return GenerationResult(
        comment=comment, severity=severity, tokens_used=tokens, model="gpt-4o-mini", raw={}
    )


async def _all(session: AsyncSession, model: type) -> list:
    result = await session.execute(select(model))
    return list(result.scalars().all())


@pytest.fixture
def gateway() -> MagicMock:
    gateway = MagicMock()
    gateway.generate = AsyncMock(return_value=_generation("Possible SQL injection.", 5))
    gateway.evaluate = AsyncMock(
        return_value=EvaluationResult(
            scores={"clarity": 8, "accuracy": 9},
            summary="Good",
            tokens_used=40,
            model="gpt-4o-mini",
        )
    )
    gateway.conversational_reply = AsyncMock(
        return_value=ReplyResult(
            reply="Because input is concatenated.", tokens_used=70, model="gpt-4o-mini"
        )
    )
    return gateway


@pytest.fixture
def github() -> MagicMock:
    client = MagicMock()
    client.get_pull_request_files = AsyncMock(
        return_value=[PullRequestFile(filename="app.py", patch=SINGLE_ADDITION)]
    )
    client.create_review_comment = AsyncMock(return_value={"id": 9001})
    client.create_reply_to_review_comment = AsyncMock(return_value={"id": 9500})
    client.create_issue_comment = AsyncMock(return_value={"id": 9600})
    client.close = AsyncMock()
    return client


@pytest.fixture
def token_cache() -> MagicMock:
    cache = MagicMock()
    cache.get_token = AsyncMock(return_value="installation-token")
    return cache


@pytest.fixture
def orchestrator(
    db_session: AsyncSession, gateway: MagicMock, github: MagicMock, token_cache: MagicMock
) -> ReviewOrchestrator:
    return ReviewOrchestrator(
        session=db_session,
        gateway=gateway,
        token_cache=token_cache,
        github_client=github,
    )


@pytest.fixture
def pr_event() -> PullRequestEvent:
    return PullRequestEvent(
        action="opened",
        installation_id=42,
        owner="octo",
        repo="widgets",
        pr_number=7,
        commit_sha=COMMIT_SHA,
    )


class TestHandlePullRequest:
    """Tests for pull request review runs."""

    @pytest.mark.asyncio
    async def test_posts_records_evaluates_and_tracks(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        agent: Agent,
        repository: Repository,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
        github: MagicMock,
        token_cache: MagicMock,
    ) -> None:
        result = await orchestrator.handle_pull_request(pr_event)

        token_cache.get_token.assert_awaited_once_with(42)
        github.authenticate.assert_called_once_with("installation-token")

        gateway.generate.assert_awaited_once()
        variables = gateway.generate.call_args.args[1]
        assert variables == {
            "code_chunk": "const a = 1;\nconst b = 2;\nconst c = 3;",
            "file_path": "app.py",
            "file_type": "py",
        }

        github.create_review_comment.assert_awaited_once_with(
            "octo",
            "widgets",
            7,
            commit_sha=COMMIT_SHA,
            path="app.py",
            line=2,
            body="**Security Sentinel** (Severity: 5/5)\n\nPossible SQL injection.",
        )

        reviews = await _all(db_session, Review)
        assert len(reviews) == 1
        assert reviews[0].github_comment_id == 9001
        assert reviews[0].line_number == 2
        assert reviews[0].severity == 5
        assert reviews[0].is_thread_reply is False

        evaluations = await _all(db_session, Evaluation)
        assert len(evaluations) == 1
        assert evaluations[0].review_id == reviews[0].id
        assert evaluations[0].scores == {"clarity": 8, "accuracy": 9}

        costs = await _all(db_session, CostRecord)
        assert len(costs) == 1
        assert (costs[0].generation_tokens, costs[0].evaluation_tokens) == (120, 40)
        assert costs[0].total_tokens == 160

        assert result.reviews_recorded == 1
        assert result.comments_posted == 1
        assert result.total_tokens == 160

    @pytest.mark.asyncio
    async def test_evaluation_tokens_priced_on_evaluation_model(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        agent: Agent,
        repository: Repository,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
    ) -> None:
        gateway.evaluate.return_value = EvaluationResult(
            scores={"clarity": 8}, summary="", tokens_used=40, model="claude-3-5-sonnet-20241022"
        )

        await orchestrator.handle_pull_request(pr_event)

        costs = await _all(db_session, CostRecord)
        assert len(costs) == 1
        assert costs[0].model == "gpt-4o-mini"
        assert costs[0].estimated_cost_usd == pytest.approx(
            estimate_cost(120, "gpt-4o-mini") + estimate_cost(40, "claude-3-5-sonnet-20241022")
        )

    @pytest.mark.asyncio
    async def test_below_threshold_charges_generation_only(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        agent: Agent,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
        github: MagicMock,
    ) -> None:
        gateway.generate.return_value = _generation("Could refactor for readability.", 2, 90)

        result = await orchestrator.handle_pull_request(pr_event)

        github.create_review_comment.assert_not_called()
        gateway.evaluate.assert_not_called()
        assert await _all(db_session, Review) == []

        costs = await _all(db_session, CostRecord)
        assert len(costs) == 1
        assert costs[0].generation_tokens == 90
        assert costs[0].evaluation_tokens == 0
        assert result.lines_skipped == 1

    @pytest.mark.asyncio
    async def test_empty_comment_is_skipped_without_cost_when_no_tokens(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        agent: Agent,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
        github: MagicMock,
    ) -> None:
        gateway.generate.return_value = _generation("", 0, 0)

        await orchestrator.handle_pull_request(pr_event)

        github.create_review_comment.assert_not_called()
        assert await _all(db_session, Review) == []
        assert await _all(db_session, CostRecord) == []

    @pytest.mark.asyncio
    async def test_post_failure_still_records_review(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        agent: Agent,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
        github: MagicMock,
    ) -> None:
        github.create_review_comment.side_effect = GitHubError("Validation Failed")

        result = await orchestrator.handle_pull_request(pr_event)

        reviews = await _all(db_session, Review)
        assert len(reviews) == 1
        assert reviews[0].github_comment_id is None
        gateway.evaluate.assert_awaited_once()
        assert len(await _all(db_session, Evaluation)) == 1
        assert result.post_failures == 1
        assert result.comments_posted == 0

    @pytest.mark.asyncio
    async def test_every_line_and_hunk_is_reviewed(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        agent: Agent,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
        github: MagicMock,
    ) -> None:
        github.get_pull_request_files.return_value = [
            PullRequestFile(filename="main.py", patch=TWO_HUNKS)
        ]
        github.create_review_comment.side_effect = [{"id": 1}, {"id": 2}]

        await orchestrator.handle_pull_request(pr_event)

        lines = [call.kwargs["line"] for call in github.create_review_comment.call_args_list]
        assert lines == [2, 22]
        contexts = [call.args[1]["code_chunk"] for call in gateway.generate.call_args_list]
        assert "run(args)" not in contexts[0]
        assert "import sys" not in contexts[1]

    @pytest.mark.asyncio
    async def test_file_filter_and_missing_patch(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        agent: Agent,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
        github: MagicMock,
    ) -> None:
        agent.file_type_filters = [".ts"]
        await db_session.commit()
        github.get_pull_request_files.return_value = [
            PullRequestFile(filename="app.py", patch=SINGLE_ADDITION),
            PullRequestFile(filename="logo.png", patch=None),
            PullRequestFile(filename="web/index.ts", patch=SINGLE_ADDITION),
        ]

        result = await orchestrator.handle_pull_request(pr_event)

        assert gateway.generate.await_count == 1
        assert gateway.generate.call_args.args[1]["file_path"] == "web/index.ts"
        assert gateway.generate.call_args.args[1]["file_type"] == "ts"
        assert result.files_processed == 2

    @pytest.mark.asyncio
    async def test_empty_patch_invokes_no_agent(
        self,
        orchestrator: ReviewOrchestrator,
        agent: Agent,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
        github: MagicMock,
    ) -> None:
        github.get_pull_request_files.return_value = [
            PullRequestFile(filename="app.py", patch="")
        ]

        result = await orchestrator.handle_pull_request(pr_event)

        gateway.generate.assert_not_called()
        assert result.lines_generated == 0

    @pytest.mark.asyncio
    async def test_unknown_repository_does_nothing(
        self,
        orchestrator: ReviewOrchestrator,
        pr_event: PullRequestEvent,
        github: MagicMock,
        token_cache: MagicMock,
    ) -> None:
        result = await orchestrator.handle_pull_request(pr_event)

        token_cache.get_token.assert_not_called()
        github.get_pull_request_files.assert_not_called()
        assert result.reviews_recorded == 0

    @pytest.mark.asyncio
    async def test_replayed_event_skips_reviewed_lines(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        agent: Agent,
        pr_event: PullRequestEvent,
        gateway: MagicMock,
    ) -> None:
        await orchestrator.handle_pull_request(pr_event)
        replay = await orchestrator.handle_pull_request(pr_event)

        assert gateway.generate.await_count == 1
        assert replay.duplicates_skipped == 1
        assert len(await _all(db_session, Review)) == 1

    @pytest.mark.asyncio
    async def test_file_listing_failure_is_fatal(
        self,
        orchestrator: ReviewOrchestrator,
        agent: Agent,
        pr_event: PullRequestEvent,
        github: MagicMock,
    ) -> None:
        github.get_pull_request_files.side_effect = GitHubError("Server Error")

        with pytest.raises(GitHubError):
            await orchestrator.handle_pull_request(pr_event)

    @pytest.mark.asyncio
    async def test_authentication_failure_is_fatal(
        self,
        orchestrator: ReviewOrchestrator,
        agent: Agent,
        pr_event: PullRequestEvent,
        github: MagicMock,
        token_cache: MagicMock,
    ) -> None:
        token_cache.get_token.side_effect = GitHubAuthenticationError("bad key")

        with pytest.raises(GitHubAuthenticationError):
            await orchestrator.handle_pull_request(pr_event)
        github.get_pull_request_files.assert_not_called()


class TestHandleComment:
    """Tests for conversational thread replies."""

    @pytest.fixture
    def comment_event(self) -> CommentEvent:
        return CommentEvent(
            action="created",
            installation_id=42,
            owner="octo",
            repo="widgets",
            pr_number=7,
            comment_id=9002,
            body="Why is this a problem?",
            in_reply_to_id=9001,
            pull_request_review_id=555,
            author="dev",
            author_type="User",
        )

    @pytest_asyncio.fixture
    async def original(
        self, db_session: AsyncSession, agent: Agent, repository: Repository
    ) -> Review:
        review = await ReviewRepository(db_session).create(
            repository_id=repository.id,
            agent_id=agent.id,
            pr_number=7,
            commit_sha=COMMIT_SHA,
            file_path="app.py",
            line_number=2,
            code_chunk="const b = 2;",
            comment="Possible SQL injection.",
            severity=5,
            github_comment_id=9001,
        )
        await db_session.commit()
        return review

    @pytest.mark.asyncio
    async def test_reply_in_review_thread(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        original: Review,
        comment_event: CommentEvent,
        gateway: MagicMock,
        github: MagicMock,
    ) -> None:
        result = await orchestrator.handle_comment(comment_event)

        assert result is not None
        assert result.posted is True
        assert result.github_comment_id == 9500

        gateway.conversational_reply.assert_awaited_once()
        context = gateway.conversational_reply.call_args.args[1]
        assert context == {
            "original_code": "const b = 2;",
            "original_comment": "Possible SQL injection.",
            "user_reply": "Why is this a problem?",
        }
        github.create_reply_to_review_comment.assert_awaited_once_with(
            "octo",
            "widgets",
            7,
            9001,
            "**Security Sentinel** (follow-up)\n\nBecause input is concatenated.",
        )

        reply = await ReviewRepository(db_session).get_by_id(result.review_id)
        assert reply is not None
        assert reply.is_thread_reply is True
        assert reply.parent_review_id == original.id
        assert reply.severity == 0
        assert reply.line_number == original.line_number
        assert reply.github_comment_id == 9500
        assert await _all(db_session, Evaluation) == []

        costs = await _all(db_session, CostRecord)
        assert [(c.generation_tokens, c.evaluation_tokens) for c in costs] == [(70, 0)]

    @pytest.mark.asyncio
    async def test_reply_without_review_id_uses_issue_comment(
        self,
        orchestrator: ReviewOrchestrator,
        original: Review,
        comment_event: CommentEvent,
        github: MagicMock,
    ) -> None:
        comment_event.pull_request_review_id = None

        result = await orchestrator.handle_comment(comment_event)

        github.create_issue_comment.assert_awaited_once()
        github.create_reply_to_review_comment.assert_not_called()
        assert result is not None
        assert result.github_comment_id == 9600

    @pytest.mark.asyncio
    async def test_post_failure_still_records_reply(
        self,
        orchestrator: ReviewOrchestrator,
        original: Review,
        comment_event: CommentEvent,
        github: MagicMock,
    ) -> None:
        github.create_reply_to_review_comment.side_effect = GitHubError("nope")

        result = await orchestrator.handle_comment(comment_event)

        assert result is not None
        assert result.posted is False
        assert result.github_comment_id is None

    @pytest.mark.asyncio
    async def test_ignores_top_level_comment(
        self, orchestrator: ReviewOrchestrator, comment_event: CommentEvent, gateway: MagicMock
    ) -> None:
        comment_event.in_reply_to_id = None

        assert await orchestrator.handle_comment(comment_event) is None
        gateway.conversational_reply.assert_not_called()

    @pytest.mark.asyncio
    async def test_ignores_reply_to_unknown_comment(
        self,
        orchestrator: ReviewOrchestrator,
        original: Review,
        comment_event: CommentEvent,
        gateway: MagicMock,
    ) -> None:
        comment_event.in_reply_to_id = 123456

        assert await orchestrator.handle_comment(comment_event) is None
        gateway.conversational_reply.assert_not_called()

    @pytest.mark.asyncio
    async def test_ignores_bot_authors(
        self,
        orchestrator: ReviewOrchestrator,
        original: Review,
        comment_event: CommentEvent,
        gateway: MagicMock,
    ) -> None:
        comment_event.author_type = "Bot"

        assert await orchestrator.handle_comment(comment_event) is None
        gateway.conversational_reply.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_reply_is_not_posted(
        self,
        orchestrator: ReviewOrchestrator,
        db_session: AsyncSession,
        original: Review,
        comment_event: CommentEvent,
        gateway: MagicMock,
        github: MagicMock,
    ) -> None:
        gateway.conversational_reply.return_value = ReplyResult(
            reply="   ", tokens_used=5, model="gpt-4o-mini"
        )

        assert await orchestrator.handle_comment(comment_event) is None
        github.create_reply_to_review_comment.assert_not_called()
        assert len(await _all(db_session, Review)) == 1
