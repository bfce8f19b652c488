"""SQLAlchemy models for prcritic."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Base Classes and Mixins
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class CreatedAtMixin:
    """Mixin for append-only rows: creation time only."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


# =============================================================================
# Configuration Models
# =============================================================================


class Repository(Base, TimestampMixin):
    """A GitHub repository agents can be bound to."""

    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # GitHub identifiers
    github_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, nullable=True)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)

    bindings: Mapped[list["AgentRepositoryBinding"]] = relationship(
        "AgentRepositoryBinding",
        back_populates="repository",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_repositories_owner_name", "owner", "name"),)

    def __repr__(self) -> str:
        return f"<Repository {self.full_name}>"


class Agent(Base, TimestampMixin):
    """
    A reviewer persona: prompts, evaluation dimensions, filters and threshold.

    Agents are managed by the dashboard; the review pipeline only reads them.
    """

    __tablename__ = "agents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Prompt templates with {placeholder} variables
    generation_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    evaluation_prompt: Mapped[str] = mapped_column(Text, nullable=False)

    # Ordered list of dimension names scored 1-10 by the evaluation step
    evaluation_dims: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    # Suffixes / extensions such as ".py" or "test.ts"; empty matches every file
    file_type_filters: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    severity_threshold: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    bindings: Mapped[list["AgentRepositoryBinding"]] = relationship(
        "AgentRepositoryBinding",
        back_populates="agent",
        cascade="all, delete-orphan",
    )

    def matches_file(self, file_path: str) -> bool:
        """Whether this agent's file-type filters select ``file_path``."""
        if not self.file_type_filters:
            return True
        extension = file_path.split(".")[-1]
        return any(
            file_path.endswith(pattern) or f".{extension}" == pattern
            for pattern in self.file_type_filters
        )

    def __repr__(self) -> str:
        return f"<Agent {self.name}>"


class AgentRepositoryBinding(Base, TimestampMixin):
    """Enables an agent on a repository."""

    __tablename__ = "agent_repository_bindings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
    )
    repository_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    agent: Mapped["Agent"] = relationship("Agent", back_populates="bindings")
    repository: Mapped["Repository"] = relationship("Repository", back_populates="bindings")

    __table_args__ = (
        UniqueConstraint("agent_id", "repository_id", name="uq_agent_repository"),
        Index("ix_bindings_repository_id", "repository_id"),
    )


# =============================================================================
# Append-only Records
# =============================================================================


class Review(Base, CreatedAtMixin):
    """One reviewed line for one agent, or a conversational thread reply."""

    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    repository_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )
    agent_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Location
    pr_number: Mapped[int] = mapped_column(Integer, nullable=False)
    commit_sha: Mapped[str] = mapped_column(String(40), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Content
    code_chunk: Mapped[str] = mapped_column(Text, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    # 0 for thread replies, otherwise 1-5
    severity: Mapped[int] = mapped_column(Integer, nullable=False)

    posted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    github_comment_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Threads
    is_thread_reply: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    parent_review_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("reviews.id", ondelete="SET NULL"),
        nullable=True,
    )

    raw_llm: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    agent: Mapped["Agent"] = relationship("Agent")
    repository: Mapped["Repository"] = relationship("Repository")
    evaluations: Mapped[list["Evaluation"]] = relationship(
        "Evaluation",
        back_populates="review",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_reviews_github_comment_id", "github_comment_id"),
        Index("ix_reviews_repository_pr", "repository_id", "pr_number"),
        Index("ix_reviews_agent_id", "agent_id"),
        Index("ix_reviews_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Review {self.file_path}:{self.line_number} agent={self.agent_id}>"


class Evaluation(Base, CreatedAtMixin):
    """Dimension scores for a generated review comment."""

    __tablename__ = "evaluations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    review_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("reviews.id", ondelete="CASCADE"),
        nullable=False,
    )
    scores: Mapped[dict[str, int]] = mapped_column(JSONType, nullable=False)
    summary: Mapped[str] = mapped_column(Text, default="", nullable=False)

    review: Mapped["Review"] = relationship("Review", back_populates="evaluations")

    __table_args__ = (Index("ix_evaluations_review_id", "review_id"),)


class CostRecord(Base, CreatedAtMixin):
    """Token usage and estimated spend for one tracked LLM interaction."""

    __tablename__ = "cost_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
    )
    repository_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("repositories.id", ondelete="SET NULL"),
        nullable=True,
    )
    generation_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    evaluation_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    estimated_cost_usd: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        Index("ix_cost_records_agent_created", "agent_id", "created_at"),
        Index("ix_cost_records_repository_id", "repository_id"),
    )

    def __repr__(self) -> str:
        return f"<CostRecord agent={self.agent_id} tokens={self.total_tokens}>"
