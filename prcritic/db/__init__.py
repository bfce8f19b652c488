"""Database package for prcritic."""

from prcritic.db.models import (
    Agent,
    AgentRepositoryBinding,
    Base,
    CostRecord,
    Evaluation,
    Repository,
    Review,
)
from prcritic.db.repositories import (
    AgentRepository,
    BaseRepository,
    CostRecordRepository,
    EvaluationRepository,
    RepositoryRepository,
    ReviewRepository,
)
from prcritic.db.session import (
    check_db_connection,
    close_db,
    create_session_factory,
    get_session_context,
    get_session_factory,
    init_db,
)

__all__ = [
    # Models
    "Base",
    "Agent",
    "AgentRepositoryBinding",
    "CostRecord",
    "Evaluation",
    "Repository",
    "Review",
    # Repositories
    "BaseRepository",
    "AgentRepository",
    "CostRecordRepository",
    "EvaluationRepository",
    "RepositoryRepository",
    "ReviewRepository",
    # Session
    "create_session_factory",
    "get_session_factory",
    "get_session_context",
    "init_db",
    "close_db",
    "check_db_connection",
]
