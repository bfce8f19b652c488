"""Repository pattern implementations for prcritic."""

from prcritic.db.repositories.agents import AgentRepository
from prcritic.db.repositories.base import BaseRepository
from prcritic.db.repositories.costs import CostRecordRepository
from prcritic.db.repositories.repositories import RepositoryRepository
from prcritic.db.repositories.reviews import EvaluationRepository, ReviewRepository

__all__ = [
    "AgentRepository",
    "BaseRepository",
    "CostRecordRepository",
    "EvaluationRepository",
    "RepositoryRepository",
    "ReviewRepository",
]
