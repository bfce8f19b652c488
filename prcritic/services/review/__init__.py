"""Review service package."""

from prcritic.services.review.diff_parser import (
    ChangedLine,
    DiffLine,
    DiffParser,
    Hunk,
    LineType,
    parse_unified_diff,
    select_changed_lines,
)
from prcritic.services.review.orchestrator import (
    ReviewOrchestrator,
    ReviewRunResult,
    ThreadReplyResult,
)

__all__ = [
    "ChangedLine",
    "DiffLine",
    "DiffParser",
    "Hunk",
    "LineType",
    "ReviewOrchestrator",
    "ReviewRunResult",
    "ThreadReplyResult",
    "parse_unified_diff",
    "select_changed_lines",
]
