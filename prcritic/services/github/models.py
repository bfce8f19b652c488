from enum import Enum
from typing import Any

from pydantic import BaseModel


class FileStatus(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class PullRequestFile(BaseModel):
    """A file changed in a pull request."""

    sha: str | None = None
    filename: str
    status: FileStatus = FileStatus.MODIFIED
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    # Absent for binary files and very large diffs
    patch: str | None = None
    previous_filename: str | None = None


class PullRequestEvent(BaseModel):
    """The parts of a pull_request webhook a review run needs."""

    action: str
    installation_id: int | None = None
    owner: str
    repo: str
    pr_number: int
    commit_sha: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PullRequestEvent":
        repository = payload["repository"]
        pull_request = payload["pull_request"]
        return cls(
            action=payload.get("action", ""),
            installation_id=(payload.get("installation") or {}).get("id"),
            owner=repository["owner"]["login"],
            repo=repository["name"],
            pr_number=payload.get("number") or pull_request["number"],
            commit_sha=pull_request["head"]["sha"],
        )


class CommentEvent(BaseModel):
    """A comment created on a pull request or on one of its review threads."""

    action: str
    installation_id: int | None = None
    owner: str
    repo: str
    pr_number: int | None = None
    comment_id: int
    body: str
    in_reply_to_id: int | None = None
    pull_request_review_id: int | None = None
    author: str | None = None
    author_type: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def is_bot(self) -> bool:
        return self.author_type == "Bot"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CommentEvent":
        repository = payload["repository"]
        comment = payload["comment"]
        user = comment.get("user") or {}

        pr_number = None
        if "pull_request" in payload:
            pr_number = payload["pull_request"].get("number")
        elif "issue" in payload:
            pr_number = payload["issue"].get("number")

        return cls(
            action=payload.get("action", ""),
            installation_id=(payload.get("installation") or {}).get("id"),
            owner=repository["owner"]["login"],
            repo=repository["name"],
            pr_number=pr_number,
            comment_id=comment["id"],
            body=comment.get("body") or "",
            in_reply_to_id=comment.get("in_reply_to_id"),
            pull_request_review_id=comment.get("pull_request_review_id"),
            author=user.get("login"),
            author_type=user.get("type"),
        )
