"""GitHub API client with metrics instrumentation."""

import time
from typing import Any

import httpx
import structlog

from prcritic.core.config import settings
from prcritic.core.exceptions import (
    GitHubAuthenticationError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from prcritic.core.metrics import record_github_api_call
from prcritic.services.github.models import FileStatus, PullRequestFile

logger = structlog.get_logger()


def _file_status(value: str) -> FileStatus:
    try:
        return FileStatus(value)
    except ValueError:
        return FileStatus.CHANGED


class GitHubClient:
    """Client for the GitHub REST endpoints a review run touches."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.base_url = base_url or settings.github_api_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def authenticate(self, token: str) -> None:
        """Use ``token`` for subsequent requests."""
        if token != self.token:
            self.token = token
            if self._client is not None:
                self._client.headers["Authorization"] = f"Bearer {token}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self.token is None:
            raise GitHubAuthenticationError("GitHub client used before authentication")

        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
                timeout=settings.github_request_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _extract_endpoint_name(self, endpoint: str) -> str:
        """
        Extract a normalized endpoint name for metrics.

        Converts:
            /repos/owner/repo/pulls/123/files -> pulls_files
            /repos/owner/repo/pulls/123/comments -> pulls_comments
            /repos/owner/repo/pulls/123/comments/9/replies -> pulls_comments_replies
        """
        parts = endpoint.strip("/").split("/")

        if len(parts) >= 3 and parts[0] == "repos":
            parts = parts[3:]

        parts = [p for p in parts if not p.isdigit()]

        return "_".join(parts) if parts else "unknown"

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> dict[str, Any] | list[Any]:
        """Make an authenticated request to GitHub API."""
        client = await self._get_client()
        endpoint_name = self._extract_endpoint_name(endpoint)

        logger.debug("GitHub API request", method=method, endpoint=endpoint)

        start_time = time.perf_counter()
        status_code = 0
        rate_limit_remaining = None
        rate_limit_reset = None

        try:
            try:
                response = await client.request(method, endpoint, **kwargs)
            except httpx.HTTPError as e:
                raise GitHubError(
                    f"GitHub request failed: {e}", details={"endpoint": endpoint}
                ) from e

            status_code = response.status_code

            if "X-RateLimit-Remaining" in response.headers:
                rate_limit_remaining = int(response.headers["X-RateLimit-Remaining"])
            if "X-RateLimit-Reset" in response.headers:
                rate_limit_reset = int(response.headers["X-RateLimit-Reset"])

            if response.status_code == 401:
                raise GitHubAuthenticationError("Invalid GitHub token")

            if response.status_code in (403, 429):
                if response.status_code == 429 or rate_limit_remaining == 0:
                    raise GitHubRateLimitError(reset_at=rate_limit_reset)
                raise GitHubAuthenticationError("Access forbidden")

            if response.status_code == 404:
                raise GitHubNotFoundError(f"Resource not found: {endpoint}")

            if response.status_code >= 400:
                raise GitHubError(
                    f"GitHub API error: {response.status_code}",
                    details={"response": response.text},
                )

            try:
                result: dict[str, Any] | list[Any] = response.json()
            except ValueError as e:
                raise GitHubError(
                    "Invalid JSON response",
                    details={"endpoint": endpoint, "status_code": status_code},
                ) from e
            return result

        finally:
            duration_seconds = time.perf_counter() - start_time
            record_github_api_call(
                endpoint=endpoint_name,
                method=method,
                status_code=status_code,
                duration_seconds=duration_seconds,
                rate_limit_remaining=rate_limit_remaining,
                rate_limit_reset=rate_limit_reset,
            )

    async def get_pull_request_files(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        per_page: int | None = None,
    ) -> list[PullRequestFile]:
        """Fetch the files changed in a PR (first page only)."""
        data = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{pr_number}/files",
            params={"per_page": per_page or settings.max_files_per_review},
        )

        if not isinstance(data, list):
            raise GitHubError("Unexpected response format")

        files = []
        for file_data in data:
            status = file_data.get("status", FileStatus.MODIFIED.value)
            files.append(
                PullRequestFile(
                    sha=file_data.get("sha"),
                    filename=file_data["filename"],
                    status=_file_status(status),
                    additions=file_data.get("additions", 0),
                    deletions=file_data.get("deletions", 0),
                    changes=file_data.get("changes", 0),
                    patch=file_data.get("patch"),
                    previous_filename=file_data.get("previous_filename"),
                )
            )

        return files

    async def create_review_comment(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        *,
        commit_sha: str,
        path: str,
        line: int,
        body: str,
    ) -> dict[str, Any]:
        """Create an inline comment on the new side of a PR diff."""
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{pr_number}/comments",
            json={
                "body": body,
                "commit_id": commit_sha,
                "path": path,
                "line": line,
                "side": "RIGHT",
            },
        )

        if not isinstance(data, dict):
            raise GitHubError("Unexpected response format")

        logger.info(
            "Review comment posted",
            owner=owner,
            repo=repo,
            pr_number=pr_number,
            path=path,
            line=line,
            comment_id=data.get("id"),
        )
        return data

    async def create_reply_to_review_comment(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        comment_id: int,
        body: str,
    ) -> dict[str, Any]:
        """Reply inside an existing review comment thread."""
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{pr_number}/comments/{comment_id}/replies",
            json={"body": body},
        )

        if not isinstance(data, dict):
            raise GitHubError("Unexpected response format")

        return data

    async def create_issue_comment(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        body: str,
    ) -> dict[str, Any]:
        """Create a simple comment on a PR (not a review)."""
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{pr_number}/comments",
            json={"body": body},
        )

        if not isinstance(data, dict):
            raise GitHubError("Unexpected response format")

        return data
