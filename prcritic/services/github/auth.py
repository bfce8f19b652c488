"""GitHub App authentication and the per-installation access-token cache."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx
import jwt
import structlog

from prcritic.core.config import settings
from prcritic.core.exceptions import ConfigurationError, GitHubAuthenticationError
from prcritic.core.metrics import record_github_api_call
from prcritic.db.models import utcnow

logger = structlog.get_logger()

# GitHub rejects App JWTs that live longer than ten minutes
JWT_LIFETIME_SECONDS = 540
JWT_CLOCK_DRIFT_SECONDS = 60
DEFAULT_TOKEN_LIFETIME = timedelta(minutes=55)


@dataclass(frozen=True)
class InstallationToken:
    token: str
    expires_at: datetime

    def needs_refresh(self, now: datetime, buffer_seconds: int) -> bool:
        return self.expires_at - timedelta(seconds=buffer_seconds) <= now


def _parse_expires_at(value: str | None, now: datetime) -> datetime:
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unparseable token expiry from GitHub", expires_at=value)
    return now + DEFAULT_TOKEN_LIFETIME


class GitHubAppAuth:
    """Signs App JWTs and exchanges them for installation access tokens."""

    def __init__(
        self,
        app_id: str,
        private_key: str,
        api_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.app_id = app_id
        self.private_key = private_key
        self.api_url = (api_url or settings.github_api_url).rstrip("/")
        self._http_client = http_client

    @classmethod
    def from_settings(cls) -> "GitHubAppAuth":
        private_key = settings.github_app_private_key_pem
        if settings.github_app_id is None or private_key is None:
            raise ConfigurationError("GitHub App id and private key are required")
        return cls(app_id=settings.github_app_id, private_key=private_key)

    def create_jwt(self, now: int | None = None) -> str:
        issued_at = int(now if now is not None else time.time())
        payload = {
            "iat": issued_at - JWT_CLOCK_DRIFT_SECONDS,
            "exp": issued_at + JWT_LIFETIME_SECONDS,
            "iss": self.app_id,
        }
        return jwt.encode(payload, self.private_key, algorithm="RS256")

    async def create_installation_token(self, installation_id: int) -> InstallationToken:
        """POST /app/installations/{id}/access_tokens."""
        headers = {
            "Authorization": f"Bearer {self.create_jwt()}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        url = f"{self.api_url}/app/installations/{installation_id}/access_tokens"

        start_time = time.perf_counter()
        status_code = 0
        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, headers=headers)
            else:
                async with httpx.AsyncClient(
                    timeout=settings.github_request_timeout_seconds
                ) as client:
                    response = await client.post(url, headers=headers)
            status_code = response.status_code
        except httpx.HTTPError as e:
            raise GitHubAuthenticationError(
                f"Installation token request failed: {e}",
                details={"installation_id": installation_id},
            ) from e
        finally:
            record_github_api_call(
                endpoint="app_installations_access_tokens",
                method="POST",
                status_code=status_code,
                duration_seconds=time.perf_counter() - start_time,
            )

        if response.status_code >= 400:
            raise GitHubAuthenticationError(
                f"Installation token request returned {response.status_code}",
                details={"installation_id": installation_id, "response": response.text},
            )

        data = response.json()
        token = data.get("token")
        if not token:
            raise GitHubAuthenticationError(
                "GitHub returned no installation token",
                details={"installation_id": installation_id},
            )

        return InstallationToken(
            token=token,
            expires_at=_parse_expires_at(data.get("expires_at"), utcnow()),
        )


class InstallationTokenCache:
    """
    Access tokens keyed by installation id.

    A cached token is reused until it is within ``buffer_seconds`` of its
    expiry. Refreshes are single-flight per installation: concurrent callers
    wait on the same lock and reuse the freshly minted token.

    Without App credentials every installation gets the static token.
    """

    def __init__(
        self,
        app_auth: GitHubAppAuth | None = None,
        static_token: str | None = None,
        buffer_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.app_auth = app_auth
        self.static_token = static_token
        self.buffer_seconds = (
            settings.token_refresh_buffer_seconds if buffer_seconds is None else buffer_seconds
        )
        self._clock = clock
        self._tokens: dict[int, InstallationToken] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls) -> "InstallationTokenCache":
        static_token = settings.github_token.get_secret_value() if settings.github_token else None
        app_auth = GitHubAppAuth.from_settings() if settings.github_app_configured else None
        return cls(app_auth=app_auth, static_token=static_token)

    def _lock_for(self, installation_id: int) -> asyncio.Lock:
        lock = self._locks.get(installation_id)
        if lock is None:
            lock = self._locks[installation_id] = asyncio.Lock()
        return lock

    def _fresh(self, installation_id: int) -> InstallationToken | None:
        cached = self._tokens.get(installation_id)
        if cached is None or cached.needs_refresh(self._clock(), self.buffer_seconds):
            return None
        return cached

    async def get_token(self, installation_id: int | None) -> str:
        if self.app_auth is None or installation_id is None:
            if self.static_token:
                return self.static_token
            raise GitHubAuthenticationError(
                "No GitHub credentials configured",
                details={"installation_id": installation_id},
            )

        cached = self._fresh(installation_id)
        if cached is not None:
            return cached.token

        async with self._lock_for(installation_id):
            # Another caller may have refreshed while we waited
            cached = self._fresh(installation_id)
            if cached is not None:
                return cached.token

            logger.info("Refreshing installation token", installation_id=installation_id)
            token = await self.app_auth.create_installation_token(installation_id)
            self._tokens[installation_id] = token
            return token.token

    def invalidate(self, installation_id: int) -> None:
        self._tokens.pop(installation_id, None)
