from prcritic.services.github.auth import GitHubAppAuth, InstallationToken, InstallationTokenCache
from prcritic.services.github.client import GitHubClient
from prcritic.services.github.models import CommentEvent, PullRequestEvent, PullRequestFile

__all__ = [
    "CommentEvent",
    "GitHubAppAuth",
    "GitHubClient",
    "InstallationToken",
    "InstallationTokenCache",
    "PullRequestEvent",
    "PullRequestFile",
]
