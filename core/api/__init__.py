# GitHub OAuth integration module

from .github_oauth import (
    GitHubIdentity,
    GitHubOAuthClient,
    GitHubTokens,
    build_authorize_url,
    get_github_client,
)

__all__ = [
    "GitHubIdentity",
    "GitHubOAuthClient",
    "GitHubTokens",
    "build_authorize_url",
    "get_github_client",
]
