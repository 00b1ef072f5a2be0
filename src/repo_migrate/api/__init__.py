"""Clients for the remote services."""

from .bitbucket import BitbucketClient
from .circleci import CircleCIClient
from .client import APIClient, APIResponse
from .github import GitHubClient

__all__ = [
    'APIClient',
    'APIResponse',
    'BitbucketClient',
    'CircleCIClient',
    'GitHubClient',
]
