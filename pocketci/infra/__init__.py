"""
Infrastructure layer for pocketci.

Contains abstractions for external systems:
- GitClient: Git command execution against bare mirrors
- GitHubClient: GitHub API access (repository and branch listing)
- SnapshotStore: content-addressed archive storage
- BuildTrigger: the external build service

These provide clean interfaces that can be mocked for testing.
"""

from .git_client import GitClient
from .github_client import GitHubClient, RateLimitStatus, RemoteBranch, RemoteRepository, resolve_token
from .snapshot_store import SnapshotStore, StoredBlob
from .build_trigger import BuildTrigger, CommandBuildTrigger, HttpBuildTrigger, create_trigger

__all__ = [
    'GitClient',
    'GitHubClient',
    'RateLimitStatus',
    'RemoteBranch',
    'RemoteRepository',
    'resolve_token',
    'SnapshotStore',
    'StoredBlob',
    'BuildTrigger',
    'CommandBuildTrigger',
    'HttpBuildTrigger',
    'create_trigger',
]
