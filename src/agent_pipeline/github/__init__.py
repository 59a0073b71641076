"""GitHub API client for repositories, branches, contents and pull requests."""

from agent_pipeline.github.client import GitHubAPIError, GitHubClient, MergeConflict
from agent_pipeline.github.models import FileChange, MergeResult, MergeStatus, RepositoryInfo

__all__ = [
    "FileChange",
    "GitHubAPIError",
    "GitHubClient",
    "MergeConflict",
    "MergeResult",
    "MergeStatus",
    "RepositoryInfo",
]
