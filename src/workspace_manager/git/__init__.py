"""Git CLI orchestration utilities."""

from .client import GitClient, VersionControlClient
from .runner import CommandRunner, FakeGitRunner, GhRunner, GitExecutionResult, GitRunner, MissingGitRunner

__all__ = [
    "CommandRunner",
    "FakeGitRunner",
    "GhRunner",
    "GitClient",
    "GitExecutionResult",
    "GitRunner",
    "MissingGitRunner",
    "VersionControlClient",
]
