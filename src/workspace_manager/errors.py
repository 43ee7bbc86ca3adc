"""Exception taxonomy shared by the workspace engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .models import OperationOutcome


class WorkspaceManagerError(RuntimeError):
    """Base class for every error raised by the workspace engine."""


class NotFoundError(WorkspaceManagerError, LookupError):
    """Raised when a repository, workspace or binding name is unknown."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.kind = kind
        self.name = name


class ReferencedError(WorkspaceManagerError):
    """Raised when a registry entry cannot be removed while workspaces bind it."""

    def __init__(self, name: str, workspaces: Sequence[str]) -> None:
        joined = ", ".join(sorted(workspaces))
        super().__init__(f"Repository '{name}' is still bound in workspaces: {joined}")
        self.name = name
        self.workspaces = list(workspaces)


class BranchInUseError(WorkspaceManagerError):
    """Raised when the target branch is already checked out in another worktree."""

    def __init__(self, repository: str, branch: str, worktree: str) -> None:
        super().__init__(
            f"Branch '{branch}' of '{repository}' is already checked out at {worktree}"
        )
        self.repository = repository
        self.branch = branch
        self.worktree = worktree


class AlreadyBoundError(WorkspaceManagerError):
    """Raised when a repository is bound on a different branch and rebind was not requested."""

    def __init__(self, workspace: str, repository: str, branch: str) -> None:
        super().__init__(
            f"Repository '{repository}' is already bound in '{workspace}' on branch '{branch}'"
        )
        self.workspace = workspace
        self.repository = repository
        self.branch = branch


class InvalidNameError(WorkspaceManagerError, ValueError):
    """Raised when a workspace or repository name is not a usable path component."""


class WorkspaceExistsError(WorkspaceManagerError):
    """Raised when a workspace name or root path is already taken."""


class DirtyWorktreeError(WorkspaceManagerError):
    """Raised when a worktree with uncommitted changes would be removed without force."""

    def __init__(self, repository: str, path: str) -> None:
        super().__init__(
            f"Worktree for '{repository}' at {path} has uncommitted changes; use force to remove it"
        )
        self.repository = repository
        self.path = path


class ExternalToolError(WorkspaceManagerError):
    """Raised when an external command (git, gh) exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        *,
        args: Sequence[str] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        detail = stderr.strip()
        super().__init__(f"{message}: {detail}" if detail else message)
        self.command = tuple(args)
        self.returncode = returncode
        self.stderr = stderr


class GitNotFoundError(ExternalToolError):
    """Raised when the git executable cannot be located."""


class PersistenceError(WorkspaceManagerError):
    """Raised when a registry or workspace file cannot be read or written."""


class JournalUnavailableError(WorkspaceManagerError):
    """Raised when the operation journal cannot be constructed or is disabled."""


class PartialFailure(WorkspaceManagerError):
    """Raised when at least one repository of an aggregate operation failed."""

    def __init__(self, operation: str, outcomes: Sequence[OperationOutcome]) -> None:
        failed = [outcome.repository for outcome in outcomes if not outcome.success]
        super().__init__(
            f"{operation} failed for {len(failed)} of {len(outcomes)} repositories: "
            + ", ".join(failed)
        )
        self.operation = operation
        self.outcomes = list(outcomes)

    @property
    def failed(self) -> list[str]:
        return [outcome.repository for outcome in self.outcomes if not outcome.success]


__all__ = [
    "AlreadyBoundError",
    "BranchInUseError",
    "DirtyWorktreeError",
    "ExternalToolError",
    "GitNotFoundError",
    "InvalidNameError",
    "JournalUnavailableError",
    "NotFoundError",
    "PartialFailure",
    "PersistenceError",
    "ReferencedError",
    "WorkspaceExistsError",
    "WorkspaceManagerError",
]
