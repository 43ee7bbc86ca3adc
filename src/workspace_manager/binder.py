"""Attach and detach repositories to workspaces as git worktrees.

Each (workspace, repository) pair moves through
``Unbound -> Binding -> Bound -> Unbinding -> Unbound``. The transient
states are persisted on the binding before the external worktree call and
cleared after it, so an interrupted transition stays visible to
:mod:`workspace_manager.reconcile`.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .errors import AlreadyBoundError, BranchInUseError, DirtyWorktreeError, ExternalToolError, NotFoundError
from .git import VersionControlClient
from .modules import ModuleWorkspaceGenerator
from .storage import Binding, RegistryStore, RepositoryRecord, WorkspaceDescriptor, WorkspaceStore
from .storage.models import utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UnbindResult:
    binding: Binding
    files_removed: bool = False
    residual_files: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _BranchPlan:
    force_add: bool = False
    adopt: bool = False


def _same_path(left: Path | str, right: Path | str) -> bool:
    return Path(left).resolve() == Path(right).resolve()


class WorktreeBinder:
    """Protocol object owning the Binding transitions, not the records themselves."""

    def __init__(
        self,
        registry: RegistryStore,
        workspaces: WorkspaceStore,
        client: VersionControlClient,
        *,
        generator: ModuleWorkspaceGenerator | None = None,
    ) -> None:
        self._registry = registry
        self._workspaces = workspaces
        self._client = client
        self._generator = generator

    @staticmethod
    def worktree_path(descriptor: WorkspaceDescriptor, repository: str) -> Path:
        return Path(descriptor.root) / repository

    def _regenerate(self, workspace: str) -> None:
        if self._generator is not None:
            self._generator.regenerate(self._workspaces.get(workspace))

    async def bind(
        self,
        workspace: str,
        repository: str,
        branch: str | None = None,
        *,
        force: bool = False,
        rebind: bool = False,
    ) -> Binding:
        """Check ``repository`` out into ``workspace`` on ``branch``.

        Binding again to the same branch is a no-op. Binding to another
        branch raises ``AlreadyBoundError`` unless ``rebind`` is set, in which
        case the current worktree is released first.
        """

        descriptor = self._workspaces.get(workspace)
        record = self._registry.get(repository)
        target_branch = branch or descriptor.branch
        worktree = self.worktree_path(descriptor, repository)

        release = False
        existing = descriptor.get_binding(repository)
        if existing is not None:
            live = existing.state == "bound" and Path(existing.worktree_path).exists()
            if live and existing.branch == target_branch:
                logger.debug(
                    "Repository already bound",
                    extra={"workspace": workspace, "repository": repository, "branch": target_branch},
                )
                return existing
            if live and not rebind:
                raise AlreadyBoundError(workspace, repository, existing.branch)
            if live:
                release = True
            else:
                # stale or half-finished binding: forget it and let git prune its metadata
                logger.warning(
                    "Replacing stale binding",
                    extra={"workspace": workspace, "repository": repository, "state": existing.state},
                )
                await self._client.prune_worktrees(Path(record.path))
                self._workspaces.update(workspace, lambda d: d.drop_binding(repository))

        plan = await self._resolve_branch(record, target_branch, worktree, force=force)
        if release:
            # new branch checked above, release the old worktree
            await self.unbind(workspace, repository, force=force, remove_files=True)

        pending = Binding(
            repository=repository,
            branch=target_branch,
            worktree_path=str(worktree),
            source_path=record.path,
            state="binding",
        )
        self._workspaces.update(workspace, lambda d: d.put_binding(pending))

        if not plan.adopt:
            try:
                worktree.parent.mkdir(parents=True, exist_ok=True)
                await self._client.create_worktree(
                    Path(record.path), worktree, target_branch, force=plan.force_add
                )
            except (ExternalToolError, OSError):
                self._workspaces.update(workspace, lambda d: d.drop_binding(repository))
                raise

        bound = pending.model_copy(update={"state": "bound", "bound_at": utcnow()})
        self._workspaces.update(workspace, lambda d: d.put_binding(bound))
        logger.info(
            "Bound repository",
            extra={"workspace": workspace, "repository": repository, "branch": target_branch},
        )
        self._regenerate(workspace)
        return bound

    async def _resolve_branch(
        self,
        record: RepositoryRecord,
        branch: str,
        worktree: Path,
        *,
        force: bool,
    ) -> _BranchPlan:
        repo = Path(record.path)
        if not await self._client.branch_exists(repo, branch):
            remote = await self._client.first_remote(repo)
            if remote and await self._client.remote_branch_exists(repo, branch, remote):
                await self._client.create_branch(repo, branch, f"{remote}/{branch}", track=True)
            else:
                await self._client.create_branch(repo, branch, "HEAD")
            logger.info("Created branch", extra={"repository": record.name, "branch": branch})
            return _BranchPlan()

        plan = _BranchPlan()
        worktrees = await self._client.list_worktrees(repo)
        for index, info in enumerate(worktrees):
            if info.branch != branch:
                continue
            if _same_path(info.path, worktree):
                plan.adopt = True
                continue
            if not force:
                raise BranchInUseError(record.name, branch, info.path)
            if index == 0:
                # the primary checkout cannot be detached, share the branch instead
                plan.force_add = True
                continue
            await self._detach(repo, record.name, Path(info.path))
        return plan

    async def _detach(self, repo: Path, repository: str, path: Path) -> None:
        logger.warning("Detaching conflicting worktree", extra={"repository": repository, "path": str(path)})
        await self._client.remove_worktree(repo, path, force=True)
        for descriptor in self._workspaces.list():
            binding = descriptor.get_binding(repository)
            if binding is not None and _same_path(binding.worktree_path, path):
                self._workspaces.update(descriptor.name, lambda d: d.drop_binding(repository))
                self._regenerate(descriptor.name)

    async def unbind(
        self,
        workspace: str,
        repository: str,
        *,
        force: bool = False,
        remove_files: bool = False,
    ) -> UnbindResult:
        """Release the worktree of ``repository`` and drop its binding.

        Without ``force`` a worktree with uncommitted or untracked changes is
        left untouched and ``DirtyWorktreeError`` is raised.
        """

        descriptor = self._workspaces.get(workspace)
        binding = descriptor.get_binding(repository)
        if binding is None:
            raise NotFoundError("Binding", f"{workspace}/{repository}")

        worktree = Path(binding.worktree_path)
        repo = Path(binding.source_path or self._registry.get(repository).path)
        live = worktree.exists()

        if live and not force:
            status = await self._client.status(repository, worktree)
            if status.has_changes:
                raise DirtyWorktreeError(repository, str(worktree))

        self._workspaces.update(
            workspace, lambda d: d.put_binding(binding.model_copy(update={"state": "unbinding"}))
        )
        try:
            if live:
                await self._client.remove_worktree(repo, worktree, force=force)
            else:
                await self._client.prune_worktrees(repo)
        except ExternalToolError:
            self._workspaces.update(workspace, lambda d: d.put_binding(binding))
            raise

        self._workspaces.update(workspace, lambda d: d.drop_binding(repository))

        result = UnbindResult(binding=binding)
        if worktree.exists():
            if remove_files:
                shutil.rmtree(worktree)
                result.files_removed = True
            else:
                result.residual_files = sorted(
                    path.relative_to(worktree).as_posix() for path in worktree.rglob("*") if path.is_file()
                )
                if result.residual_files:
                    logger.warning(
                        "Residual files left in place",
                        extra={"workspace": workspace, "repository": repository, "count": len(result.residual_files)},
                    )
        logger.info("Unbound repository", extra={"workspace": workspace, "repository": repository})
        self._regenerate(workspace)
        return result


__all__ = ["UnbindResult", "WorktreeBinder"]
