"""Fan-out of one operation across every binding of a workspace."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .errors import NotFoundError, WorkspaceManagerError
from .git import VersionControlClient
from .models import OperationOutcome, OperationReport
from .operations import BranchCreate, BranchSwitch, Operation, RepositoryContext
from .pool import fan_out
from .storage import Binding, WorkspaceDescriptor, WorkspaceStore

logger = logging.getLogger(__name__)


class OperationCoordinator:
    """Apply an operation to each bound repository and collect one outcome per repository.

    Repositories are processed independently and concurrently; the report
    is only returned once every repository has finished.
    """

    def __init__(
        self,
        workspaces: WorkspaceStore,
        client: VersionControlClient,
        *,
        max_workers: int = 4,
    ) -> None:
        self._workspaces = workspaces
        self._client = client
        self._max_workers = max_workers

    def _select(
        self, descriptor: WorkspaceDescriptor, repositories: Iterable[str] | None
    ) -> list[Binding]:
        if repositories is None:
            return list(descriptor.bindings)
        selected: list[Binding] = []
        for name in repositories:
            binding = descriptor.get_binding(name)
            if binding is None:
                raise NotFoundError("Binding", f"{descriptor.name}/{name}")
            selected.append(binding)
        return selected

    async def run(
        self,
        descriptor: WorkspaceDescriptor,
        operation: Operation,
        *,
        repositories: Iterable[str] | None = None,
    ) -> OperationReport:
        bindings = self._select(descriptor, repositories)

        async def _apply(binding: Binding) -> OperationOutcome:
            path = Path(binding.worktree_path)
            if binding.pending:
                return OperationOutcome(
                    repository=binding.repository,
                    success=False,
                    message=f"binding is {binding.state}",
                )
            if not path.is_dir():
                return OperationOutcome(
                    repository=binding.repository,
                    success=False,
                    message=f"worktree missing at {path}",
                )
            context = RepositoryContext(
                repository=binding.repository,
                path=path,
                branch=binding.branch,
                client=self._client,
            )
            try:
                return await operation.apply(context)
            except (WorkspaceManagerError, OSError) as exc:
                return context.failure(str(exc))

        outcomes = await fan_out(bindings, _apply, self._max_workers)
        report = OperationReport(operation=operation.name, workspace=descriptor.name, outcomes=outcomes)

        for outcome in report.failed():
            logger.warning(
                "Operation failed",
                extra={
                    "operation": operation.name,
                    "workspace": descriptor.name,
                    "repository": outcome.repository,
                    "error": outcome.message,
                },
            )

        if isinstance(operation, (BranchCreate, BranchSwitch)):
            switched = {outcome.repository for outcome in report.succeeded()}
            if switched:
                self._workspaces.update(
                    descriptor.name, lambda d: _record_branch(d, switched, operation.branch)
                )
        return report


def _record_branch(descriptor: WorkspaceDescriptor, repositories: set[str], branch: str) -> None:
    for binding in descriptor.bindings:
        if binding.repository in repositories:
            binding.branch = branch


__all__ = ["OperationCoordinator"]
