"""Concurrent working-tree status across a workspace."""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import ExternalToolError
from .git import VersionControlClient
from .models import StatusReport
from .pool import fan_out
from .storage import Binding, WorkspaceDescriptor

logger = logging.getLogger(__name__)


class StatusAggregator:
    """Query every binding of a workspace and merge the reports.

    A failure in one repository becomes an error entry for that repository
    and never aborts the aggregate.
    """

    def __init__(self, client: VersionControlClient, *, max_workers: int = 4) -> None:
        self._client = client
        self._max_workers = max_workers

    async def query(self, binding: Binding) -> StatusReport:
        path = Path(binding.worktree_path)
        if binding.pending:
            return StatusReport(
                repository=binding.repository,
                path=str(path),
                branch=binding.branch,
                error=f"binding is {binding.state}",
            )
        if not path.exists():
            return StatusReport(
                repository=binding.repository,
                path=str(path),
                branch=binding.branch,
                error="worktree missing",
            )
        try:
            report = await self._client.status(binding.repository, path)
        except ExternalToolError as exc:
            logger.warning(
                "Status failed", extra={"repository": binding.repository, "error": str(exc)}
            )
            return StatusReport(repository=binding.repository, path=str(path), error=str(exc))
        if report.branch is None:
            report.error = "detached HEAD"
        return report

    async def status(self, descriptor: WorkspaceDescriptor) -> dict[str, StatusReport]:
        reports = await fan_out(descriptor.bindings, self.query, self._max_workers)
        return {report.repository: report for report in reports}


__all__ = ["StatusAggregator"]
