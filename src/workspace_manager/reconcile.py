"""Detection of bindings and worktrees that disagree with the disk."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .storage import WorkspaceDescriptor


@dataclass(slots=True)
class ReconcileReport:
    """Inconsistencies found in one workspace, for an operator to clean up."""

    workspace: str
    stale_bindings: list[str] = field(default_factory=list)
    pending_bindings: list[str] = field(default_factory=list)
    orphaned_worktrees: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not (self.stale_bindings or self.pending_bindings or self.orphaned_worktrees)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["consistent"] = self.consistent
        return payload


def reconcile(descriptor: WorkspaceDescriptor) -> ReconcileReport:
    """Compare a descriptor with its root directory.

    Stale: a bound binding whose worktree path is gone. Pending: a binding
    left in ``binding``/``unbinding`` by an interrupted transition.
    Orphaned: a worktree (directory with a ``.git`` file) directly under the
    root that no binding references.
    """

    report = ReconcileReport(workspace=descriptor.name)
    bound_paths: set[Path] = set()
    for binding in descriptor.bindings:
        path = Path(binding.worktree_path)
        bound_paths.add(path.resolve())
        if binding.pending:
            report.pending_bindings.append(f"{binding.repository}:{binding.state}")
        elif not path.exists():
            report.stale_bindings.append(binding.repository)

    root = Path(descriptor.root)
    if root.is_dir():
        for child in sorted(root.iterdir()):
            if child.is_dir() and (child / ".git").is_file() and child.resolve() not in bound_paths:
                report.orphaned_worktrees.append(str(child))
    return report


__all__ = ["ReconcileReport", "reconcile"]
