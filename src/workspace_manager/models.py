"""Ephemeral result types returned by the workspace engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from .errors import PartialFailure

STATUS_SYMBOLS = {
    "A": "+",
    "M": "~",
    "D": "-",
    "R": "→",
    "C": "©",
    "?": "?",
}


def status_symbol(code: str) -> str:
    """Return the display symbol for a single-letter change code."""

    return STATUS_SYMBOLS.get(code, code)


@dataclass(slots=True)
class FileChange:
    code: str
    path: str
    original_path: str | None = None
    staged: bool = False


@dataclass(slots=True)
class StatusReport:
    """Working tree state of one bound repository."""

    repository: str
    path: str
    branch: str | None = None
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    added: int = 0
    modified: int = 0
    deleted: int = 0
    renamed: int = 0
    copied: int = 0
    untracked: int = 0
    files: list[FileChange] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def clean(self) -> bool:
        return self.ok and not self.files

    @property
    def has_changes(self) -> bool:
        return bool(self.files)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["clean"] = self.clean
        return payload


@dataclass(slots=True)
class OperationOutcome:
    """Result of one operation applied to one repository."""

    repository: str
    success: bool
    message: str = ""
    status: StatusReport | None = None
    output: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "success": self.success,
            "message": self.message,
            "status": self.status.to_dict() if self.status is not None else None,
            "output": self.output,
        }


@dataclass(slots=True)
class OperationReport:
    """Per-repository outcomes of one multi-repository operation."""

    operation: str
    workspace: str
    outcomes: list[OperationOutcome] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.outcomes.sort(key=lambda outcome: outcome.repository)

    @property
    def ok(self) -> bool:
        return all(outcome.success for outcome in self.outcomes)

    def failed(self) -> list[OperationOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    def succeeded(self) -> list[OperationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.success]

    def get(self, repository: str) -> OperationOutcome | None:
        for outcome in self.outcomes:
            if outcome.repository == repository:
                return outcome
        return None

    def raise_for_failures(self) -> None:
        if not self.ok:
            raise PartialFailure(self.operation, self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "workspace": self.workspace,
            "ok": self.ok,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


@dataclass(slots=True)
class WorktreeInfo:
    """One entry of ``git worktree list --porcelain``."""

    path: str
    head: str | None = None
    branch: str | None = None
    bare: bool = False
    detached: bool = False
    locked: bool = False
    prunable: bool = False


@dataclass(slots=True)
class ScanError:
    path: str
    reason: str


@dataclass(slots=True)
class ScanResult:
    """Summary of a discovery pass."""

    registered: list[str] = field(default_factory=list)
    errors: list[ScanError] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.registered)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "registered": list(self.registered),
            "errors": [asdict(error) for error in self.errors],
        }


__all__ = [
    "FileChange",
    "OperationOutcome",
    "OperationReport",
    "STATUS_SYMBOLS",
    "ScanError",
    "ScanResult",
    "StatusReport",
    "WorktreeInfo",
    "status_symbol",
]
