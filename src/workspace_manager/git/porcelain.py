"""Parsers for git's machine-readable output formats."""

from __future__ import annotations

from ..models import FileChange, StatusReport, WorktreeInfo

_COUNTERS = {
    "A": "added",
    "M": "modified",
    "T": "modified",
    "U": "modified",
    "D": "deleted",
    "R": "renamed",
    "C": "copied",
    "?": "untracked",
}


def _pick_code(xy: str) -> tuple[str, bool]:
    index, worktree = xy[0], xy[1]
    if index not in {".", " "}:
        return index, True
    return worktree, False


def parse_status(repository: str, path: str, text: str) -> StatusReport:
    """Parse ``git status --porcelain=v2 --branch`` into a ``StatusReport``.

    Each path is counted once, using its index state when staged and its
    worktree state otherwise.
    """

    report = StatusReport(repository=repository, path=path)
    for line in text.splitlines():
        if not line:
            continue
        if line.startswith("# branch.head "):
            head = line[len("# branch.head "):].strip()
            report.branch = None if head == "(detached)" else head
            continue
        if line.startswith("# branch.upstream "):
            report.upstream = line[len("# branch.upstream "):].strip()
            continue
        if line.startswith("# branch.ab "):
            ahead, behind = line[len("# branch.ab "):].split()
            report.ahead = int(ahead.lstrip("+"))
            report.behind = int(behind.lstrip("-"))
            continue
        if line.startswith("#") or line.startswith("! "):
            continue

        kind = line[0]
        if kind == "?":
            change = FileChange(code="?", path=line[2:])
        elif kind == "1":
            parts = line.split(" ", 8)
            code, staged = _pick_code(parts[1])
            change = FileChange(code=code, path=parts[8], staged=staged)
        elif kind == "2":
            parts = line.split(" ", 9)
            code, staged = _pick_code(parts[1])
            target, _, original = parts[9].partition("\t")
            change = FileChange(code=code, path=target, original_path=original or None, staged=staged)
        elif kind == "u":
            parts = line.split(" ", 10)
            change = FileChange(code="U", path=parts[10], staged=True)
        else:
            continue

        counter = _COUNTERS.get(change.code)
        if counter is not None:
            setattr(report, counter, getattr(report, counter) + 1)
        report.files.append(change)
    return report


def parse_worktree_list(text: str) -> list[WorktreeInfo]:
    """Parse ``git worktree list --porcelain``."""

    worktrees: list[WorktreeInfo] = []
    current: WorktreeInfo | None = None
    for line in text.splitlines():
        if not line.strip():
            if current is not None:
                worktrees.append(current)
                current = None
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            if current is not None:
                worktrees.append(current)
            current = WorktreeInfo(path=value)
        elif current is None:
            continue
        elif key == "HEAD":
            current.head = value
        elif key == "branch":
            current.branch = value.removeprefix("refs/heads/")
        elif key == "bare":
            current.bare = True
        elif key == "detached":
            current.detached = True
        elif key == "locked":
            current.locked = True
        elif key == "prunable":
            current.prunable = True
    if current is not None:
        worktrees.append(current)
    return worktrees


__all__ = ["parse_status", "parse_worktree_list"]
