from __future__ import annotations

import shutil
from datetime import date
from pathlib import Path

import pytest

from workspace_manager.errors import ExternalToolError
from workspace_manager.manager import WorkspaceManager
from workspace_manager.models import FileChange, StatusReport, WorktreeInfo
from workspace_manager.modules import ModuleWorkspaceGenerator
from workspace_manager.storage import RegistryStore, RepositoryRecord, WorkspaceStore


def _key(path: Path | str) -> str:
    return str(Path(path))


class FakeVersionControl:
    """In-memory ``VersionControlClient`` that mirrors worktrees on disk."""

    def __init__(self) -> None:
        self.branches: dict[str, set[str]] = {}
        self.remote_branches: dict[str, set[str]] = {}
        self.remotes: dict[str, str] = {}
        self.worktrees: dict[str, list[WorktreeInfo]] = {}
        self.heads: dict[str, str | None] = {}
        self.owners: dict[str, str] = {}
        self.upstreams: dict[str, str] = {}
        self.ahead: dict[str, int] = {}
        self.behind: dict[str, int] = {}
        self.dirty: dict[str, list[FileChange]] = {}
        self.diffs: dict[str, str] = {}
        self.failures: dict[tuple[str, str], str] = {}
        self.calls: list[tuple[str, str]] = []
        self.leftovers: dict[str, list[str]] = {}

    # -- test helpers --------------------------------------------------------

    def add_repository(
        self, path: Path, *, branch: str = "main", remote: str | None = None
    ) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        (path / ".git").mkdir(exist_ok=True)
        key = _key(path)
        self.branches[key] = {branch}
        self.worktrees[key] = [WorktreeInfo(path=key, branch=branch)]
        self.heads[key] = branch
        self.owners[key] = key
        if remote:
            self.remotes[key] = remote
        return path

    def fail(self, method: str, path: Path | str, message: str = "boom") -> None:
        self.failures[(method, _key(path))] = message

    def make_dirty(self, path: Path | str, *files: str, staged: bool = False) -> None:
        self.dirty[_key(path)] = [FileChange(code="M", path=name, staged=staged) for name in files]

    def leave_behind(self, path: Path | str, *files: str) -> None:
        """Files that survive ``remove_worktree``, like ignored build output."""

        self.leftovers[_key(path)] = list(files)

    def _check(self, method: str, path: Path | str) -> None:
        key = _key(path)
        self.calls.append((method, key))
        message = self.failures.get((method, key))
        if message is not None:
            raise ExternalToolError(message, args=("git", method), returncode=1, stderr=message)

    def _repo(self, path: Path | str) -> str:
        return self.owners.get(_key(path), _key(path))

    # -- VersionControlClient ------------------------------------------------

    async def current_branch(self, path: Path) -> str | None:
        self._check("current_branch", path)
        return self.heads.get(_key(path))

    async def first_remote(self, path: Path) -> str | None:
        self._check("first_remote", path)
        return self.remotes.get(self._repo(path))

    async def remote_url(self, path: Path, remote: str) -> str | None:
        return f"https://git.example.com/{Path(self._repo(path)).name}.git"

    async def default_branch(self, path: Path) -> str | None:
        return "main"

    async def branch_exists(self, repo: Path, branch: str) -> bool:
        return branch in self.branches.get(_key(repo), set())

    async def remote_branch_exists(self, repo: Path, branch: str, remote: str) -> bool:
        return branch in self.remote_branches.get(_key(repo), set())

    async def create_branch(
        self, repo: Path, branch: str, start_point: str = "HEAD", *, track: bool = False
    ) -> None:
        self._check("create_branch", repo)
        self.branches.setdefault(_key(repo), set()).add(branch)
        if track:
            self.upstreams[f"branch:{_key(repo)}:{branch}"] = start_point

    async def list_worktrees(self, repo: Path) -> list[WorktreeInfo]:
        return list(self.worktrees.get(_key(repo), []))

    async def create_worktree(
        self, repo: Path, path: Path, branch: str, *, force: bool = False
    ) -> None:
        self._check("create_worktree", repo)
        entries = self.worktrees.setdefault(_key(repo), [])
        if not force and any(info.branch == branch for info in entries):
            raise ExternalToolError(
                "Cannot create worktree", stderr=f"fatal: '{branch}' is already checked out"
            )
        path.mkdir(parents=True, exist_ok=True)
        (path / ".git").write_text(f"gitdir: {repo}/.git/worktrees/{path.name}\n", encoding="utf-8")
        marker = Path(repo) / "go.mod"
        if marker.is_file():
            shutil.copyfile(marker, path / "go.mod")
        entries.append(WorktreeInfo(path=_key(path), branch=branch))
        self.heads[_key(path)] = branch
        self.owners[_key(path)] = _key(repo)

    async def remove_worktree(self, repo: Path, path: Path, *, force: bool = False) -> None:
        self._check("remove_worktree", repo)
        if self.dirty.get(_key(path)) and not force:
            raise ExternalToolError("Cannot remove worktree", stderr="contains modified files")
        self.worktrees[_key(repo)] = [
            info for info in self.worktrees.get(_key(repo), []) if info.path != _key(path)
        ]
        self.dirty.pop(_key(path), None)
        if Path(path).exists():
            shutil.rmtree(path)
        for name in self.leftovers.pop(_key(path), []):
            target = Path(path) / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("leftover\n", encoding="utf-8")

    async def prune_worktrees(self, repo: Path) -> None:
        self._check("prune_worktrees", repo)
        entries = self.worktrees.get(_key(repo), [])
        self.worktrees[_key(repo)] = entries[:1] + [
            info for info in entries[1:] if Path(info.path).exists()
        ]

    async def status(self, repository: str, path: Path) -> StatusReport:
        self._check("status", path)
        key = _key(path)
        files = list(self.dirty.get(key, []))
        return StatusReport(
            repository=repository,
            path=key,
            branch=self.heads.get(key),
            upstream=self.upstreams.get(key),
            ahead=self.ahead.get(key, 0),
            behind=self.behind.get(key, 0),
            modified=sum(1 for change in files if change.code == "M"),
            files=files,
        )

    async def commit(self, path: Path, message: str, *, add_all: bool = True) -> str:
        self._check("commit", path)
        key = _key(path)
        self.dirty.pop(key, None)
        self.ahead[key] = self.ahead.get(key, 0) + 1
        return f"[{self.heads.get(key)} 1234abc] {message}\n 1 file changed\n"

    async def push(
        self, path: Path, remote: str, branch: str, *, set_upstream: bool = True
    ) -> str:
        self._check("push", path)
        key = _key(path)
        self.upstreams[key] = f"{remote}/{branch}"
        self.ahead[key] = 0
        return f"To {remote}\n * [new branch] {branch} -> {branch}"

    async def fetch(self, path: Path, remote: str | None = None) -> str:
        self._check("fetch", path)
        return ""

    async def fast_forward(self, path: Path) -> str:
        self._check("fast_forward", path)
        self.behind[_key(path)] = 0
        return "Fast-forward"

    async def rebase(self, path: Path, onto: str) -> str:
        self._check("rebase", path)
        self.behind[_key(path)] = 0
        return f"Successfully rebased onto {onto}"

    async def diff(self, path: Path, *, staged: bool = False) -> str:
        self._check("diff", path)
        return self.diffs.get(_key(path), "")

    async def log(
        self, path: Path, *, limit: int | None = None, oneline: bool = False, since: str | None = None
    ) -> str:
        self._check("log", path)
        lines = ["1234abc second commit", "abc1234 initial commit"]
        return "\n".join(lines[:limit] if limit else lines) + "\n"

    async def switch(self, path: Path, branch: str, *, create: bool = False) -> None:
        self._check("switch", path)
        repo = self._repo(path)
        known = self.branches.setdefault(repo, set())
        if create:
            if branch in known:
                raise ExternalToolError("Cannot switch", stderr=f"fatal: a branch named '{branch}' already exists")
            known.add(branch)
        elif branch not in known:
            raise ExternalToolError("Cannot switch", stderr=f"fatal: invalid reference: {branch}")
        self.heads[_key(path)] = branch
        for info in self.worktrees.get(repo, []):
            if info.path == _key(path):
                info.branch = branch

    async def list_branches(self, path: Path) -> list[str]:
        self._check("list_branches", path)
        return sorted(self.branches.get(self._repo(path), set()))


@pytest.fixture
def vcs() -> FakeVersionControl:
    return FakeVersionControl()


@pytest.fixture
def registry(tmp_path: Path) -> RegistryStore:
    return RegistryStore(tmp_path / "config" / "registry.json")


@pytest.fixture
def workspaces(tmp_path: Path) -> WorkspaceStore:
    return WorkspaceStore(tmp_path / "config" / "workspaces")


@pytest.fixture
def manager(
    tmp_path: Path, vcs: FakeVersionControl, registry: RegistryStore, workspaces: WorkspaceStore
) -> WorkspaceManager:
    return WorkspaceManager(
        registry=registry,
        workspaces=workspaces,
        client=vcs,
        workspace_dir=tmp_path / "workspaces",
        branch_prefix="task",
        max_workers=4,
        generator=ModuleWorkspaceGenerator("1.22"),
        today=lambda: date(2025, 3, 14),
    )


@pytest.fixture
def add_repo(tmp_path: Path, vcs: FakeVersionControl, registry: RegistryStore):
    """Create a fake repository on disk and register it."""

    def _add(name: str, *, go_version: str | None = None, remote: str | None = "origin") -> RepositoryRecord:
        path = vcs.add_repository(tmp_path / "src" / name, remote=remote)
        tags = ["git"]
        if go_version:
            (path / "go.mod").write_text(
                f"module example.com/{name}\n\ngo {go_version}\n", encoding="utf-8"
            )
            tags.append("go")
        record = RepositoryRecord(
            name=name,
            path=str(path),
            current_branch="main",
            default_branch="main",
            ecosystem="go" if go_version else "none",
            tags=sorted(tags),
        )
        return registry.upsert(record)

    return _add
