"""Version-control capability used by the orchestration engine."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from ..models import StatusReport, WorktreeInfo
from .porcelain import parse_status, parse_worktree_list
from .runner import GitRunner

logger = logging.getLogger(__name__)


class VersionControlClient(Protocol):
    """Capabilities the engine needs from the underlying version-control tool."""

    async def current_branch(self, path: Path) -> str | None: ...

    async def first_remote(self, path: Path) -> str | None: ...

    async def remote_url(self, path: Path, remote: str) -> str | None: ...

    async def default_branch(self, path: Path) -> str | None: ...

    async def branch_exists(self, repo: Path, branch: str) -> bool: ...

    async def remote_branch_exists(self, repo: Path, branch: str, remote: str) -> bool: ...

    async def create_branch(
        self, repo: Path, branch: str, start_point: str = "HEAD", *, track: bool = False
    ) -> None: ...

    async def list_worktrees(self, repo: Path) -> list[WorktreeInfo]: ...

    async def create_worktree(
        self, repo: Path, path: Path, branch: str, *, force: bool = False
    ) -> None: ...

    async def remove_worktree(self, repo: Path, path: Path, *, force: bool = False) -> None: ...

    async def prune_worktrees(self, repo: Path) -> None: ...

    async def status(self, repository: str, path: Path) -> StatusReport: ...

    async def commit(self, path: Path, message: str, *, add_all: bool = True) -> str: ...

    async def push(
        self, path: Path, remote: str, branch: str, *, set_upstream: bool = True
    ) -> str: ...

    async def fetch(self, path: Path, remote: str | None = None) -> str: ...

    async def fast_forward(self, path: Path) -> str: ...

    async def rebase(self, path: Path, onto: str) -> str: ...

    async def diff(self, path: Path, *, staged: bool = False) -> str: ...

    async def log(
        self, path: Path, *, limit: int | None = None, oneline: bool = False, since: str | None = None
    ) -> str: ...

    async def switch(self, path: Path, branch: str, *, create: bool = False) -> None: ...

    async def list_branches(self, path: Path) -> list[str]: ...


class GitClient:
    """``VersionControlClient`` backed by the git CLI."""

    def __init__(self, runner: GitRunner) -> None:
        self._runner = runner

    @property
    def runner(self) -> GitRunner:
        return self._runner

    async def _git(self, cwd: Path, *args: str, message: str) -> str:
        result = await self._runner.run(*args, cwd=cwd)
        return result.check(message).stdout

    async def current_branch(self, path: Path) -> str | None:
        result = await self._runner.run("symbolic-ref", "--quiet", "--short", "HEAD", cwd=path)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    async def first_remote(self, path: Path) -> str | None:
        output = await self._git(path, "remote", message=f"Cannot list remotes of {path}")
        remotes = [line.strip() for line in output.splitlines() if line.strip()]
        if not remotes:
            return None
        return "origin" if "origin" in remotes else remotes[0]

    async def remote_url(self, path: Path, remote: str) -> str | None:
        result = await self._runner.run("remote", "get-url", remote, cwd=path)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    async def default_branch(self, path: Path) -> str | None:
        remote = await self.first_remote(path)
        if remote is not None:
            result = await self._runner.run(
                "symbolic-ref", "--quiet", "--short", f"refs/remotes/{remote}/HEAD", cwd=path
            )
            if result.ok and result.stdout.strip():
                return result.stdout.strip().removeprefix(f"{remote}/")
        return await self.current_branch(path)

    async def branch_exists(self, repo: Path, branch: str) -> bool:
        result = await self._runner.run(
            "show-ref", "--verify", "--quiet", f"refs/heads/{branch}", cwd=repo
        )
        return result.ok

    async def remote_branch_exists(self, repo: Path, branch: str, remote: str) -> bool:
        result = await self._runner.run(
            "show-ref", "--verify", "--quiet", f"refs/remotes/{remote}/{branch}", cwd=repo
        )
        return result.ok

    async def create_branch(
        self, repo: Path, branch: str, start_point: str = "HEAD", *, track: bool = False
    ) -> None:
        args = ["branch"]
        if track:
            args.append("--track")
        args.extend([branch, start_point])
        await self._git(repo, *args, message=f"Cannot create branch '{branch}' in {repo}")

    async def list_worktrees(self, repo: Path) -> list[WorktreeInfo]:
        output = await self._git(
            repo, "worktree", "list", "--porcelain", message=f"Cannot list worktrees of {repo}"
        )
        return parse_worktree_list(output)

    async def create_worktree(
        self, repo: Path, path: Path, branch: str, *, force: bool = False
    ) -> None:
        args = ["worktree", "add"]
        if force:
            args.append("--force")
        args.extend([str(path), branch])
        await self._git(repo, *args, message=f"Cannot create worktree at {path}")

    async def remove_worktree(self, repo: Path, path: Path, *, force: bool = False) -> None:
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(str(path))
        await self._git(repo, *args, message=f"Cannot remove worktree at {path}")
        await self.prune_worktrees(repo)

    async def prune_worktrees(self, repo: Path) -> None:
        await self._git(repo, "worktree", "prune", message=f"Cannot prune worktrees of {repo}")

    async def status(self, repository: str, path: Path) -> StatusReport:
        output = await self._git(
            path,
            "status",
            "--porcelain=v2",
            "--branch",
            "--untracked-files=all",
            message=f"Cannot read status of {repository}",
        )
        return parse_status(repository, str(path), output)

    async def commit(self, path: Path, message: str, *, add_all: bool = True) -> str:
        if add_all:
            await self._git(path, "add", "--all", message=f"Cannot stage changes in {path}")
        return await self._git(path, "commit", "-m", message, message=f"Cannot commit in {path}")

    async def push(
        self, path: Path, remote: str, branch: str, *, set_upstream: bool = True
    ) -> str:
        args = ["push"]
        if set_upstream:
            args.append("--set-upstream")
        args.extend([remote, branch])
        result = await self._runner.run(*args, cwd=path)
        result.check(f"Cannot push '{branch}' to {remote}")
        # git reports push progress on stderr
        return (result.stdout + result.stderr).strip()

    async def fetch(self, path: Path, remote: str | None = None) -> str:
        args = ["fetch", "--prune"]
        args.append(remote if remote else "--all")
        result = await self._runner.run(*args, cwd=path)
        result.check(f"Cannot fetch in {path}")
        return (result.stdout + result.stderr).strip()

    async def fast_forward(self, path: Path) -> str:
        return await self._git(
            path, "merge", "--ff-only", "@{upstream}", message=f"Cannot fast-forward {path}"
        )

    async def rebase(self, path: Path, onto: str) -> str:
        result = await self._runner.run("rebase", onto, cwd=path)
        if not result.ok:
            await self._runner.run("rebase", "--abort", cwd=path)
        result.check(f"Cannot rebase {path} onto {onto}")
        return result.stdout

    async def diff(self, path: Path, *, staged: bool = False) -> str:
        args = ["diff"]
        if staged:
            args.append("--staged")
        return await self._git(path, *args, message=f"Cannot diff {path}")

    async def log(
        self, path: Path, *, limit: int | None = None, oneline: bool = False, since: str | None = None
    ) -> str:
        args = ["log"]
        if oneline:
            args.append("--oneline")
        if limit:
            args.append(f"-n{limit}")
        if since:
            args.append(f"--since={since}")
        return await self._git(path, *args, message=f"Cannot read log of {path}")

    async def switch(self, path: Path, branch: str, *, create: bool = False) -> None:
        args = ["switch"]
        if create:
            args.append("--create")
        args.append(branch)
        await self._git(path, *args, message=f"Cannot switch {path} to '{branch}'")

    async def list_branches(self, path: Path) -> list[str]:
        output = await self._git(
            path, "branch", "--format=%(refname:short)", message=f"Cannot list branches of {path}"
        )
        return [line.strip() for line in output.splitlines() if line.strip()]


__all__ = ["GitClient", "VersionControlClient"]
