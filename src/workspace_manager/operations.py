"""Per-repository operations dispatched by the coordinator.

Every operation is a small dataclass exposing ``name`` and an async
``apply(context)`` returning one :class:`OperationOutcome`. Errors raised
from ``apply`` are turned into failed outcomes by the coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Protocol, Union

from .git import GhRunner, VersionControlClient
from .models import OperationOutcome


@dataclass(slots=True)
class RepositoryContext:
    """What an operation may touch for one bound repository."""

    repository: str
    path: Path
    branch: str
    client: VersionControlClient

    def success(self, message: str, **kwargs) -> OperationOutcome:
        return OperationOutcome(repository=self.repository, success=True, message=message, **kwargs)

    def failure(self, message: str, **kwargs) -> OperationOutcome:
        return OperationOutcome(repository=self.repository, success=False, message=message, **kwargs)


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


@dataclass(slots=True)
class Commit:
    message: str
    add_all: bool = True

    name: ClassVar[str] = "commit"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        before = await context.client.status(context.repository, context.path)
        if not before.has_changes:
            return context.success("nothing to commit", status=before)
        if not self.add_all and not any(change.staged for change in before.files):
            return context.success("nothing staged to commit", status=before)
        output = await context.client.commit(context.path, self.message, add_all=self.add_all)
        after = await context.client.status(context.repository, context.path)
        return context.success(_first_line(output) or "committed", status=after, output=output)


async def _resolve_remote(context: RepositoryContext, remote: str | None) -> str | None:
    if remote:
        return remote
    return await context.client.first_remote(context.path)


@dataclass(slots=True)
class Push:
    remote: str | None = None
    set_upstream: bool = True

    name: ClassVar[str] = "push"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        remote = await _resolve_remote(context, self.remote)
        if remote is None:
            return context.failure("no remote configured")
        status = await context.client.status(context.repository, context.path)
        branch = status.branch or context.branch
        if status.upstream is not None and status.ahead == 0:
            return context.success("everything up-to-date", status=status)
        output = await context.client.push(
            context.path, remote, branch, set_upstream=self.set_upstream
        )
        return context.success(f"pushed {branch} to {remote}", output=output)


@dataclass(slots=True)
class Sync:
    pull: bool = True
    push: bool = False
    rebase: bool = False
    remote: str | None = None

    name: ClassVar[str] = "sync"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        client = context.client
        await client.fetch(context.path, self.remote)
        status = await client.status(context.repository, context.path)
        messages: list[str] = []

        if status.upstream is None:
            messages.append("no upstream")
        elif self.pull and status.behind:
            if status.ahead and not self.rebase:
                return context.failure(
                    f"diverged from {status.upstream}: {status.ahead} ahead, {status.behind} behind",
                    status=status,
                )
            if self.rebase:
                await client.rebase(context.path, "@{upstream}")
                messages.append(f"rebased onto {status.upstream}")
            else:
                await client.fast_forward(context.path)
                messages.append(f"fast-forwarded {status.behind} commits")
        else:
            messages.append("up to date")

        if self.push:
            pushed = await Push(remote=self.remote).apply(context)
            if not pushed.success:
                return context.failure(pushed.message, status=status)
            messages.append(pushed.message)

        status = await client.status(context.repository, context.path)
        return context.success("; ".join(messages), status=status)


@dataclass(slots=True)
class BranchCreate:
    branch: str

    name: ClassVar[str] = "branch"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        await context.client.switch(context.path, self.branch, create=True)
        return context.success(f"created and switched to {self.branch}")


@dataclass(slots=True)
class BranchSwitch:
    branch: str

    name: ClassVar[str] = "branch"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        await context.client.switch(context.path, self.branch)
        return context.success(f"switched to {self.branch}")


@dataclass(slots=True)
class BranchList:
    name: ClassVar[str] = "branch"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        branches = await context.client.list_branches(context.path)
        return context.success(f"{len(branches)} branches", output="\n".join(branches))


BranchOperation = Union[BranchCreate, BranchSwitch, BranchList]


@dataclass(slots=True)
class Diff:
    staged: bool = False

    name: ClassVar[str] = "diff"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        output = await context.client.diff(context.path, staged=self.staged)
        return context.success("changes" if output.strip() else "no changes", output=output)


@dataclass(slots=True)
class Log:
    limit: int | None = 10
    oneline: bool = True
    since: str | None = None

    name: ClassVar[str] = "log"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        output = await context.client.log(
            context.path, limit=self.limit, oneline=self.oneline, since=self.since
        )
        return context.success(f"{len(output.splitlines())} lines", output=output)


@dataclass(slots=True)
class Rebase:
    target: str = "main"

    name: ClassVar[str] = "rebase"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        output = await context.client.rebase(context.path, self.target)
        return context.success(f"rebased onto {self.target}", output=output)


class PullRequestProvider(Protocol):
    """Pull-request integration collaborator."""

    async def create(
        self,
        path: Path,
        *,
        branch: str,
        base: str | None,
        title: str | None,
        body: str | None,
        draft: bool,
    ) -> str: ...


class GhPullRequestProvider:
    """``PullRequestProvider`` that shells out to ``gh pr create``."""

    def __init__(self, runner: GhRunner) -> None:
        self._runner = runner

    async def create(
        self,
        path: Path,
        *,
        branch: str,
        base: str | None,
        title: str | None,
        body: str | None,
        draft: bool,
    ) -> str:
        args = ["pr", "create", "--head", branch]
        if base:
            args.extend(["--base", base])
        if title:
            args.extend(["--title", title, "--body", body or ""])
        else:
            args.append("--fill")
        if draft:
            args.append("--draft")
        result = await self._runner.run(*args, cwd=path)
        result.check(f"Cannot create pull request for {branch}")
        return result.stdout.strip()


@dataclass(slots=True)
class PullRequest:
    provider: PullRequestProvider
    title: str | None = None
    body: str | None = None
    base: str | None = None
    draft: bool = False

    name: ClassVar[str] = "pr"

    async def apply(self, context: RepositoryContext) -> OperationOutcome:
        status = await context.client.status(context.repository, context.path)
        branch = status.branch or context.branch
        if status.upstream is None:
            return context.failure(f"branch {branch} has not been pushed", status=status)
        if status.ahead:
            return context.failure(f"{status.ahead} unpushed commits; push first", status=status)
        url = await self.provider.create(
            context.path,
            branch=branch,
            base=self.base,
            title=self.title,
            body=self.body,
            draft=self.draft,
        )
        return context.success(url or "pull request created", output=url)


Operation = Union[
    Commit,
    Push,
    Sync,
    BranchCreate,
    BranchSwitch,
    BranchList,
    Diff,
    Log,
    Rebase,
    PullRequest,
]


__all__ = [
    "BranchCreate",
    "BranchList",
    "BranchOperation",
    "BranchSwitch",
    "Commit",
    "Diff",
    "GhPullRequestProvider",
    "Log",
    "Operation",
    "PullRequest",
    "PullRequestProvider",
    "Push",
    "Rebase",
    "RepositoryContext",
    "Sync",
]
