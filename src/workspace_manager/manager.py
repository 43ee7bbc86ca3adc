"""Workspace manager: the command surface over the orchestration engine."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from .binder import UnbindResult, WorktreeBinder
from .config import WorkspaceSettings
from .coordinator import OperationCoordinator
from .discovery import DiscoveryScanner
from .errors import (
    GitNotFoundError,
    NotFoundError,
    PartialFailure,
    WorkspaceExistsError,
    WorkspaceManagerError,
)
from .git import GhRunner, GitClient, GitRunner, VersionControlClient
from .models import OperationOutcome, OperationReport, ScanResult, StatusReport
from .modules import WORKSPACE_FILE, ModuleWorkspaceGenerator
from .operations import (
    BranchOperation,
    Commit,
    Diff,
    GhPullRequestProvider,
    Log,
    Operation,
    PullRequest,
    PullRequestProvider,
    Push,
    Rebase,
    Sync,
)
from .reconcile import ReconcileReport, reconcile
from .status import StatusAggregator
from .storage import (
    Binding,
    JournalEvent,
    JournalUnavailableError,
    RegistryStore,
    RepositoryRecord,
    WorkspaceDescriptor,
    WorkspaceJournal,
    WorkspaceStore,
)
from .storage.models import normalize_workspace_name

logger = logging.getLogger(__name__)

AGENT_FILE = "AGENT.md"

RepositorySelector = Callable[[list[RepositoryRecord]], Sequence[str]]


@dataclass(slots=True)
class CreatePlan:
    """Fully resolved ``create`` invocation."""

    name: str
    branch: str
    root: str
    repositories: list[str]
    worktrees: dict[str, str]
    agent_source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "branch": self.branch,
            "root": self.root,
            "repositories": list(self.repositories),
            "worktrees": dict(self.worktrees),
            "agent_source": self.agent_source,
        }


@dataclass(slots=True)
class CreateResult:
    plan: CreatePlan
    report: OperationReport
    descriptor: WorkspaceDescriptor | None = None
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.report.ok

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "plan": self.plan.to_dict(),
            "workspace": self.descriptor.model_dump(mode="json") if self.descriptor else None,
            **{key: value for key, value in self.report.to_dict().items() if key in {"ok", "outcomes"}},
        }


@dataclass(slots=True)
class WorkspaceInfo:
    descriptor: WorkspaceDescriptor
    reconcile: ReconcileReport
    module_file: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspace": self.descriptor.model_dump(mode="json"),
            "reconcile": self.reconcile.to_dict(),
            "module_file": self.module_file,
            **self.extras,
        }


class WorkspaceManager:
    """Compose the stores, the binder, the aggregator and the coordinator.

    All collaborators are injected; ``from_settings`` wires the production
    ones.
    """

    def __init__(
        self,
        *,
        registry: RegistryStore,
        workspaces: WorkspaceStore,
        client: VersionControlClient,
        workspace_dir: Path,
        branch_prefix: str = "task",
        max_workers: int = 4,
        generator: ModuleWorkspaceGenerator | None = None,
        journal: WorkspaceJournal | None = None,
        pr_provider: PullRequestProvider | None = None,
        selector: RepositorySelector | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.registry = registry
        self.workspaces = workspaces
        self.client = client
        self.workspace_dir = Path(workspace_dir)
        self.branch_prefix = branch_prefix
        self.generator = generator or ModuleWorkspaceGenerator()
        self.journal = journal
        self.pr_provider = pr_provider
        self.selector = selector
        self._today = today

        registry.bind_references(workspaces.referencing)
        self.scanner = DiscoveryScanner(registry, client, max_workers=max_workers)
        self.binder = WorktreeBinder(registry, workspaces, client, generator=self.generator)
        self.aggregator = StatusAggregator(client, max_workers=max_workers)
        self.coordinator = OperationCoordinator(workspaces, client, max_workers=max_workers)

    @classmethod
    def from_settings(
        cls,
        settings: WorkspaceSettings,
        *,
        client: VersionControlClient | None = None,
        journal: WorkspaceJournal | None = None,
        selector: RepositorySelector | None = None,
    ) -> WorkspaceManager:
        if client is None:
            client = GitClient(GitRunner(settings.git_path, timeout=settings.git_timeout))

        if journal is None and settings.journal_enabled:
            try:
                journal = WorkspaceJournal(settings.resolved_journal_path)
                journal.ping()
            except JournalUnavailableError as exc:
                logger.info("Workspace journal disabled", extra={"reason": str(exc)})
                journal = None

        pr_provider: PullRequestProvider | None
        try:
            pr_provider = GhPullRequestProvider(GhRunner(timeout=settings.git_timeout))
        except GitNotFoundError:
            pr_provider = None

        return cls(
            registry=RegistryStore(settings.registry_path),
            workspaces=WorkspaceStore(settings.workspaces_path),
            client=client,
            workspace_dir=settings.workspace_dir,
            branch_prefix=settings.branch_prefix,
            max_workers=settings.max_workers,
            generator=ModuleWorkspaceGenerator(settings.go_version),
            journal=journal,
            pr_provider=pr_provider,
            selector=selector,
        )

    # -- journal -------------------------------------------------------------

    def _record(self, workspace: str, event_type: str, body: Any, **metadata: Any) -> None:
        if self.journal is None:
            return
        self.journal.record_event(
            workspace=workspace, event_type=event_type, body=body, metadata=metadata
        )

    def _record_report(self, report: OperationReport) -> None:
        self._record(
            report.workspace,
            f"operation_{report.operation}",
            report.to_dict(),
            ok=report.ok,
            failed=len(report.failed()),
        )

    def history(
        self,
        workspace: str,
        *,
        limit: int | None = None,
        event_type: str | None = None,
        query: str | None = None,
    ) -> list[JournalEvent]:
        """Return journaled events of ``workspace``, oldest first.

        ``event_type`` keeps one kind of event and ``query`` matches text in the
        event body or metadata.
        """

        if self.journal is None:
            raise JournalUnavailableError(
                "Workspace journal is unavailable; install workspace-manager[journal]"
            )
        if event_type is None and query is None:
            return self.journal.fetch_workspace_events(workspace, limit=limit)
        filters = {"workspace": workspace}
        if event_type is not None:
            filters["event_type"] = event_type
        return self.journal.search_events(query, filters=filters, limit=limit)

    # -- registry ------------------------------------------------------------

    async def discover(
        self,
        roots: Iterable[Path | str],
        max_depth: int = 3,
        recursive: bool = True,
    ) -> ScanResult:
        return await self.scanner.scan(roots, max_depth=max_depth, recursive=recursive)

    def list_repositories(
        self,
        *,
        name_contains: str | None = None,
        path_prefix: Path | str | None = None,
        tag: str | None = None,
    ) -> list[RepositoryRecord]:
        return self.registry.list(name_contains=name_contains, path_prefix=path_prefix, tag=tag)

    def remove_repository(self, name: str) -> RepositoryRecord:
        return self.registry.remove(name)

    # -- lifecycle -----------------------------------------------------------

    def workspace_root(self, name: str) -> Path:
        return self.workspace_dir / self._today().isoformat() / name

    def plan(
        self,
        name: str,
        repos: Sequence[str],
        *,
        branch: str | None = None,
        branch_prefix: str | None = None,
        agent_source: Path | str | None = None,
    ) -> CreatePlan:
        name = normalize_workspace_name(name)
        if not repos:
            raise WorkspaceManagerError("At least one repository is required to create a workspace")
        for repo in repos:
            self.registry.get(repo)
        prefix = (branch_prefix if branch_prefix is not None else self.branch_prefix).strip("/")
        resolved_branch = branch or (f"{prefix}/{name}" if prefix else name)
        root = self.workspace_root(name)
        return CreatePlan(
            name=name,
            branch=resolved_branch,
            root=str(root),
            repositories=list(dict.fromkeys(repos)),
            worktrees={repo: str(root / repo) for repo in dict.fromkeys(repos)},
            agent_source=str(Path(agent_source).expanduser()) if agent_source else None,
        )

    def _check_available(self, plan: CreatePlan) -> None:
        if self.workspaces.exists(plan.name):
            raise WorkspaceExistsError(f"Workspace '{plan.name}' already exists")
        clash = self.workspaces.find_by_root(plan.root)
        if clash is not None:
            raise WorkspaceExistsError(f"Workspace '{clash.name}' already uses root {plan.root}")
        root = Path(plan.root)
        if root.exists() and any(root.iterdir()):
            raise WorkspaceExistsError(f"Workspace root {root} already exists and is not empty")
        if plan.agent_source and not Path(plan.agent_source).is_file():
            raise NotFoundError("Agent source", plan.agent_source)

    async def create(
        self,
        name: str,
        repos: Sequence[str] = (),
        branch: str | None = None,
        branch_prefix: str | None = None,
        interactive: bool = False,
        dry_run: bool = False,
        agent_source: Path | str | None = None,
    ) -> CreateResult:
        """Create a workspace and bind each repository into it.

        Repositories are bound one after the other; a failing repository is
        reported in the result and the descriptor keeps the others.
        """

        if interactive:
            if self.selector is None:
                raise WorkspaceManagerError("Interactive creation requires a repository selector")
            repos = list(self.selector(self.registry.list()))

        plan = self.plan(name, repos, branch=branch, branch_prefix=branch_prefix, agent_source=agent_source)
        name = plan.name
        if dry_run:
            return CreateResult(plan=plan, report=OperationReport("create", name), dry_run=True)

        self._check_available(plan)
        root = Path(plan.root)
        root.mkdir(parents=True, exist_ok=True)
        descriptor = WorkspaceDescriptor(
            name=name,
            branch=plan.branch,
            root=plan.root,
            branch_prefix=branch_prefix,
        )
        if plan.agent_source:
            shutil.copyfile(plan.agent_source, root / AGENT_FILE)
            descriptor.agent_source = plan.agent_source
        self.workspaces.save(descriptor)
        logger.info("Created workspace", extra={"workspace": name, "branch": plan.branch, "root": plan.root})

        outcomes: list[OperationOutcome] = []
        for repo in plan.repositories:
            try:
                binding = await self.binder.bind(name, repo, plan.branch)
            except (WorkspaceManagerError, OSError) as exc:
                logger.warning("Bind failed", extra={"workspace": name, "repository": repo, "error": str(exc)})
                outcomes.append(OperationOutcome(repository=repo, success=False, message=str(exc)))
                continue
            outcomes.append(
                OperationOutcome(repository=repo, success=True, message=f"bound on {binding.branch}")
            )

        report = OperationReport("create", name, outcomes)
        self._record(name, "workspace_created", plan.to_dict(), ok=report.ok)
        return CreateResult(plan=plan, report=report, descriptor=self.workspaces.get(name))

    async def add(
        self,
        workspace: str,
        repo: str,
        branch: str | None = None,
        force: bool = False,
        rebind: bool = False,
    ) -> Binding:
        binding = await self.binder.bind(workspace, repo, branch, force=force, rebind=rebind)
        self._record(workspace, "repository_bound", binding.model_dump(mode="json"), repository=repo)
        return binding

    async def remove(
        self,
        workspace: str,
        repo: str,
        force: bool = False,
        remove_files: bool = False,
    ) -> UnbindResult:
        result = await self.binder.unbind(workspace, repo, force=force, remove_files=remove_files)
        self._record(
            workspace,
            "repository_unbound",
            {"repository": repo, "residual_files": result.residual_files},
            repository=repo,
        )
        return result

    def list(self) -> list[WorkspaceDescriptor]:
        return self.workspaces.list()

    def get(self, workspace: str) -> WorkspaceDescriptor:
        return self.workspaces.get(workspace)

    def info(self, workspace: str) -> WorkspaceInfo:
        descriptor = self.workspaces.get(workspace)
        module_file = Path(descriptor.root) / WORKSPACE_FILE
        report = reconcile(descriptor)
        if not report.consistent:
            logger.warning("Workspace needs cleanup", extra=report.to_dict())
        return WorkspaceInfo(
            descriptor=descriptor,
            reconcile=report,
            module_file=str(module_file) if module_file.exists() else None,
        )

    async def delete(
        self,
        workspace: str,
        force: bool = False,
        remove_files: bool = False,
    ) -> OperationReport:
        """Release every binding, then delete the descriptor.

        Raises ``PartialFailure`` and keeps the descriptor (with the bindings
        that could not be released) when any release fails.
        """

        descriptor = self.workspaces.get(workspace)
        outcomes: list[OperationOutcome] = []
        for binding in descriptor.bindings:
            try:
                await self.binder.unbind(
                    workspace, binding.repository, force=force, remove_files=remove_files
                )
            except (WorkspaceManagerError, OSError) as exc:
                outcomes.append(OperationOutcome(repository=binding.repository, success=False, message=str(exc)))
                continue
            outcomes.append(OperationOutcome(repository=binding.repository, success=True, message="released"))

        report = OperationReport("delete", workspace, outcomes)
        if not report.ok:
            self._record_report(report)
            raise PartialFailure("delete", report.outcomes)

        self.workspaces.delete(workspace)
        root = Path(descriptor.root)
        if remove_files and root.exists():
            shutil.rmtree(root)
        logger.info("Deleted workspace", extra={"workspace": workspace, "files_removed": remove_files})
        self._record(workspace, "workspace_deleted", {"root": descriptor.root}, files_removed=remove_files)
        return report

    # -- aggregate operations ------------------------------------------------

    def resolve(self, workspace: str | None = None, *, cwd: Path | str | None = None) -> WorkspaceDescriptor:
        """Return the named workspace, or the one whose root contains ``cwd``."""

        if workspace:
            return self.workspaces.get(workspace)
        location = Path(cwd) if cwd is not None else Path.cwd()
        descriptor = self.workspaces.find_containing(location)
        if descriptor is None:
            raise NotFoundError("Workspace containing", str(location))
        return descriptor

    async def status(
        self, workspace: str | None = None, *, cwd: Path | str | None = None
    ) -> dict[str, StatusReport]:
        return await self.aggregator.status(self.resolve(workspace, cwd=cwd))

    async def run(
        self,
        workspace: str,
        operation: Operation,
        *,
        repositories: Iterable[str] | None = None,
    ) -> OperationReport:
        descriptor = self.workspaces.get(workspace)
        report = await self.coordinator.run(descriptor, operation, repositories=repositories)
        self._record_report(report)
        return report

    async def commit(self, workspace: str, message: str, *, add_all: bool = True) -> OperationReport:
        return await self.run(workspace, Commit(message=message, add_all=add_all))

    async def push(self, workspace: str, remote: str | None = None) -> OperationReport:
        return await self.run(workspace, Push(remote=remote))

    async def sync(
        self,
        workspace: str,
        *,
        pull: bool = True,
        push: bool = False,
        rebase: bool = False,
        remote: str | None = None,
    ) -> OperationReport:
        return await self.run(workspace, Sync(pull=pull, push=push, rebase=rebase, remote=remote))

    async def diff(
        self, workspace: str, *, staged: bool = False, repo: str | None = None
    ) -> OperationReport:
        return await self.run(workspace, Diff(staged=staged), repositories=[repo] if repo else None)

    async def log(
        self,
        workspace: str,
        *,
        limit: int | None = 10,
        oneline: bool = True,
        since: str | None = None,
    ) -> OperationReport:
        return await self.run(workspace, Log(limit=limit, oneline=oneline, since=since))

    async def branch(self, workspace: str, op: BranchOperation) -> OperationReport:
        return await self.run(workspace, op)

    async def rebase(
        self, workspace: str, target: str = "main", *, repo: str | None = None
    ) -> OperationReport:
        return await self.run(workspace, Rebase(target=target), repositories=[repo] if repo else None)

    async def pr(
        self,
        workspace: str,
        *,
        title: str | None = None,
        body: str | None = None,
        base: str | None = None,
        draft: bool = False,
    ) -> OperationReport:
        if self.pr_provider is None:
            raise WorkspaceManagerError("No pull request provider configured (is gh installed?)")
        operation = PullRequest(provider=self.pr_provider, title=title, body=body, base=base, draft=draft)
        return await self.run(workspace, operation)


__all__ = ["CreatePlan", "CreateResult", "WorkspaceInfo", "WorkspaceManager"]
