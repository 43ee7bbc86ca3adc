"""Tool registration for the workspace manager MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..manager import WorkspaceManager
from ..operations import BranchCreate, BranchList, BranchSwitch


@dataclass(slots=True)
class ToolHandles:
    discover: Any
    list_repositories: Any
    remove_repository: Any
    create_workspace: Any
    add_repository: Any
    remove_from_workspace: Any
    list_workspaces: Any
    workspace_info: Any
    delete_workspace: Any
    workspace_status: Any
    commit: Any
    push: Any
    sync: Any
    diff: Any
    log: Any
    branch: Any
    rebase: Any
    workspace_history: Any


def register_tools(server: FastMCP, *, manager: WorkspaceManager) -> ToolHandles:
    """Register every workspace tool on ``server`` and return the handles."""

    async def _discover(
        paths: list[str],
        max_depth: int = 3,
        recursive: bool = True,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Scan directories for repositories and register them."""

        result = await manager.discover(paths, max_depth=max_depth, recursive=recursive)
        _emit_log(
            context,
            "info",
            "Discovery finished",
            extra={"registered": result.count, "errors": len(result.errors)},
        )
        return result.to_dict()

    def _list_repositories(
        name_contains: str | None = None,
        tag: str | None = None,
        context: Context | None = None,
    ) -> list[dict[str, Any]]:
        records = manager.list_repositories(name_contains=name_contains, tag=tag)
        _emit_log(context, "debug", "Listing repositories", extra={"count": len(records)})
        return [record.model_dump(mode="json") for record in records]

    def _remove_repository(name: str, context: Context | None = None) -> dict[str, Any]:
        record = manager.remove_repository(name)
        _emit_log(context, "info", "Repository removed from registry", extra={"repository": name})
        return record.model_dump(mode="json")

    async def _create_workspace(
        name: str,
        repos: list[str],
        branch: str | None = None,
        branch_prefix: str | None = None,
        agent_source: str | None = None,
        dry_run: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        result = await manager.create(
            name,
            repos,
            branch=branch,
            branch_prefix=branch_prefix,
            dry_run=dry_run,
            agent_source=agent_source,
        )
        _emit_log(
            context,
            "info" if result.ok else "warning",
            "Workspace planned" if dry_run else "Workspace created",
            extra={"workspace": name, "branch": result.plan.branch, "ok": result.ok},
        )
        return result.to_dict()

    async def _add_repository(
        workspace: str,
        repo: str,
        branch: str | None = None,
        force: bool = False,
        rebind: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        binding = await manager.add(workspace, repo, branch, force=force, rebind=rebind)
        _emit_log(
            context,
            "info",
            "Repository bound",
            extra={"workspace": workspace, "repository": repo, "branch": binding.branch},
        )
        return binding.model_dump(mode="json")

    async def _remove_from_workspace(
        workspace: str,
        repo: str,
        force: bool = False,
        remove_files: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        result = await manager.remove(workspace, repo, force=force, remove_files=remove_files)
        _emit_log(context, "info", "Repository unbound", extra={"workspace": workspace, "repository": repo})
        return {
            "workspace": workspace,
            "repository": repo,
            "files_removed": result.files_removed,
            "residual_files": result.residual_files,
        }

    def _list_workspaces(context: Context | None = None) -> list[dict[str, Any]]:
        descriptors = manager.list()
        _emit_log(context, "debug", "Listing workspaces", extra={"count": len(descriptors)})
        return [
            {
                "name": descriptor.name,
                "branch": descriptor.branch,
                "root": descriptor.root,
                "repositories": descriptor.repositories,
                "created_at": descriptor.created_at.isoformat(),
            }
            for descriptor in descriptors
        ]

    def _workspace_info(workspace: str, context: Context | None = None) -> dict[str, Any]:
        return manager.info(workspace).to_dict()

    async def _delete_workspace(
        workspace: str,
        force: bool = False,
        remove_files: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        report = await manager.delete(workspace, force=force, remove_files=remove_files)
        _emit_log(context, "info", "Workspace deleted", extra={"workspace": workspace})
        return report.to_dict()

    async def _workspace_status(workspace: str, context: Context | None = None) -> dict[str, Any]:
        """Return per-repository working tree status."""

        reports = await manager.status(workspace)
        return {
            "workspace": workspace,
            "repositories": {name: report.to_dict() for name, report in reports.items()},
        }

    async def _commit(
        workspace: str,
        message: str,
        add_all: bool = True,
        context: Context | None = None,
    ) -> dict[str, Any]:
        report = await manager.commit(workspace, message, add_all=add_all)
        _emit_log(
            context,
            "info" if report.ok else "warning",
            "Commit finished",
            extra={"workspace": workspace, "failed": len(report.failed())},
        )
        return report.to_dict()

    async def _push(
        workspace: str, remote: str | None = None, context: Context | None = None
    ) -> dict[str, Any]:
        report = await manager.push(workspace, remote)
        return report.to_dict()

    async def _sync(
        workspace: str,
        pull: bool = True,
        push: bool = False,
        rebase: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        report = await manager.sync(workspace, pull=pull, push=push, rebase=rebase)
        return report.to_dict()

    async def _diff(
        workspace: str,
        staged: bool = False,
        repo: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        report = await manager.diff(workspace, staged=staged, repo=repo)
        return report.to_dict()

    async def _log(
        workspace: str,
        limit: int = 10,
        oneline: bool = True,
        since: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        report = await manager.log(workspace, limit=limit, oneline=oneline, since=since)
        return report.to_dict()

    async def _branch(
        workspace: str,
        action: str = "list",
        name: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Create, switch or list branches across every bound repository."""

        if action == "list":
            operation: BranchCreate | BranchSwitch | BranchList = BranchList()
        elif action in {"create", "switch"}:
            if not name:
                raise ValueError(f"A branch name is required to {action}")
            operation = BranchCreate(name) if action == "create" else BranchSwitch(name)
        else:
            raise ValueError("action must be one of 'create', 'switch' or 'list'")
        report = await manager.branch(workspace, operation)
        _emit_log(context, "info", "Branch operation finished", extra={"workspace": workspace, "action": action})
        return report.to_dict()

    async def _rebase(
        workspace: str,
        target: str = "main",
        repo: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        report = await manager.rebase(workspace, target, repo=repo)
        return report.to_dict()

    def _workspace_history(
        workspace: str,
        limit: int = 20,
        event_type: str | None = None,
        query: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        events = manager.history(workspace, limit=limit, event_type=event_type, query=query)
        return {"workspace": workspace, "events": [event.to_dict() for event in events]}

    tool_discover = server.tool(
        name="discover",
        description="Scan directories for git repositories and record them in the registry.",
    )(_discover)

    tool_list_repositories = server.tool(
        name="list_repositories",
        description="List registered repositories, optionally filtered by name or tag.",
    )(_list_repositories)

    tool_remove_repository = server.tool(
        name="remove_repository",
        description="Remove a repository from the registry. Fails while a workspace binds it.",
    )(_remove_repository)

    tool_create = server.tool(
        name="create_workspace",
        description=(
            "Create a workspace and check every listed repository out on the workspace "
            "branch as a git worktree. Use dry_run to preview the plan."
        ),
    )(_create_workspace)

    tool_add = server.tool(
        name="add_repository",
        description="Bind one more repository into an existing workspace.",
    )(_add_repository)

    tool_remove = server.tool(
        name="remove_from_workspace",
        description="Release a repository's worktree from a workspace.",
        annotations={
            "safety": {
                "level": "caution",
                "notes": "force discards uncommitted changes in the worktree",
            }
        },
    )(_remove_from_workspace)

    tool_list_workspaces = server.tool(
        name="list_workspaces",
        description="List workspaces with their branch, root and bound repositories.",
    )(_list_workspaces)

    tool_info = server.tool(
        name="workspace_info",
        description="Describe one workspace, including bindings that need cleanup.",
    )(_workspace_info)

    tool_delete = server.tool(
        name="delete_workspace",
        description="Release every worktree of a workspace and delete it.",
        annotations={
            "safety": {
                "level": "caution",
                "notes": "remove_files deletes the workspace directory",
            }
        },
    )(_delete_workspace)

    tool_status = server.tool(
        name="workspace_status",
        description="Report branch, ahead/behind counts and changed files for each repository.",
    )(_workspace_status)

    tool_commit = server.tool(
        name="commit",
        description="Commit pending changes with the same message in every repository.",
    )(_commit)

    tool_push = server.tool(
        name="push",
        description="Push the workspace branch of every repository.",
    )(_push)

    tool_sync = server.tool(
        name="sync",
        description="Fetch and integrate upstream changes, optionally pushing afterwards.",
    )(_sync)

    tool_diff = server.tool(
        name="diff",
        description="Show uncommitted changes across the workspace.",
    )(_diff)

    tool_log = server.tool(
        name="log",
        description="Show recent commits for each repository.",
    )(_log)

    tool_branch = server.tool(
        name="branch",
        description="Create, switch or list branches in every repository of a workspace.",
    )(_branch)

    tool_rebase = server.tool(
        name="rebase",
        description="Rebase each repository (or one) onto a target branch.",
    )(_rebase)

    tool_history = server.tool(
        name="workspace_history",
        description=(
            "Return journaled lifecycle and operation events for a workspace, "
            "optionally filtered by event type or a text query."
        ),
    )(_workspace_history)

    return ToolHandles(
        discover=tool_discover,
        list_repositories=tool_list_repositories,
        remove_repository=tool_remove_repository,
        create_workspace=tool_create,
        add_repository=tool_add,
        remove_from_workspace=tool_remove,
        list_workspaces=tool_list_workspaces,
        workspace_info=tool_info,
        delete_workspace=tool_delete,
        workspace_status=tool_status,
        commit=tool_commit,
        push=tool_push,
        sync=tool_sync,
        diff=tool_diff,
        log=tool_log,
        branch=tool_branch,
        rebase=tool_rebase,
        workspace_history=tool_history,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log through the MCP context when one is attached, else the module logger."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
