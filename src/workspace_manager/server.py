"""FastMCP server bootstrap for the workspace manager."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import WorkspaceSettings, configure_logging, get_settings
from .errors import ExternalToolError, PersistenceError
from .git import GitClient, GitRunner, MissingGitRunner
from .manager import WorkspaceManager
from .reconcile import reconcile
from .tools import register_tools

logger = logging.getLogger(__name__)


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _probe_git(settings: WorkspaceSettings) -> tuple[GitRunner, dict[str, object]]:
    metadata: dict[str, object] = {"available": False, "version": None, "error": None}
    try:
        runner = GitRunner(settings.git_path, timeout=settings.git_timeout)
        result = _run_sync(runner.version())
    except ExternalToolError as exc:
        logger.warning("git is unavailable; workspace operations will fail", extra={"reason": str(exc)})
        metadata["error"] = str(exc)
        return MissingGitRunner(str(exc)), metadata
    metadata["available"] = result.ok
    if result.ok:
        metadata["version"] = result.stdout.strip()
    else:
        metadata["error"] = result.stderr.strip() or f"git --version exited with {result.returncode}"
    return runner, metadata


def create_server(
    settings: Optional[WorkspaceSettings] = None,
    manager: WorkspaceManager | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the workspace tools and a status resource."""

    settings = settings or get_settings()

    runner, git_metadata = _probe_git(settings)
    if manager is None:
        manager = WorkspaceManager.from_settings(settings, client=GitClient(runner))

    journal_metadata = {
        "available": manager.journal is not None,
        "enabled": settings.journal_enabled,
        "path": str(settings.resolved_journal_path),
    }

    server = FastMCP(
        name="Workspace Manager",
        version=__version__,
        instructions=(
            "Workspace Manager groups git repositories into named workspaces, each "
            "repository checked out on a shared branch as a worktree. Use the tools "
            "to discover repositories, create workspaces and run git operations "
            "across every repository of a workspace at once."
        ),
    )

    handles = register_tools(server, manager=manager)

    @server.resource(
        "resource://wsm/status",
        name="wsm_status",
        title="Workspace Manager Status",
        description="Provides registry, workspace and tooling status for the server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing registry and workspace state."""

        storage_error = None
        repositories = 0
        workspaces: list[dict[str, object]] = []
        try:
            repositories = len(manager.list_repositories())
            for descriptor in manager.list():
                report = reconcile(descriptor)
                workspaces.append(
                    {
                        "name": descriptor.name,
                        "branch": descriptor.branch,
                        "repositories": len(descriptor.bindings),
                        "consistent": report.consistent,
                    }
                )
        except PersistenceError as exc:
            storage_error = str(exc)

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "config_dir": str(settings.config_dir),
            "workspace_dir": str(settings.workspace_dir),
            "git": git_metadata,
            "journal": journal_metadata,
            "registry": {"repositories": repositories},
            "workspaces": {
                "count": len(workspaces),
                "inconsistent": [entry["name"] for entry in workspaces if not entry["consistent"]],
                "preview": workspaces[-5:],
            },
            "error": storage_error,
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "workspace_manager", manager)
    setattr(server, "git_metadata", git_metadata)
    setattr(server, "journal_metadata", journal_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the workspace manager MCP server."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logger.info(
        "Launching workspace manager MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "git_available": getattr(server, "git_metadata", {}).get("available"),
            "journal_available": getattr(server, "journal_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
