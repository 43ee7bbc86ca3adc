"""Command line interface for the workspace manager (``wsm``)."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from .config import WorkspaceSettings, configure_logging, get_settings
from .errors import WorkspaceManagerError
from .manager import WorkspaceManager
from .models import OperationReport, StatusReport, status_symbol
from .operations import BranchCreate, BranchList, BranchSwitch
from .storage import RepositoryRecord


def prompt_selection(records: list[RepositoryRecord]) -> list[str]:
    """Ask on stdin which registered repositories go into a new workspace."""

    if not records:
        raise WorkspaceManagerError("No repositories registered; run 'wsm discover' first")
    for index, record in enumerate(records, start=1):
        print(f"{index:3d}. {record.name:30s} {record.path}")
    answer = input("Repositories (names or numbers, comma separated): ")
    selected: list[str] = []
    for token in (part.strip() for part in answer.split(",")):
        if not token:
            continue
        if token.isdigit() and 1 <= int(token) <= len(records):
            selected.append(records[int(token) - 1].name)
        else:
            selected.append(token)
    return selected


def load_manager(settings: WorkspaceSettings) -> WorkspaceManager:
    return WorkspaceManager.from_settings(settings, selector=prompt_selection)


def _dump(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _print_report(args: argparse.Namespace, report: OperationReport) -> int:
    if args.json:
        _dump(report.to_dict())
    else:
        for outcome in report.outcomes:
            marker = "✓" if outcome.success else "✗"
            print(f"{marker} {outcome.repository}: {outcome.message}")
            if outcome.output:
                for line in outcome.output.rstrip().splitlines():
                    print(f"    {line}")
    return 0 if report.ok else 1


def _format_status(report: StatusReport) -> list[str]:
    if not report.ok:
        return [f"{report.repository}: error: {report.error}"]
    head = f"{report.repository} [{report.branch}]"
    if report.upstream:
        head += f" ↑{report.ahead} ↓{report.behind}"
    if report.clean:
        head += " clean"
    lines = [head]
    for change in report.files:
        lines.append(f"    {status_symbol(change.code)} {change.path}")
    return lines


def cmd_discover(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    paths = args.paths or [str(Path.cwd())]
    result = asyncio.run(
        manager.discover(paths, max_depth=args.max_depth, recursive=not args.no_recursive)
    )
    if args.json:
        _dump(result.to_dict())
    else:
        print(f"Registered {result.count} repositories")
        for error in result.errors:
            print(f"  skipped {error.path}: {error.reason}", file=sys.stderr)
    return 0


def cmd_repos(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    records = manager.list_repositories(name_contains=args.filter, tag=args.tag)
    if args.json:
        _dump([record.model_dump(mode="json") for record in records])
    else:
        for record in records:
            tags = ",".join(record.tags)
            print(f"{record.name:30s} {record.current_branch or '-':20s} {tags:20s} {record.path}")
    return 0


def cmd_forget(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    record = manager.remove_repository(args.name)
    print(f"Removed {record.name} from the registry")
    return 0


def cmd_create(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    result = asyncio.run(
        manager.create(
            args.name,
            args.repos,
            branch=args.branch,
            branch_prefix=args.branch_prefix,
            interactive=args.interactive,
            dry_run=args.dry_run,
            agent_source=args.agent_source,
        )
    )
    if args.json:
        _dump(result.to_dict())
        return 0 if result.ok else 1
    plan = result.plan
    print(f"{'Would create' if result.dry_run else 'Created'} workspace {plan.name} on {plan.branch}")
    print(f"  root: {plan.root}")
    if result.dry_run:
        for repo, path in plan.worktrees.items():
            print(f"  {repo} -> {path}")
        return 0
    return _print_report(args, result.report)


def cmd_add(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    binding = asyncio.run(
        manager.add(args.workspace, args.repo, args.branch, force=args.force, rebind=args.rebind)
    )
    if args.json:
        _dump(binding.model_dump(mode="json"))
    else:
        print(f"Bound {binding.repository} on {binding.branch} at {binding.worktree_path}")
    return 0


def cmd_remove(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    result = asyncio.run(
        manager.remove(args.workspace, args.repo, force=args.force, remove_files=args.remove_files)
    )
    print(f"Removed {args.repo} from {args.workspace}")
    if result.residual_files:
        print(f"  {len(result.residual_files)} files left in {result.binding.worktree_path}")
    return 0


def cmd_list(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    descriptors = manager.list()
    if args.json:
        _dump([descriptor.model_dump(mode="json") for descriptor in descriptors])
    else:
        for descriptor in descriptors:
            repos = ", ".join(descriptor.repositories) or "-"
            print(f"{descriptor.name:24s} {descriptor.branch:30s} {repos}")
    return 0


def cmd_info(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    info = manager.info(args.workspace)
    if args.json:
        _dump(info.to_dict())
        return 0
    descriptor = info.descriptor
    print(f"Workspace: {descriptor.name}")
    print(f"  branch:  {descriptor.branch}")
    print(f"  root:    {descriptor.root}")
    print(f"  created: {descriptor.created_at.isoformat()}")
    if info.module_file:
        print(f"  go.work: {info.module_file}")
    for binding in descriptor.bindings:
        suffix = "" if binding.state == "bound" else f" ({binding.state})"
        print(f"  - {binding.repository} [{binding.branch}] {binding.worktree_path}{suffix}")
    report = info.reconcile
    for repo in report.stale_bindings:
        print(f"  ! stale binding: {repo}")
    for entry in report.pending_bindings:
        print(f"  ! interrupted binding: {entry}")
    for path in report.orphaned_worktrees:
        print(f"  ! orphaned worktree: {path}")
    return 0


def cmd_delete(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    report = asyncio.run(
        manager.delete(args.workspace, force=args.force, remove_files=args.remove_files)
    )
    if args.json:
        _dump(report.to_dict())
    else:
        print(f"Deleted workspace {args.workspace}")
    return 0


def cmd_status(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    reports = asyncio.run(manager.status(args.workspace))
    if args.json:
        _dump({name: reports[name].to_dict() for name in sorted(reports)})
    else:
        for name in sorted(reports):
            report = reports[name]
            for line in _format_status(report):
                print(line)
    return 0 if all(report.ok for report in reports.values()) else 1


def cmd_commit(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    report = asyncio.run(manager.commit(args.workspace, args.message, add_all=not args.no_add))
    return _print_report(args, report)


def cmd_push(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    return _print_report(args, asyncio.run(manager.push(args.workspace, args.remote)))


def cmd_sync(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    report = asyncio.run(
        manager.sync(args.workspace, pull=not args.no_pull, push=args.push, rebase=args.rebase)
    )
    return _print_report(args, report)


def cmd_diff(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    report = asyncio.run(manager.diff(args.workspace, staged=args.staged, repo=args.repo))
    return _print_report(args, report)


def cmd_log(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    report = asyncio.run(
        manager.log(args.workspace, limit=args.limit, oneline=not args.full, since=args.since)
    )
    return _print_report(args, report)


def cmd_branch(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    if args.create:
        operation: BranchCreate | BranchSwitch | BranchList = BranchCreate(args.create)
    elif args.switch:
        operation = BranchSwitch(args.switch)
    else:
        operation = BranchList()
    return _print_report(args, asyncio.run(manager.branch(args.workspace, operation)))


def cmd_rebase(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    report = asyncio.run(manager.rebase(args.workspace, args.target, repo=args.repo))
    return _print_report(args, report)


def cmd_pr(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    report = asyncio.run(
        manager.pr(args.workspace, title=args.title, body=args.body, base=args.base, draft=args.draft)
    )
    return _print_report(args, report)


def cmd_history(manager: WorkspaceManager, args: argparse.Namespace) -> int:
    events = manager.history(
        args.workspace, limit=args.limit, event_type=args.event_type, query=args.query
    )
    if args.json:
        _dump([event.to_dict() for event in events])
    else:
        for event in events:
            print(f"{event.timestamp.isoformat()} {event.event_type}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wsm", description="Manage multi-repository workspaces built from git worktrees"
    )
    parser.add_argument("--json", action="store_true", help="Output JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="cmd")

    p_discover = sub.add_parser("discover", help="Scan directories for git repositories")
    p_discover.add_argument("paths", nargs="*")
    p_discover.add_argument("--max-depth", type=int, default=3)
    p_discover.add_argument("--no-recursive", action="store_true", help="Only scan direct children")
    p_discover.set_defaults(func=cmd_discover)

    p_repos = sub.add_parser("repos", help="List registered repositories")
    p_repos.add_argument("--filter", help="Only names containing this text")
    p_repos.add_argument("--tag", help="Only repositories carrying this tag")
    p_repos.set_defaults(func=cmd_repos)

    p_forget = sub.add_parser("forget", help="Remove a repository from the registry")
    p_forget.add_argument("name")
    p_forget.set_defaults(func=cmd_forget)

    p_create = sub.add_parser("create", help="Create a workspace")
    p_create.add_argument("name")
    p_create.add_argument("--repos", nargs="+", default=[], help="Repositories to bind")
    p_create.add_argument("-b", "--branch", help="Branch name (defaults to <prefix>/<name>)")
    p_create.add_argument("--branch-prefix")
    p_create.add_argument("-i", "--interactive", action="store_true", help="Pick repositories interactively")
    p_create.add_argument("--dry-run", action="store_true", help="Show the plan without changing anything")
    p_create.add_argument("--agent-source", help="File copied into the workspace root as AGENT.md")
    p_create.set_defaults(func=cmd_create)

    p_add = sub.add_parser("add", help="Add a repository to a workspace")
    p_add.add_argument("workspace")
    p_add.add_argument("repo")
    p_add.add_argument("-b", "--branch", help="Branch name to use (defaults to the workspace branch)")
    p_add.add_argument("-f", "--force", action="store_true", help="Take the branch over from another worktree")
    p_add.add_argument("--rebind", action="store_true", help="Replace an existing binding on another branch")
    p_add.set_defaults(func=cmd_add)

    p_remove = sub.add_parser("remove", help="Remove a repository from a workspace")
    p_remove.add_argument("workspace")
    p_remove.add_argument("repo")
    p_remove.add_argument("-f", "--force", action="store_true", help="Remove even with uncommitted changes")
    p_remove.add_argument("--remove-files", action="store_true", help="Delete the worktree directory")
    p_remove.set_defaults(func=cmd_remove)

    p_list = sub.add_parser("list", help="List workspaces")
    p_list.set_defaults(func=cmd_list)

    p_info = sub.add_parser("info", help="Describe a workspace")
    p_info.add_argument("workspace")
    p_info.set_defaults(func=cmd_info)

    p_delete = sub.add_parser("delete", help="Delete a workspace")
    p_delete.add_argument("workspace")
    p_delete.add_argument("-f", "--force", action="store_true")
    p_delete.add_argument("--remove-files", action="store_true", help="Delete the workspace directory")
    p_delete.set_defaults(func=cmd_delete)

    p_status = sub.add_parser("status", help="Show status of every repository")
    p_status.add_argument("workspace", nargs="?", help="Defaults to the workspace containing the cwd")
    p_status.set_defaults(func=cmd_status)

    p_commit = sub.add_parser("commit", help="Commit in every repository")
    p_commit.add_argument("workspace")
    p_commit.add_argument("-m", "--message", required=True)
    p_commit.add_argument("--no-add", action="store_true", help="Only commit already staged changes")
    p_commit.set_defaults(func=cmd_commit)

    p_push = sub.add_parser("push", help="Push every repository")
    p_push.add_argument("workspace")
    p_push.add_argument("--remote")
    p_push.set_defaults(func=cmd_push)

    p_sync = sub.add_parser("sync", help="Fetch and integrate upstream changes")
    p_sync.add_argument("workspace")
    p_sync.add_argument("--no-pull", action="store_true")
    p_sync.add_argument("--push", action="store_true")
    p_sync.add_argument("--rebase", action="store_true")
    p_sync.set_defaults(func=cmd_sync)

    p_diff = sub.add_parser("diff", help="Show uncommitted changes")
    p_diff.add_argument("workspace")
    p_diff.add_argument("--staged", action="store_true")
    p_diff.add_argument("--repo")
    p_diff.set_defaults(func=cmd_diff)

    p_log = sub.add_parser("log", help="Show recent commits")
    p_log.add_argument("workspace")
    p_log.add_argument("-n", "--limit", type=int, default=10)
    p_log.add_argument("--since")
    p_log.add_argument("--full", action="store_true", help="Full log entries instead of one line each")
    p_log.set_defaults(func=cmd_log)

    p_branch = sub.add_parser("branch", help="Create, switch or list branches")
    p_branch.add_argument("workspace")
    group = p_branch.add_mutually_exclusive_group()
    group.add_argument("--create", metavar="BRANCH")
    group.add_argument("--switch", metavar="BRANCH")
    p_branch.set_defaults(func=cmd_branch)

    p_rebase = sub.add_parser("rebase", help="Rebase onto a target branch")
    p_rebase.add_argument("workspace")
    p_rebase.add_argument("--target", default="main")
    p_rebase.add_argument("--repo")
    p_rebase.set_defaults(func=cmd_rebase)

    p_pr = sub.add_parser("pr", help="Open pull requests for pushed branches")
    p_pr.add_argument("workspace")
    p_pr.add_argument("--title")
    p_pr.add_argument("--body")
    p_pr.add_argument("--base")
    p_pr.add_argument("--draft", action="store_true")
    p_pr.set_defaults(func=cmd_pr)

    p_history = sub.add_parser("history", help="Show journaled workspace events")
    p_history.add_argument("workspace")
    p_history.add_argument("--limit", type=int, default=20)
    p_history.add_argument("--type", dest="event_type", help="Only events of this type, e.g. operation_push")
    p_history.add_argument("--query", help="Only events whose body or metadata contains this text")
    p_history.set_defaults(func=cmd_history)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    settings = get_settings()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    try:
        manager = load_manager(settings)
        return args.func(manager, args)
    except WorkspaceManagerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
