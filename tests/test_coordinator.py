from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import pytest

from workspace_manager.coordinator import OperationCoordinator
from workspace_manager.errors import NotFoundError, PartialFailure
from workspace_manager.operations import BranchList, BranchSwitch, Commit, Diff, Log, Rebase, Sync


@pytest.fixture
def workspace(manager, add_repo):
    for name in ("a", "b", "c"):
        add_repo(name)
    asyncio.run(manager.create("ws", ["a", "b", "c"]))
    return manager.get("ws")


@pytest.fixture
def coordinator(workspaces, vcs) -> OperationCoordinator:
    return OperationCoordinator(workspaces, vcs, max_workers=2)


def test_one_broken_repository_does_not_abort_the_rest(coordinator, workspace, vcs) -> None:
    broken = workspace.get_binding("b").worktree_path
    for name in ("a", "b", "c"):
        vcs.make_dirty(workspace.get_binding(name).worktree_path, "file.txt")
    vcs.fail("commit", broken, "index.lock exists")

    report = asyncio.run(coordinator.run(workspace, Commit("Save work")))

    assert len(report.outcomes) == 3
    assert [outcome.repository for outcome in report.failed()] == ["b"]
    assert "index.lock exists" in report.get("b").message
    assert report.get("a").success and report.get("c").success

    with pytest.raises(PartialFailure) as excinfo:
        report.raise_for_failures()
    assert excinfo.value.failed == ["b"]
    assert len(excinfo.value.outcomes) == 3


def test_missing_worktree_is_reported_per_repository(coordinator, workspace) -> None:
    shutil.rmtree(workspace.get_binding("c").worktree_path)

    report = asyncio.run(coordinator.run(workspace, Diff()))

    assert report.get("c").message.startswith("worktree missing")
    assert report.get("a").success
    assert report.get("a").message == "no changes"


def test_subset_of_repositories(coordinator, workspace, vcs) -> None:
    vcs.diffs[workspace.get_binding("a").worktree_path] = "diff --git a/x b/x\n+line\n"

    report = asyncio.run(coordinator.run(workspace, Diff(), repositories=["a"]))

    assert [outcome.repository for outcome in report.outcomes] == ["a"]
    assert report.get("a").message == "changes"
    assert "+line" in report.get("a").output


def test_unknown_repository_selection(coordinator, workspace) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(coordinator.run(workspace, Diff(), repositories=["zzz"]))


def test_log_and_rebase_carry_output(coordinator, workspace) -> None:
    logged = asyncio.run(coordinator.run(workspace, Log(limit=1)))
    assert logged.get("a").output == "1234abc second commit\n"

    rebased = asyncio.run(coordinator.run(workspace, Rebase("main"), repositories=["b"]))
    assert rebased.get("b").message == "rebased onto main"


def test_branch_switch_failure_keeps_recorded_branch(coordinator, workspace, workspaces) -> None:
    report = asyncio.run(coordinator.run(workspace, BranchSwitch("does-not-exist")))

    assert not report.ok
    assert {binding.branch for binding in workspaces.get("ws").bindings} == {"task/ws"}


def test_branch_list(coordinator, workspace) -> None:
    report = asyncio.run(coordinator.run(workspace, BranchList(), repositories=["a"]))

    assert report.get("a").output.splitlines() == ["main", "task/ws"]


def test_sync_fast_forwards_and_detects_divergence(coordinator, workspace, vcs) -> None:
    path_a = workspace.get_binding("a").worktree_path
    path_b = workspace.get_binding("b").worktree_path
    for path in (path_a, path_b):
        vcs.upstreams[path] = "origin/task/ws"
    vcs.behind[path_a] = 2
    vcs.behind[path_b] = 1
    vcs.ahead[path_b] = 3

    report = asyncio.run(coordinator.run(workspace, Sync()))

    assert report.get("a").message == "fast-forwarded 2 commits"
    assert not report.get("b").success
    assert report.get("b").message.startswith("diverged")
    assert report.get("c").message == "no upstream"

    rebased = asyncio.run(coordinator.run(workspace, Sync(rebase=True), repositories=["b"]))
    assert rebased.get("b").message == "rebased onto origin/task/ws"


def test_commit_without_add_skips_repositories_with_nothing_staged(coordinator, workspace, vcs) -> None:
    vcs.make_dirty(workspace.get_binding("a").worktree_path, "notes.txt")
    vcs.make_dirty(workspace.get_binding("b").worktree_path, "main.go", staged=True)

    report = asyncio.run(coordinator.run(workspace, Commit("Save work", add_all=False)))

    assert report.ok
    assert report.get("a").message == "nothing staged to commit"
    assert report.get("c").message == "nothing to commit"
    assert report.get("b").message.startswith("[task/ws")
    assert [call for call in vcs.calls if call[0] == "commit"] == [
        ("commit", workspace.get_binding("b").worktree_path)
    ]
