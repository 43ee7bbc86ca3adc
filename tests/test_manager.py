from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from workspace_manager.errors import (
    InvalidNameError,
    JournalUnavailableError,
    NotFoundError,
    PartialFailure,
    ReferencedError,
    WorkspaceExistsError,
    WorkspaceManagerError,
)
from workspace_manager.operations import BranchCreate


def test_create_binds_every_repository(manager, add_repo, tmp_path: Path) -> None:
    add_repo("a")
    add_repo("b")

    result = asyncio.run(manager.create("feat-x", ["a", "b"], branch="feat/x"))

    root = tmp_path / "workspaces" / "2025-03-14" / "feat-x"
    assert result.ok
    assert result.plan.root == str(root)
    assert [outcome.repository for outcome in result.report.outcomes] == ["a", "b"]
    descriptor = manager.get("feat-x")
    assert descriptor.branch == "feat/x"
    assert descriptor.repositories == ["a", "b"]
    assert (root / "a" / ".git").is_file()
    assert (root / "b" / ".git").is_file()

    reports = asyncio.run(manager.status("feat-x"))
    assert {name: report.branch for name, report in reports.items()} == {"a": "feat/x", "b": "feat/x"}
    assert all(report.clean for report in reports.values())


def test_create_defaults_branch_from_prefix(manager, add_repo) -> None:
    add_repo("a")

    result = asyncio.run(manager.create("login", ["a"]))
    assert result.plan.branch == "task/login"

    other = asyncio.run(manager.create("signup", ["a"], branch_prefix="feature/"))
    assert other.plan.branch == "feature/signup"


def test_create_dry_run_has_no_side_effects(manager, add_repo, vcs, tmp_path: Path) -> None:
    add_repo("a")

    result = asyncio.run(manager.create("feat-x", ["a"], dry_run=True))

    assert result.dry_run
    assert result.plan.worktrees == {"a": str(tmp_path / "workspaces" / "2025-03-14" / "feat-x" / "a")}
    assert manager.list() == []
    assert not (tmp_path / "workspaces").exists()
    assert not [call for call in vcs.calls if call[0] == "create_worktree"]


def test_create_rejects_unknown_repository_before_side_effects(manager, add_repo, tmp_path: Path) -> None:
    add_repo("a")

    with pytest.raises(NotFoundError):
        asyncio.run(manager.create("feat-x", ["a", "ghost"]))

    assert manager.list() == []


@pytest.mark.parametrize("name", ["team/x", ".x", "   "])
def test_create_rejects_invalid_name_before_side_effects(manager, add_repo, tmp_path: Path, name: str) -> None:
    add_repo("a")

    with pytest.raises(InvalidNameError):
        asyncio.run(manager.create(name, ["a"]))
    with pytest.raises(InvalidNameError):
        asyncio.run(manager.create(name, ["a"], dry_run=True))

    assert manager.list() == []
    assert not (tmp_path / "workspaces").exists()


def test_create_strips_padded_name(manager, add_repo, tmp_path: Path) -> None:
    add_repo("a")

    result = asyncio.run(manager.create("  feat-x ", ["a"]))

    root = tmp_path / "workspaces" / "2025-03-14" / "feat-x"
    assert result.ok
    assert result.plan.name == "feat-x"
    assert result.plan.root == str(root)
    assert result.plan.branch == "task/feat-x"
    assert manager.get("feat-x").get_binding("a").worktree_path == str(root / "a")


def test_create_rejects_duplicate_name(manager, add_repo) -> None:
    add_repo("a")
    asyncio.run(manager.create("feat-x", ["a"]))

    with pytest.raises(WorkspaceExistsError):
        asyncio.run(manager.create("feat-x", ["a"], branch="other"))


def test_create_reports_failed_repository(manager, add_repo, vcs) -> None:
    add_repo("a")
    broken = add_repo("b")
    vcs.fail("create_worktree", broken.path, "permission denied")

    result = asyncio.run(manager.create("feat-x", ["a", "b"]))

    assert not result.ok
    assert [outcome.repository for outcome in result.report.failed()] == ["b"]
    assert manager.get("feat-x").repositories == ["a"]


def test_create_copies_agent_source(manager, add_repo, tmp_path: Path) -> None:
    add_repo("a")
    guide = tmp_path / "guide.md"
    guide.write_text("# Working agreement\n", encoding="utf-8")

    result = asyncio.run(manager.create("feat-x", ["a"], agent_source=guide))

    agent_file = Path(result.plan.root) / "AGENT.md"
    assert agent_file.read_text(encoding="utf-8") == "# Working agreement\n"
    assert manager.get("feat-x").agent_source == str(guide)


def test_interactive_create_uses_selector(manager, add_repo) -> None:
    add_repo("a")
    add_repo("b")
    seen: list[str] = []

    def _select(records):
        seen.extend(record.name for record in records)
        return ["b"]

    manager.selector = _select
    result = asyncio.run(manager.create("pick", interactive=True))

    assert seen == ["a", "b"]
    assert result.plan.repositories == ["b"]


def test_interactive_create_without_selector(manager, add_repo) -> None:
    add_repo("a")

    with pytest.raises(WorkspaceManagerError):
        asyncio.run(manager.create("pick", interactive=True))


def test_add_and_remove_repository(manager, add_repo) -> None:
    add_repo("a")
    add_repo("b")
    asyncio.run(manager.create("feat-x", ["a"]))

    binding = asyncio.run(manager.add("feat-x", "b"))
    assert binding.branch == "task/feat-x"
    assert manager.get("feat-x").repositories == ["a", "b"]

    result = asyncio.run(manager.remove("feat-x", "b"))
    assert result.binding.repository == "b"
    assert manager.get("feat-x").repositories == ["a"]


def test_remove_repository_refused_while_bound(manager, add_repo) -> None:
    add_repo("a")
    asyncio.run(manager.create("feat-x", ["a"]))

    with pytest.raises(ReferencedError) as excinfo:
        manager.remove_repository("a")

    assert excinfo.value.workspaces == ["feat-x"]

    asyncio.run(manager.delete("feat-x"))
    assert manager.remove_repository("a").name == "a"
    assert manager.list_repositories() == []


def test_delete_releases_worktrees_and_removes_files(manager, add_repo) -> None:
    add_repo("a")
    result = asyncio.run(manager.create("feat-x", ["a"]))
    root = Path(result.plan.root)

    report = asyncio.run(manager.delete("feat-x", remove_files=True))

    assert report.ok
    assert manager.list() == []
    assert not root.exists()


def test_delete_keeps_descriptor_when_a_release_fails(manager, add_repo, vcs) -> None:
    add_repo("a")
    add_repo("b")
    result = asyncio.run(manager.create("feat-x", ["a", "b"]))
    vcs.make_dirty(result.plan.worktrees["b"], "notes.txt")

    with pytest.raises(PartialFailure) as excinfo:
        asyncio.run(manager.delete("feat-x"))

    assert excinfo.value.failed == ["b"]
    assert manager.get("feat-x").repositories == ["b"]


def test_status_resolves_workspace_from_cwd(manager, add_repo, vcs) -> None:
    add_repo("a")
    result = asyncio.run(manager.create("feat-x", ["a"]))
    vcs.make_dirty(result.plan.worktrees["a"], "main.go")

    reports = asyncio.run(manager.status(cwd=Path(result.plan.worktrees["a"])))

    assert reports["a"].modified == 1
    assert not reports["a"].clean


def test_status_outside_any_workspace(manager, tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(manager.status(cwd=tmp_path))


def test_commit_and_push_across_workspace(manager, add_repo, vcs) -> None:
    add_repo("a")
    add_repo("b")
    result = asyncio.run(manager.create("feat-x", ["a", "b"]))
    vcs.make_dirty(result.plan.worktrees["a"], "main.go")

    committed = asyncio.run(manager.commit("feat-x", "Add feature"))
    assert committed.ok
    assert committed.get("a").message.startswith("[task/feat-x")
    assert committed.get("b").message == "nothing to commit"

    pushed = asyncio.run(manager.push("feat-x"))
    assert pushed.ok
    assert pushed.get("a").message == "pushed task/feat-x to origin"


def test_branch_create_records_new_branch(manager, add_repo) -> None:
    add_repo("a")
    asyncio.run(manager.create("feat-x", ["a"]))

    report = asyncio.run(manager.branch("feat-x", BranchCreate("feat/y")))

    assert report.ok
    assert manager.get("feat-x").get_binding("a").branch == "feat/y"


def test_info_reports_orphaned_worktree(manager, add_repo) -> None:
    add_repo("a")
    result = asyncio.run(manager.create("feat-x", ["a"]))
    orphan = Path(result.plan.root) / "leftover"
    orphan.mkdir()
    (orphan / ".git").write_text("gitdir: /elsewhere\n", encoding="utf-8")

    info = manager.info("feat-x")

    assert info.reconcile.orphaned_worktrees == [str(orphan)]
    assert not info.reconcile.consistent


def test_pr_requires_provider(manager, add_repo) -> None:
    add_repo("a")
    asyncio.run(manager.create("feat-x", ["a"]))

    with pytest.raises(WorkspaceManagerError):
        asyncio.run(manager.pr("feat-x"))


def test_pr_opens_requests_for_pushed_branches(manager, add_repo, vcs) -> None:
    add_repo("a")
    add_repo("b")
    result = asyncio.run(manager.create("feat-x", ["a", "b"]))
    vcs.upstreams[result.plan.worktrees["a"]] = "origin/task/feat-x"
    opened: list[str] = []

    class _Provider:
        async def create(self, path, *, branch, base, title, body, draft):
            opened.append(branch)
            return f"https://git.example.com/pull/{len(opened)}"

    manager.pr_provider = _Provider()
    report = asyncio.run(manager.pr("feat-x", title="Feature X"))

    assert report.get("a").success
    assert report.get("a").output == "https://git.example.com/pull/1"
    assert not report.get("b").success
    assert "not been pushed" in report.get("b").message
    assert opened == ["task/feat-x"]


def test_history_without_journal(manager) -> None:
    with pytest.raises(JournalUnavailableError) as excinfo:
        manager.history("feat-x")

    assert isinstance(excinfo.value, WorkspaceManagerError)
