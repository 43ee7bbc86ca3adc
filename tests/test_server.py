from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from workspace_manager.config import WorkspaceSettings
from workspace_manager.errors import GitNotFoundError
from workspace_manager.git import GitClient, MissingGitRunner
from workspace_manager.server import _probe_git


@pytest.fixture
def settings_for(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("WSM_CONFIG_FILE", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("WSM_CONFIG_DIR", str(tmp_path / "config"))

    def _settings(git_path: Path) -> WorkspaceSettings:
        monkeypatch.setenv("WSM_GIT_PATH", str(git_path))
        return WorkspaceSettings()

    return _settings


def test_startup_check_reports_git_version(settings_for, tmp_path: Path) -> None:
    script = tmp_path / "git"
    script.write_text("#!/bin/sh\necho 'git version 2.45.0'\n", encoding="utf-8")
    script.chmod(0o755)

    runner, metadata = _probe_git(settings_for(script))

    assert not isinstance(runner, MissingGitRunner)
    assert metadata == {"available": True, "version": "git version 2.45.0", "error": None}


def test_missing_git_starts_degraded(settings_for, tmp_path: Path) -> None:
    runner, metadata = _probe_git(settings_for(tmp_path / "missing-git"))

    assert isinstance(runner, MissingGitRunner)
    assert metadata["available"] is False
    assert "not found" in metadata["error"]

    with pytest.raises(GitNotFoundError, match="not found"):
        asyncio.run(GitClient(runner).list_branches(tmp_path))
