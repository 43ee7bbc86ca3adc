from __future__ import annotations

from pathlib import Path

import pytest

from workspace_manager.config import WorkspaceSettings


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "WSM_CONFIG_DIR",
        "WSM_WORKSPACE_DIR",
        "WSM_LOG_LEVEL",
        "WSM_GIT_TIMEOUT",
        "WSM_MAX_WORKERS",
        "WSM_BRANCH_PREFIX",
        "WSM_JOURNAL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("WSM_CONFIG_FILE", str(tmp_path / "config.yaml"))
    monkeypatch.chdir(tmp_path)


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("WSM_CONFIG_DIR", str(tmp_path / "cfg"))
    monkeypatch.setenv("WSM_LOG_LEVEL", "debug")
    monkeypatch.setenv("WSM_BRANCH_PREFIX", "/feature/")
    monkeypatch.setenv("WSM_GIT_TIMEOUT", "0")
    monkeypatch.setenv("WSM_JOURNAL", "false")

    settings = WorkspaceSettings()

    assert settings.log_level == "DEBUG"
    assert settings.branch_prefix == "feature"
    assert settings.git_timeout is None
    assert settings.journal_enabled is False
    assert settings.registry_path == tmp_path / "cfg" / "registry.json"
    assert settings.workspaces_path == tmp_path / "cfg" / "workspaces"
    assert settings.resolved_journal_path == tmp_path / "cfg" / "journal"


def test_yaml_file_sits_below_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    (tmp_path / "config.yaml").write_text(
        "WSM_BRANCH_PREFIX: yaml\nWSM_MAX_WORKERS: 3\nWSM_GO_VERSION: '1.23'\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("WSM_BRANCH_PREFIX", "env")

    settings = WorkspaceSettings()

    assert settings.branch_prefix == "env"
    assert settings.max_workers == 3
    assert settings.go_version == "1.23"


def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WSM_LOG_LEVEL", "loud")
    with pytest.raises(ValueError):
        WorkspaceSettings()

    monkeypatch.setenv("WSM_LOG_LEVEL", "INFO")
    monkeypatch.setenv("WSM_MAX_WORKERS", "0")
    with pytest.raises(ValueError):
        WorkspaceSettings()
