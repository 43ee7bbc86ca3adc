"""Configuration management for the workspace manager."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import logging
import os

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_CONFIG_DIR = Path("~/.config/workspace-manager")


def _default_config_file() -> Path:
    explicit = os.environ.get("WSM_CONFIG_FILE")
    if explicit:
        return Path(explicit).expanduser()
    config_dir = os.environ.get("WSM_CONFIG_DIR")
    base = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    return base.expanduser() / "config.yaml"


class WorkspaceSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and an optional YAML file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    config_dir: Path = Field(default=DEFAULT_CONFIG_DIR, validation_alias="WSM_CONFIG_DIR")
    workspace_dir: Path = Field(default=Path("~/workspaces"), validation_alias="WSM_WORKSPACE_DIR")
    log_level: str = Field(default="INFO", validation_alias="WSM_LOG_LEVEL")
    git_path: str | None = Field(default=None, validation_alias="WSM_GIT_PATH")
    git_timeout: float | None = Field(default=120.0, validation_alias="WSM_GIT_TIMEOUT")
    max_workers: int = Field(
        default_factory=lambda: os.cpu_count() or 4, validation_alias="WSM_MAX_WORKERS"
    )
    branch_prefix: str = Field(default="task", validation_alias="WSM_BRANCH_PREFIX")
    go_version: str = Field(default="1.22", validation_alias="WSM_GO_VERSION")
    journal_enabled: bool = Field(default=True, validation_alias="WSM_JOURNAL")
    journal_path: Path | None = Field(default=None, validation_alias="WSM_JOURNAL_PATH")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=_default_config_file())
        return (init_settings, env_settings, dotenv_settings, yaml_settings, file_secret_settings)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "WSM_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("max_workers")
    @classmethod
    def _validate_max_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("WSM_MAX_WORKERS must be >= 1")
        return value

    @field_validator("git_timeout")
    @classmethod
    def _normalize_timeout(cls, value: float | None) -> float | None:
        if value is None or value <= 0:
            return None
        return value

    @field_validator("branch_prefix")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        return value.strip().strip("/")

    @property
    def registry_path(self) -> Path:
        return self.config_dir / "registry.json"

    @property
    def workspaces_path(self) -> Path:
        return self.config_dir / "workspaces"

    @property
    def resolved_journal_path(self) -> Path:
        return self.journal_path or self.config_dir / "journal"


@lru_cache(maxsize=1)
def get_settings() -> WorkspaceSettings:
    """Return cached settings instance."""

    settings = WorkspaceSettings()
    settings.config_dir = settings.config_dir.expanduser().resolve()
    settings.workspace_dir = settings.workspace_dir.expanduser().resolve()
    if settings.journal_path is not None:
        settings.journal_path = settings.journal_path.expanduser().resolve()
    return settings


def configure_logging(level: str) -> None:
    """Configure root logging for the CLI and the MCP server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


__all__ = ["WorkspaceSettings", "configure_logging", "get_settings"]
