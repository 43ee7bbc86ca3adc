"""Persisted records owned by the registry and workspace stores."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from ..errors import InvalidNameError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_workspace_name(value: str) -> str:
    normalized = value.strip()
    if not normalized or "/" in normalized or normalized.startswith("."):
        raise InvalidNameError(f"Workspace name '{value}' must be a non-empty path component")
    return normalized


class RepositoryRecord(BaseModel):
    """A repository known to the registry."""

    name: str = Field(..., description="Unique registry name, derived from the directory name.")
    path: str = Field(..., description="Absolute canonical path of the repository root.")
    remote_url: str | None = Field(default=None, description="URL of the first configured remote.")
    default_branch: str | None = Field(default=None, description="Detected default branch.")
    current_branch: str | None = Field(default=None, description="Branch checked out at discovery time.")
    ecosystem: Literal["go", "none"] = Field(
        default="none", description="Module ecosystem used for workspace file generation."
    )
    tags: list[str] = Field(default_factory=list, description="Detected language and tooling markers.")
    last_seen: datetime = Field(default_factory=utcnow)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized or "/" in normalized:
            raise ValueError("Repository name must be a non-empty path component")
        return normalized


BindingState = Literal["binding", "bound", "unbinding"]


class Binding(BaseModel):
    """A repository checked out as a worktree inside a workspace."""

    repository: str
    branch: str
    worktree_path: str
    source_path: str | None = None
    state: BindingState = "bound"
    bound_at: datetime = Field(default_factory=utcnow)

    @property
    def pending(self) -> bool:
        return self.state != "bound"


class WorkspaceDescriptor(BaseModel):
    """Metadata for one workspace and its bindings."""

    name: str
    branch: str
    root: str
    created_at: datetime = Field(default_factory=utcnow)
    branch_prefix: str | None = None
    agent_source: str | None = None
    bindings: list[Binding] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return normalize_workspace_name(value)

    def get_binding(self, repository: str) -> Binding | None:
        for binding in self.bindings:
            if binding.repository == repository:
                return binding
        return None

    def put_binding(self, binding: Binding) -> None:
        """Insert or replace the binding for ``binding.repository`` keeping order."""

        for index, existing in enumerate(self.bindings):
            if existing.repository == binding.repository:
                self.bindings[index] = binding
                return
        self.bindings.append(binding)

    def drop_binding(self, repository: str) -> Binding | None:
        for index, existing in enumerate(self.bindings):
            if existing.repository == repository:
                return self.bindings.pop(index)
        return None

    @property
    def repositories(self) -> list[str]:
        return [binding.repository for binding in self.bindings]


__all__ = ["Binding", "BindingState", "RepositoryRecord", "WorkspaceDescriptor", "utcnow"]
