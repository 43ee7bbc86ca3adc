"""Durable per-workspace descriptors."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from ..errors import NotFoundError, PersistenceError
from .files import exclusive_lock, read_json, remove_file, write_json
from .models import WorkspaceDescriptor

logger = logging.getLogger(__name__)


class WorkspaceStore:
    """One JSON document per workspace under ``<directory>/<name>.json``."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, name: str) -> Path:
        return self._directory / f"{name}.json"

    def _read(self, path: Path) -> WorkspaceDescriptor | None:
        document = read_json(path)
        if document is None:
            return None
        try:
            return WorkspaceDescriptor.model_validate(document)
        except ValidationError as exc:
            raise PersistenceError(f"Invalid workspace descriptor {path}: {exc}") from exc

    def exists(self, name: str) -> bool:
        return self._path(name).exists()

    def get(self, name: str) -> WorkspaceDescriptor:
        descriptor = self._read(self._path(name))
        if descriptor is None:
            raise NotFoundError("Workspace", name)
        return descriptor

    def save(self, descriptor: WorkspaceDescriptor) -> WorkspaceDescriptor:
        path = self._path(descriptor.name)
        with exclusive_lock(path):
            write_json(path, descriptor.model_dump(mode="json"))
        logger.debug(
            "Saved workspace descriptor",
            extra={"workspace": descriptor.name, "bindings": len(descriptor.bindings)},
        )
        return descriptor

    def update(
        self, name: str, mutate: Callable[[WorkspaceDescriptor], None]
    ) -> WorkspaceDescriptor:
        """Read, mutate and write one descriptor under a single lock."""

        path = self._path(name)
        with exclusive_lock(path):
            descriptor = self._read(path)
            if descriptor is None:
                raise NotFoundError("Workspace", name)
            mutate(descriptor)
            write_json(path, descriptor.model_dump(mode="json"))
        return descriptor

    def delete(self, name: str) -> None:
        path = self._path(name)
        with exclusive_lock(path):
            if not remove_file(path):
                raise NotFoundError("Workspace", name)
        remove_file(path.parent / f".{path.name}.lock")

    def list(self) -> list[WorkspaceDescriptor]:
        if not self._directory.exists():
            return []
        descriptors: list[WorkspaceDescriptor] = []
        for path in sorted(self._directory.glob("*.json")):
            descriptor = self._read(path)
            if descriptor is not None:
                descriptors.append(descriptor)
        return descriptors

    def referencing(self, repository: str) -> list[str]:
        """Names of workspaces holding a binding for ``repository``."""

        return [
            descriptor.name
            for descriptor in self.list()
            if descriptor.get_binding(repository) is not None
        ]

    def find_by_root(self, root: Path | str) -> WorkspaceDescriptor | None:
        target = Path(root).resolve()
        for descriptor in self.list():
            if Path(descriptor.root).resolve() == target:
                return descriptor
        return None

    def find_containing(self, path: Path | str) -> WorkspaceDescriptor | None:
        """Return the workspace whose root contains ``path``, if any."""

        target = Path(path).resolve()
        for descriptor in self.list():
            root = Path(descriptor.root).resolve()
            if target == root or target.is_relative_to(root):
                return descriptor
        return None


__all__ = ["WorkspaceStore"]
