"""Durable catalog of discovered repositories."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

from pydantic import ValidationError

from ..errors import NotFoundError, PersistenceError, ReferencedError
from .files import exclusive_lock, read_json, write_json
from .models import RepositoryRecord

logger = logging.getLogger(__name__)

METADATA_DIR = ".git"


def is_repository_root(path: Path) -> bool:
    return (path / METADATA_DIR).is_dir()


def _require_root(record: RepositoryRecord) -> None:
    if not is_repository_root(Path(record.path)):
        raise NotFoundError("Repository root", record.path)


class RegistryStore:
    """Repository records keyed by name, stored in a single JSON file.

    Writers serialize through an exclusive file lock and replace the file
    atomically, so concurrent readers only ever observe complete snapshots.
    """

    def __init__(
        self,
        path: Path,
        *,
        references: Callable[[str], Iterable[str]] | None = None,
    ) -> None:
        self._path = Path(path)
        self._references = references

    @property
    def path(self) -> Path:
        return self._path

    def bind_references(self, references: Callable[[str], Iterable[str]]) -> None:
        """Install the lookup used to refuse removal of bound repositories."""

        self._references = references

    def _load(self) -> dict[str, RepositoryRecord]:
        document = read_json(self._path)
        if document is None:
            return {}
        raw = document.get("repositories", {}) if isinstance(document, dict) else None
        if not isinstance(raw, dict):
            raise PersistenceError(f"Unexpected registry layout in {self._path}")
        try:
            return {name: RepositoryRecord.model_validate(item) for name, item in raw.items()}
        except ValidationError as exc:
            raise PersistenceError(f"Invalid repository record in {self._path}: {exc}") from exc

    def _save(self, records: dict[str, RepositoryRecord]) -> None:
        document = {
            "repositories": {
                name: records[name].model_dump(mode="json") for name in sorted(records)
            }
        }
        write_json(self._path, document)

    def upsert(self, record: RepositoryRecord) -> RepositoryRecord:
        """Insert or replace a record by name."""

        _require_root(record)
        with exclusive_lock(self._path):
            records = self._load()
            records[record.name] = record
            self._save(records)
        logger.debug("Upserted repository", extra={"repository": record.name, "path": record.path})
        return record

    def register(self, record: RepositoryRecord) -> RepositoryRecord:
        """Upsert a discovered repository, allocating a collision-free name.

        A repository already registered under the same path keeps its name.
        Otherwise ``record.name`` is used as the base and suffixed ``-2``,
        ``-3``... until unused.
        """

        _require_root(record)
        with exclusive_lock(self._path):
            records = self._load()
            name = None
            for existing in records.values():
                if existing.path == record.path:
                    name = existing.name
                    break
            if name is None:
                name = record.name
                suffix = 2
                while name in records:
                    name = f"{record.name}-{suffix}"
                    suffix += 1
            stored = record.model_copy(update={"name": name})
            records[name] = stored
            self._save(records)
        return stored

    def get(self, name: str) -> RepositoryRecord:
        record = self._load().get(name)
        if record is None:
            raise NotFoundError("Repository", name)
        return record

    def find(self, name: str) -> RepositoryRecord | None:
        return self._load().get(name)

    def find_by_path(self, path: Path | str) -> RepositoryRecord | None:
        target = str(Path(path).resolve())
        for record in self._load().values():
            if record.path == target:
                return record
        return None

    def list(
        self,
        *,
        name_contains: str | None = None,
        path_prefix: Path | str | None = None,
        tag: str | None = None,
    ) -> list[RepositoryRecord]:
        """Return records matching every given filter, sorted by name."""

        prefix = Path(path_prefix).expanduser().resolve() if path_prefix else None
        needle = name_contains.lower() if name_contains else None
        records = self._load()
        matches: list[RepositoryRecord] = []
        for name in sorted(records):
            record = records[name]
            if needle and needle not in record.name.lower():
                continue
            if prefix is not None and not Path(record.path).is_relative_to(prefix):
                continue
            if tag and tag not in record.tags:
                continue
            matches.append(record)
        return matches

    def remove(self, name: str) -> RepositoryRecord:
        """Delete a record unless a workspace still binds it."""

        with exclusive_lock(self._path):
            records = self._load()
            record = records.get(name)
            if record is None:
                raise NotFoundError("Repository", name)
            referencing = sorted(self._references(name)) if self._references else []
            if referencing:
                raise ReferencedError(name, referencing)
            del records[name]
            self._save(records)
        logger.info("Removed repository from registry", extra={"repository": name})
        return record


__all__ = ["RegistryStore", "is_repository_root"]
