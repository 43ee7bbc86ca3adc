"""Filesystem discovery of git repositories."""

from __future__ import annotations

import logging
import os
from collections import deque
from pathlib import Path
from typing import Iterable

from .errors import ExternalToolError
from .git import VersionControlClient
from .models import ScanError, ScanResult
from .pool import fan_out
from .storage import RegistryStore, RepositoryRecord
from .storage.registry import is_repository_root

logger = logging.getLogger(__name__)

SKIP_DIRS = {"node_modules", "__pycache__", "venv"}
TAG_MARKERS = {
    "go.mod": "go",
    "pyproject.toml": "python",
    "setup.py": "python",
    "package.json": "node",
    "Cargo.toml": "rust",
    "pom.xml": "java",
    "Makefile": "make",
}


def detect_tags(path: Path) -> list[str]:
    """Return sorted ecosystem tags for the marker files present at ``path``."""

    tags = {"git"}
    for marker, tag in TAG_MARKERS.items():
        if (path / marker).is_file():
            tags.add(tag)
    return sorted(tags)


class DiscoveryScanner:
    """Walk filesystem roots breadth-first and register the repositories found."""

    def __init__(
        self,
        registry: RegistryStore,
        client: VersionControlClient,
        *,
        max_workers: int = 4,
    ) -> None:
        self._registry = registry
        self._client = client
        self._max_workers = max(1, max_workers)

    def walk(self, root: Path, max_depth: int, errors: list[ScanError]) -> list[Path]:
        """Return repository roots under ``root`` down to ``max_depth`` levels.

        ``root`` itself is depth 0. Hidden directories, and therefore every
        repository's metadata directory, are never entered.
        """

        found: list[Path] = []
        try:
            start = root.expanduser().resolve(strict=True)
        except OSError as exc:
            errors.append(ScanError(path=str(root), reason=f"cannot resolve root: {exc}"))
            return found
        if not start.is_dir():
            errors.append(ScanError(path=str(start), reason="not a directory"))
            return found

        visited: set[Path] = set()
        queue: deque[tuple[Path, int]] = deque([(start, 0)])
        while queue:
            current, depth = queue.popleft()
            if current in visited:
                continue
            visited.add(current)

            if is_repository_root(current):
                found.append(current)
            if depth >= max_depth:
                continue

            try:
                entries = sorted(os.scandir(current), key=lambda entry: entry.name)
            except OSError as exc:
                errors.append(ScanError(path=str(current), reason=exc.strerror or str(exc)))
                continue

            for entry in entries:
                if entry.name.startswith(".") or entry.name in SKIP_DIRS:
                    continue
                child = Path(entry.path)
                try:
                    if entry.is_symlink():
                        if not child.exists():
                            errors.append(ScanError(path=str(child), reason="broken symlink"))
                            continue
                        child = child.resolve()
                    if not entry.is_dir():
                        continue
                except OSError as exc:
                    errors.append(ScanError(path=str(child), reason=exc.strerror or str(exc)))
                    continue
                queue.append((child, depth + 1))
        return found

    async def inspect(self, path: Path) -> RepositoryRecord:
        """Build a registry record from a repository root."""

        remote = await self._client.first_remote(path)
        remote_url = await self._client.remote_url(path, remote) if remote else None
        current = await self._client.current_branch(path)
        default = await self._client.default_branch(path)
        tags = detect_tags(path)
        return RepositoryRecord(
            name=path.name,
            path=str(path),
            remote_url=remote_url,
            current_branch=current,
            default_branch=default or current,
            ecosystem="go" if "go" in tags else "none",
            tags=tags,
        )

    async def scan(
        self,
        roots: Iterable[Path | str],
        max_depth: int = 3,
        recursive: bool = True,
    ) -> ScanResult:
        """Discover and register repositories; per-path problems are collected, never raised."""

        result = ScanResult()
        depth = max_depth if recursive else min(max_depth, 1)

        candidates: list[Path] = []
        for root in roots:
            for path in self.walk(Path(root), depth, result.errors):
                if path not in candidates:
                    candidates.append(path)

        async def _inspect(path: Path) -> RepositoryRecord | ScanError:
            try:
                return await self.inspect(path)
            except ExternalToolError as exc:
                return ScanError(path=str(path), reason=str(exc))

        inspected = await fan_out(candidates, _inspect, self._max_workers)

        for item in inspected:
            if isinstance(item, ScanError):
                logger.warning("Skipping repository", extra={"path": item.path, "reason": item.reason})
                result.errors.append(item)
                continue
            stored = self._registry.register(item)
            result.registered.append(stored.name)

        logger.info(
            "Discovery finished",
            extra={"registered": result.count, "errors": len(result.errors)},
        )
        return result


__all__ = ["DiscoveryScanner", "detect_tags", "is_repository_root"]
