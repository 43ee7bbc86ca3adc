"""Generation of the cross-module ``go.work`` file for a workspace."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from .storage import WorkspaceDescriptor

logger = logging.getLogger(__name__)

MODULE_MARKER = "go.mod"
WORKSPACE_FILE = "go.work"
_GO_DIRECTIVE = re.compile(r"^go\s+(\d+(?:\.\d+){1,2})\s*$", re.MULTILINE)


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


def read_go_directive(module_file: Path) -> str | None:
    try:
        match = _GO_DIRECTIVE.search(module_file.read_text(encoding="utf-8"))
    except OSError:
        return None
    return match.group(1) if match else None


class ModuleWorkspaceGenerator:
    """Keep ``<root>/go.work`` in sync with the workspace's Go modules."""

    def __init__(self, default_version: str = "1.22") -> None:
        self._default_version = default_version

    def modules(self, descriptor: WorkspaceDescriptor) -> list[str]:
        """Relative ``./path`` entries for bound worktrees holding a module marker, sorted."""

        root = Path(descriptor.root)
        entries: list[str] = []
        for binding in descriptor.bindings:
            if binding.pending:
                continue
            worktree = Path(binding.worktree_path)
            if not (worktree / MODULE_MARKER).is_file():
                continue
            relative = Path(os.path.relpath(worktree, root)).as_posix()
            entries.append(f"./{relative}")
        return sorted(entries)

    def version(self, descriptor: WorkspaceDescriptor, modules: list[str]) -> str:
        root = Path(descriptor.root)
        versions = [
            version
            for version in (read_go_directive(root / module / MODULE_MARKER) for module in modules)
            if version
        ]
        if not versions:
            return self._default_version
        return max(versions, key=_version_key)

    def render(self, modules: list[str], version: str) -> str:
        lines = [f"go {version}", "", "use ("]
        lines.extend(f"\t{module}" for module in modules)
        lines.append(")")
        return "\n".join(lines) + "\n"

    def regenerate(self, descriptor: WorkspaceDescriptor) -> Path | None:
        """Write, rewrite or remove ``go.work``; return its path when present."""

        target = Path(descriptor.root) / WORKSPACE_FILE
        modules = self.modules(descriptor)
        if not modules:
            if target.exists():
                target.unlink()
                logger.info("Removed go.work", extra={"workspace": descriptor.name})
            return None

        content = self.render(modules, self.version(descriptor, modules))
        if target.exists() and target.read_text(encoding="utf-8") == content:
            return target
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.info("Wrote go.work", extra={"workspace": descriptor.name, "modules": len(modules)})
        return target


__all__ = ["MODULE_MARKER", "ModuleWorkspaceGenerator", "WORKSPACE_FILE", "read_go_directive"]
