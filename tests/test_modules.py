from __future__ import annotations

from pathlib import Path

from workspace_manager.modules import ModuleWorkspaceGenerator, read_go_directive
from workspace_manager.storage import Binding, WorkspaceDescriptor


def _module(root: Path, name: str, version: str | None) -> Binding:
    path = root / name
    path.mkdir(parents=True)
    directive = f"\ngo {version}\n" if version else "\n"
    (path / "go.mod").write_text(f"module example.com/{name}\n{directive}", encoding="utf-8")
    return Binding(repository=name, branch="task/x", worktree_path=str(path))


def test_regenerate_is_byte_identical_for_unchanged_composition(tmp_path: Path) -> None:
    root = tmp_path / "ws"
    descriptor = WorkspaceDescriptor(
        name="ws",
        branch="task/x",
        root=str(root),
        bindings=[_module(root, "zeta", "1.21"), _module(root, "alpha", "1.22.3")],
    )
    generator = ModuleWorkspaceGenerator("1.20")

    target = generator.regenerate(descriptor)
    first = target.read_bytes()
    mtime = target.stat().st_mtime_ns
    generator.regenerate(descriptor)

    assert first == b"go 1.22.3\n\nuse (\n\t./alpha\n\t./zeta\n)\n"
    assert target.read_bytes() == first
    assert target.stat().st_mtime_ns == mtime


def test_default_version_when_no_directive(tmp_path: Path) -> None:
    root = tmp_path / "ws"
    descriptor = WorkspaceDescriptor(
        name="ws", branch="task/x", root=str(root), bindings=[_module(root, "api", None)]
    )

    content = ModuleWorkspaceGenerator("1.22").regenerate(descriptor).read_text(encoding="utf-8")

    assert content.startswith("go 1.22\n")


def test_pending_and_non_module_bindings_are_excluded(tmp_path: Path) -> None:
    root = tmp_path / "ws"
    pending = _module(root, "api", "1.21").model_copy(update={"state": "binding"})
    plain = root / "docs"
    plain.mkdir(parents=True)
    descriptor = WorkspaceDescriptor(
        name="ws",
        branch="task/x",
        root=str(root),
        bindings=[pending, Binding(repository="docs", branch="task/x", worktree_path=str(plain))],
    )

    assert ModuleWorkspaceGenerator().regenerate(descriptor) is None
    assert not (root / "go.work").exists()


def test_read_go_directive(tmp_path: Path) -> None:
    module = tmp_path / "go.mod"
    module.write_text("module x\n\ngo 1.21\n\ntoolchain go1.22.1\n", encoding="utf-8")

    assert read_go_directive(module) == "1.21"
    assert read_go_directive(tmp_path / "missing.mod") is None
