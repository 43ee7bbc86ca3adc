"""Multi-repository workspace orchestration on top of git worktrees."""

__version__ = "0.3.0"

__all__ = ["__version__"]
