"""Async runner for the git CLI."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from ..errors import ExternalToolError, GitNotFoundError
from .utils import sanitize_environment

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GitExecutionResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self, message: str) -> GitExecutionResult:
        """Return self on success, raise ``ExternalToolError`` otherwise."""

        if not self.ok:
            raise ExternalToolError(
                message, args=self.args, returncode=self.returncode, stderr=self.stderr
            )
        return self


class CommandRunner:
    """Execute an external command asynchronously with an optional timeout."""

    program = "git"

    def __init__(self, executable: Path | str | None = None, *, timeout: float | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)
        self._timeout = timeout

    @classmethod
    def _resolve_executable(cls, explicit: Path | str | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"{cls.program} executable not found at {candidate}")

        binary = shutil.which(cls.program)
        if binary is None:
            raise GitNotFoundError(f"{cls.program} executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def run(
        self,
        *args: str,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> GitExecutionResult:
        return await self._invoke(*args, cwd=cwd, env=env)

    async def _invoke(
        self,
        *args: str,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> GitExecutionResult:
        cmd = [str(self._executable_path), *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=sanitize_environment(env),
            )
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise ExternalToolError(
                f"Cannot run {self.program} in {cwd}", args=cmd, stderr=str(exc)
            ) from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise ExternalToolError(
                f"{self.program} timed out after {self._timeout}s", args=cmd
            ) from exc

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        logger.debug(
            "Ran %s", self.program, extra={"command": cmd[1:], "cwd": str(cwd), "returncode": process.returncode}
        )
        return GitExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


class GitRunner(CommandRunner):
    """Execute git commands asynchronously."""

    async def version(self) -> GitExecutionResult:
        return await self._invoke("--version")


class GhRunner(CommandRunner):
    """Execute GitHub CLI commands asynchronously."""

    program = "gh"


class FakeGitRunner(GitRunner):
    """Test double that replays canned git responses."""

    def __init__(self, responses: Iterable[GitExecutionResult] | None = None) -> None:  # type: ignore[override]
        self._responses = list(responses or [])
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-git")
        self._timeout = None

    async def _invoke(self, *args: str, cwd=None, env=None) -> GitExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        if self._responses:
            return self._responses.pop(0)
        return GitExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations



class MissingGitRunner(GitRunner):
    """Stands in for git when the executable cannot be found; every call fails."""

    def __init__(self, reason: str) -> None:  # type: ignore[override]
        self._reason = reason
        self._executable_path = Path("git")
        self._timeout = None

    async def _invoke(self, *args: str, cwd=None, env=None) -> GitExecutionResult:  # type: ignore[override]
        raise GitNotFoundError(self._reason, args=("git", *args))
