"""Async runner for the git CLI."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from .utils import sanitize_environment


class GitRunnerError(RuntimeError):
    """Base class for git runner errors."""


class GitNotFoundError(GitRunnerError):
    """Raised when the git executable cannot be located."""


class GitTimeoutError(GitRunnerError):
    """Raised when a git invocation exceeds its deadline."""


@dataclass(slots=True)
class GitExecutionResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitCommandError(GitRunnerError):
    """Raised when git exits with a non-zero status."""

    def __init__(self, result: GitExecutionResult) -> None:
        self.result = result
        detail = result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
        super().__init__(f"git {' '.join(result.args)} failed in {result.cwd}: {detail}")

    @property
    def returncode(self) -> int:
        return self.result.returncode

    @property
    def stderr(self) -> str:
        return self.result.stderr


class GitRunner:
    """Execute git commands asynchronously."""

    def __init__(self, executable: Path | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def run(
        self,
        *args: str,
        cwd: str | Path,
        timeout: float | None = None,
        check: bool = True,
    ) -> GitExecutionResult:
        """Run ``git <args>`` inside ``cwd``.

        Raises GitCommandError on a non-zero exit when ``check`` is set, and
        GitTimeoutError when ``timeout`` elapses first.
        """

        result = await self._invoke(tuple(args), str(cwd), timeout)
        if check and not result.ok:
            raise GitCommandError(result)
        return result

    async def _invoke(
        self, args: tuple[str, ...], cwd: str, timeout: float | None
    ) -> GitExecutionResult:
        cmd = [str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            # never block on an interactive credential prompt
            env=sanitize_environment({"GIT_TERMINAL_PROMPT": "0"}),
        )
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise GitTimeoutError(
                f"git {' '.join(args)} timed out after {timeout}s in {cwd}"
            ) from exc
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitExecutionResult(
            args=args, cwd=cwd, returncode=process.returncode, stdout=stdout, stderr=stderr
        )


class FakeGitRunner(GitRunner):
    """Test double that simulates git responses.

    ``script`` is consulted first for every invocation and may return a result
    (or raise); ``responses`` are then popped in order; anything else succeeds
    with empty output.
    """

    def __init__(  # type: ignore[override]
        self,
        responses: Iterable[GitExecutionResult] | None = None,
        *,
        script: Callable[[tuple[str, ...], str], GitExecutionResult | None] | None = None,
    ) -> None:
        self._responses = list(responses or [])
        self._script = script
        self._invocations: list[tuple[tuple[str, ...], str]] = []
        self._timeouts: list[float | None] = []
        self._executable_path = Path("/tmp/fake-git")

    async def _invoke(  # type: ignore[override]
        self, args: tuple[str, ...], cwd: str, timeout: float | None
    ) -> GitExecutionResult:
        self._invocations.append((args, cwd))
        self._timeouts.append(timeout)
        await asyncio.sleep(0)
        if self._script is not None:
            scripted = self._script(args, cwd)
            if scripted is not None:
                return scripted
        if self._responses:
            return self._responses.pop(0)
        return GitExecutionResult(args=args, cwd=cwd, returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[tuple[str, ...], str]]:
        return self._invocations

    def calls(self, *prefix: str) -> list[tuple[tuple[str, ...], str]]:
        """Return recorded invocations whose arguments start with ``prefix``."""

        return [entry for entry in self._invocations if entry[0][: len(prefix)] == prefix]

    def timeouts(self, *prefix: str) -> list[float | None]:
        """Return the timeout passed to each invocation matching ``prefix``."""

        return [
            timeout
            for (args, _), timeout in zip(self._invocations, self._timeouts)
            if args[: len(prefix)] == prefix
        ]


def failed(args: tuple[str, ...], cwd: str, stderr: str = "fatal: simulated failure") -> GitExecutionResult:
    """Build a failing result, mostly for scripting FakeGitRunner."""

    return GitExecutionResult(args=args, cwd=cwd, returncode=128, stdout="", stderr=stderr)
