"""Shared fixtures for Warmtree tests."""

from __future__ import annotations

import shutil
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from warmtree.config import WarmtreeSettings

_GIT = shutil.which("git") or "git"


def run_git(*args: str, cwd: Path | str) -> str:
    result = subprocess.run(  # noqa: S603
        [_GIT, *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def init_git_repo(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    run_git("init", "--initial-branch", "main", cwd=path)
    run_git("config", "user.name", "Warmtree Tests", cwd=path)
    run_git("config", "user.email", "warmtree@example.com", cwd=path)


def commit_file(path: Path, filename: str, content: str) -> str:
    (path / filename).write_text(content)
    run_git("add", filename, cwd=path)
    run_git("commit", "-m", f"update {filename}", cwd=path)
    return run_git("rev-parse", "HEAD", cwd=path)


def branches(path: Path) -> set[str]:
    output = run_git("branch", "--list", "--format=%(refname:short)", cwd=path)
    return {line.strip() for line in output.splitlines() if line.strip()}


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    repo = tmp_path / "repos" / "project"
    init_git_repo(repo)
    commit_file(repo, "README.md", "# project\n")
    return repo


@pytest.fixture()
def settings(tmp_path: Path) -> WarmtreeSettings:
    return WarmtreeSettings(
        push_on_create=False,
        orphan_scan_delay_seconds=0,
        worktree_search_paths=(tmp_path / "repos" / "worktrees",),
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
