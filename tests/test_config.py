from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from warmtree.config import WarmtreeSettings, default_worktree_search_paths


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path: Path) -> None:
    for name in list(os.environ):
        if name.startswith("WARMTREE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults() -> None:
    settings = WarmtreeSettings()

    assert settings.branch_prefix == "warmtree"
    assert settings.push_on_create is True
    assert settings.push_timeout_seconds == 60.0
    assert settings.max_reserve_age_minutes == 30
    assert settings.orphan_scan_delay_seconds == 2.0
    assert settings.log_level == "INFO"
    assert settings.worktree_search_paths == default_worktree_search_paths()


def test_default_search_paths_follow_home(tmp_path: Path) -> None:
    paths = default_worktree_search_paths(tmp_path)
    assert tmp_path / "cursor" / "worktrees" in paths
    assert tmp_path / "dev" / "worktrees" in paths
    assert all(path.name == "worktrees" for path in paths)


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    first = tmp_path / "a"
    second = tmp_path / "b"
    monkeypatch.setenv("WARMTREE_BRANCH_PREFIX", "agents/")
    monkeypatch.setenv("WARMTREE_PUSH_ON_CREATE", "false")
    monkeypatch.setenv("WARMTREE_PUSH_TIMEOUT", "5")
    monkeypatch.setenv("WARMTREE_MAX_RESERVE_AGE_MINUTES", "10")
    monkeypatch.setenv("WARMTREE_LOG_LEVEL", "debug")
    monkeypatch.setenv("WARMTREE_SEARCH_PATHS", f"{first}{os.pathsep}{second}")

    settings = WarmtreeSettings()

    assert settings.branch_prefix == "agents"
    assert settings.push_on_create is False
    assert settings.push_timeout_seconds == 5.0
    assert settings.max_reserve_age_minutes == 10
    assert settings.log_level == "DEBUG"
    assert settings.worktree_search_paths == (first, second)


def test_env_file_is_read(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("WARMTREE_BRANCH_PREFIX=from-file\n", encoding="utf-8")
    assert WarmtreeSettings().branch_prefix == "from-file"


def test_field_names_are_accepted(tmp_path: Path) -> None:
    settings = WarmtreeSettings(
        push_on_create=False,
        worktree_search_paths=[str(tmp_path)],
    )
    assert settings.push_on_create is False
    assert settings.worktree_search_paths == (tmp_path,)


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("WARMTREE_LOG_LEVEL", "chatty"),
        ("WARMTREE_BRANCH_PREFIX", "   "),
        ("WARMTREE_BRANCH_PREFIX", "has space"),
        ("WARMTREE_PUSH_TIMEOUT", "-1"),
        ("WARMTREE_MAX_RESERVE_AGE_MINUTES", "0"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        WarmtreeSettings()
