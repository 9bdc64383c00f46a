"""Identifier and naming helpers for reserve and task worktrees."""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path
from typing import Callable

RESERVE_PREFIX = "_reserve"
WORKTREES_DIRNAME = "worktrees"

RandomBytes = Callable[[int], bytes]

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_SLUG_INVALID = re.compile(r"[^a-z0-9-]")
_SLUG_REPEATS = re.compile(r"-+")
_RESERVE_DIRNAME = re.compile(rf"^{RESERVE_PREFIX}-(.+)$")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _random_base36(size: int, width: int, random_bytes: RandomBytes) -> str:
    value = int.from_bytes(random_bytes(size), "big")
    return _to_base36(value)[:width].rjust(width, "0")


def generate_reserve_hash(random_bytes: RandomBytes = os.urandom) -> str:
    """Return a 6-character base-36 name derived from 4 random bytes."""

    return _random_base36(4, 6, random_bytes)


def generate_short_hash(random_bytes: RandomBytes = os.urandom) -> str:
    """Return a 3-character base-36 suffix derived from 3 random bytes."""

    return _random_base36(3, 3, random_bytes)


def stable_id_from_path(path: str | Path) -> str:
    """Derive a stable worktree id from the absolute path."""

    absolute = os.path.abspath(os.fspath(path))
    digest = hashlib.sha1(absolute.encode("utf-8")).hexdigest()[:12]
    return f"wt-{digest}"


def slugify(name: str) -> str:
    """Make a task name safe for branch and directory names.

    >>> slugify("Fix Login Bug!!")
    'fix-login-bug'
    """

    slug = _SLUG_INVALID.sub("-", name.lower())
    slug = _SLUG_REPEATS.sub("-", slug)
    return slug.removeprefix("-").removesuffix("-")


def worktrees_dir(project_path: str | Path) -> str:
    return os.path.normpath(os.path.join(os.fspath(project_path), "..", WORKTREES_DIRNAME))


def reserve_path(project_path: str | Path, reserve_hash: str) -> str:
    return os.path.join(worktrees_dir(project_path), f"{RESERVE_PREFIX}-{reserve_hash}")


def reserve_branch(reserve_hash: str) -> str:
    return f"{RESERVE_PREFIX}/{reserve_hash}"


def reserve_branch_from_dirname(name: str) -> str | None:
    """Map a ``_reserve-<hash>`` directory name back to its branch."""

    match = _RESERVE_DIRNAME.match(name)
    if match is None:
        return None
    return reserve_branch(match.group(1))


def task_worktree_path(project_path: str | Path, slug: str, suffix: str) -> str:
    return os.path.join(worktrees_dir(project_path), f"{slug}-{suffix}")


def task_branch(prefix: str, slug: str, suffix: str) -> str:
    return f"{prefix}/{slug}-{suffix}"


__all__ = [
    "RESERVE_PREFIX",
    "RandomBytes",
    "WORKTREES_DIRNAME",
    "generate_reserve_hash",
    "generate_short_hash",
    "reserve_branch",
    "reserve_branch_from_dirname",
    "reserve_path",
    "slugify",
    "stable_id_from_path",
    "task_branch",
    "task_worktree_path",
    "worktrees_dir",
]
