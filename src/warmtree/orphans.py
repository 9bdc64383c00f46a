"""Recovery of reserve worktrees abandoned by crashed sessions."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .git import GitRunner, GitRunnerError
from .naming import RESERVE_PREFIX, reserve_branch_from_dirname

logger = logging.getLogger(__name__)

_GITDIR_LINE = re.compile(r"gitdir:\s*(.+)")
_WORKTREE_METADATA_SUFFIX = re.compile(r"/\.git/worktrees/.*$")


@dataclass(slots=True)
class OrphanedReserve:
    path: Path
    name: str


def find_orphaned_reserves(
    search_paths: Iterable[Path], *, exclude: Iterable[str | Path] = ()
) -> list[OrphanedReserve]:
    """Scan the worktree containers for ``_reserve-*`` directories."""

    skipped = {str(Path(path)) for path in exclude}
    found: list[OrphanedReserve] = []
    for container in search_paths:
        container = Path(container)
        if not container.is_dir():
            continue
        try:
            entries = sorted(container.iterdir())
        except OSError:
            continue
        for entry in entries:
            if not entry.name.startswith(RESERVE_PREFIX):
                continue
            if str(entry) in skipped:
                continue
            try:
                if not entry.is_dir():
                    continue
            except OSError:
                continue
            found.append(OrphanedReserve(path=entry, name=entry.name))
    return found


def owning_repository(reserve_dir: Path) -> Path | None:
    """Resolve the main repository from a worktree's ``.git`` link file."""

    link = reserve_dir / ".git"
    if not link.is_file():
        return None
    match = _GITDIR_LINE.search(link.read_text(encoding="utf-8"))
    if match is None:
        return None
    gitdir = match.group(1).strip().replace("\\", "/")
    return Path(_WORKTREE_METADATA_SUFFIX.sub("", gitdir))


async def cleanup_orphaned_reserve(runner: GitRunner, reserve_dir: str | Path, name: str) -> bool:
    """Remove one orphaned reserve.

    Returns ``True`` when git removed the worktree from its owning repository.
    Returns ``False`` when the repository could not be located and the
    directory was deleted directly, or when removal failed.
    """

    reserve_dir = Path(reserve_dir)
    try:
        repository = owning_repository(reserve_dir)
        if repository is not None and repository.exists():
            await runner.run("worktree", "remove", "--force", str(reserve_dir), cwd=repository)
            branch = reserve_branch_from_dirname(name)
            if branch is not None:
                try:
                    await runner.run("branch", "-D", branch, cwd=repository)
                except GitRunnerError:
                    pass  # branch may already be gone
            logger.info(
                "Removed orphaned reserve",
                extra={"reserve_path": str(reserve_dir), "repository": str(repository)},
            )
            return True

        await asyncio.to_thread(shutil.rmtree, reserve_dir, ignore_errors=True)
        logger.info(
            "Deleted orphaned reserve without an owning repository",
            extra={"reserve_path": str(reserve_dir)},
        )
        return False
    except (GitRunnerError, OSError) as exc:
        logger.warning(
            "Failed to clean up orphaned reserve",
            extra={"reserve_path": str(reserve_dir), "error": str(exc)},
        )
        return False


async def cleanup_orphaned_reserves(
    runner: GitRunner,
    search_paths: Iterable[Path],
    *,
    delay: float = 2.0,
    exclude: Iterable[str | Path] = (),
) -> dict[str, bool]:
    """Sweep every container and clean up orphaned reserves concurrently."""

    if delay > 0:
        await asyncio.sleep(delay)

    orphans = find_orphaned_reserves(search_paths, exclude=exclude)
    if not orphans:
        return {}

    outcomes = await asyncio.gather(
        *(cleanup_orphaned_reserve(runner, orphan.path, orphan.name) for orphan in orphans),
        return_exceptions=True,
    )
    results = {
        str(orphan.path): outcome is True for orphan, outcome in zip(orphans, outcomes)
    }
    logger.debug(
        "Orphaned reserve sweep finished",
        extra={"candidates": len(orphans), "removed": sum(results.values())},
    )
    return results


__all__ = [
    "OrphanedReserve",
    "cleanup_orphaned_reserve",
    "cleanup_orphaned_reserves",
    "find_orphaned_reserves",
    "owning_repository",
]
