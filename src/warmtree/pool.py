"""Pool of pre-created reserve worktrees that can be claimed instantly.

Creating a worktree on the critical path of "new task" takes several
seconds. The pool keeps one idle worktree per project, created in the
background when the project is opened, and hands it out by renaming it:

1. ``ensure_reserve`` creates a ``_reserve-<hash>`` worktree on branch
   ``_reserve/<hash>``.
2. ``claim_reserve`` pops it, moves the directory and renames the branch to
   the task's names, and registers the result.
3. Every claim or eviction schedules a new ``ensure_reserve`` so the next
   task is fast too.

``claim_reserve`` returning ``None`` is not an error: the caller creates the
worktree synchronously instead. All pool state lives on the event loop
thread; removals happen before the first ``await`` so two concurrent claims
can never receive the same reserve.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Coroutine

from .config import WarmtreeSettings
from .git import GitRunner, GitRunnerError
from .models import ClaimResult, ReserveWorktree, WorktreeInfo
from .naming import (
    RandomBytes,
    generate_reserve_hash,
    generate_short_hash,
    reserve_branch,
    reserve_path,
    slugify,
    stable_id_from_path,
    task_branch,
    task_worktree_path,
)
from .orphans import cleanup_orphaned_reserves
from .preserve import FilePreserver
from .registry import WorktreeRegistry, WorktreeRegistryProtocol

logger = logging.getLogger(__name__)

PreserveFiles = Callable[[str, str], Awaitable[Any]]

DEFAULT_BASE_REF = "HEAD"


class WorktreePool:
    """Per-project cache of one idle git worktree."""

    def __init__(
        self,
        runner: GitRunner,
        settings: WarmtreeSettings,
        *,
        registry: WorktreeRegistryProtocol | None = None,
        preserve_files: PreserveFiles | None = None,
        clock: Callable[[], datetime] | None = None,
        random_bytes: RandomBytes = os.urandom,
    ) -> None:
        self._runner = runner
        self._settings = settings
        self.registry = registry if registry is not None else WorktreeRegistry()
        if preserve_files is None:
            preserve_files = FilePreserver(runner).preserve_project_files_to_worktree
        self._preserve_files = preserve_files
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._random_bytes = random_bytes
        self._reserves: dict[str, ReserveWorktree] = {}
        self._creation_in_progress: set[str] = set()
        # reserve directories mid-creation or mid-claim
        self._busy_paths: set[str] = set()
        self._background: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------ state
    @property
    def max_reserve_age(self) -> timedelta:
        return timedelta(minutes=self._settings.max_reserve_age_minutes)

    def is_stale(self, reserve: ReserveWorktree) -> bool:
        return self._clock() - reserve.created_at > self.max_reserve_age

    def has_reserve(self, project_id: str) -> bool:
        """Return True when a fresh reserve exists for the project."""

        reserve = self._reserves.get(project_id)
        return reserve is not None and not self.is_stale(reserve)

    def get_reserve(self, project_id: str) -> ReserveWorktree | None:
        return self._reserves.get(project_id)

    def is_creating(self, project_id: str) -> bool:
        return project_id in self._creation_in_progress

    def reserves(self) -> list[ReserveWorktree]:
        return list(self._reserves.values())

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    # ------------------------------------------------------------------ creation
    async def ensure_reserve(
        self, project_id: str, project_path: str, base_ref: str | None = None
    ) -> None:
        """Make sure a fresh reserve exists for the project. Never raises."""

        if project_id in self._creation_in_progress:
            return

        existing = self._reserves.get(project_id)
        if existing is not None:
            if not self.is_stale(existing):
                return
            del self._reserves[project_id]
            self._spawn(self._cleanup_reserve(existing), name=f"evict-{existing.id}")

        self._creation_in_progress.add(project_id)
        try:
            await self._create_reserve(project_id, project_path, base_ref)
        except (GitRunnerError, OSError) as exc:
            logger.warning(
                "Failed to create reserve worktree",
                extra={"project_id": project_id, "project_path": project_path, "error": str(exc)},
            )
        except Exception:
            logger.exception(
                "Unexpected error creating reserve worktree", extra={"project_id": project_id}
            )
        finally:
            self._creation_in_progress.discard(project_id)

    async def _create_reserve(
        self, project_id: str, project_path: str, base_ref: str | None
    ) -> ReserveWorktree:
        reserve_hash = generate_reserve_hash(self._random_bytes)
        path = reserve_path(project_path, reserve_hash)
        branch = reserve_branch(reserve_hash)

        Path(path).parent.mkdir(parents=True, exist_ok=True)

        # No fetch here: a slightly stale local ref beats blocking on credentials.
        ref = base_ref or DEFAULT_BASE_REF
        self._busy_paths.add(path)
        try:
            await self._runner.run("worktree", "add", "-b", branch, path, ref, cwd=project_path)
        finally:
            self._busy_paths.discard(path)

        reserve = ReserveWorktree(
            id=stable_id_from_path(path),
            path=path,
            branch=branch,
            project_id=project_id,
            project_path=project_path,
            base_ref=ref,
            created_at=self._clock(),
        )
        self._reserves[project_id] = reserve
        logger.info(
            "Created reserve worktree",
            extra={"project_id": project_id, "reserve_path": path, "branch": branch, "base_ref": ref},
        )
        return reserve

    # ------------------------------------------------------------------ claiming
    async def claim_reserve(
        self,
        project_id: str,
        project_path: str,
        task_name: str,
        requested_base_ref: str | None = None,
    ) -> ClaimResult | None:
        """Turn the project's reserve into a task worktree.

        Returns ``None`` when no usable reserve exists or the transform fails;
        the caller then creates a worktree the slow way.
        """

        reserve = self._reserves.pop(project_id, None)
        if reserve is None:
            return None

        if self.is_stale(reserve):
            logger.info(
                "Discarding stale reserve worktree",
                extra={"project_id": project_id, "reserve_path": reserve.path},
            )
            self._spawn(self._cleanup_reserve(reserve), name=f"evict-{reserve.id}")
            self.replenish(project_id, project_path, requested_base_ref)
            return None

        claimed = replace(reserve)
        self._busy_paths.add(reserve.path)
        try:
            result = await self._transform_reserve(claimed, task_name, requested_base_ref)
        except Exception as exc:
            logger.error(
                "Failed to claim reserve worktree",
                extra={"project_id": project_id, "task_name": task_name, "error": str(exc)},
            )
            # claimed tracks wherever the worktree ended up
            self._spawn(self._cleanup_reserve(claimed), name=f"rollback-{claimed.id}")
            self.replenish(project_id, project_path, requested_base_ref)
            return None
        finally:
            self._busy_paths.discard(reserve.path)

        self.replenish(project_id, project_path, requested_base_ref)
        return result

    async def _transform_reserve(
        self,
        reserve: ReserveWorktree,
        task_name: str,
        requested_base_ref: str | None,
    ) -> ClaimResult:
        slug = slugify(task_name)
        suffix = generate_short_hash(self._random_bytes)
        new_branch = task_branch(self._settings.branch_prefix, slug, suffix)
        new_path = task_worktree_path(reserve.project_path, slug, suffix)

        await self._runner.run("worktree", "move", reserve.path, new_path, cwd=reserve.project_path)
        reserve.path = new_path

        await self._runner.run("branch", "-m", reserve.branch, new_branch, cwd=new_path)
        reserve.branch = new_branch

        needs_base_ref_switch = False
        if (
            requested_base_ref
            and requested_base_ref != DEFAULT_BASE_REF
            and requested_base_ref != reserve.base_ref
        ):
            needs_base_ref_switch = True
            try:
                await self._runner.run("reset", "--hard", requested_base_ref, cwd=new_path)
                needs_base_ref_switch = False
            except GitRunnerError as exc:
                logger.warning(
                    "Failed to switch claimed worktree to requested base ref",
                    extra={"worktree_path": new_path, "base_ref": requested_base_ref, "error": str(exc)},
                )

        try:
            await self._preserve_files(reserve.project_path, new_path)
        except Exception as exc:
            logger.warning(
                "Failed to preserve project files",
                extra={"worktree_path": new_path, "error": str(exc)},
            )

        self._spawn(self._push_branch(new_path, new_branch), name=f"push-{new_branch}")

        worktree = WorktreeInfo(
            id=stable_id_from_path(new_path),
            name=task_name,
            branch=new_branch,
            path=new_path,
            project_id=reserve.project_id,
            status="active",
            created_at=self._clock(),
        )
        self.registry.register_worktree(worktree)
        logger.info(
            "Claimed reserve worktree",
            extra={
                "project_id": reserve.project_id,
                "worktree_id": worktree.id,
                "branch": new_branch,
                "worktree_path": new_path,
                "needs_base_ref_switch": needs_base_ref_switch,
            },
        )
        return ClaimResult(worktree=worktree, needs_base_ref_switch=needs_base_ref_switch)

    # ------------------------------------------------------------------ background work
    def _spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Background worktree task failed",
                extra={"task_name": task.get_name(), "error": str(exc)},
            )

    def replenish(
        self, project_id: str, project_path: str, base_ref: str | None = None
    ) -> asyncio.Task[Any]:
        """Schedule ``ensure_reserve`` in the background without waiting for it."""

        return self._spawn(
            self.ensure_reserve(project_id, project_path, base_ref),
            name=f"replenish-{project_id}",
        )

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for background work, including work it spawns.

        Returns False if the timeout elapsed with tasks still running.
        """

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._background:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            await asyncio.wait(set(self._background), timeout=remaining)
        return True

    async def _push_branch(self, worktree_path: str, branch: str) -> None:
        if not self._settings.push_on_create:
            return
        try:
            remotes_result = await self._runner.run("remote", cwd=worktree_path)
            remotes = [line.strip() for line in remotes_result.stdout.splitlines() if line.strip()]
            if not remotes:
                return
            remote = "origin" if "origin" in remotes else remotes[0]
            await self._runner.run(
                "push",
                "--set-upstream",
                remote,
                branch,
                cwd=worktree_path,
                timeout=self._settings.push_timeout_seconds,
            )
        except (GitRunnerError, OSError) as exc:
            logger.debug("Background push failed", extra={"branch": branch, "error": str(exc)})

    # ------------------------------------------------------------------ cleanup
    async def _cleanup_reserve(self, reserve: ReserveWorktree) -> bool:
        try:
            await self._runner.run(
                "worktree", "remove", "--force", reserve.path, cwd=reserve.project_path
            )
            await self._runner.run("branch", "-D", reserve.branch, cwd=reserve.project_path)
        except (GitRunnerError, OSError) as exc:
            logger.warning(
                "Failed to clean up reserve worktree",
                extra={"reserve_path": reserve.path, "branch": reserve.branch, "error": str(exc)},
            )
            return False
        return True

    async def remove_reserve(self, project_id: str) -> None:
        """Drop and delete the project's reserve, e.g. when the project is removed."""

        reserve = self._reserves.pop(project_id, None)
        if reserve is None:
            return
        await self._cleanup_reserve(reserve)

    async def cleanup(self, drain_timeout: float | None = 10.0) -> None:
        """Best-effort shutdown: let background work settle, then delete every reserve."""

        if not await self.drain(drain_timeout):
            logger.warning(
                "Background worktree tasks still running at shutdown",
                extra={"pending": len(self._background)},
            )
        for project_id, reserve in list(self._reserves.items()):
            if not await self._cleanup_reserve(reserve):
                logger.warning(
                    "Failed to clean up reserve on shutdown", extra={"project_id": project_id}
                )
        self._reserves.clear()

    async def cleanup_orphaned_reserves(self, *, delay: float | None = None) -> dict[str, bool]:
        """Sweep reserve directories left behind by earlier sessions.

        The delay runs here so reserves created while waiting are excluded
        along with those still being created or claimed.
        """

        if delay is None:
            delay = self._settings.orphan_scan_delay_seconds
        if delay > 0:
            await asyncio.sleep(delay)

        return await cleanup_orphaned_reserves(
            self._runner,
            self._settings.worktree_search_paths,
            delay=0,
            exclude=self.live_reserve_paths(),
        )

    def live_reserve_paths(self) -> set[str]:
        return {reserve.path for reserve in self._reserves.values()} | self._busy_paths

    def schedule_orphan_sweep(self) -> asyncio.Task[Any]:
        return self._spawn(self.cleanup_orphaned_reserves(), name="orphan-sweep")


__all__ = ["DEFAULT_BASE_REF", "PreserveFiles", "WorktreePool"]
