"""In-memory registry of task worktrees."""

from __future__ import annotations

import logging
from typing import Protocol

from .models import WorktreeInfo

logger = logging.getLogger(__name__)


class WorktreeRegistryProtocol(Protocol):
    """Minimal registry API consumed by the worktree pool."""

    def register_worktree(self, info: WorktreeInfo) -> None:
        ...

    def list_worktrees(self, project_id: str | None = None) -> list[WorktreeInfo]:
        ...


class WorktreeRegistry:
    """Track task worktrees by id for the lifetime of the process."""

    def __init__(self) -> None:
        self._worktrees: dict[str, WorktreeInfo] = {}

    def register_worktree(self, info: WorktreeInfo) -> None:
        self._worktrees[info.id] = info
        logger.debug(
            "Registered worktree",
            extra={"worktree_id": info.id, "branch": info.branch, "path": info.path},
        )

    def get_worktree(self, worktree_id: str) -> WorktreeInfo | None:
        return self._worktrees.get(worktree_id)

    def list_worktrees(self, project_id: str | None = None) -> list[WorktreeInfo]:
        worktrees = list(self._worktrees.values())
        if project_id is not None:
            worktrees = [info for info in worktrees if info.project_id == project_id]
        return worktrees

    def __len__(self) -> int:
        return len(self._worktrees)


__all__ = ["WorktreeRegistry", "WorktreeRegistryProtocol"]
