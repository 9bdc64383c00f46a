"""Data models for reserve and task worktrees."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

WorktreeStatus = Literal["active", "paused", "completed", "error"]


@dataclass(slots=True)
class ReserveWorktree:
    """An idle, pre-provisioned worktree waiting to be claimed."""

    id: str
    path: str
    branch: str
    project_id: str
    project_path: str
    base_ref: str
    created_at: datetime


@dataclass(slots=True)
class WorktreeInfo:
    """Task-facing worktree descriptor held by the registry."""

    id: str
    name: str
    branch: str
    path: str
    project_id: str
    status: WorktreeStatus
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = self.created_at.isoformat()
        return payload


@dataclass(slots=True)
class ClaimResult:
    worktree: WorktreeInfo
    needs_base_ref_switch: bool


@dataclass(slots=True)
class PreserveResult:
    copied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


__all__ = ["ClaimResult", "PreserveResult", "ReserveWorktree", "WorktreeInfo", "WorktreeStatus"]
