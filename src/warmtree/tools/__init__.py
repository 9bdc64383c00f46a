"""Tool registration for the Warmtree MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..pool import WorktreePool


@dataclass(slots=True)
class ToolHandles:
    ensure_reserve: Any
    has_reserve: Any
    claim_reserve: Any
    remove_reserve: Any
    list_worktrees: Any


def register_tools(
    server: FastMCP,
    *,
    pool: WorktreePool,
) -> ToolHandles:
    """Register Warmtree's MCP tools on the server."""

    async def _ensure_reserve(
        project_id: str,
        project_path: str,
        base_ref: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start creating a reserve worktree for the project in the background."""

        pool.replenish(project_id, project_path, base_ref)
        _emit_log(
            context,
            "debug",
            "Reserve requested",
            extra={"project_id": project_id, "base_ref": base_ref},
        )
        return {"success": True}

    def _has_reserve(project_id: str, context: Context | None = None) -> dict[str, Any]:
        """Report whether a fresh reserve is ready for the project."""

        available = pool.has_reserve(project_id)
        _emit_log(
            context,
            "debug",
            "Reserve availability",
            extra={"project_id": project_id, "has_reserve": available},
        )
        return {"success": True, "has_reserve": available}

    async def _claim_reserve(
        project_id: str,
        project_path: str,
        task_name: str,
        base_ref: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Claim the project's reserve as a task worktree."""

        result = await pool.claim_reserve(project_id, project_path, task_name, base_ref)
        if result is None:
            _emit_log(
                context,
                "info",
                "No reserve available",
                extra={"project_id": project_id, "task_name": task_name},
            )
            return {"success": False, "error": "No reserve available"}

        _emit_log(
            context,
            "info",
            "Claimed reserve",
            extra={"project_id": project_id, "worktree_id": result.worktree.id},
        )
        return {
            "success": True,
            "worktree": result.worktree.to_dict(),
            "needs_base_ref_switch": result.needs_base_ref_switch,
        }

    async def _remove_reserve(project_id: str, context: Context | None = None) -> dict[str, Any]:
        """Delete the project's reserve worktree, if any."""

        await pool.remove_reserve(project_id)
        _emit_log(context, "info", "Removed reserve", extra={"project_id": project_id})
        return {"success": True}

    def _list_worktrees(
        project_id: str | None = None, context: Context | None = None
    ) -> list[dict[str, Any]]:
        """List task worktrees registered in this session."""

        worktrees = [info.to_dict() for info in pool.registry.list_worktrees(project_id)]
        _emit_log(context, "debug", "Listing worktrees", extra={"count": len(worktrees)})
        return worktrees

    tool_ensure = server.tool(
        name="ensure_reserve",
        description=(
            "Pre-create an idle worktree for a project in the background so the next "
            "task can start instantly. Returns immediately."
        ),
    )(_ensure_reserve)

    tool_has = server.tool(
        name="has_reserve",
        description="Check whether a fresh reserve worktree is ready for a project.",
    )(_has_reserve)

    tool_claim = server.tool(
        name="claim_reserve",
        description=(
            "Rename the project's reserve worktree into a task worktree. When no reserve "
            "is available the result has success=false and the caller should create the "
            "worktree normally."
        ),
    )(_claim_reserve)

    tool_remove = server.tool(
        name="remove_reserve",
        description="Delete the reserve worktree for a project (for example when it is closed).",
    )(_remove_reserve)

    tool_list = server.tool(
        name="list_worktrees",
        description="List task worktrees created from reserves, optionally for one project.",
    )(_list_worktrees)

    return ToolHandles(
        ensure_reserve=tool_ensure,
        has_reserve=tool_has,
        claim_reserve=tool_claim,
        remove_reserve=tool_remove,
        list_worktrees=tool_list,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
