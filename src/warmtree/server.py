"""FastMCP server bootstrap for Warmtree."""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import WarmtreeSettings, get_settings
from .git import GitRunner
from .pool import WorktreePool
from .registry import WorktreeRegistry
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the Warmtree server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def build_status(pool: WorktreePool, settings: WarmtreeSettings) -> dict[str, Any]:
    """Summarize pool state for the status resource."""

    reserves = [
        {
            "project_id": reserve.project_id,
            "path": reserve.path,
            "branch": reserve.branch,
            "base_ref": reserve.base_ref,
            "created_at": reserve.created_at.isoformat(),
            "stale": pool.is_stale(reserve),
        }
        for reserve in pool.reserves()
    ]
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server_version": __version__,
        "log_level": settings.log_level,
        "settings": {
            "branch_prefix": settings.branch_prefix,
            "push_on_create": settings.push_on_create,
            "max_reserve_age_minutes": settings.max_reserve_age_minutes,
        },
        "pool": {
            "reserves": reserves,
            "ready_count": sum(1 for reserve in reserves if not reserve["stale"]),
            "background_tasks": pool.pending_tasks,
        },
        "worktrees": {
            "count": len(pool.registry.list_worktrees()),
        },
    }


def create_server(
    settings: Optional[WarmtreeSettings] = None,
    *,
    runner: GitRunner | None = None,
    pool: WorktreePool | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server around a single worktree pool."""

    settings = settings or get_settings()
    logger = logging.getLogger(__name__)

    if pool is None:
        runner = runner or GitRunner(Path(settings.git_path) if settings.git_path else None)
        pool = WorktreePool(runner, settings, registry=WorktreeRegistry())

    @asynccontextmanager
    async def lifespan(_server: FastMCP):
        pool.schedule_orphan_sweep()
        try:
            yield {"pool": pool}
        finally:
            logger.info("Cleaning up reserve worktrees before shutdown")
            await pool.cleanup()

    server = FastMCP(
        name="Warmtree",
        version=__version__,
        instructions=(
            "Warmtree keeps one pre-created git worktree per project so new agent tasks "
            "start instantly. Call ensure_reserve when a project opens and claim_reserve "
            "when a task is created; fall back to normal worktree creation when the claim "
            "reports no reserve."
        ),
        lifespan=lifespan,
    )

    handles = register_tools(server, pool=pool)

    @server.resource(
        "resource://warmtree/status",
        name="warmtree_status",
        title="Warmtree Status",
        description="Provides the current reserve pool state.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing the reserve pool."""

        payload = build_status(pool, settings)
        payload["request_id"] = getattr(context, "request_id", None)
        return json.dumps(payload)

    setattr(server, "pool", pool)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Warmtree MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Warmtree MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "branch_prefix": settings.branch_prefix,
            "push_on_create": settings.push_on_create,
        },
    )
    server.run()


if __name__ == "__main__":
    main()
