from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from warmtree.config import WarmtreeSettings
from warmtree.git import FakeGitRunner
from warmtree.pool import WorktreePool
from warmtree.tools import register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, message: str, *, extra: dict[str, Any] | None = None) -> None:
        self.records.append(("info", message, extra or {}))

    def debug(self, message: str, *, extra: dict[str, Any] | None = None) -> None:
        self.records.append(("debug", message, extra or {}))


class StubContext:
    def __init__(self) -> None:
        self.logger = StubLogger()


def _setup(tmp_path: Path):
    server = StubServer()
    settings = WarmtreeSettings(
        push_on_create=False,
        orphan_scan_delay_seconds=0,
        worktree_search_paths=(tmp_path / "repos" / "worktrees",),
    )
    pool = WorktreePool(FakeGitRunner(), settings)
    handles = register_tools(server, pool=pool)
    return server, pool, handles


def test_register_tools_exposes_pool_operations(tmp_path: Path) -> None:
    server, _, handles = _setup(tmp_path)

    assert set(server._tools) == {
        "ensure_reserve",
        "has_reserve",
        "claim_reserve",
        "remove_reserve",
        "list_worktrees",
    }
    assert handles.claim_reserve is server._tools["claim_reserve"]


def test_ensure_then_claim_round_trip(tmp_path: Path) -> None:
    server, pool, _ = _setup(tmp_path)
    project = str(tmp_path / "repos" / "project")
    tools = server._tools

    async def scenario():
        ensured = await tools["ensure_reserve"].fn("p1", project)
        await pool.drain()
        ready = tools["has_reserve"].fn("p1")
        claimed = await tools["claim_reserve"].fn("p1", project, "Add Feature")
        await pool.drain()
        listed = tools["list_worktrees"].fn("p1")
        return ensured, ready, claimed, listed

    ensured, ready, claimed, listed = asyncio.run(scenario())

    assert ensured == {"success": True}
    assert ready == {"success": True, "has_reserve": True}
    assert claimed["success"] is True
    assert claimed["needs_base_ref_switch"] is False
    worktree = claimed["worktree"]
    assert worktree["name"] == "Add Feature"
    assert worktree["branch"].startswith("warmtree/add-feature-")
    assert worktree["status"] == "active"
    assert isinstance(worktree["created_at"], str)
    assert set(worktree) == {"id", "name", "branch", "path", "project_id", "status", "created_at"}
    assert listed == [worktree]


def test_claim_without_reserve_reports_failure(tmp_path: Path) -> None:
    server, _, _ = _setup(tmp_path)

    result = asyncio.run(server._tools["claim_reserve"].fn("p1", str(tmp_path), "task"))

    assert result == {"success": False, "error": "No reserve available"}


def test_remove_reserve_tool(tmp_path: Path) -> None:
    server, pool, _ = _setup(tmp_path)
    project = str(tmp_path / "repos" / "project")

    async def scenario():
        await pool.ensure_reserve("p1", project)
        removed = await server._tools["remove_reserve"].fn("p1")
        return removed

    assert asyncio.run(scenario()) == {"success": True}
    assert server._tools["has_reserve"].fn("p1") == {"success": True, "has_reserve": False}


def test_list_worktrees_filters_by_project(tmp_path: Path) -> None:
    server, pool, _ = _setup(tmp_path)
    alpha = str(tmp_path / "repos" / "alpha")
    beta = str(tmp_path / "repos" / "beta")

    async def scenario():
        await pool.ensure_reserve("alpha", alpha)
        await pool.ensure_reserve("beta", beta)
        await pool.claim_reserve("alpha", alpha, "one")
        await pool.claim_reserve("beta", beta, "two")
        await pool.drain()

    asyncio.run(scenario())

    everything = server._tools["list_worktrees"].fn()
    only_beta = server._tools["list_worktrees"].fn("beta")
    assert len(everything) == 2
    assert [item["name"] for item in only_beta] == ["two"]


def test_tools_log_through_context(tmp_path: Path) -> None:
    server, _, _ = _setup(tmp_path)
    context = StubContext()

    server._tools["has_reserve"].fn("p1", context=context)
    asyncio.run(server._tools["claim_reserve"].fn("p1", str(tmp_path), "task", context=context))

    assert context.logger.records[0] == (
        "debug",
        "Reserve availability",
        {"project_id": "p1", "has_reserve": False},
    )
    assert context.logger.records[1][:2] == ("info", "No reserve available")
