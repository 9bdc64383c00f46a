"""Warmtree diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

from warmtree.config import WarmtreeSettings
from warmtree.git import GitNotFoundError, GitRunner
from warmtree.orphans import cleanup_orphaned_reserves, find_orphaned_reserves


def load_runner(settings: WarmtreeSettings) -> GitRunner:
    try:
        return GitRunner(Path(settings.git_path) if settings.git_path else None)
    except GitNotFoundError as exc:
        print(f"git unavailable: {exc}")
        raise SystemExit(1)


def _search_paths(settings: WarmtreeSettings, args: argparse.Namespace) -> list[Path]:
    explicit = getattr(args, "path", None)
    if explicit:
        return [Path(path).expanduser() for path in explicit]
    return [path.expanduser() for path in settings.worktree_search_paths]


def cmd_settings(args: argparse.Namespace) -> None:
    settings = WarmtreeSettings()
    payload = settings.model_dump(mode="json")
    print(json.dumps(payload, indent=2))


def cmd_orphans(args: argparse.Namespace) -> None:
    settings = WarmtreeSettings()
    orphans = find_orphaned_reserves(_search_paths(settings, args))
    if args.json:
        print(json.dumps([{"path": str(o.path), "name": o.name} for o in orphans], indent=2))
    else:
        for orphan in orphans:
            print(orphan.path)


def _recent_reserves(search_paths: list[Path], max_age_minutes: int) -> list[Path]:
    """Reserve directories young enough to belong to a running server."""

    cutoff = time.time() - max_age_minutes * 60
    recent: list[Path] = []
    for orphan in find_orphaned_reserves(search_paths):
        try:
            if orphan.path.stat().st_mtime > cutoff:
                recent.append(orphan.path)
        except OSError:
            continue
    return recent


def cmd_sweep(args: argparse.Namespace) -> None:
    settings = WarmtreeSettings()
    runner = load_runner(settings)
    search_paths = _search_paths(settings, args)
    skipped = [] if args.all else _recent_reserves(search_paths, settings.max_reserve_age_minutes)
    results = asyncio.run(
        cleanup_orphaned_reserves(runner, search_paths, delay=0, exclude=skipped)
    )
    if skipped:
        print(f"skipped {len(skipped)} recent reserve(s); pass --all to include them", file=sys.stderr)
    print(json.dumps(results, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Warmtree diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_settings = sub.add_parser("settings", help="Show effective settings")
    p_settings.set_defaults(func=cmd_settings)

    p_orphans = sub.add_parser("orphans", help="List reserve directories left on disk")
    p_orphans.add_argument("--path", action="append", help="Container directory to scan")
    p_orphans.add_argument("--json", action="store_true", help="Output JSON")
    p_orphans.set_defaults(func=cmd_orphans)

    p_sweep = sub.add_parser(
        "sweep",
        help="Remove orphaned reserve worktrees",
        description=(
            "Remove orphaned reserve worktrees. Reserves newer than the configured max "
            "reserve age may belong to a running Warmtree server and are skipped unless "
            "--all is given; stop the server before sweeping with --all."
        ),
    )
    p_sweep.add_argument("--path", action="append", help="Container directory to scan")
    p_sweep.add_argument(
        "--all",
        action="store_true",
        help="Also remove recent reserves (only safe while no server is running)",
    )
    p_sweep.set_defaults(func=cmd_sweep)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
