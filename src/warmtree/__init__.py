"""Instant git worktrees for agent tasks via a per-project reserve pool."""

__version__ = "0.1.0"

__all__ = ["__version__"]
