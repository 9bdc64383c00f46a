"""Configuration management for Warmtree."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def default_worktree_search_paths(home: Path | None = None) -> tuple[Path, ...]:
    """Directories where task worktrees conventionally live next to projects."""

    base = home or Path.home()
    return (
        base / "cursor" / "worktrees",
        base / "Documents" / "worktrees",
        base / "Projects" / "worktrees",
        base / "code" / "worktrees",
        base / "dev" / "worktrees",
    )


class WarmtreeSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    git_path: str | None = Field(default=None, validation_alias="WARMTREE_GIT_PATH")
    branch_prefix: str = Field(default="warmtree", validation_alias="WARMTREE_BRANCH_PREFIX")
    push_on_create: bool = Field(default=True, validation_alias="WARMTREE_PUSH_ON_CREATE")
    push_timeout_seconds: float = Field(default=60.0, validation_alias="WARMTREE_PUSH_TIMEOUT")
    max_reserve_age_minutes: int = Field(
        default=30, validation_alias="WARMTREE_MAX_RESERVE_AGE_MINUTES"
    )
    orphan_scan_delay_seconds: float = Field(
        default=2.0, validation_alias="WARMTREE_ORPHAN_SCAN_DELAY"
    )
    worktree_search_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default_factory=default_worktree_search_paths,
        validation_alias="WARMTREE_SEARCH_PATHS",
    )
    log_level: str = Field(default="INFO", validation_alias="WARMTREE_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "WARMTREE_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("branch_prefix")
    @classmethod
    def _normalize_branch_prefix(cls, value: str) -> str:
        normalized = value.strip().strip("/")
        if not normalized:
            raise ValueError("WARMTREE_BRANCH_PREFIX must not be empty")
        if any(char.isspace() for char in normalized):
            raise ValueError("WARMTREE_BRANCH_PREFIX must not contain whitespace")
        return normalized

    @field_validator("push_timeout_seconds", "orphan_scan_delay_seconds")
    @classmethod
    def _validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Timeouts and delays must be >= 0")
        return value

    @field_validator("max_reserve_age_minutes")
    @classmethod
    def _validate_reserve_age(cls, value: int) -> int:
        if value < 1:
            raise ValueError("WARMTREE_MAX_RESERVE_AGE_MINUTES must be >= 1")
        return value

    @field_validator("worktree_search_paths", mode="before")
    @classmethod
    def _parse_search_paths(cls, value):
        if value is None or value == "":
            return default_worktree_search_paths()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or default_worktree_search_paths()
        raise ValueError(
            "WARMTREE_SEARCH_PATHS must be a list of paths or a path-separated string"
        )


@lru_cache(maxsize=1)
def get_settings() -> WarmtreeSettings:
    """Return cached settings instance."""

    settings = WarmtreeSettings()
    settings.worktree_search_paths = tuple(
        path.expanduser().resolve() for path in settings.worktree_search_paths
    )
    return settings


__all__ = ["WarmtreeSettings", "default_worktree_search_paths", "get_settings"]
