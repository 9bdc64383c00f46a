"""Copy gitignored project files (``.env`` and friends) into new worktrees."""

from __future__ import annotations

import fnmatch
import logging
import shutil
from pathlib import Path
from typing import Any, Iterable, Sequence

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from .git import GitRunner, GitRunnerError
from .models import PreserveResult

logger = logging.getLogger(__name__)

DEFAULT_PRESERVE_PATTERNS: tuple[str, ...] = (
    ".env",
    ".env.keys",
    ".env.local",
    ".env.*.local",
    ".envrc",
    "docker-compose.override.yml",
)

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "node_modules",
    ".git",
    "vendor",
    ".cache",
    "dist",
    "build",
    ".next",
    ".nuxt",
    "__pycache__",
    ".venv",
    "venv",
)

PROJECT_CONFIG_FILENAMES = (".warmtree.yml", ".warmtree.yaml", ".warmtree.json")


class ProjectConfigError(RuntimeError):
    """Raised when a project-level config file cannot be parsed."""


class ProjectConfig(BaseModel):
    """Per-project settings stored next to the repository sources."""

    preserve_patterns: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("preserve_patterns", "preservePatterns"),
        description="Glob patterns of gitignored files to copy into new worktrees.",
    )
    exclude_patterns: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("exclude_patterns", "excludePatterns"),
        description="Path segments that are never copied.",
    )

    @field_validator("preserve_patterns", "exclude_patterns", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):
        if value is None:
            return None
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise ValueError("Patterns must be a string or a sequence of strings")


def load_project_config(project_path: str | Path) -> ProjectConfig | None:
    """Load the first project config file found, or ``None`` when absent."""

    base = Path(project_path)
    for filename in PROJECT_CONFIG_FILENAMES:
        path = base / filename
        if not path.is_file():
            continue
        try:
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ProjectConfigError(f"Failed to parse {path}: {exc}") from exc
        if document is None:
            return ProjectConfig()
        try:
            return ProjectConfig.model_validate(document)
        except ValidationError as exc:
            raise ProjectConfigError(f"Project config validation error in {path}: {exc}") from exc
    return None


def matches_preserve_pattern(file_path: str, patterns: Iterable[str]) -> bool:
    file_name = file_path.rsplit("/", 1)[-1]
    for pattern in patterns:
        if fnmatch.fnmatchcase(file_name, pattern):
            return True
        if fnmatch.fnmatchcase(file_path, pattern):
            return True
        if fnmatch.fnmatchcase(file_path, f"**/{pattern}"):
            return True
    return False


def is_excluded_path(file_path: str, exclude_patterns: Sequence[str]) -> bool:
    # git ls-files always reports forward slashes
    return any(part in exclude_patterns for part in file_path.split("/"))


def _copy_file_exclusive(source: Path, destination: Path) -> str:
    try:
        if destination.exists():
            return "skipped"
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)
        shutil.copymode(source, destination)
        return "copied"
    except OSError as exc:
        logger.debug(
            "Failed to copy preserved file",
            extra={"source": str(source), "destination": str(destination), "error": str(exc)},
        )
        return "error"


class FilePreserver:
    """Copies configured gitignored files from a project into a worktree."""

    def __init__(self, runner: GitRunner) -> None:
        self._runner = runner

    def preserve_patterns(self, project_path: str | Path) -> tuple[list[str], list[str]]:
        """Return ``(preserve, exclude)`` patterns for the project."""

        try:
            config = load_project_config(project_path)
        except ProjectConfigError as exc:
            logger.warning(
                "Ignoring invalid project config",
                extra={"project_path": str(project_path), "error": str(exc)},
            )
            config = None
        preserve = list(DEFAULT_PRESERVE_PATTERNS)
        exclude = list(DEFAULT_EXCLUDE_PATTERNS)
        if config is not None and config.preserve_patterns is not None:
            preserve = config.preserve_patterns
        if config is not None and config.exclude_patterns is not None:
            exclude = config.exclude_patterns
        return preserve, exclude

    async def preserve_project_files_to_worktree(
        self, project_path: str | Path, worktree_path: str | Path
    ) -> PreserveResult:
        preserve, exclude = self.preserve_patterns(project_path)
        return await self.preserve_files_to_worktree(
            project_path, worktree_path, preserve, exclude_patterns=exclude
        )

    async def preserve_files_to_worktree(
        self,
        source_dir: str | Path,
        dest_dir: str | Path,
        patterns: Sequence[str] = DEFAULT_PRESERVE_PATTERNS,
        *,
        exclude_patterns: Sequence[str] = DEFAULT_EXCLUDE_PATTERNS,
    ) -> PreserveResult:
        """Copy ignored files matching ``patterns``; existing files are never overwritten."""

        result = PreserveResult()
        if not patterns:
            return result

        ignored = await self._ignored_files(source_dir)
        candidates = [
            file_path
            for file_path in ignored
            if not is_excluded_path(file_path, exclude_patterns)
            and matches_preserve_pattern(file_path, patterns)
        ]
        if not candidates:
            logger.debug("No files matched preserve patterns", extra={"source": str(source_dir)})
            return result

        source_root = Path(source_dir)
        dest_root = Path(dest_dir)
        for file_path in candidates:
            source = source_root / file_path
            if not source.is_file():
                continue
            outcome = _copy_file_exclusive(source, dest_root / file_path)
            if outcome == "copied":
                result.copied.append(file_path)
            elif outcome == "skipped":
                result.skipped.append(file_path)

        if result.copied:
            logger.info(
                "Preserved files into worktree",
                extra={"destination": str(dest_root), "copied": result.copied},
            )
        return result

    async def _ignored_files(self, directory: str | Path) -> list[str]:
        try:
            output = await self._runner.run(
                "ls-files", "--others", "--ignored", "--exclude-standard", cwd=directory
            )
        except (GitRunnerError, OSError) as exc:
            logger.debug(
                "Failed to list ignored files", extra={"directory": str(directory), "error": str(exc)}
            )
            return []
        return [line for line in output.stdout.splitlines() if line]


__all__ = [
    "DEFAULT_EXCLUDE_PATTERNS",
    "DEFAULT_PRESERVE_PATTERNS",
    "FilePreserver",
    "ProjectConfig",
    "ProjectConfigError",
    "is_excluded_path",
    "load_project_config",
    "matches_preserve_pattern",
]
