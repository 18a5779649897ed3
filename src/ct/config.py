"""Run options and the layered settings they are resolved from.

Precedence, highest first: command-line flags, the repository's git
configuration (``test.command``, ``test.checkout``, ``test.clean``,
``test.notesRef``), then an optional YAML settings file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import logging

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .cache import DEFAULT_NOTES_REF
from .errors import ConfigError
from .tools.vcs import GitRepository
from .tools.worktree import DEFAULT_WORKTREE_NAME

LOGGER = logging.getLogger(__name__)

DEFAULT_RANGE = "master..HEAD"
DEFAULT_SETTINGS_NAME = ".ct.yaml"

GIT_TEST_COMMAND = "test.command"
GIT_CHECKOUT = "test.checkout"
GIT_CLEAN = "test.clean"
GIT_NOTES_REF = "test.notesRef"


def _strip_commands(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    return tuple(str(item).strip() for item in value if str(item).strip())


class FileSettings(BaseModel):
    """Contents of the optional YAML settings file."""

    model_config = ConfigDict(extra="forbid")

    tests: List[str] = Field(default_factory=list)
    checkout: Optional[Path] = None
    clean: Optional[bool] = None
    notes_ref: Optional[str] = None

    @field_validator("tests", mode="before")
    @classmethod
    def _coerce_tests(cls, value: Any) -> List[str]:
        return list(_strip_commands(value))


class RunOptions(BaseModel):
    """Immutable options for a single run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    range_expr: str = DEFAULT_RANGE
    tests: tuple[str, ...] = ()
    checkout: Path
    clean: bool = False
    dry_run: bool = False
    keep_going: bool = False
    force: bool = False
    notes_ref: str = DEFAULT_NOTES_REF

    @field_validator("tests", mode="before")
    @classmethod
    def _coerce_tests(cls, value: Any) -> tuple[str, ...]:
        return _strip_commands(value)

    @field_validator("range_expr")
    @classmethod
    def _check_range(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("range expression must not be empty")
        return stripped


def load_settings_file(path: Path, *, required: bool = False) -> FileSettings:
    """Load YAML settings from ``path``; a missing optional file yields defaults."""

    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return FileSettings()

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in {path} must be a mapping at the top level.")

    try:
        return FileSettings.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid settings in {path}: {error}") from error


def _resolve_checkout(repo: GitRepository, value: Path | str | None) -> Path:
    if value is None or not str(value).strip():
        return repo.common_dir() / DEFAULT_WORKTREE_NAME
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = repo.root / path
    return path.resolve()


def resolve_options(
    repo: GitRepository,
    *,
    range_expr: str | None = None,
    tests: Sequence[str] | None = None,
    checkout: Path | str | None = None,
    clean: bool | None = None,
    dry_run: bool = False,
    keep_going: bool = False,
    force: bool = False,
    config_path: Path | None = None,
) -> RunOptions:
    """Combine flags, git configuration and the settings file into ``RunOptions``."""

    if config_path is not None:
        settings = load_settings_file(config_path, required=True)
    else:
        settings = load_settings_file(repo.root / DEFAULT_SETTINGS_NAME)

    resolved_tests: Sequence[str]
    if tests:
        resolved_tests = list(tests)
    else:
        resolved_tests = repo.config_get_all(GIT_TEST_COMMAND) or settings.tests
    LOGGER.debug("Resolved %d test command(s)", len(resolved_tests))

    checkout_value: Path | str | None = checkout
    if checkout_value is None:
        checkout_value = repo.config_get(GIT_CHECKOUT) or settings.checkout

    if clean is None:
        clean = repo.config_get_bool(GIT_CLEAN)
    if clean is None:
        clean = bool(settings.clean)

    notes_ref = repo.config_get(GIT_NOTES_REF) or settings.notes_ref or DEFAULT_NOTES_REF

    payload: Dict[str, Any] = {
        "tests": resolved_tests,
        "checkout": _resolve_checkout(repo, checkout_value),
        "clean": clean,
        "dry_run": dry_run,
        "keep_going": keep_going,
        "force": force,
        "notes_ref": notes_ref,
    }
    if range_expr is not None:
        payload["range_expr"] = range_expr

    try:
        return RunOptions(**payload)
    except ValidationError as error:
        raise ConfigError(f"Invalid run options: {error}") from error


__all__ = [
    "DEFAULT_RANGE",
    "DEFAULT_SETTINGS_NAME",
    "FileSettings",
    "RunOptions",
    "load_settings_file",
    "resolve_options",
]
