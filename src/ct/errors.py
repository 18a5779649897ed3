"""Exception hierarchy shared by the commit test runner."""

from __future__ import annotations


class CommitTestError(RuntimeError):
    """Base class for every fatal error raised by the runner."""


class ConfigError(CommitTestError):
    """Raised when settings cannot be read or fail validation."""


class NoTestCommandsError(CommitTestError):
    """Raised when neither the command line nor configuration supplies a test."""


class TooManyArgumentsError(CommitTestError):
    """Raised when more than one range expression is passed."""


class LockHeldError(CommitTestError):
    """Raised when another process already owns the auxiliary working tree."""


class GitError(CommitTestError):
    """Raised when a git command fails or the repository cannot be used."""


class InvalidRangeError(GitError):
    """Raised when a range expression is malformed or selects no commits."""


# Pre-flight failures abort before any commit is touched.
PREFLIGHT_ERRORS: tuple[type[CommitTestError], ...] = (
    ConfigError,
    NoTestCommandsError,
    TooManyArgumentsError,
    InvalidRangeError,
    LockHeldError,
)


__all__ = [
    "CommitTestError",
    "ConfigError",
    "GitError",
    "InvalidRangeError",
    "LockHeldError",
    "NoTestCommandsError",
    "PREFLIGHT_ERRORS",
    "TooManyArgumentsError",
]
