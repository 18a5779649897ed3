"""Integrations with git, the auxiliary work tree and the host shell."""

from .test_runner import ShellTestRunner, TestOutcome
from .vcs import CommitRecord, GitError, GitRepository, InvalidRangeError
from .worktree import LockHeldError, WorkingTreeManager, WorktreeLock

__all__ = [
    "CommitRecord",
    "GitError",
    "GitRepository",
    "InvalidRangeError",
    "LockHeldError",
    "ShellTestRunner",
    "TestOutcome",
    "WorkingTreeManager",
    "WorktreeLock",
]
