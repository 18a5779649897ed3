"""Ownership and lifecycle of the auxiliary work tree commits are tested in."""

from __future__ import annotations

import fcntl
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType

from ct.errors import LockHeldError

from .vcs import GitRepository

LOGGER = logging.getLogger(__name__)

DEFAULT_WORKTREE_NAME = "ct-worktree"


def lock_path_for(worktree: Path) -> Path:
    """Return the lock file that sits next to ``worktree``."""

    return worktree.with_name(f"{worktree.name}.lock")


class WorktreeLock:
    """Exclusive, non-blocking advisory lock on a work tree path.

    Use as a context manager; the lock is released on every exit path.
    """

    def __init__(self, worktree: Path) -> None:
        self.path = lock_path_for(worktree)
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        if self._fd is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as error:
            os.close(fd)
            raise LockHeldError(
                f"{self.path} is locked; another run is using this work tree"
            ) from error
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd
        LOGGER.debug("Acquired work tree lock %s", self.path)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        LOGGER.debug("Released work tree lock %s", self.path)

    def __enter__(self) -> "WorktreeLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


@dataclass(slots=True)
class WorkingTreeManager:
    """Prepare the auxiliary work tree and move it between commits.

    With ``dry_run`` set, no method touches the filesystem.
    """

    repo: GitRepository
    path: Path
    clean: bool = False
    dry_run: bool = False
    prepared: bool = field(default=False, init=False)

    def lock(self) -> WorktreeLock:
        return WorktreeLock(self.path)

    def prepare(self, commit: str | None = None) -> bool:
        """Make the work tree usable; return ``True`` when it already existed.

        A newly created tree starts detached at ``commit``.
        """

        if self.dry_run:
            existed = (self.path / ".git").exists()
            LOGGER.debug("Dry run: skipping preparation of %s", self.path)
            self.prepared = True
            return existed
        existed = self.repo.ensure_worktree(self.path, commit)
        if existed:
            self.repo.reset_worktree(self.path)
            if self.clean:
                self.repo.clean_worktree(self.path)
            LOGGER.debug("Reset existing work tree %s", self.path)
        self.prepared = True
        return existed

    def checkout(self, commit: str) -> None:
        """Force the work tree onto ``commit``, discarding local state."""

        if not self.prepared:
            raise RuntimeError("Work tree must be prepared before checkout.")
        if self.dry_run:
            LOGGER.debug("Dry run: skipping checkout of %s", commit)
            return
        self.repo.checkout_detached(self.path, commit)
        if self.clean:
            self.repo.clean_worktree(self.path)
        LOGGER.debug("Checked out %s in %s", commit, self.path)


__all__ = [
    "DEFAULT_WORKTREE_NAME",
    "LockHeldError",
    "WorkingTreeManager",
    "WorktreeLock",
    "lock_path_for",
]
