"""Minimal git helpers
The helpers below provide just enough structure to expand a commit range,
read and write the notes that hold cached verdicts, and drive the auxiliary
work tree that commits are tested in.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

import logging
import os
import subprocess

from ct.errors import GitError, InvalidRangeError

LOGGER = logging.getLogger(__name__)

_NO_NOTE_MARKER = "no note found"


@dataclass(slots=True, frozen=True)
class CommitRecord:
    """A commit paired with the tree it records.

    The tree id is the cache key: two commits with identical file contents
    share a verdict even when their metadata differs.
    """

    commit: str
    tree: str

    @property
    def short(self) -> str:
        return self.commit[:10]


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Locate the nearest git repository starting from ``start``."""

        path = Path(start or Path.cwd()).resolve()
        for candidate in (path, *path.parents):
            if (candidate / ".git").exists():
                return cls(candidate)
        raise GitError(f"Unable to locate a git repository from {path}")

    # ------------------------------------------------------------------ git IO
    def _run_git(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        return _invoke_git(args, cwd=cwd or self.root, check=check)

    def git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Execute ``git`` with ``args`` relative to the repository root."""

        return self._run_git(list(args), check=check)

    def common_dir(self) -> Path:
        """Return the git directory shared by every work tree of this repository."""

        result = self._run_git(["rev-parse", "--git-common-dir"])
        path = Path(result.stdout.strip())
        if not path.is_absolute():
            path = self.root / path
        return path.resolve()

    # ------------------------------------------------------------------ config
    def config_get(self, key: str) -> str | None:
        """Return the last value of ``key`` or ``None`` when unset."""

        result = self._run_git(["config", "--get", key], check=False)
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            message = result.stderr.strip() or "unknown git error"
            raise GitError(f"git config --get {key} failed: {message}")
        return result.stdout.rstrip("\n")

    def config_get_all(self, key: str) -> List[str]:
        """Return every value of the multi-valued setting ``key``."""

        result = self._run_git(["config", "--get-all", key], check=False)
        if result.returncode == 1:
            return []
        if result.returncode != 0:
            message = result.stderr.strip() or "unknown git error"
            raise GitError(f"git config --get-all {key} failed: {message}")
        return [line for line in result.stdout.splitlines() if line.strip()]

    def config_get_bool(self, key: str) -> bool | None:
        """Return ``key`` interpreted by git's boolean rules, ``None`` when unset."""

        result = self._run_git(["config", "--type=bool", "--get", key], check=False)
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            message = result.stderr.strip() or "unknown git error"
            raise GitError(f"git config --get {key} failed: {message}")
        return result.stdout.strip() == "true"

    # ------------------------------------------------------------------ ranges
    def resolve_range(self, range_expr: str) -> List[str]:
        """Expand ``range_expr`` into commit ids, oldest first."""

        result = self._run_git(["rev-list", "--reverse", range_expr, "--"], check=False)
        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise InvalidRangeError(f"invalid range {range_expr!r}: {message}")
        commits = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not commits:
            raise InvalidRangeError("no commits to test")
        return commits

    def tree_id_of(self, commit: str) -> str:
        """Return the id of the tree recorded by ``commit``."""

        result = self._run_git(["rev-parse", "--verify", f"{commit}^{{tree}}"])
        return result.stdout.strip()

    def commit_records(self, commits: Sequence[str]) -> List[CommitRecord]:
        """Pair each commit with its tree id, preserving order."""

        return [CommitRecord(commit=commit, tree=self.tree_id_of(commit)) for commit in commits]

    # ------------------------------------------------------------------- notes
    def read_note(self, notes_ref: str, obj: str) -> str | None:
        """Return the note attached to ``obj`` under ``notes_ref``, if any."""

        result = self._run_git(["notes", f"--ref={notes_ref}", "show", obj], check=False)
        if result.returncode == 0:
            return result.stdout.strip()
        if _NO_NOTE_MARKER in result.stderr.lower():
            return None
        message = result.stderr.strip() or "unknown git error"
        raise GitError(f"git notes show {obj} failed: {message}")

    def write_note(self, notes_ref: str, obj: str, value: str) -> None:
        """Attach ``value`` to ``obj``, replacing any existing note."""

        self._run_git(["notes", f"--ref={notes_ref}", "add", "--force", "-m", value, obj])

    def remove_note(self, notes_ref: str, obj: str) -> None:
        """Drop the note on ``obj``; a missing note is not an error."""

        self._run_git(["notes", f"--ref={notes_ref}", "remove", "--ignore-missing", obj])

    # -------------------------------------------------------------- work trees
    def registered_worktrees(self) -> List[Path]:
        """Return the paths of every work tree git knows about."""

        result = self._run_git(["worktree", "list", "--porcelain"])
        paths: List[Path] = []
        for line in result.stdout.splitlines():
            if line.startswith("worktree "):
                paths.append(Path(line[len("worktree ") :]).resolve())
        return paths

    def ensure_worktree(self, path: Path, commit: str | None = None) -> bool:
        """Report whether a work tree exists at ``path``, creating a detached one if not.

        A new work tree starts at ``commit``, or at the current ``HEAD`` when omitted.
        """

        target = path.resolve()
        registered = target in self.registered_worktrees()
        if registered and (target / ".git").exists():
            return True
        if registered:
            LOGGER.warning("Work tree %s is registered but missing; pruning", target)
            self._run_git(["worktree", "prune"])
        target.parent.mkdir(parents=True, exist_ok=True)
        args = ["worktree", "add", "--detach", target.as_posix()]
        if commit:
            args.append(commit)
        self._run_git(args)
        LOGGER.info("Created auxiliary work tree at %s", target)
        return False

    def reset_worktree(self, path: Path) -> None:
        """Discard tracked changes in the work tree at ``path``."""

        self._run_git(["reset", "--hard", "--quiet"], cwd=path)

    def clean_worktree(self, path: Path) -> None:
        """Remove untracked and ignored files from the work tree at ``path``."""

        self._run_git(["clean", "-ffdxq"], cwd=path)

    def checkout_detached(self, path: Path, commit: str) -> None:
        """Force ``path`` onto ``commit`` with a detached ``HEAD``."""

        self._run_git(["checkout", "--force", "--detach", "--quiet", commit], cwd=path)


def _invoke_git(
    args: Sequence[str],
    *,
    cwd: Path,
    check: bool,
) -> subprocess.CompletedProcess[str]:
    command = ["git", *args]
    LOGGER.debug("Running %s in %s", " ".join(command), cwd)
    env = os.environ.copy()
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    # Diagnostics are matched in English.
    env["LC_ALL"] = "C"
    env["LANGUAGE"] = "C"
    process = subprocess.run(
        command,
        cwd=cwd,
        env=env,
        capture_output=True,
        text=False,
        check=False,
    )
    stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
    stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
    result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
    if check and result.returncode != 0:
        message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
        raise GitError(f"git {' '.join(args)} failed: {message}")
    return result


__all__ = ["CommitRecord", "GitError", "GitRepository", "InvalidRangeError"]
