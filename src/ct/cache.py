"""Per-tree verdict cache persisted as git notes.

Only successes are stored. A tree without a note is untested, never failed,
so a future run simply tests it again.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Sequence

from .tools.vcs import CommitRecord, GitRepository

LOGGER = logging.getLogger(__name__)

DEFAULT_NOTES_REF = "refs/notes/tests"


class Verdict(str, Enum):
    """Values that may be recorded for a tree."""

    SUCCESS = "SUCCESS"


class ResultCache:
    """Read and update cached verdicts keyed by tree id."""

    def __init__(
        self,
        repo: GitRepository,
        notes_ref: str = DEFAULT_NOTES_REF,
        *,
        dry_run: bool = False,
    ) -> None:
        self.repo = repo
        self.notes_ref = notes_ref
        self.dry_run = dry_run

    def verdict(self, tree: str) -> Verdict | None:
        note = self.repo.read_note(self.notes_ref, tree)
        if note is None:
            return None
        try:
            return Verdict(note.strip())
        except ValueError:
            LOGGER.warning("Ignoring unrecognised note %r on tree %s", note, tree)
            return None

    def is_success(self, tree: str) -> bool:
        return self.verdict(tree) is Verdict.SUCCESS

    def lookup(self, records: Sequence[CommitRecord]) -> List[bool]:
        """Return ``cached[i]`` for every record, one lookup per distinct tree."""

        known: dict[str, bool] = {}
        cached: List[bool] = []
        for record in records:
            if record.tree not in known:
                known[record.tree] = self.is_success(record.tree)
            cached.append(known[record.tree])
        LOGGER.debug("Cache lookup: %d of %d commit(s) cached", sum(cached), len(cached))
        return cached

    def record_success(self, tree: str) -> None:
        if self.dry_run:
            LOGGER.debug("Dry run: not recording success for tree %s", tree)
            return
        self.repo.write_note(self.notes_ref, tree, Verdict.SUCCESS.value)
        LOGGER.info("Recorded success for tree %s", tree)

    def invalidate(self, tree: str) -> None:
        """Forget a stale success so the next un-forced run re-tests ``tree``."""

        if self.dry_run:
            LOGGER.debug("Dry run: not invalidating tree %s", tree)
            return
        self.repo.remove_note(self.notes_ref, tree)
        LOGGER.info("Removed stale success for tree %s", tree)


__all__ = ["DEFAULT_NOTES_REF", "ResultCache", "Verdict"]
