"""Sequential commit-range test state machine.

A run moves through ``RESOLVING -> PLANNING -> LOCKING -> PREPARING ->
TESTING -> DONE``. Commits are tested strictly oldest first, one at a time;
commits whose tree already carries a cached success are skipped unless the
run is forced.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ContextManager, List, Optional, Set

from .cache import ResultCache
from .config import RunOptions
from .errors import NoTestCommandsError
from .reporting import Reporter
from .tools.test_runner import ShellTestRunner
from .tools.vcs import CommitRecord, GitRepository
from .tools.worktree import WorkingTreeManager

LOGGER = logging.getLogger(__name__)


class RunState(str, Enum):
    """Lifecycle states of a run."""

    RESOLVING = "RESOLVING"
    PLANNING = "PLANNING"
    LOCKING = "LOCKING"
    PREPARING = "PREPARING"
    TESTING = "TESTING"
    DONE = "DONE"


class CommitStatus(str, Enum):
    """Per-commit verdict shown to the operator."""

    OK = "ok"
    CACHED = "ok (cached)"
    NOT_OK = "not ok"


@dataclass(slots=True)
class CommitResult:
    record: CommitRecord
    status: CommitStatus
    failed_at_index: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is not CommitStatus.NOT_OK


@dataclass(slots=True)
class RunVerdict:
    """Aggregate outcome of a run."""

    total: int
    results: List[CommitResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def last_index(self) -> int | None:
        return len(self.results) - 1 if self.results else None

    @property
    def tested(self) -> int:
        return sum(1 for result in self.results if result.status is not CommitStatus.CACHED)

    @property
    def cached(self) -> int:
        return sum(1 for result in self.results if result.status is CommitStatus.CACHED)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if result.status is CommitStatus.NOT_OK)

    @property
    def ok_count(self) -> int:
        return len(self.results) - self.failed

    @property
    def skipped(self) -> int:
        return self.total - len(self.results)


class RunController:
    """Drive the cache, work tree and test runner across a commit range."""

    def __init__(
        self,
        repo: GitRepository,
        options: RunOptions,
        *,
        reporter: Reporter | None = None,
        cache: ResultCache | None = None,
        worktree: WorkingTreeManager | None = None,
        runner: ShellTestRunner | None = None,
    ) -> None:
        self.repo = repo
        self.options = options
        self.reporter = reporter or Reporter()
        self.cache = cache or ResultCache(repo, options.notes_ref, dry_run=options.dry_run)
        self.worktree = worktree or WorkingTreeManager(
            repo,
            options.checkout,
            clean=options.clean,
            dry_run=options.dry_run,
        )
        self.runner = runner or ShellTestRunner(
            dry_run=options.dry_run,
            on_command=self._announce_command,
        )
        self.state = RunState.RESOLVING
        self.records: List[CommitRecord] = []
        self.cached: List[bool] = []

    def _announce_command(self, index: int, command: str) -> None:
        self.reporter.command(command, dry_run=self.options.dry_run)

    def _enter(self, state: RunState) -> None:
        LOGGER.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    def run(self) -> RunVerdict:
        self._enter(RunState.RESOLVING)
        if not self.options.tests:
            raise NoTestCommandsError(
                "no test commands configured; pass --test or set git config test.command"
            )
        commits = self.repo.resolve_range(self.options.range_expr)

        self._enter(RunState.PLANNING)
        self.records = self.repo.commit_records(commits)
        self.cached = self.cache.lookup(self.records)
        self.reporter.preview(self.records, self.cached)

        verdict = RunVerdict(total=len(self.records))
        self._enter(RunState.LOCKING)
        with self._lock():
            self._enter(RunState.PREPARING)
            self.worktree.prepare(self.records[0].commit)
            self._enter(RunState.TESTING)
            self._test_all(verdict)

        self._enter(RunState.DONE)
        self.reporter.summary(verdict, dry_run=self.options.dry_run)
        return verdict

    def _lock(self) -> ContextManager[object]:
        if self.options.dry_run:
            return contextlib.nullcontext()
        return self.worktree.lock()

    def _test_all(self, verdict: RunVerdict) -> None:
        known_good: Set[str] = {
            record.tree for record, cached in zip(self.records, self.cached) if cached
        }
        for index, record in enumerate(self.records):
            if not self.options.force and record.tree in known_good:
                verdict.results.append(CommitResult(record, CommitStatus.CACHED))
                self.reporter.ok(record, cached=True)
                continue

            failed_at = self._test_one(record)
            if failed_at is None:
                self.cache.record_success(record.tree)
                if not self.options.dry_run:
                    known_good.add(record.tree)
                verdict.results.append(CommitResult(record, CommitStatus.OK))
                self.reporter.ok(record)
                continue

            if record.tree in known_good:
                self.cache.invalidate(record.tree)
                known_good.discard(record.tree)
            verdict.results.append(CommitResult(record, CommitStatus.NOT_OK, failed_at))
            self.reporter.not_ok(record, self.options.tests[failed_at])
            if not self.options.keep_going:
                LOGGER.info("Stopping after failure at commit %d of %d", index + 1, len(self.records))
                break

    def _test_one(self, record: CommitRecord) -> Optional[int]:
        self.reporter.checkout(record, dry_run=self.options.dry_run)
        self.worktree.checkout(record.commit)
        outcome = self.runner.run(
            self.options.tests,
            self.worktree.path,
            env={"CT_COMMIT": record.commit, "CT_TREE": record.tree},
        )
        if outcome.passed:
            return None
        return outcome.failed_at_index if outcome.failed_at_index is not None else 0


__all__ = [
    "CommitResult",
    "CommitStatus",
    "RunController",
    "RunState",
    "RunVerdict",
]
