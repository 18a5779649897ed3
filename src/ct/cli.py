"""Command-line entry point: test every commit in a range."""

from __future__ import annotations

import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from .config import DEFAULT_RANGE, resolve_options
from .controller import RunController
from .errors import PREFLIGHT_ERRORS, CommitTestError, TooManyArgumentsError
from .reporting import Reporter
from .tools.vcs import GitRepository

APP_HELP = (
    "Run the configured tests against every commit in RANGE (default "
    f"{DEFAULT_RANGE}), oldest first, caching successes by tree."
)

EXIT_FAILED = 1
EXIT_PREFLIGHT = 2

app = typer.Typer(help=APP_HELP, add_completion=False)


def _configure_logging(verbosity: int) -> None:
    """Route diagnostic logging to stderr at a level chosen by ``-v`` count."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _handle_sigterm(signum: int, frame: object) -> None:
    sys.exit(128 + signum)


@contextlib.contextmanager
def _exit_on_sigterm() -> Iterator[None]:
    """Turn SIGTERM into ``SystemExit`` so the work tree lock is released on unwind."""
    previous = signal.signal(signal.SIGTERM, _handle_sigterm)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


@app.command()
def main(
    revisions: Optional[List[str]] = typer.Argument(
        None,
        metavar="[RANGE]",
        help=f"Range expression of commits to test (default {DEFAULT_RANGE}).",
        show_default=False,
    ),
    test: List[str] = typer.Option(
        None,
        "--test",
        "-t",
        help="Test command to run (repeatable); replaces configured commands.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Narrate what would be done without touching the work tree or cache.",
    ),
    keep_going: bool = typer.Option(
        False,
        "--keep-going",
        "-k",
        help="Continue testing later commits after a failure.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Ignore cached results and re-test every commit.",
    ),
    checkout: Optional[Path] = typer.Option(
        None,
        "--checkout",
        "-c",
        help="Location of the auxiliary work tree (overrides test.checkout).",
    ),
    clean: Optional[bool] = typer.Option(
        None,
        "--clean/--no-clean",
        "-C",
        help="Purge untracked files from the work tree before each test (overrides test.clean).",
        show_default=False,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="YAML settings file (defaults to .ct.yaml in the repository root).",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase diagnostic logging (repeatable).",
    ),
) -> None:
    """Test each commit in RANGE and exit non-zero if any commit fails."""

    _configure_logging(verbose)
    reporter = Reporter()

    try:
        if revisions and len(revisions) > 1:
            raise TooManyArgumentsError(
                f"expected at most one range expression, got {len(revisions)}"
            )
        repo = GitRepository.discover()
        options = resolve_options(
            repo,
            range_expr=revisions[0] if revisions else None,
            tests=test or None,
            checkout=checkout,
            clean=clean,
            dry_run=dry_run,
            keep_going=keep_going,
            force=force,
            config_path=config,
        )
        with _exit_on_sigterm():
            verdict = RunController(repo, options, reporter=reporter).run()
    except PREFLIGHT_ERRORS as error:
        reporter.error(str(error))
        raise typer.Exit(code=EXIT_PREFLIGHT) from error
    except CommitTestError as error:
        reporter.error(str(error))
        raise typer.Exit(code=EXIT_FAILED) from error

    if not verdict.success:
        raise typer.Exit(code=EXIT_FAILED)


if __name__ == "__main__":
    app()
