"""Operator-facing narration of a run."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

import typer

from .tools.vcs import CommitRecord

if TYPE_CHECKING:
    from .controller import RunVerdict


class Reporter:
    """Write colored status lines with ``typer``."""

    def __init__(self, *, color: bool | None = None) -> None:
        self.color = color

    def _line(self, text: str, *, fg: str | None = None, bold: bool = False, err: bool = False) -> None:
        typer.secho(text, fg=fg, bold=bold, err=err, color=self.color)

    def preview(self, records: Sequence[CommitRecord], cached: Sequence[bool]) -> None:
        self._line(f"Testing {len(records)} commit(s):", bold=True)
        for record, is_cached in zip(records, cached):
            suffix = " (cached)" if is_cached else ""
            self._line(f"  {record.short}{suffix}")

    def checkout(self, record: CommitRecord, *, dry_run: bool) -> None:
        if dry_run:
            self._line(f"would checkout {record.commit}", fg=typer.colors.YELLOW)
        else:
            self._line(f"checking out {record.short}")

    def command(self, command: str, *, dry_run: bool) -> None:
        if dry_run:
            self._line(f"would run: {command}", fg=typer.colors.YELLOW)
        else:
            self._line(f"$ {command}", bold=True)

    def ok(self, record: CommitRecord, *, cached: bool = False) -> None:
        if cached:
            self._line(f"ok (cached) {record.short}", fg=typer.colors.CYAN)
        else:
            self._line(f"ok {record.short}", fg=typer.colors.GREEN)

    def not_ok(self, record: CommitRecord, command: str | None = None) -> None:
        detail = f" ({command})" if command else ""
        self._line(f"not ok {record.short}{detail}", fg=typer.colors.RED, bold=True)

    def note(self, message: str) -> None:
        self._line(message, fg=typer.colors.YELLOW)

    def summary(self, verdict: "RunVerdict", *, dry_run: bool = False) -> None:
        counts = (
            f"{verdict.ok_count} ok ({verdict.cached} cached), "
            f"{verdict.failed} not ok"
        )
        if verdict.skipped:
            counts += f", {verdict.skipped} not attempted"
        if verdict.success:
            self._line(f"All commits passed: {counts}", fg=typer.colors.GREEN, bold=True)
        else:
            self._line(f"Some commits failed: {counts}", fg=typer.colors.RED, bold=True)
        if dry_run:
            self.note("Dry run: nothing was checked out, run, or recorded.")

    def error(self, message: str) -> None:
        self._line(f"error: {message}", fg=typer.colors.RED, bold=True, err=True)


__all__ = ["Reporter"]
