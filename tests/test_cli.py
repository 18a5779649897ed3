from __future__ import annotations

import signal
from pathlib import Path

import pytest
from typer.testing import CliRunner

from ct.cli import EXIT_FAILED, EXIT_PREFLIGHT, _exit_on_sigterm, _handle_sigterm, app
from ct.tools.worktree import WorktreeLock


@pytest.fixture()
def cli(topic_repo, monkeypatch) -> CliRunner:
    monkeypatch.chdir(topic_repo.root)
    return CliRunner()


def test_passing_range_exits_zero(cli, topic_repo) -> None:
    result = cli.invoke(app, ["-t", "true"], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Testing 3 commit(s):" in result.output
    assert result.output.count("ok ") >= 3
    assert "All commits passed: 3 ok (0 cached), 0 not ok" in result.output
    assert (topic_repo.root / ".git" / "ct-worktree" / "value.txt").exists()


def test_second_invocation_reports_cached(cli, topic_repo) -> None:
    cli.invoke(app, ["-t", "true"], catch_exceptions=False)

    result = cli.invoke(app, ["master..HEAD", "--test", "false"], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert result.output.count("ok (cached)") == 3


def test_failing_command_exits_non_zero(cli, topic_repo) -> None:
    result = cli.invoke(app, ["-t", "false"], catch_exceptions=False)

    assert result.exit_code == EXIT_FAILED
    assert f"not ok {topic_repo.commits[0][:10]} (false)" in result.output
    assert "2 not attempted" in result.output


def test_keep_going_and_force_flags(cli, topic_repo) -> None:
    cli.invoke(app, ["-t", "true"], catch_exceptions=False)
    second = topic_repo.commits[1]

    result = cli.invoke(
        app,
        ["-k", "-f", "-t", f'test "$CT_COMMIT" != {second}'],
        catch_exceptions=False,
    )

    assert result.exit_code == EXIT_FAILED
    assert "Some commits failed: 2 ok (0 cached), 1 not ok" in result.output


def test_configured_commands_are_used(cli, topic_repo) -> None:
    topic_repo.repo.git("config", "test.command", "echo configured-command-ran")

    result = cli.invoke(app, [], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert result.output.count("configured-command-ran") >= 3


def test_checkout_option_overrides_location(cli, topic_repo, tmp_path: Path) -> None:
    target = tmp_path / "elsewhere"

    result = cli.invoke(app, ["-t", "true", "-c", str(target)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert (target / "value.txt").exists()
    assert not (topic_repo.root / ".git" / "ct-worktree").exists()


def test_dry_run_narrates_only(cli, topic_repo) -> None:
    result = cli.invoke(app, ["-n", "-t", "make test"], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert result.output.count("would run: make test") == 3
    assert "Dry run" in result.output
    assert not (topic_repo.root / ".git" / "ct-worktree").exists()


def test_too_many_arguments(cli) -> None:
    result = cli.invoke(app, ["-t", "true", "HEAD~1..HEAD", "HEAD~2..HEAD"])

    assert result.exit_code == EXIT_PREFLIGHT
    assert "at most one range expression" in result.output


def test_missing_commands(cli) -> None:
    result = cli.invoke(app, [])

    assert result.exit_code == EXIT_PREFLIGHT
    assert "no test commands configured" in result.output


def test_empty_range(cli, topic_repo) -> None:
    result = cli.invoke(app, ["-t", "true", "HEAD..HEAD"])

    assert result.exit_code == EXIT_PREFLIGHT
    assert "no commits to test" in result.output
    assert not (topic_repo.root / ".git" / "ct-worktree").exists()


def test_lock_held(cli, topic_repo) -> None:
    with WorktreeLock(topic_repo.root / ".git" / "ct-worktree"):
        result = cli.invoke(app, ["-t", "true"])

    assert result.exit_code == EXIT_PREFLIGHT
    assert "locked" in result.output


def test_help_exits_zero(cli) -> None:
    result = cli.invoke(app, ["--help"])

    assert result.exit_code == 0
    assert "--keep-going" in result.output
    assert "--checkout" in result.output


def test_module_entry_point(topic_repo) -> None:
    process = topic_repo.run_cli("-t", "true", "HEAD~1..HEAD")

    assert process.returncode == 0, process.stderr
    assert "All commits passed" in process.stdout


def test_no_clean_overrides_configured_clean(cli, topic_repo) -> None:
    topic_repo.repo.git("config", "test.clean", "true")
    cli.invoke(app, ["-t", "true"], catch_exceptions=False)
    stray = topic_repo.root / ".git" / "ct-worktree" / "stray.txt"
    stray.write_text("keep\n", encoding="utf-8")

    result = cli.invoke(app, ["-f", "--no-clean", "-t", "true"], catch_exceptions=False)
    assert result.exit_code == 0, result.output
    assert stray.exists()

    result = cli.invoke(app, ["-f", "-t", "true"], catch_exceptions=False)
    assert result.exit_code == 0, result.output
    assert not stray.exists()


def test_sigterm_becomes_system_exit() -> None:
    with pytest.raises(SystemExit) as excinfo:
        _handle_sigterm(signal.SIGTERM, None)

    assert excinfo.value.code == 128 + signal.SIGTERM


def test_sigterm_handler_is_restored_after_run() -> None:
    previous = signal.getsignal(signal.SIGTERM)
    with _exit_on_sigterm():
        assert signal.getsignal(signal.SIGTERM) is _handle_sigterm

    assert signal.getsignal(signal.SIGTERM) == previous
