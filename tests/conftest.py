from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ct.tools.vcs import GitRepository  # noqa: E402


@dataclass(slots=True)
class TopicRepo:
    """Fixture payload: a ``master`` base plus a ``topic`` branch of commits."""

    root: Path
    repo: GitRepository
    commits: List[str] = field(default_factory=list)

    def run_git(self, *args: str) -> str:
        process = subprocess.run(
            ["git", *args],
            cwd=self.root,
            check=True,
            capture_output=True,
            text=True,
        )
        return process.stdout.strip()

    def commit_file(self, name: str, content: str, message: str | None = None) -> str:
        """Write ``name`` and commit it, returning the new commit id."""

        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        self.run_git("add", name)
        self.run_git("commit", "-q", "-m", message or f"Update {name}")
        sha = self.run_git("rev-parse", "HEAD")
        self.commits.append(sha)
        return sha

    def commit_empty(self, message: str = "Empty commit") -> str:
        self.run_git("commit", "-q", "--allow-empty", "-m", message)
        sha = self.run_git("rev-parse", "HEAD")
        self.commits.append(sha)
        return sha

    def tree_of(self, commit: str) -> str:
        return self.run_git("rev-parse", f"{commit}^{{tree}}")

    def note_for(self, obj: str, notes_ref: str = "refs/notes/tests") -> str | None:
        process = subprocess.run(
            ["git", "notes", f"--ref={notes_ref}", "show", obj],
            cwd=self.root,
            check=False,
            capture_output=True,
            text=True,
        )
        return process.stdout.strip() if process.returncode == 0 else None

    def run_cli(self, *args: str) -> subprocess.CompletedProcess[str]:
        """Invoke ``python -m ct.cli`` inside the repository."""

        env = os.environ.copy()
        pythonpath = str(SRC)
        if env.get("PYTHONPATH"):
            pythonpath = os.pathsep.join([pythonpath, env["PYTHONPATH"]])
        env["PYTHONPATH"] = pythonpath

        command = [sys.executable, "-m", "ct.cli", *args]
        return subprocess.run(  # noqa: S603 - command constructed from known values
            command,
            cwd=self.root,
            env=env,
            capture_output=True,
            text=True,
            check=False,
        )


@pytest.fixture()
def topic_repo(tmp_path: Path) -> TopicRepo:
    """Create a repository whose ``master..HEAD`` range holds three commits."""

    root = tmp_path / "repo"
    root.mkdir()

    def run_git(*cmd: str) -> None:
        subprocess.run(
            ["git", *cmd],
            cwd=root,
            check=True,
            capture_output=True,
            text=True,
        )

    run_git("init", "--initial-branch=master")
    run_git("config", "user.email", "tester@example.com")
    run_git("config", "user.name", "Commit Tester")
    run_git("config", "commit.gpgsign", "false")
    run_git("commit", "--allow-empty", "-q", "-m", "Initial commit")

    repo = GitRepository(root)
    fixture = TopicRepo(root=repo.root, repo=repo)
    fixture.commit_file("README.txt", "base\n", "Base")
    fixture.commits.clear()

    fixture.run_git("checkout", "-q", "-b", "topic")
    fixture.commit_file("value.txt", "1\n", "First")
    fixture.commit_file("value.txt", "2\n", "Second")
    fixture.commit_file("value.txt", "3\n", "Third")
    return fixture


@dataclass(slots=True)
class RunLog:
    """File that test commands append ``$CT_COMMIT`` to, one line per run."""

    path: Path

    @property
    def command(self) -> str:
        return f'echo "$CT_COMMIT" >> "{self.path.as_posix()}"'

    def entries(self) -> List[str]:
        if not self.path.exists():
            return []
        return [line for line in self.path.read_text(encoding="utf-8").splitlines() if line]


@pytest.fixture()
def run_log(tmp_path: Path) -> RunLog:
    return RunLog(tmp_path / "runs.log")
