"""Tests for read-only git queries."""

from __future__ import annotations

import shutil
import subprocess
from typing import TYPE_CHECKING

import pytest

from shipgate.vcs.git import GitClient, VcsLookup
from tests.mocks.fake_collaborators import make_outcome

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from shipgate.checks.process import CommandOutcome


class _ArgvRunner:
    """Return outcomes keyed by the git subcommand arguments."""

    def __init__(self, responses: dict[tuple[str, ...], CommandOutcome]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, ...]] = []

    async def __call__(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
    ) -> CommandOutcome:
        _ = (cwd, timeout_seconds)
        args = tuple(command[1:])
        self.calls.append(args)
        return self.responses.get(args, make_outcome(command, exit_code=128))


@pytest.mark.asyncio
async def test_client_parses_git_output(tmp_path: Path) -> None:
    """Ensure each query trims and splits git's output."""
    runner = _ArgvRunner(
        {
            ("rev-parse", "HEAD"): make_outcome(stdout="deadbeef\n"),
            ("rev-parse", "--abbrev-ref", "HEAD"): make_outcome(stdout="feat/x\n"),
            ("diff", "--cached", "--name-only", "--diff-filter=ACM"): make_outcome(
                stdout="src/a.ts\n\nsrc/b.ts\n",
            ),
            ("diff", "--cached"): make_outcome(stdout="diff --git a b\n"),
            ("log", "-2", "--oneline"): make_outcome(stdout="aaa one\nbbb two\n"),
        },
    )
    client = GitClient(repo_root=tmp_path, runner=runner)

    if await client.head_commit() != "deadbeef":
        raise AssertionError
    if await client.current_branch() != "feat/x":
        raise AssertionError
    if await client.staged_files() != ["src/a.ts", "src/b.ts"]:
        raise AssertionError
    if await client.staged_diff() != "diff --git a b\n":
        raise AssertionError
    if await client.recent_commits(2) != ["aaa one", "bbb two"]:
        raise AssertionError


@pytest.mark.asyncio
async def test_client_degrades_outside_repository(tmp_path: Path) -> None:
    """Ensure failing git calls map to None or empty results."""
    client = GitClient(repo_root=tmp_path, runner=_ArgvRunner({}))

    if await client.head_commit() is not None:
        raise AssertionError
    if await client.current_branch() is not None:
        raise AssertionError
    if await client.staged_files() != [] or await client.staged_diff() != "":
        raise AssertionError
    if await client.recent_commits() != []:
        raise AssertionError


@pytest.mark.asyncio
async def test_detached_head_has_no_branch(tmp_path: Path) -> None:
    """Ensure a detached HEAD reports no branch name."""
    runner = _ArgvRunner(
        {("rev-parse", "--abbrev-ref", "HEAD"): make_outcome(stdout="HEAD\n")},
    )

    branch = await GitClient(repo_root=tmp_path, runner=runner).current_branch()

    if branch is not None:
        raise AssertionError


def test_git_client_satisfies_lookup_protocol(tmp_path: Path) -> None:
    """Ensure GitClient is accepted wherever a VcsLookup is expected."""
    if not isinstance(GitClient(repo_root=tmp_path), VcsLookup):
        raise AssertionError


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
@pytest.mark.asyncio
async def test_client_against_real_repository(tmp_path: Path) -> None:
    """Ensure staged files and HEAD are read from a real repository."""
    git = shutil.which("git") or "git"

    def run_git(*args: str) -> None:
        _ = subprocess.run(  # noqa: S603
            [git, "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
            cwd=tmp_path,
            check=True,
            capture_output=True,
        )

    run_git("init", "-q")
    _ = (tmp_path / "README.md").write_text("hello\n", encoding="utf-8")
    run_git("add", "README.md")
    run_git("commit", "-q", "-m", "initial")
    _ = (tmp_path / "app.ts").write_text("export {};\n", encoding="utf-8")
    run_git("add", "app.ts")

    client = GitClient(repo_root=tmp_path, git_bin=git)
    head = await client.head_commit()

    if head is None or len(head) < 40:
        raise AssertionError
    if await client.staged_files() != ["app.ts"]:
        raise AssertionError
    commits = await client.recent_commits()
    if len(commits) != 1 or not commits[0].endswith("initial"):
        raise AssertionError
