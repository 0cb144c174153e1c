"""Read-only git queries used by the review pipeline."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from shipgate.checks.process import CommandRunner, run_command

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 15.0
DEFAULT_RECENT_COMMITS = 5


@runtime_checkable
class VcsLookup(Protocol):
    """Read contract for the version-control facts the pipeline needs."""

    async def head_commit(self) -> str | None:
        """Return the current HEAD commit hash or None outside a repository."""
        ...

    async def current_branch(self) -> str | None:
        """Return the checked-out branch name or None when detached/unknown."""
        ...

    async def staged_files(self) -> list[str]:
        """Return staged added/copied/modified paths, repository-relative."""
        ...

    async def staged_diff(self) -> str:
        """Return the staged diff text."""
        ...

    async def recent_commits(self, limit: int = DEFAULT_RECENT_COMMITS) -> list[str]:
        """Return one-line summaries of the most recent commits."""
        ...


class GitClient:
    """Run git subcommands against one repository; never mutates it."""

    _repo_root: Path
    _git_bin: str
    _runner: CommandRunner

    def __init__(
        self,
        *,
        repo_root: Path,
        git_bin: str = "git",
        runner: CommandRunner | None = None,
    ) -> None:
        """Create client with optional command runner override."""
        self._repo_root = repo_root
        self._git_bin = git_bin
        self._runner = runner or run_command

    async def head_commit(self) -> str | None:
        """Return the current HEAD commit hash or None outside a repository."""
        output = await self._maybe_output("rev-parse", "HEAD")
        if output is None:
            return None
        return output.strip() or None

    async def current_branch(self) -> str | None:
        """Return the checked-out branch name or None when detached/unknown."""
        output = await self._maybe_output("rev-parse", "--abbrev-ref", "HEAD")
        if output is None:
            return None
        branch = output.strip()
        if not branch or branch == "HEAD":
            return None
        return branch

    async def staged_files(self) -> list[str]:
        """Return staged added/copied/modified paths, repository-relative."""
        output = await self._maybe_output(
            "diff",
            "--cached",
            "--name-only",
            "--diff-filter=ACM",
        )
        if output is None:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def staged_diff(self) -> str:
        """Return the staged diff text."""
        output = await self._maybe_output("diff", "--cached")
        return output or ""

    async def recent_commits(self, limit: int = DEFAULT_RECENT_COMMITS) -> list[str]:
        """Return one-line summaries of the most recent commits."""
        output = await self._maybe_output("log", f"-{limit}", "--oneline")
        if output is None:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def _maybe_output(self, *args: str) -> str | None:
        outcome = await self._runner(
            [self._git_bin, *args],
            cwd=self._repo_root,
            timeout_seconds=GIT_TIMEOUT_SECONDS,
        )
        if not outcome.passed:
            logger.debug(
                "git %s failed",
                " ".join(args),
                extra={"exit_code": outcome.exit_code, "stderr": outcome.stderr[-500:]},
            )
            return None
        return outcome.stdout
