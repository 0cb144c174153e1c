"""In-memory VCS and scripted command runner for pipeline tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shipgate.checks.process import CommandOutcome

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path


@dataclass(slots=True)
class FakeVcs:
    """Stand-in for the read-only git queries."""

    head: str | None = "abc123"
    branch: str | None = "feature/login-form"
    staged: list[str] = field(default_factory=list)
    diff: str = ""
    commits: list[str] = field(default_factory=list)

    async def head_commit(self) -> str | None:
        """Return configured head."""
        return self.head

    async def current_branch(self) -> str | None:
        """Return configured branch."""
        return self.branch

    async def staged_files(self) -> list[str]:
        """Return configured staged paths."""
        return list(self.staged)

    async def staged_diff(self) -> str:
        """Return configured diff."""
        return self.diff

    async def recent_commits(self, limit: int = 5) -> list[str]:
        """Return configured commit summaries."""
        return list(self.commits[:limit])


@dataclass(slots=True)
class ScriptedRunner:
    """Command runner returning canned outcomes keyed by the command's last word."""

    outcomes: dict[str, CommandOutcome] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)
    timeouts: list[float] = field(default_factory=list)

    async def __call__(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
    ) -> CommandOutcome:
        """Record the call and return the scripted outcome (pass by default)."""
        _ = cwd
        argv = tuple(command)
        self.calls.append(argv)
        self.timeouts.append(timeout_seconds)
        scripted = self.outcomes.get(argv[-1])
        if scripted is not None:
            return scripted
        return make_outcome(argv)

    def called(self, word: str) -> bool:
        """Return True when any call ended with `word`."""
        return any(call[-1] == word for call in self.calls)


def make_outcome(
    command: Sequence[str] = ("tool",),
    *,
    exit_code: int | None = 0,
    stdout: str = "",
    stderr: str = "",
    timed_out: bool = False,
) -> CommandOutcome:
    """Build a CommandOutcome with test-friendly defaults."""
    return CommandOutcome(
        command=tuple(command),
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        elapsed_ms=5,
        timed_out=timed_out,
    )
