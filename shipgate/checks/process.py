"""Child-process execution with timeout and terminate-then-kill escalation."""

from __future__ import annotations

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_GRACE_SECONDS = 2.0


@dataclass(frozen=True, slots=True)
class CommandOutcome:
    """Captured result of one child process run."""

    command: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    elapsed_ms: int
    timed_out: bool = False
    spawn_error: str | None = None

    @property
    def passed(self) -> bool:
        """A run passes only on a clean zero exit within its timeout."""
        return self.exit_code == 0 and not self.timed_out and self.spawn_error is None

    @property
    def merged_output(self) -> str:
        """Stdout and stderr joined the way a terminal would show them."""
        return "\n".join(
            chunk for chunk in (self.stdout.strip(), self.stderr.strip()) if chunk
        )


class CommandRunner(Protocol):
    """Callable contract for executing one external command."""

    async def __call__(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
    ) -> CommandOutcome:
        """Run `command` in `cwd` and return its captured outcome."""
        ...


async def run_command(
    command: Sequence[str],
    *,
    cwd: Path,
    timeout_seconds: float,
    grace_seconds: float = DEFAULT_GRACE_SECONDS,
) -> CommandOutcome:
    """Run a command, terminating it (then killing it) when it overruns."""
    argv = tuple(command)
    rendered = shlex.join(argv)
    logger.debug("Starting command", extra={"command": rendered, "cwd": str(cwd)})
    started_at = time.monotonic()
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        logger.warning("Unable to start command %s: %s", rendered, exc)
        return CommandOutcome(
            command=argv,
            exit_code=None,
            stdout="",
            stderr="",
            elapsed_ms=_elapsed_ms(started_at),
            spawn_error=f"Unable to start {argv[0] if argv else '<empty>'}: {exc}",
        )

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        logger.warning(
            "Command timed out after %.1fs: %s",
            timeout_seconds,
            rendered,
        )
        await terminate_process(process, grace_seconds=grace_seconds)
        return CommandOutcome(
            command=argv,
            exit_code=process.returncode,
            stdout="",
            stderr="",
            elapsed_ms=_elapsed_ms(started_at),
            timed_out=True,
        )
    except asyncio.CancelledError:
        _kill_quietly(process)
        raise

    outcome = CommandOutcome(
        command=argv,
        exit_code=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        elapsed_ms=_elapsed_ms(started_at),
    )
    logger.debug(
        "Command finished",
        extra={"command": rendered, "exit_code": outcome.exit_code},
    )
    return outcome


async def terminate_process(
    process: asyncio.subprocess.Process,
    *,
    grace_seconds: float = DEFAULT_GRACE_SECONDS,
) -> None:
    """Send SIGTERM, wait out the grace window, then SIGKILL if still alive."""
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        _ = await asyncio.wait_for(process.wait(), timeout=grace_seconds)
    except TimeoutError:
        logger.warning("Process %s ignored SIGTERM; killing", process.pid)
        _kill_quietly(process)
        _ = await process.wait()


def _kill_quietly(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return


def _elapsed_ms(started_at: float) -> int:
    return int((time.monotonic() - started_at) * 1000)
