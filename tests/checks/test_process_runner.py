"""Tests for child-process execution with timeout escalation."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import pytest

from shipgate.checks import run_command

if TYPE_CHECKING:
    from pathlib import Path


@pytest.mark.asyncio
async def test_run_command_captures_exit_code_and_output(tmp_path: Path) -> None:
    """Ensure stdout, stderr and exit status are captured."""
    outcome = await run_command(
        [
            sys.executable,
            "-c",
            "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)",
        ],
        cwd=tmp_path,
        timeout_seconds=10,
    )

    if outcome.exit_code != 3 or outcome.passed:
        raise AssertionError
    if outcome.stdout.strip() != "out" or outcome.stderr.strip() != "err":
        raise AssertionError
    if outcome.merged_output != "out\nerr":
        raise AssertionError


@pytest.mark.asyncio
async def test_run_command_passes_on_zero_exit(tmp_path: Path) -> None:
    """Ensure a clean exit is reported as passed."""
    outcome = await run_command(
        [sys.executable, "-c", "pass"],
        cwd=tmp_path,
        timeout_seconds=10,
    )
    if not outcome.passed or outcome.timed_out:
        raise AssertionError


@pytest.mark.asyncio
async def test_run_command_terminates_on_timeout(tmp_path: Path) -> None:
    """Ensure an overrunning command is stopped and marked timed out."""
    outcome = await run_command(
        [sys.executable, "-c", "import time; time.sleep(30)"],
        cwd=tmp_path,
        timeout_seconds=0.5,
    )

    if not outcome.timed_out or outcome.passed:
        raise AssertionError
    if outcome.elapsed_ms >= 10_000:
        raise AssertionError


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
async def test_run_command_kills_process_ignoring_sigterm(tmp_path: Path) -> None:
    """Ensure SIGTERM-ignoring processes are killed after the grace window."""
    script = (
        "import signal, sys, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(30)\n"
    )
    outcome = await run_command(
        [sys.executable, "-c", script],
        cwd=tmp_path,
        timeout_seconds=1.0,
        grace_seconds=0.5,
    )

    if not outcome.timed_out:
        raise AssertionError
    if outcome.exit_code is None or outcome.exit_code >= 0:
        raise AssertionError
    if outcome.elapsed_ms >= 10_000:
        raise AssertionError


@pytest.mark.asyncio
async def test_missing_executable_is_a_spawn_error(tmp_path: Path) -> None:
    """Ensure a missing tool is reported, not raised."""
    outcome = await run_command(
        ["definitely-not-a-real-tool-xyz"],
        cwd=tmp_path,
        timeout_seconds=5,
    )

    if outcome.spawn_error is None or outcome.passed:
        raise AssertionError
