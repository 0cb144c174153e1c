"""Tests for concurrent Tier 1 checks."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from shipgate.checks import Tier1Runner
from shipgate.config import PackageManagerDetector, Tier1Config
from tests.mocks.fake_collaborators import make_outcome

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from shipgate.checks import CommandOutcome
    from tests.mocks.fake_collaborators import ScriptedRunner

COMMANDS = {
    "lint": ["npm", "run", "lint"],
    "typecheck": ["npm", "run", "typecheck"],
}


@pytest.mark.asyncio
async def test_lint_failure_fails_tier_but_reports_every_check(
    tmp_path: Path,
    scripted_runner: ScriptedRunner,
) -> None:
    """Ensure one failing check does not hide the others' results."""
    scripted_runner.outcomes["lint"] = make_outcome(
        ("npm", "run", "lint"),
        exit_code=1,
        stdout="✖ 3 problems (2 errors, 1 warning)",
    )
    runner = Tier1Runner(repo_root=tmp_path, commands=COMMANDS, runner=scripted_runner)

    result = await runner.run_tier1_checks()

    if result.status != "fail":
        raise AssertionError
    lint = result.details["lint"]
    typecheck = result.details["typecheck"]
    if not isinstance(lint, dict) or not isinstance(typecheck, dict):
        raise AssertionError
    if lint["status"] != "fail" or typecheck["status"] != "pass":
        raise AssertionError
    if lint["summary"] != {"problems": 3, "errors": 2, "warnings": 1}:
        raise AssertionError
    if "format" in result.details:
        raise AssertionError


@pytest.mark.asyncio
async def test_format_runs_only_when_configured(
    tmp_path: Path,
    scripted_runner: ScriptedRunner,
) -> None:
    """Ensure the optional format check joins the fan-out when available."""
    commands = {**COMMANDS, "format": ["npm", "run", "format:check"]}
    runner = Tier1Runner(repo_root=tmp_path, commands=commands, runner=scripted_runner)

    result = await runner.run_tier1_checks()

    if result.status != "pass":
        raise AssertionError
    if runner.check_names != ("lint", "typecheck", "format"):
        raise AssertionError
    if not scripted_runner.called("format:check"):
        raise AssertionError


@pytest.mark.asyncio
async def test_unresolvable_command_is_skipped_not_failed(
    tmp_path: Path,
    scripted_runner: ScriptedRunner,
) -> None:
    """Ensure a missing typecheck script is reported as not configured."""
    runner = Tier1Runner(
        repo_root=tmp_path,
        commands={"lint": ["npm", "run", "lint"], "typecheck": None},
        runner=scripted_runner,
    )

    result = await runner.run_tier1_checks()

    if result.status != "pass":
        raise AssertionError
    if result.details["typecheck"] != {
        "status": "skip",
        "reason": "not_configured",
        "elapsed_ms": 0,
    }:
        raise AssertionError


@pytest.mark.asyncio
async def test_tier_fails_when_no_required_check_is_configured(
    tmp_path: Path,
    scripted_runner: ScriptedRunner,
) -> None:
    """Ensure Tier 1 cannot pass when neither lint nor typecheck can run."""
    runner = Tier1Runner(
        repo_root=tmp_path,
        commands={"lint": None, "typecheck": None, "format": ["npm", "run", "format"]},
        runner=scripted_runner,
    )

    result = await runner.run_tier1_checks()

    if result.status != "fail":
        raise AssertionError
    if result.details["error"] != "No lint or typecheck command is configured":
        raise AssertionError
    if scripted_runner.calls != [("npm", "run", "format")]:
        raise AssertionError


@pytest.mark.asyncio
async def test_checks_run_concurrently(tmp_path: Path) -> None:
    """Ensure both checks are in flight at the same time."""
    in_flight = 0
    peak = 0

    async def slow_runner(
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
    ) -> CommandOutcome:
        nonlocal in_flight, peak
        _ = (cwd, timeout_seconds)
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return make_outcome(command)

    runner = Tier1Runner(repo_root=tmp_path, commands=COMMANDS, runner=slow_runner)
    _ = await runner.run_tier1_checks()

    if peak != 2:
        raise AssertionError


@pytest.mark.asyncio
async def test_timeout_is_a_failure_with_details(
    tmp_path: Path,
    scripted_runner: ScriptedRunner,
) -> None:
    """Ensure a timed-out check fails the tier and records the timeout."""
    scripted_runner.outcomes["typecheck"] = make_outcome(
        ("npm", "run", "typecheck"),
        exit_code=-15,
        timed_out=True,
    )
    runner = Tier1Runner(
        repo_root=tmp_path,
        commands=COMMANDS,
        timeout_seconds=30,
        runner=scripted_runner,
    )

    result = await runner.run_tier1_checks()

    typecheck = result.details["typecheck"]
    if result.status != "fail" or not isinstance(typecheck, dict):
        raise AssertionError
    if typecheck.get("timed_out") is not True:
        raise AssertionError
    if set(scripted_runner.timeouts) != {30}:
        raise AssertionError


@pytest.mark.asyncio
async def test_from_config_resolves_detected_scripts(
    tmp_path: Path,
    scripted_runner: ScriptedRunner,
) -> None:
    """Ensure config overrides win and package.json scripts fill the rest."""
    _ = (tmp_path / "package.json").write_text(
        '{"scripts": {"lint": "eslint .", "typecheck": "tsc --noEmit"}}',
        encoding="utf-8",
    )
    _ = (tmp_path / "pnpm-lock.yaml").write_text("", encoding="utf-8")
    runner = Tier1Runner.from_config(
        repo_root=tmp_path,
        config=Tier1Config(commands={"lint": ["biome", "lint"]}),
        detector=PackageManagerDetector(repo_root=tmp_path),
        runner=scripted_runner,
    )

    _ = await runner.run_tier1_checks()

    if sorted(scripted_runner.calls) != [
        ("biome", "lint"),
        ("pnpm", "run", "typecheck"),
    ]:
        raise AssertionError
