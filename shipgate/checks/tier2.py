"""Tier 2: slow free checks run sequentially under one wall-clock budget."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from shipgate.checks.adapters import outcome_details, to_tool_outcome
from shipgate.checks.process import run_command
from shipgate.checks.tiers import TierResult, skipped_check
from shipgate.config.review_config import (
    DEFAULT_TIER2_BUDGET_SECONDS,
    DEFAULT_TIER2_STAGE_TIMEOUT_SECONDS,
    resolve_check_command,
)
from shipgate.loops.models import SKIP_NOT_CONFIGURED

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path

    from shipgate.checks.process import CommandRunner
    from shipgate.checks.secret_scanner import SecretScanner
    from shipgate.config.package_manager import PackageManagerDetector
    from shipgate.config.review_config import Tier2Config
    from shipgate.loops.models import Finding
    from shipgate.vcs.git import VcsLookup

logger = logging.getLogger(__name__)

STAGE_SECRETS = "secrets"
STAGE_BUILD = "build"
STAGE_TEST = "test"
STAGES: tuple[str, str, str] = (STAGE_SECRETS, STAGE_BUILD, STAGE_TEST)
STOPPED_AT_TIMEOUT = "timeout"
STOPPED_AT_ERROR = "error"
BUDGET_EXHAUSTED_REASON = "budget_exhausted"


class Tier2Runner:
    """Run secrets, build and test in order, stopping at the first failure."""

    _repo_root: Path
    _vcs: VcsLookup
    _scanner: SecretScanner
    _commands: dict[str, tuple[str, ...] | None]
    _budget_seconds: float
    _stage_timeout_seconds: float
    _runner: CommandRunner
    _clock: Callable[[], float]

    def __init__(  # noqa: PLR0913
        self,
        *,
        repo_root: Path,
        vcs: VcsLookup,
        scanner: SecretScanner,
        commands: Mapping[str, Sequence[str] | None],
        budget_seconds: float = DEFAULT_TIER2_BUDGET_SECONDS,
        stage_timeout_seconds: float = DEFAULT_TIER2_STAGE_TIMEOUT_SECONDS,
        runner: CommandRunner | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Create runner with stage commands and timing limits."""
        self._repo_root = repo_root
        self._vcs = vcs
        self._scanner = scanner
        self._commands = {
            name: tuple(command) if command else None
            for name, command in commands.items()
        }
        self._budget_seconds = budget_seconds
        self._stage_timeout_seconds = stage_timeout_seconds
        self._runner = runner or run_command
        self._clock = clock or time.monotonic

    @classmethod
    def from_config(  # noqa: PLR0913
        cls,
        *,
        repo_root: Path,
        config: Tier2Config,
        vcs: VcsLookup,
        scanner: SecretScanner,
        detector: PackageManagerDetector | None,
        runner: CommandRunner | None = None,
    ) -> Tier2Runner:
        """Resolve build/test commands from config and package-manager scripts."""
        commands = {
            name: resolve_check_command(
                check_name=name,
                configured=config.commands,
                detector=detector,
            )
            for name in (STAGE_BUILD, STAGE_TEST)
        }
        return cls(
            repo_root=repo_root,
            vcs=vcs,
            scanner=scanner,
            commands=commands,
            budget_seconds=config.budget_seconds,
            stage_timeout_seconds=config.stage_timeout_seconds,
            runner=runner,
        )

    async def run_tier2_checks(self) -> TierResult:
        """Run the slow stages fail-fast and report where the run stopped."""
        started_at = self._clock()
        details: dict[str, object] = {}
        findings: list[Finding] = []
        stopped_at: str | None

        try:
            staged_files = await self._vcs.staged_files()
        except Exception as exc:
            if isinstance(exc, asyncio.CancelledError):
                raise
            logger.exception("Unable to list staged files for Tier 2")
            details[STAGE_SECRETS] = {"status": "fail", "error": str(exc)}
            stopped_at = STOPPED_AT_ERROR
        else:
            stopped_at = await self._run_stages(
                started_at=started_at,
                staged_files=staged_files,
                details=details,
                findings=findings,
            )

        elapsed_ms = int((self._clock() - started_at) * 1000)
        if stopped_at is not None:
            logger.info("Tier 2 stopped", extra={"stopped_at": stopped_at})
        return TierResult(
            status="fail" if stopped_at is not None else "pass",
            elapsed_ms=max(elapsed_ms, 0),
            details=details,
            stopped_at=stopped_at,
            findings=tuple(findings),
        )

    async def _run_stages(
        self,
        *,
        started_at: float,
        staged_files: list[str],
        details: dict[str, object],
        findings: list[Finding],
    ) -> str | None:
        for stage in STAGES:
            remaining = self._budget_seconds - (self._clock() - started_at)
            timeout_seconds = min(self._stage_timeout_seconds, remaining)
            if timeout_seconds <= 0:
                details[stage] = skipped_check(BUDGET_EXHAUSTED_REASON)
                return STOPPED_AT_TIMEOUT
            try:
                stage_details, stage_findings = await self._run_stage(
                    stage,
                    staged_files=staged_files,
                    timeout_seconds=timeout_seconds,
                )
            except Exception as exc:
                if isinstance(exc, asyncio.CancelledError):
                    raise
                logger.exception("Tier 2 stage %s crashed", stage)
                details[stage] = {"status": "fail", "error": str(exc)}
                return STOPPED_AT_ERROR
            details[stage] = stage_details
            findings.extend(stage_findings)
            if stage_details.get("status") == "fail":
                if stage_details.get("timed_out"):
                    return STOPPED_AT_TIMEOUT
                return stage
        return None

    async def _run_stage(
        self,
        stage: str,
        *,
        staged_files: list[str],
        timeout_seconds: float,
    ) -> tuple[dict[str, object], list[Finding]]:
        if stage == STAGE_SECRETS:
            return await self._run_secret_scan(
                staged_files=staged_files,
                timeout_seconds=timeout_seconds,
            )
        command = self._commands.get(stage)
        if not command:
            return skipped_check(SKIP_NOT_CONFIGURED), []
        outcome = await self._runner(
            command,
            cwd=self._repo_root,
            timeout_seconds=timeout_seconds,
        )
        return outcome_details(to_tool_outcome(stage, outcome), outcome), []

    async def _run_secret_scan(
        self,
        *,
        staged_files: list[str],
        timeout_seconds: float,
    ) -> tuple[dict[str, object], list[Finding]]:
        started_at = self._clock()
        try:
            result = await asyncio.wait_for(
                self._scanner.scan_files(staged_files),
                timeout=timeout_seconds,
            )
        except TimeoutError:
            return {
                "status": "fail",
                "timed_out": True,
                "elapsed_ms": int((self._clock() - started_at) * 1000),
                "error": f"secret scan timed out after {timeout_seconds:.1f}s",
            }, []
        return {
            "status": result.status,
            "elapsed_ms": int((self._clock() - started_at) * 1000),
            "scanned_files": result.scanned_files,
            "skipped_files": result.skipped_files,
            "matches": len(result.matches),
        }, list(result.matches)
