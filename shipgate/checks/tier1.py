"""Tier 1: fast free checks (lint, typecheck, format) run concurrently."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from shipgate.checks.adapters import outcome_details, to_tool_outcome
from shipgate.checks.process import run_command
from shipgate.checks.tiers import TierResult, skipped_check
from shipgate.config.review_config import (
    DEFAULT_TIER1_TIMEOUT_SECONDS,
    resolve_check_command,
)
from shipgate.loops.models import SKIP_NOT_CONFIGURED

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from shipgate.checks.process import CommandRunner
    from shipgate.config.package_manager import PackageManagerDetector
    from shipgate.config.review_config import Tier1Config

logger = logging.getLogger(__name__)

REQUIRED_CHECKS: tuple[str, str] = ("lint", "typecheck")
NO_REQUIRED_CHECK_ERROR = "No lint or typecheck command is configured"
OPTIONAL_CHECKS: tuple[str] = ("format",)


class Tier1Runner:
    """Fan out the fast checks and fail if any of them fails."""

    _repo_root: Path
    _commands: dict[str, tuple[str, ...] | None]
    _timeout_seconds: float
    _runner: CommandRunner

    def __init__(
        self,
        *,
        repo_root: Path,
        commands: Mapping[str, Sequence[str] | None],
        timeout_seconds: float = DEFAULT_TIER1_TIMEOUT_SECONDS,
        runner: CommandRunner | None = None,
    ) -> None:
        """Create runner with resolved per-check commands."""
        self._repo_root = repo_root
        self._commands = {
            name: tuple(command) if command else None
            for name, command in commands.items()
        }
        self._timeout_seconds = timeout_seconds
        self._runner = runner or run_command

    @classmethod
    def from_config(
        cls,
        *,
        repo_root: Path,
        config: Tier1Config,
        detector: PackageManagerDetector | None,
        runner: CommandRunner | None = None,
    ) -> Tier1Runner:
        """Resolve commands from config overrides and package-manager scripts."""
        commands = {
            name: resolve_check_command(
                check_name=name,
                configured=config.commands,
                detector=detector,
            )
            for name in (*REQUIRED_CHECKS, *OPTIONAL_CHECKS)
        }
        return cls(
            repo_root=repo_root,
            commands=commands,
            timeout_seconds=config.timeout_seconds,
            runner=runner,
        )

    @property
    def check_names(self) -> tuple[str, ...]:
        """Checks this runner executes; format only when a command exists."""
        optional = tuple(name for name in OPTIONAL_CHECKS if self._commands.get(name))
        return (*REQUIRED_CHECKS, *optional)

    async def run_tier1_checks(self) -> TierResult:
        """Run every Tier 1 check concurrently and join the results."""
        started_at = time.monotonic()
        names = self.check_names
        results = await asyncio.gather(*(self._run_check(name) for name in names))
        details: dict[str, object] = dict(zip(names, results, strict=True))
        failed = [
            name
            for name, detail in zip(names, results, strict=True)
            if detail.get("status") == "fail"
        ]
        elapsed_ms = int((time.monotonic() - started_at) * 1000)
        if failed:
            logger.info("Tier 1 failed", extra={"failed_checks": failed})
        ran_required = any(self._commands.get(name) for name in REQUIRED_CHECKS)
        if not ran_required:
            logger.warning(NO_REQUIRED_CHECK_ERROR)
            details["error"] = NO_REQUIRED_CHECK_ERROR
        return TierResult(
            status="fail" if failed or not ran_required else "pass",
            elapsed_ms=elapsed_ms,
            details=details,
        )

    async def _run_check(self, name: str) -> dict[str, object]:
        command = self._commands.get(name)
        if not command:
            return skipped_check(SKIP_NOT_CONFIGURED)
        try:
            outcome = await self._runner(
                command,
                cwd=self._repo_root,
                timeout_seconds=self._timeout_seconds,
            )
        except Exception as exc:
            if isinstance(exc, asyncio.CancelledError):
                raise
            logger.exception("Tier 1 check %s crashed", name)
            return {"status": "fail", "elapsed_ms": 0, "error": str(exc)}
        return outcome_details(to_tool_outcome(name, outcome), outcome)
