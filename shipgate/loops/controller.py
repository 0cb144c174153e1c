"""Four-loop review run: free tiers, reviewer, external review, decision."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from shipgate.checks.secret_scanner import SecretScanner
from shipgate.checks.tier1 import Tier1Runner
from shipgate.checks.tier2 import Tier2Runner
from shipgate.config.logging import run_id
from shipgate.config.package_manager import PackageManagerDetector
from shipgate.loops.decision import build_loop_state
from shipgate.loops.models import (
    LOOP_EXTERNAL,
    LOOP_REVIEWER,
    LOOP_TIER1,
    LOOP_TIER2,
    SKIP_FLAG,
    LoopResult,
)
from shipgate.ratelimit.tracker import RateLimitTracker
from shipgate.review.external import ExternalReviewRunner
from shipgate.review.reviewer_adapter import (
    build_review_prompt,
    load_review_context,
    parse_reviewer_output,
)
from shipgate.storage.loop_state_store import LoopStateStore
from shipgate.vcs.git import GitClient

if TYPE_CHECKING:
    from pathlib import Path

    from shipgate.checks.process import CommandRunner
    from shipgate.config.review_config import ReviewConfig
    from shipgate.config.settings import AppSettings
    from shipgate.loops.models import LoopState
    from shipgate.loops.scope import ReviewScope
    from shipgate.vcs.git import VcsLookup

logger = logging.getLogger(__name__)

TimeProvider = Callable[[], datetime]
RunIdFactory = Callable[[], str]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _default_run_id() -> str:
    return str(uuid4())


class NoReviewStateError(RuntimeError):
    """Raised when reviewer output arrives without a usable review run."""

    @classmethod
    def for_missing_state(cls) -> NoReviewStateError:
        """Build error for a missing, corrupted or stale state file."""
        message = "No current review state found; run `shipgate review` first."
        return cls(message)

    @classmethod
    def for_missing_reviewer_loop(cls) -> NoReviewStateError:
        """Build error for a run that never reached the reviewer loop."""
        message = (
            "The last review run did not reach the reviewer loop; "
            "fix the free-check failures and run `shipgate review` again."
        )
        return cls(message)


@dataclass(frozen=True, slots=True)
class LoopRunReport:
    """Outcome of one controller run as shown to the caller."""

    state: LoopState
    persisted: bool
    warnings: tuple[str, ...] = ()
    review_prompt: str | None = None


class LoopController:
    """Drive the loops in order, gate each transition, persist the result."""

    _repo_root: Path
    _config: ReviewConfig
    _vcs: VcsLookup
    _store: LoopStateStore
    _tier1: Tier1Runner
    _tier2: Tier2Runner
    _external: ExternalReviewRunner
    _time_provider: TimeProvider
    _run_id_factory: RunIdFactory

    def __init__(  # noqa: PLR0913
        self,
        *,
        repo_root: Path,
        config: ReviewConfig,
        vcs: VcsLookup,
        store: LoopStateStore,
        tier1: Tier1Runner,
        tier2: Tier2Runner,
        external: ExternalReviewRunner,
        time_provider: TimeProvider | None = None,
        run_id_factory: RunIdFactory | None = None,
    ) -> None:
        """Create controller from its collaborators."""
        self._repo_root = repo_root
        self._config = config
        self._vcs = vcs
        self._store = store
        self._tier1 = tier1
        self._tier2 = tier2
        self._external = external
        self._time_provider = time_provider or _utc_now
        self._run_id_factory = run_id_factory or _default_run_id

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        config: ReviewConfig,
        runner: CommandRunner | None = None,
    ) -> LoopController:
        """Wire the default git, package-manager and file-backed collaborators."""
        repo_root = settings.repo_root
        vcs = GitClient(repo_root=repo_root, git_bin=settings.git_bin, runner=runner)
        detector = PackageManagerDetector(repo_root=repo_root)
        tracker = RateLimitTracker(
            state_path=settings.rate_limit_path,
            limit_per_hour=config.external.limit_per_hour,
        )
        return cls(
            repo_root=repo_root,
            config=config,
            vcs=vcs,
            store=LoopStateStore(path=settings.loop_state_path, vcs=vcs),
            tier1=Tier1Runner.from_config(
                repo_root=repo_root,
                config=config.tier1,
                detector=detector,
                runner=runner,
            ),
            tier2=Tier2Runner.from_config(
                repo_root=repo_root,
                config=config.tier2,
                vcs=vcs,
                scanner=SecretScanner(repo_root=repo_root),
                detector=detector,
                runner=runner,
            ),
            external=ExternalReviewRunner(
                repo_root=repo_root,
                config=config.external,
                tracker=tracker,
                runner=runner,
            ),
        )

    async def run(
        self,
        *,
        scope: ReviewScope,
        reviewer_output: str | None = None,
    ) -> LoopRunReport:
        """Run the loops selected by `scope` and save the derived decision."""
        token = run_id.set(self._run_id_factory())
        try:
            logger.info("Review run started", extra={"scope": str(scope.name)})
            _ = await self._store.load_current()
            loops, review_prompt = await self._run_loops(
                scope=scope,
                reviewer_output=reviewer_output,
            )
            report = await self._finish(loops=loops, review_prompt=review_prompt)
            logger.info(
                "Review run finished",
                extra={
                    "ship_allowed": report.state.ship_allowed,
                    "loops": list(report.state.loops),
                },
            )
            return report
        finally:
            run_id.reset(token)

    async def apply_reviewer_output(self, raw: str) -> LoopRunReport:
        """Record reviewer output against the current state and re-decide."""
        token = run_id.set(self._run_id_factory())
        try:
            state = await self._store.load_current()
            if state is None:
                raise NoReviewStateError.for_missing_state()
            if LOOP_REVIEWER not in state.loops:
                raise NoReviewStateError.for_missing_reviewer_loop()
            loops = dict(state.loops)
            loops[LOOP_REVIEWER] = reviewer_result(raw, elapsed_ms=0)
            return await self._finish(loops=loops, review_prompt=None)
        finally:
            run_id.reset(token)

    async def _run_loops(
        self,
        *,
        scope: ReviewScope,
        reviewer_output: str | None,
    ) -> tuple[dict[str, LoopResult], str | None]:
        loops: dict[str, LoopResult] = {}

        tier1 = await self._tier1.run_tier1_checks()
        loops[LOOP_TIER1] = tier1.to_loop_result()
        if tier1.status == "fail" and not scope.free_only:
            logger.info("Halting after Tier 1 failure")
            return loops, None

        tier2 = await self._tier2.run_tier2_checks()
        loops[LOOP_TIER2] = tier2.to_loop_result()
        if scope.free_only:
            return loops, None
        if tier2.status == "fail":
            logger.info("Halting after Tier 2 failure")
            return loops, None

        review_prompt: str | None = None
        if scope.run_reviewer:
            reviewer, review_prompt = await self._run_reviewer(reviewer_output)
            loops[LOOP_REVIEWER] = reviewer
            critical = reviewer.count_findings("critical")
            if critical and self._config.blocking.critical_blocks_ship:
                logger.info(
                    "Halting before external review on critical reviewer findings",
                    extra={"critical": critical},
                )
                return loops, review_prompt

        if scope.run_external:
            loops[LOOP_EXTERNAL] = await self._external.run()
        else:
            loops[LOOP_EXTERNAL] = LoopResult(status="skip", reason=SKIP_FLAG)
        return loops, review_prompt

    async def _run_reviewer(
        self,
        reviewer_output: str | None,
    ) -> tuple[LoopResult, str]:
        started_at = time.monotonic()
        context = await load_review_context(self._vcs, self._repo_root)
        prompt = build_review_prompt(context)
        elapsed_ms = int((time.monotonic() - started_at) * 1000)
        if reviewer_output is None:
            return (
                LoopResult(
                    status="ready",
                    elapsed_ms=elapsed_ms,
                    details={
                        "prompt": prompt,
                        "diff_truncated": context.diff_truncated,
                        "changed_files": len(context.changed_files),
                    },
                ),
                prompt,
            )
        return reviewer_result(reviewer_output, elapsed_ms=elapsed_ms), prompt

    async def _finish(
        self,
        *,
        loops: dict[str, LoopResult],
        review_prompt: str | None,
    ) -> LoopRunReport:
        branch = await self._vcs.current_branch()
        head_commit = await self._vcs.head_commit()
        state = build_loop_state(
            loops=loops,
            blocking=self._config.blocking,
            branch=branch,
            head_commit=head_commit,
            saved_at=self._time_provider(),
        )
        warnings: list[str] = []
        persisted = True
        try:
            await self._store.save(state)
        except OSError as exc:
            logger.warning("Unable to persist loop state: %s", exc)
            warnings.append(f"Loop state not saved to {self._store.path}: {exc}")
            persisted = False
        return LoopRunReport(
            state=state,
            persisted=persisted,
            warnings=tuple(warnings),
            review_prompt=review_prompt,
        )


def reviewer_result(raw: str, *, elapsed_ms: int) -> LoopResult:
    """Loop 2 result from raw reviewer text; fails on critical or major."""
    output = parse_reviewer_output(raw)
    blocking = output.count("critical") + output.count("major")
    return LoopResult(
        status="fail" if blocking else "pass",
        elapsed_ms=elapsed_ms,
        findings=list(output.findings) or None,
        details={
            "findings_by_severity": {
                severity: output.count(severity)
                for severity in ("critical", "major", "minor")
            },
        },
    )
