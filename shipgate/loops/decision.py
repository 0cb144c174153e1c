"""Pure ship/no-ship decision derived from loop results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from shipgate.loops.models import (
    LOOP_EXTERNAL,
    LOOP_REVIEWER,
    LOOP_STATE_VERSION,
    LOOP_TIER1,
    LOOP_TIER2,
    LoopResult,
    LoopState,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from shipgate.config.review_config import BlockingPolicy


@dataclass(frozen=True, slots=True)
class ShipDecision:
    """Whether shipping is allowed and, if not, why."""

    ship_allowed: bool
    blockers: tuple[str, ...]


def get_ship_decision(
    loops: Mapping[str, LoopResult],
    blocking: BlockingPolicy,
) -> ShipDecision:
    """Collect blockers from loop results under the given blocking policy."""
    blockers: list[str] = []

    tier1 = loops.get(LOOP_TIER1)
    if tier1 is not None and tier1.status == "fail":
        failed = _failed_sub_checks(tier1)
        suffix = f": {', '.join(failed)}" if failed else ""
        blockers.append(f"Loop1-T1 failed{suffix}")

    tier2 = loops.get(LOOP_TIER2)
    if tier2 is not None and tier2.status == "fail":
        stopped_at = (tier2.details or {}).get("stopped_at")
        suffix = f" at {stopped_at}" if isinstance(stopped_at, str) else ""
        blockers.append(f"Loop1-T2 failed{suffix}")

    reviewer = loops.get(LOOP_REVIEWER)
    if reviewer is not None:
        critical = reviewer.count_findings("critical")
        major = reviewer.count_findings("major")
        if blocking.critical_blocks_ship and critical:
            blockers.append(f"Loop2 (reviewer): {critical} critical finding(s)")
        if blocking.major_blocks_ship and major:
            blockers.append(f"Loop2 (reviewer): {major} major finding(s)")

    external = loops.get(LOOP_EXTERNAL)
    if external is not None:
        critical = external.count_findings("critical")
        if critical:
            blockers.append(f"Loop3 (external): {critical} critical finding(s)")

    return ShipDecision(ship_allowed=not blockers, blockers=tuple(blockers))


def build_loop_state(
    *,
    loops: Mapping[str, LoopResult],
    blocking: BlockingPolicy,
    branch: str | None,
    head_commit: str | None,
    saved_at: datetime,
) -> LoopState:
    """Assemble a LoopState whose decision fields are derived from `loops`."""
    decision = get_ship_decision(loops, blocking)
    return LoopState(
        version=LOOP_STATE_VERSION,
        branch=branch,
        head_commit=head_commit,
        timestamp=saved_at.isoformat(),
        loops=dict(loops),
        ship_allowed=decision.ship_allowed,
        blockers=list(decision.blockers),
    )


def _failed_sub_checks(result: LoopResult) -> list[str]:
    failed: list[str] = []
    for name, detail in (result.details or {}).items():
        if isinstance(detail, dict) and detail.get("status") == "fail":
            failed.append(name)
    return failed
