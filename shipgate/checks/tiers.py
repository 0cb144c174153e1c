"""Shared result contract for the free-check tiers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from shipgate.loops.models import LoopResult

if TYPE_CHECKING:
    from shipgate.loops.models import Finding

TierStatus = Literal["pass", "fail"]


@dataclass(frozen=True, slots=True)
class TierResult:
    """Outcome of one free-check tier run."""

    status: TierStatus
    elapsed_ms: int
    details: dict[str, object]
    stopped_at: str | None = None
    findings: tuple[Finding, ...] = field(default=())

    def to_loop_result(self) -> LoopResult:
        """Convert to the persisted per-loop result."""
        details = dict(self.details)
        if self.stopped_at is not None:
            details["stopped_at"] = self.stopped_at
        return LoopResult(
            status=self.status,
            elapsed_ms=self.elapsed_ms,
            findings=list(self.findings) if self.findings else None,
            details=details,
        )


def skipped_check(reason: str) -> dict[str, object]:
    """Diagnostic payload for a check that did not run."""
    return {"status": "skip", "reason": reason, "elapsed_ms": 0}
