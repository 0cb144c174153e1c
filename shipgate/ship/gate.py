"""Allow/block decision consumed before a ship action proceeds."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from shipgate.config.review_config import BlockingPolicy
from shipgate.loops.decision import get_ship_decision

if TYPE_CHECKING:
    from shipgate.storage.loop_state_store import LoopStateStore

logger = logging.getLogger(__name__)

REMEDIATION_COMMAND = "shipgate review"
REASON_BYPASSED = "ship gate bypassed with --force"
REASON_MISSING = "no review state found"
REASON_CORRUPTED = "corrupted state"
REASON_STALE = "stale state, commit mismatch"
REASON_BLOCKED = "review found blocking issues"
REASON_ALLOWED = "all review loops passed"


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Outcome of one ship request."""

    allowed: bool
    reason: str
    blockers: tuple[str, ...] = ()
    bypassed: bool = False
    remediation: str | None = None


class ShipGate:
    """Read the persisted review state and decide whether to ship."""

    _store: LoopStateStore
    _blocking: BlockingPolicy

    def __init__(
        self,
        *,
        store: LoopStateStore,
        blocking: BlockingPolicy | None = None,
    ) -> None:
        """Create gate reading through the loop state store."""
        self._store = store
        self._blocking = blocking or BlockingPolicy()

    async def evaluate(self, *, force: bool = False) -> GateDecision:
        """Allow only a fresh state whose loop results still permit shipping."""
        if force:
            logger.warning("Ship gate bypassed by force flag")
            return GateDecision(allowed=True, reason=REASON_BYPASSED, bypassed=True)

        result = await self._store.read()
        if result.status == "missing":
            return _blocked(REASON_MISSING)
        if result.status == "corrupted":
            logger.warning("Loop state unusable: %s", result.detail)
            return _blocked(REASON_CORRUPTED)
        if result.status == "stale" or result.state is None:
            return _blocked(REASON_STALE)
        state = result.state
        decision = get_ship_decision(state.loops, self._blocking)
        if (
            decision.ship_allowed != state.ship_allowed
            or list(decision.blockers) != state.blockers
        ):
            logger.warning(
                "Recorded ship decision does not match loop results",
                extra={
                    "recorded_blockers": state.blockers,
                    "derived_blockers": list(decision.blockers),
                },
            )
            return _blocked(REASON_CORRUPTED)
        if not decision.ship_allowed:
            return _blocked(REASON_BLOCKED, blockers=decision.blockers)
        return GateDecision(allowed=True, reason=REASON_ALLOWED)


def _blocked(reason: str, *, blockers: tuple[str, ...] = ()) -> GateDecision:
    logger.info("Ship blocked", extra={"reason": reason, "blockers": list(blockers)})
    return GateDecision(
        allowed=False,
        reason=reason,
        blockers=blockers,
        remediation=REMEDIATION_COMMAND,
    )
