"""Loop data model, scope resolution and ship decision for shipgate."""

from .decision import ShipDecision, build_loop_state, get_ship_decision
from .models import (
    LOOP_EXTERNAL,
    LOOP_ORDER,
    LOOP_REVIEWER,
    LOOP_STATE_VERSION,
    LOOP_TIER1,
    LOOP_TIER2,
    Finding,
    LoopResult,
    LoopState,
)
from .scope import SCOPES, ReviewScope, ScopeName, resolve_scope

__all__ = [
    "LOOP_EXTERNAL",
    "LOOP_ORDER",
    "LOOP_REVIEWER",
    "LOOP_STATE_VERSION",
    "LOOP_TIER1",
    "LOOP_TIER2",
    "SCOPES",
    "Finding",
    "LoopResult",
    "LoopState",
    "ReviewScope",
    "ScopeName",
    "ShipDecision",
    "build_loop_state",
    "get_ship_decision",
    "resolve_scope",
]
