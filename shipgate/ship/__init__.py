"""Ship gate consumer for shipgate."""

from .gate import REMEDIATION_COMMAND, GateDecision, ShipGate

__all__ = ["REMEDIATION_COMMAND", "GateDecision", "ShipGate"]
