"""Free quality checks for shipgate."""

from .adapters import ToolOutcome, summarize_tool_output, to_tool_outcome
from .process import CommandOutcome, CommandRunner, run_command, terminate_process
from .quality import DeadUIIssue, QualityCheckResult, QualityCheckSuite, find_dead_ui
from .secret_scanner import (
    SECRET_DETECTORS,
    SecretDetector,
    SecretScanner,
    SecretScanResult,
    redact,
    scan_text,
)
from .tier1 import Tier1Runner
from .tier2 import Tier2Runner
from .tiers import TierResult

__all__ = [
    "SECRET_DETECTORS",
    "CommandOutcome",
    "CommandRunner",
    "DeadUIIssue",
    "QualityCheckResult",
    "QualityCheckSuite",
    "SecretDetector",
    "SecretScanResult",
    "SecretScanner",
    "Tier1Runner",
    "Tier2Runner",
    "TierResult",
    "ToolOutcome",
    "find_dead_ui",
    "redact",
    "run_command",
    "scan_text",
    "summarize_tool_output",
    "terminate_process",
    "to_tool_outcome",
]
