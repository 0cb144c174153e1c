"""Normalize opaque tool runs into `{passed, output, error}` outcomes.

All scraping of tool-specific human-readable output lives here. The rest of
the package only sees `ToolOutcome` and the optional `summary` mapping.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shipgate.checks.process import CommandOutcome

MAX_OUTPUT_CHARS = 4_000

ESLINT_PROBLEMS_RE = re.compile(
    r"(\d+)\s+problems?\s+\((\d+)\s+errors?,\s+(\d+)\s+warnings?\)",
)
TSC_ERRORS_RE = re.compile(r"Found\s+(\d+)\s+errors?")
TSC_ERROR_LINE_RE = re.compile(r"error\s+TS\d+:")
FAILED_TESTS_RE = re.compile(r"Tests?:?\s+(\d+)\s+failed")
MADGE_CLEAN_MARKER = "No circular dependency found"
MADGE_CIRCULAR_MARKER = "Circular"


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    """Tool-agnostic view of one external check run."""

    passed: bool
    output: str
    error: str | None
    summary: dict[str, int] = field(default_factory=dict)


def to_tool_outcome(tool: str, outcome: CommandOutcome) -> ToolOutcome:
    """Collapse a captured command run into a normalized outcome."""
    output = outcome.merged_output
    summary = summarize_tool_output(tool, output)
    if outcome.spawn_error is not None:
        return ToolOutcome(passed=False, output="", error=outcome.spawn_error)
    if outcome.timed_out:
        return ToolOutcome(
            passed=False,
            output=output,
            error=f"{tool} timed out after {outcome.elapsed_ms}ms",
        )
    if outcome.exit_code != 0:
        return ToolOutcome(
            passed=False,
            output=output,
            error=f"{tool} exited with code {outcome.exit_code}",
            summary=summary,
        )
    return ToolOutcome(passed=True, output=output, error=None, summary=summary)


def summarize_tool_output(tool: str, output: str) -> dict[str, int]:
    """Best-effort counts scraped from well-known tool output formats."""
    if tool == "lint":
        match = ESLINT_PROBLEMS_RE.search(output)
        if match is not None:
            return {
                "problems": int(match.group(1)),
                "errors": int(match.group(2)),
                "warnings": int(match.group(3)),
            }
        return {}
    if tool == "typecheck":
        match = TSC_ERRORS_RE.search(output)
        if match is not None:
            return {"errors": int(match.group(1))}
        count = len(TSC_ERROR_LINE_RE.findall(output))
        return {"errors": count} if count else {}
    if tool == "test":
        match = FAILED_TESTS_RE.search(output)
        if match is not None:
            return {"failed_tests": int(match.group(1))}
        return {}
    return {}


def circular_dependency_outcome(outcome: CommandOutcome) -> ToolOutcome:
    """Interpret madge output, which reports cycles on stdout."""
    output = outcome.merged_output
    if outcome.spawn_error is not None:
        return ToolOutcome(passed=False, output="", error=outcome.spawn_error)
    if MADGE_CLEAN_MARKER in output:
        return ToolOutcome(passed=True, output=output, error=None)
    if MADGE_CIRCULAR_MARKER in output:
        return ToolOutcome(
            passed=False,
            output=output,
            error="Circular dependencies found",
        )
    return ToolOutcome(passed=True, output=output, error=None)


def outcome_details(
    tool_outcome: ToolOutcome,
    outcome: CommandOutcome,
) -> dict[str, object]:
    """Render a check outcome as the diagnostic payload stored in loop state."""
    details: dict[str, object] = {
        "status": "pass" if tool_outcome.passed else "fail",
        "elapsed_ms": outcome.elapsed_ms,
        "command": list(outcome.command),
        "exit_code": outcome.exit_code,
    }
    if outcome.timed_out:
        details["timed_out"] = True
    if tool_outcome.error is not None:
        details["error"] = tool_outcome.error
    if tool_outcome.summary:
        details["summary"] = dict(tool_outcome.summary)
    if not tool_outcome.passed and tool_outcome.output:
        details["output"] = tool_outcome.output[-MAX_OUTPUT_CHARS:]
    return details
