"""Loop 3: rate-limited external review command and its output parser."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING, Final

from pydantic import ValidationError

from shipgate.checks.process import run_command
from shipgate.loops.models import (
    SKIP_DISABLED_IN_CONFIG,
    SKIP_RATE_LIMIT_EXCEEDED,
    Finding,
    LoopResult,
)

if TYPE_CHECKING:
    from pathlib import Path

    from shipgate.checks.process import CommandOutcome, CommandRunner
    from shipgate.config.review_config import ExternalConfig
    from shipgate.ratelimit.tracker import RateLimitTracker

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 4000
EXTERNAL_SEVERITIES: Final[frozenset[str]] = frozenset(
    {"critical", "important", "minor"},
)
TYPE_SEVERITY: Final[dict[str, str]] = {
    "potential_issue": "important",
    "refactor_suggestion": "minor",
    "nitpick": "minor",
}
CRITICAL_KEYWORDS: tuple[str, ...] = ("critical", "security")
SEVERITY_ALIASES: Final[dict[str, str]] = {
    "high": "critical",
    "major": "important",
    "medium": "important",
    "low": "minor",
    "info": "minor",
}

_FIELD_LINE = re.compile(
    r"^\s*(File|Line|Type|Severity|Comment)\s*:\s*(.*)$",
    re.IGNORECASE,
)
_LINE_NUMBER = re.compile(r"\d+")


def parse_external_output(raw: str) -> list[Finding]:
    """Parse JSON findings, falling back to `File:/Line:/Type:` text blocks."""
    findings = _parse_json_findings(raw)
    if findings is not None:
        return findings
    return parse_text_findings(raw)


def _parse_json_findings(raw: str) -> list[Finding] | None:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if isinstance(payload, dict):
        payload = payload.get("findings", payload.get("comments"))
    if not isinstance(payload, list):
        return None
    findings: list[Finding] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        severity = _normalize_severity(
            entry.get("severity"),
            kind=entry.get("type"),
            text=str(entry.get("message", entry.get("comment", ""))),
        )
        try:
            finding = Finding.model_validate(
                {
                    **entry,
                    "severity": severity,
                    "message": entry.get("message", entry.get("comment")),
                },
            )
        except ValidationError:
            continue
        findings.append(finding)
    return findings


def parse_text_findings(raw: str) -> list[Finding]:
    """Parse plain-text review blocks, one `File:` line per comment."""
    findings: list[Finding] = []
    block: dict[str, str] = {}
    current_key: str | None = None
    for line in raw.splitlines():
        match = _FIELD_LINE.match(line)
        if match is None:
            if current_key == "comment" and line.strip():
                block["comment"] = f"{block['comment']}\n{line.strip()}".strip()
            continue
        key = match.group(1).lower()
        if key == "file" and block:
            findings.extend(_block_to_finding(block))
            block = {}
        block[key] = match.group(2).strip()
        current_key = key
    if block:
        findings.extend(_block_to_finding(block))
    return findings


def _block_to_finding(block: dict[str, str]) -> list[Finding]:
    message = block.get("comment", "").strip()
    if not message:
        return []
    line_match = _LINE_NUMBER.search(block.get("line", ""))
    severity = _normalize_severity(
        block.get("severity"),
        kind=block.get("type"),
        text=message,
    )
    return [
        Finding(
            severity=severity,
            category="external",
            file=block.get("file") or None,
            line=int(line_match.group(0)) if line_match else None,
            message=message,
        ),
    ]


def _normalize_severity(severity: object, *, kind: object, text: str) -> str:
    if isinstance(severity, str):
        lowered = severity.strip().lower()
        lowered = SEVERITY_ALIASES.get(lowered, lowered)
        if lowered in EXTERNAL_SEVERITIES:
            return lowered
    lowered_text = text.lower()
    if any(keyword in lowered_text for keyword in CRITICAL_KEYWORDS):
        return "critical"
    if isinstance(kind, str):
        return TYPE_SEVERITY.get(kind.strip().lower(), "minor")
    return "minor"


class ExternalReviewRunner:
    """Run the external reviewer when enabled and within hourly quota."""

    _repo_root: Path
    _config: ExternalConfig
    _tracker: RateLimitTracker
    _runner: CommandRunner

    def __init__(
        self,
        *,
        repo_root: Path,
        config: ExternalConfig,
        tracker: RateLimitTracker,
        runner: CommandRunner | None = None,
    ) -> None:
        """Create runner bound to config, quota tracker and command runner."""
        self._repo_root = repo_root
        self._config = config
        self._tracker = tracker
        self._runner = runner or run_command

    async def run(self) -> LoopResult:
        """Return a skip result, or execute the reviewer and parse its findings."""
        if not self._config.enabled or not self._config.command:
            return LoopResult(status="skip", reason=SKIP_DISABLED_IN_CONFIG)
        if not await asyncio.to_thread(self._tracker.can_execute):
            logger.info("External review quota exhausted")
            return LoopResult(
                status="skip",
                reason=SKIP_RATE_LIMIT_EXCEEDED,
                details={"remaining_quota": 0},
            )
        outcome = await self._runner(
            self._config.command,
            cwd=self._repo_root,
            timeout_seconds=self._config.timeout_seconds,
        )
        if outcome.spawn_error is None:
            try:
                await asyncio.to_thread(self._tracker.record_execution)
            except OSError as exc:
                logger.warning("Unable to persist rate limit state: %s", exc)
        return _outcome_to_result(outcome)


def _outcome_to_result(outcome: CommandOutcome) -> LoopResult:
    findings = parse_external_output(outcome.stdout) if outcome.stdout else []
    critical = sum(1 for finding in findings if finding.severity == "critical")
    details: dict[str, object] = {
        "command": list(outcome.command),
        "exit_code": outcome.exit_code,
        "findings_by_severity": {
            severity: sum(1 for finding in findings if finding.severity == severity)
            for severity in ("critical", "important", "minor")
        },
    }
    tool_failed = outcome.timed_out or outcome.spawn_error is not None
    if outcome.timed_out:
        details["timed_out"] = True
    if outcome.spawn_error is not None:
        details["error"] = outcome.spawn_error
    elif not outcome.passed:
        details["output"] = outcome.merged_output[-OUTPUT_TAIL_CHARS:]
        # Findings on stdout mean the reviewer ran and reported through its exit code.
        tool_failed = tool_failed or not findings
    if tool_failed:
        logger.warning(
            "External review did not complete",
            extra={"exit_code": outcome.exit_code, "timed_out": outcome.timed_out},
        )
    return LoopResult(
        status="fail" if critical or tool_failed else "pass",
        elapsed_ms=outcome.elapsed_ms,
        findings=findings or None,
        details=details,
    )
