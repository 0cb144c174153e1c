"""Persisted data model shared by the loops, the stores and the ship gate."""

from __future__ import annotations

from typing import Any, Literal, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

LOOP_STATE_VERSION = "1.0"

LOOP_TIER1 = "loop1_tier1"
LOOP_TIER2 = "loop1_tier2"
LOOP_REVIEWER = "loop2"
LOOP_EXTERNAL = "loop3"
LOOP_ORDER: tuple[str, str, str, str] = (
    LOOP_TIER1,
    LOOP_TIER2,
    LOOP_REVIEWER,
    LOOP_EXTERNAL,
)

LoopStatus = Literal["pass", "fail", "skip", "ready"]
Severity = Literal["critical", "major", "important", "minor"]

SKIP_RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
SKIP_FLAG = "flag_skip"
SKIP_DISABLED_IN_CONFIG = "disabled_in_config"
SKIP_NOT_CONFIGURED = "not_configured"


class Finding(BaseModel):
    """One reported issue with severity, location and suggested fix."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    severity: Severity
    category: str = "quality"
    file: str | None = None
    line: int | None = None
    message: str
    fix: str | None = Field(
        default=None,
        validation_alias=AliasChoices("fix", "suggestion"),
    )


class LoopResult(BaseModel):
    """Outcome of one loop of the review pipeline."""

    status: LoopStatus
    elapsed_ms: int = Field(default=0, ge=0)
    reason: str | None = None
    findings: list[Finding] | None = None
    details: dict[str, Any] | None = None

    def count_findings(self, severity: Severity) -> int:
        """Count findings of one severity."""
        if not self.findings:
            return 0
        return sum(1 for finding in self.findings if finding.severity == severity)


class LoopState(BaseModel):
    """Repository-wide review state consumed by the ship gate."""

    version: str = LOOP_STATE_VERSION
    branch: str | None = None
    head_commit: str | None = None
    timestamp: str
    loops: dict[str, LoopResult] = Field(default_factory=dict)
    ship_allowed: bool
    blockers: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_decision_consistency(self) -> Self:
        if self.ship_allowed == bool(self.blockers):
            msg = "ship_allowed must be true exactly when blockers is empty"
            raise ValueError(msg)
        return self

    def to_document(self) -> dict[str, Any]:
        """Render the JSON document written to disk."""
        return self.model_dump(mode="json", exclude_none=True)
