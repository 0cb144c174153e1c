"""Resumable progress records for long-running multi-phase commands."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shipgate.storage.atomic import atomic_write_json, read_json

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from pathlib import Path

    from shipgate.vcs.git import VcsLookup

logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = "1.0"
CONTEXT_SUMMARY_TOKEN_BUDGET = 500
PHASE_IN_PROGRESS = "in_progress"
PHASE_COMPLETE = "complete"
PHASE_FAILED = "failed"
PHASE_PENDING = "pending"

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


class CheckpointProgress(BaseModel):
    """Top-level phase bookkeeping."""

    current_phase: str | None = None
    completed_phases: list[str] = Field(default_factory=list)
    pending_phases: list[str] = Field(default_factory=list)


class CheckpointPhase(BaseModel):
    """One phase record; unknown fields are kept as written."""

    model_config = ConfigDict(extra="allow")

    status: str | None = None
    context_summary: str | None = None
    started_at: str | None = None
    updated_at: str | None = None


class Checkpoint(BaseModel):
    """Persisted checkpoint document."""

    command: str
    feature: str | None = None
    version: str = CHECKPOINT_VERSION
    state: CheckpointProgress = Field(default_factory=CheckpointProgress)
    phases: dict[str, CheckpointPhase] = Field(default_factory=dict)
    head_commit: str | None = None
    started_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None


@dataclass(frozen=True, slots=True)
class ResumePoint:
    """Where an interrupted command should pick up."""

    phase: str | None = None
    summary: str | None = None


def count_tokens(text: str) -> int:
    """Whitespace-delimited token count."""
    return len(text.split())


def over_budget_phases(checkpoint: Checkpoint) -> list[str]:
    """Names of phases whose context summary exceeds the token budget."""
    return [
        name
        for name, phase in checkpoint.phases.items()
        if phase.context_summary is not None
        and count_tokens(phase.context_summary) > CONTEXT_SUMMARY_TOKEN_BUDGET
    ]


def checkpoint_filename(command: str, feature: str | None = None) -> str:
    """`{command}-checkpoint.json`, or `{command}-{feature}.json` per feature."""
    _require_simple_name("command", command)
    if feature is None:
        return f"{command}-checkpoint.json"
    _require_simple_name("feature", feature)
    return f"{command}-{feature}.json"


def _require_simple_name(label: str, value: str) -> None:
    if not _NAME_PATTERN.fullmatch(value) or value in {".", ".."}:
        msg = f"Checkpoint {label} must match [A-Za-z0-9._-]+, got {value!r}"
        raise ValueError(msg)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CheckpointStore:
    """Load, update and finalize checkpoint files in one directory."""

    _directory: Path
    _vcs: VcsLookup
    _now_provider: Callable[[], datetime]

    def __init__(
        self,
        *,
        directory: Path,
        vcs: VcsLookup,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        """Create store bound to a checkpoint directory and VCS head lookup."""
        self._directory = directory
        self._vcs = vcs
        self._now_provider = now_provider or _utc_now

    def path_for(self, command: str, feature: str | None = None) -> Path:
        """Resolve the checkpoint file path for a command (and feature)."""
        return self._directory / checkpoint_filename(command, feature)

    async def load(
        self,
        command: str,
        feature: str | None = None,
    ) -> Checkpoint | None:
        """Read a checkpoint; absent -> None, unreadable -> None with a warning.

        A checkpoint recorded at another head is still returned; the
        mismatch is only logged.
        """
        path = self.path_for(command, feature)
        try:
            payload = await asyncio.to_thread(read_json, path)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Unable to read checkpoint %s: %s", path.name, exc)
            return None
        try:
            checkpoint = Checkpoint.model_validate(payload)
        except ValidationError as exc:
            logger.warning(
                "Checkpoint %s has invalid shape: %d error(s)",
                path.name,
                exc.error_count(),
            )
            return None

        live_head = await self._vcs.head_commit()
        if (
            checkpoint.head_commit is not None
            and live_head is not None
            and checkpoint.head_commit != live_head
        ):
            logger.warning(
                "Checkpoint %s was recorded at a different commit",
                path.name,
                extra={
                    "checkpoint_head": checkpoint.head_commit,
                    "live_head": live_head,
                },
            )
        return checkpoint

    async def save(
        self,
        command: str,
        checkpoint: Checkpoint,
        feature: str | None = None,
    ) -> bool:
        """Stamp and publish a checkpoint; False when rejected or unwritable."""
        path = self.path_for(command, feature)
        rejected = over_budget_phases(checkpoint)
        if rejected:
            logger.warning(
                "Checkpoint rejected: context summary over %d tokens",
                CONTEXT_SUMMARY_TOKEN_BUDGET,
                extra={"phases": rejected},
            )
            return False

        now = self._timestamp()
        checkpoint.command = command
        checkpoint.feature = feature
        checkpoint.head_commit = await self._vcs.head_commit()
        checkpoint.updated_at = now
        if checkpoint.started_at is None:
            checkpoint.started_at = now
        document = checkpoint.model_dump(mode="json")
        try:
            await asyncio.to_thread(atomic_write_json, path, document)
        except OSError as exc:
            logger.warning("Unable to write checkpoint %s: %s", path.name, exc)
            return False
        return True

    async def update_phase(
        self,
        command: str,
        phase_name: str,
        phase_data: Mapping[str, Any],
        feature: str | None = None,
    ) -> bool:
        """Merge fields into one phase and mirror its status into the state."""
        checkpoint = await self.load(command, feature)
        if checkpoint is None:
            checkpoint = Checkpoint(command=command, feature=feature)

        now = self._timestamp()
        existing = checkpoint.phases.get(phase_name)
        merged: dict[str, Any] = existing.model_dump() if existing else {}
        merged.update(phase_data)
        status = merged.get("status")
        if status == PHASE_IN_PROGRESS and not merged.get("started_at"):
            merged["started_at"] = now
        merged["updated_at"] = now
        try:
            checkpoint.phases[phase_name] = CheckpointPhase.model_validate(merged)
        except ValidationError as exc:
            logger.warning(
                "Phase %s update has invalid fields: %d error(s)",
                phase_name,
                exc.error_count(),
            )
            return False
        _apply_status(checkpoint.state, phase_name, status)
        return await self.save(command, checkpoint, feature)

    async def complete(self, command: str, feature: str | None = None) -> bool:
        """Mark the checkpoint finished; False when there is none."""
        checkpoint = await self.load(command, feature)
        if checkpoint is None:
            return False
        checkpoint.completed_at = self._timestamp()
        checkpoint.state.current_phase = None
        return await self.save(command, checkpoint, feature)

    async def get_resume_point(
        self,
        command: str,
        feature: str | None = None,
    ) -> ResumePoint:
        """Current phase plus the last completed phase's summary."""
        checkpoint = await self.load(command, feature)
        if checkpoint is None or checkpoint.completed_at is not None:
            return ResumePoint()
        summary: str | None = None
        if checkpoint.state.completed_phases:
            last_completed = checkpoint.state.completed_phases[-1]
            phase = checkpoint.phases.get(last_completed)
            summary = phase.context_summary if phase else None
        return ResumePoint(phase=checkpoint.state.current_phase, summary=summary)

    def _timestamp(self) -> str:
        return self._now_provider().isoformat()


def _apply_status(
    progress: CheckpointProgress,
    phase_name: str,
    status: object,
) -> None:
    if status == PHASE_IN_PROGRESS:
        progress.current_phase = phase_name
    elif status == PHASE_COMPLETE:
        if phase_name not in progress.completed_phases:
            progress.completed_phases.append(phase_name)
        progress.pending_phases = [
            name for name in progress.pending_phases if name != phase_name
        ]
        if progress.current_phase == phase_name:
            progress.current_phase = None
    elif status == PHASE_FAILED:
        progress.pending_phases = [
            name for name in progress.pending_phases if name != phase_name
        ]
    elif status == PHASE_PENDING and phase_name not in progress.pending_phases:
        progress.pending_phases.append(phase_name)
