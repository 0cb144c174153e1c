"""Loop state file persistence with shape validation and staleness checks."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from pydantic import ValidationError

from shipgate.loops.models import LoopState
from shipgate.storage.atomic import atomic_write_json, read_json

if TYPE_CHECKING:
    from pathlib import Path

    from shipgate.vcs.git import VcsLookup

logger = logging.getLogger(__name__)

LoopStateStatus = Literal["missing", "corrupted", "stale", "ok"]


@dataclass(frozen=True, slots=True)
class LoopStateRead:
    """Result of reading the state file against the live head."""

    status: LoopStateStatus
    state: LoopState | None = None
    live_head: str | None = None
    detail: str | None = None

    @property
    def usable(self) -> bool:
        """True only for a valid state recorded at the live head."""
        return self.status == "ok"


class LoopStateStore:
    """Read and publish `loop-state.json` for one repository."""

    _path: Path
    _vcs: VcsLookup

    def __init__(self, *, path: Path, vcs: VcsLookup) -> None:
        """Create store bound to the state file and the live VCS head."""
        self._path = path
        self._vcs = vcs

    @property
    def path(self) -> Path:
        """Location of the state file."""
        return self._path

    async def read(self) -> LoopStateRead:
        """Classify the persisted state without modifying it."""
        live_head = await self._vcs.head_commit()
        try:
            payload = await asyncio.to_thread(read_json, self._path)
        except FileNotFoundError:
            return LoopStateRead(status="missing", live_head=live_head)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            return LoopStateRead(
                status="corrupted",
                live_head=live_head,
                detail=str(exc),
            )
        try:
            state = LoopState.model_validate(payload)
        except ValidationError as exc:
            return LoopStateRead(
                status="corrupted",
                live_head=live_head,
                detail=f"{exc.error_count()} validation error(s)",
            )
        if state.head_commit != live_head:
            return LoopStateRead(status="stale", state=state, live_head=live_head)
        return LoopStateRead(status="ok", state=state, live_head=live_head)

    async def load_current(self) -> LoopState | None:
        """Return the state for the live head, deleting it when stale."""
        result = await self.read()
        if result.status == "stale":
            logger.info(
                "Discarding stale loop state",
                extra={
                    "state_head": result.state.head_commit if result.state else None,
                    "live_head": result.live_head,
                },
            )
            try:
                self._path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Unable to delete stale loop state: %s", exc)
            return None
        if result.status == "corrupted":
            logger.warning("Ignoring corrupted loop state: %s", result.detail)
        return result.state if result.usable else None

    async def save(self, state: LoopState) -> None:
        """Publish the state document atomically."""
        await asyncio.to_thread(atomic_write_json, self._path, state.to_document())
        logger.info(
            "Saved loop state",
            extra={"ship_allowed": state.ship_allowed, "blockers": len(state.blockers)},
        )
