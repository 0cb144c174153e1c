"""Hour-bucketed execution quota for the rate-limited external review."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel, StrictFloat, StrictInt, ValidationError

from shipgate.config.review_config import DEFAULT_EXTERNAL_LIMIT_PER_HOUR
from shipgate.storage.atomic import atomic_write_json, read_json

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

logger = logging.getLogger(__name__)

RATE_LIMIT_STATE_VERSION = "1.0"
BUCKET_KEY_FORMAT = "%Y%m%d%H"
BUCKET_RETENTION = timedelta(hours=2)


class RateLimitState(BaseModel):
    """Persisted quota counters."""

    version: str
    limit_per_hour: int = DEFAULT_EXTERNAL_LIMIT_PER_HOUR
    buckets: dict[str, int]
    total_executions: StrictInt | StrictFloat
    last_execution: str | None = None


def bucket_key(moment: datetime) -> str:
    """Return the hour-granularity bucket key for a local wall-clock time."""
    return moment.strftime(BUCKET_KEY_FORMAT)


def prune_buckets(buckets: dict[str, int], *, now: datetime) -> dict[str, int]:
    """Drop buckets older than the retention window and unparseable keys."""
    cutoff = now.replace(tzinfo=None) - BUCKET_RETENTION
    kept: dict[str, int] = {}
    for key, count in buckets.items():
        try:
            bucket_start = datetime.strptime(key, BUCKET_KEY_FORMAT)  # noqa: DTZ007
        except ValueError:
            continue
        if len(key) != len(bucket_key(bucket_start)):
            continue
        if bucket_start < cutoff:
            continue
        kept[key] = count
    return kept


def _local_now() -> datetime:
    return datetime.now()  # noqa: DTZ005


class RateLimitTracker:
    """Track executions per wall-clock hour in a shared JSON state file."""

    _state_path: Path
    _limit_per_hour: int
    _now_provider: Callable[[], datetime]

    def __init__(
        self,
        *,
        state_path: Path,
        limit_per_hour: int = DEFAULT_EXTERNAL_LIMIT_PER_HOUR,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        """Create tracker with its state file, hourly limit and optional clock."""
        self._state_path = state_path
        self._limit_per_hour = limit_per_hour
        self._now_provider = now_provider or _local_now

    @property
    def limit_per_hour(self) -> int:
        """Configured hourly execution limit."""
        return self._limit_per_hour

    def can_execute(self) -> bool:
        """Return True while the current hour bucket is below the limit."""
        now = self._now_provider()
        state = self._load(now=now)
        return state.buckets.get(bucket_key(now), 0) < self._limit_per_hour

    def get_remaining_quota(self) -> int:
        """Return executions left in the current hour bucket."""
        now = self._now_provider()
        state = self._load(now=now)
        used = state.buckets.get(bucket_key(now), 0)
        return max(0, self._limit_per_hour - used)

    def record_execution(self) -> None:
        """Count one execution in the current bucket and persist atomically."""
        now = self._now_provider()
        state = self._load(now=now)
        key = bucket_key(now)
        state.buckets[key] = state.buckets.get(key, 0) + 1
        state.total_executions = int(state.total_executions) + 1
        state.last_execution = now.isoformat()
        state.limit_per_hour = self._limit_per_hour
        atomic_write_json(self._state_path, _to_document(state))
        logger.info(
            "Recorded external review execution",
            extra={"bucket": key, "bucket_count": state.buckets[key]},
        )

    def _load(self, *, now: datetime) -> RateLimitState:
        state = self._read_state()
        state.buckets = prune_buckets(state.buckets, now=now)
        return state

    def _read_state(self) -> RateLimitState:
        try:
            payload = read_json(self._state_path)
        except FileNotFoundError:
            return self._default_state()
        except (OSError, json.JSONDecodeError):
            logger.warning("Rate limit state unreadable; resetting to defaults")
            return self._default_state()
        try:
            return RateLimitState.model_validate(payload)
        except ValidationError:
            logger.warning("Rate limit state failed validation; resetting to defaults")
            return self._default_state()

    def _default_state(self) -> RateLimitState:
        return RateLimitState(
            version=RATE_LIMIT_STATE_VERSION,
            limit_per_hour=self._limit_per_hour,
            buckets={},
            total_executions=0,
        )


def _to_document(state: RateLimitState) -> dict[str, object]:
    return {
        "version": state.version,
        "limit_per_hour": state.limit_per_hour,
        "buckets": dict(state.buckets),
        "total_executions": int(state.total_executions),
        "last_execution": state.last_execution,
    }
