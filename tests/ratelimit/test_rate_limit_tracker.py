"""Tests for the hour-bucketed external review quota."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from shipgate.ratelimit import RateLimitTracker, bucket_key, prune_buckets

if TYPE_CHECKING:
    from pathlib import Path

NOW = datetime(2026, 3, 14, 9, 30)  # noqa: DTZ001


def _tracker(path: Path, *, now: datetime = NOW, limit: int = 8) -> RateLimitTracker:
    return RateLimitTracker(
        state_path=path,
        limit_per_hour=limit,
        now_provider=lambda: now,
    )


def _write_state(path: Path, payload: dict[str, object]) -> None:
    _ = path.write_text(json.dumps(payload), encoding="utf-8")


def test_fresh_tracker_has_full_quota(tmp_path: Path) -> None:
    """Ensure an absent state file means the full hourly quota."""
    tracker = _tracker(tmp_path / "rate-limit.json")

    if not tracker.can_execute():
        raise AssertionError
    if tracker.get_remaining_quota() != 8:
        raise AssertionError


def test_record_execution_persists_counters(tmp_path: Path) -> None:
    """Ensure recording increments the current bucket and totals."""
    path = tmp_path / "state" / "rate-limit.json"
    tracker = _tracker(path)

    tracker.record_execution()
    tracker.record_execution()

    payload = json.loads(path.read_text(encoding="utf-8"))
    if payload["buckets"] != {"2026031409": 2}:
        raise AssertionError
    if payload["total_executions"] != 2:
        raise AssertionError
    if payload["last_execution"] != NOW.isoformat():
        raise AssertionError
    if tracker.get_remaining_quota() != 6:
        raise AssertionError


def test_exhausted_bucket_blocks_execution(tmp_path: Path) -> None:
    """Ensure eight executions this hour exhaust a limit of eight."""
    path = tmp_path / "rate-limit.json"
    _write_state(
        path,
        {
            "version": "1.0",
            "limit_per_hour": 8,
            "buckets": {bucket_key(NOW): 8},
            "total_executions": 8,
        },
    )
    tracker = _tracker(path)

    if tracker.can_execute():
        raise AssertionError
    if tracker.get_remaining_quota() != 0:
        raise AssertionError


def test_quota_returns_in_the_next_hour(tmp_path: Path) -> None:
    """Ensure a full bucket only limits its own hour."""
    path = tmp_path / "rate-limit.json"
    _write_state(
        path,
        {"version": "1.0", "buckets": {bucket_key(NOW): 8}, "total_executions": 8},
    )

    if not _tracker(path, now=NOW + timedelta(hours=1)).can_execute():
        raise AssertionError


@pytest.mark.parametrize("hours_ago", [3, 5, 48])
def test_old_buckets_are_pruned(hours_ago: int) -> None:
    """Ensure buckets older than two hours never survive pruning."""
    old = NOW - timedelta(hours=hours_ago)
    kept = prune_buckets({bucket_key(old): 8, bucket_key(NOW): 1}, now=NOW)

    if kept != {bucket_key(NOW): 1}:
        raise AssertionError


def test_unparseable_bucket_keys_are_pruned() -> None:
    """Ensure garbage keys are dropped rather than counted."""
    kept = prune_buckets({"not-a-bucket": 3, "": 1}, now=NOW)
    if kept:
        raise AssertionError


def test_record_execution_persists_pruned_buckets(tmp_path: Path) -> None:
    """Ensure stale buckets disappear from disk on the next write."""
    path = tmp_path / "rate-limit.json"
    stale_key = bucket_key(NOW - timedelta(hours=6))
    _write_state(
        path,
        {"version": "1.0", "buckets": {stale_key: 4}, "total_executions": 4},
    )

    _tracker(path).record_execution()

    payload = json.loads(path.read_text(encoding="utf-8"))
    if stale_key in payload["buckets"]:
        raise AssertionError
    if payload["total_executions"] != 5:
        raise AssertionError


@pytest.mark.parametrize(
    "payload",
    [
        {"version": "1.0", "buckets": [], "total_executions": 0},
        {"version": 1, "buckets": {}, "total_executions": 0},
        {"version": "1.0", "buckets": {}, "total_executions": "many"},
        {"version": "1.0", "total_executions": 0},
        ["not", "an", "object"],
    ],
)
def test_malformed_state_resets_to_defaults(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
    payload: object,
) -> None:
    """Ensure malformed state is logged and replaced, never raised."""
    path = tmp_path / "rate-limit.json"
    _ = path.write_text(json.dumps(payload), encoding="utf-8")
    caplog.set_level(logging.WARNING)

    tracker = _tracker(path)

    if tracker.get_remaining_quota() != 8:
        raise AssertionError
    if not any("resetting to defaults" in r.getMessage() for r in caplog.records):
        raise AssertionError


def test_concurrent_writers_may_lose_increments(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Document the single-writer limitation: interleaved writers lose counts.

    Both writers read the same snapshot before either publishes, so the later
    rename wins. Atomic rename only rules out torn documents.
    """
    path = tmp_path / "rate-limit.json"
    _tracker(path).record_execution()
    snapshot = path.read_text(encoding="utf-8")
    monkeypatch.setattr(
        "shipgate.ratelimit.tracker.read_json",
        lambda _path: json.loads(snapshot),
    )

    _tracker(path).record_execution()
    _tracker(path).record_execution()

    payload = json.loads(path.read_text(encoding="utf-8"))
    if payload["buckets"][bucket_key(NOW)] != 2:
        raise AssertionError
