"""Tests for review config loading, caching and command resolution."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from shipgate.config import (
    PackageManagerDetector,
    ReviewConfigError,
    ReviewConfigLoader,
    read_review_config,
    resolve_check_command,
)

if TYPE_CHECKING:
    from pathlib import Path


def test_missing_config_file_yields_defaults(tmp_path: Path) -> None:
    """Ensure an absent config file produces the documented defaults."""
    config = read_review_config(tmp_path / "review-config.json")

    if not config.blocking.critical_blocks_ship:
        raise AssertionError
    if config.blocking.major_blocks_ship:
        raise AssertionError
    if config.tier1.timeout_seconds != 30:
        raise AssertionError
    if (config.tier2.budget_seconds, config.tier2.stage_timeout_seconds) != (120, 90):
        raise AssertionError
    if config.external.limit_per_hour != 8:
        raise AssertionError
    if config.external.command != ["coderabbit", "review", "--plain"]:
        raise AssertionError


def test_config_file_overrides_sections(tmp_path: Path) -> None:
    """Ensure partial documents override only the given fields."""
    path = tmp_path / "review-config.json"
    _ = path.write_text(
        json.dumps(
            {
                "blocking": {"major_blocks_ship": True},
                "external": {"enabled": False, "limit_per_hour": 2},
                "tier1": {"commands": {"lint": ["ruff", "check", "."]}},
            },
        ),
        encoding="utf-8",
    )
    config = read_review_config(path)

    if not config.blocking.major_blocks_ship:
        raise AssertionError
    if config.external.enabled or config.external.limit_per_hour != 2:
        raise AssertionError
    if config.tier1.commands["lint"] != ["ruff", "check", "."]:
        raise AssertionError


def test_invalid_json_raises_review_config_error(tmp_path: Path) -> None:
    """Ensure broken JSON is a configuration error, not a crash."""
    path = tmp_path / "review-config.json"
    _ = path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ReviewConfigError, match="Invalid review config"):
        _ = read_review_config(path)


def test_unknown_keys_fail_schema_validation(tmp_path: Path) -> None:
    """Ensure typos in section names are reported with their location."""
    path = tmp_path / "review-config.json"
    _ = path.write_text(json.dumps({"blockng": {}}), encoding="utf-8")

    with pytest.raises(ReviewConfigError, match="blockng"):
        _ = read_review_config(path)


def test_loader_caches_until_reload(tmp_path: Path) -> None:
    """Ensure the loader serves the cached model until reload is called."""
    path = tmp_path / "review-config.json"
    _ = path.write_text(
        json.dumps({"external": {"limit_per_hour": 3}}),
        encoding="utf-8",
    )
    loader = ReviewConfigLoader(path=path)
    first = loader.load()

    _ = path.write_text(
        json.dumps({"external": {"limit_per_hour": 5}}),
        encoding="utf-8",
    )
    if loader.load() is not first:
        raise AssertionError
    if loader.reload().external.limit_per_hour != 5:
        raise AssertionError


def test_resolve_check_command_prefers_configured_override(tmp_path: Path) -> None:
    """Ensure explicit commands win over package-manager detection."""
    _ = (tmp_path / "package.json").write_text(
        json.dumps({"scripts": {"lint": "eslint ."}}),
        encoding="utf-8",
    )
    detector = PackageManagerDetector(repo_root=tmp_path)

    detected = resolve_check_command(
        check_name="lint",
        configured={},
        detector=detector,
    )
    overridden = resolve_check_command(
        check_name="lint",
        configured={"lint": ["biome", "lint"]},
        detector=detector,
    )

    if detected != ("npm", "run", "lint"):
        raise AssertionError
    if overridden != ("biome", "lint"):
        raise AssertionError
    if resolve_check_command(check_name="build", configured={}, detector=None):
        raise AssertionError
