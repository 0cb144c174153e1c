"""Tests for static environment settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from shipgate.config import SettingsValidationError, load_settings


def test_load_settings_uses_defaults_when_env_absent(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Ensure settings default to repository-relative `.claude` paths."""
    monkeypatch.chdir(tmp_path)
    settings = load_settings({})

    if settings.repo_root != tmp_path:
        raise AssertionError
    if settings.log_level != "INFO":
        raise AssertionError
    if settings.loop_state_path != tmp_path / ".claude/state/loop-state.json":
        raise AssertionError
    if settings.rate_limit_path != tmp_path / ".claude/state/rate-limit.json":
        raise AssertionError
    if settings.checkpoint_dir != tmp_path / ".claude/checkpoints":
        raise AssertionError
    if settings.config_file != tmp_path / ".claude/review-config.json":
        raise AssertionError
    if settings.git_bin != "git":
        raise AssertionError


def test_load_settings_resolves_relative_paths_against_repo_root(
    tmp_path: Path,
) -> None:
    """Ensure relative overrides land under the repo root, absolute ones do not."""
    absolute = tmp_path / "elsewhere"
    settings = load_settings(
        {
            "SHIPGATE_REPO_ROOT": str(tmp_path),
            "SHIPGATE_STATE_DIR": "var/state",
            "SHIPGATE_CHECKPOINT_DIR": str(absolute),
            "SHIPGATE_LOG_LEVEL": "debug",
        },
    )

    if settings.state_dir != tmp_path / "var/state":
        raise AssertionError
    if settings.checkpoint_dir != absolute:
        raise AssertionError
    if settings.log_level != "DEBUG":
        raise AssertionError


def test_load_settings_rejects_invalid_log_level() -> None:
    """Ensure invalid log levels fail with deterministic validation text."""
    message = (
        "Invalid SHIPGATE_LOG_LEVEL: 'verbose'. "
        "Allowed values: CRITICAL, DEBUG, ERROR, INFO, WARNING."
    )
    with pytest.raises(SettingsValidationError, match=message):
        _ = load_settings({"SHIPGATE_LOG_LEVEL": "verbose"})


@pytest.mark.parametrize(
    "env_var",
    ["SHIPGATE_REPO_ROOT", "SHIPGATE_STATE_DIR", "SHIPGATE_GIT_BIN"],
)
def test_load_settings_rejects_empty_values(env_var: str) -> None:
    """Ensure blank values are rejected instead of silently defaulted."""
    with pytest.raises(SettingsValidationError, match="value cannot be empty"):
        _ = load_settings({env_var: "   "})
