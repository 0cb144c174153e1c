"""Typed process settings loaded from static environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

LogLevel = str

ENV_REPO_ROOT = "SHIPGATE_REPO_ROOT"
ENV_LOG_LEVEL = "SHIPGATE_LOG_LEVEL"
ENV_STATE_DIR = "SHIPGATE_STATE_DIR"
ENV_CHECKPOINT_DIR = "SHIPGATE_CHECKPOINT_DIR"
ENV_CONFIG_FILE = "SHIPGATE_CONFIG_FILE"
ENV_GIT_BIN = "SHIPGATE_GIT_BIN"

DEFAULT_LOG_LEVEL: LogLevel = "INFO"
DEFAULT_STATE_DIR = Path(".claude/state")
DEFAULT_CHECKPOINT_DIR = Path(".claude/checkpoints")
DEFAULT_CONFIG_FILE = Path(".claude/review-config.json")
DEFAULT_GIT_BIN = "git"

LOOP_STATE_FILE_NAME = "loop-state.json"
RATE_LIMIT_FILE_NAME = "rate-limit.json"

VALID_LOG_LEVELS: frozenset[LogLevel] = frozenset(
    {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"},
)


class SettingsValidationError(ValueError):
    """Raised when static settings env vars contain invalid values."""

    @classmethod
    def for_empty_value(cls, env_var: str) -> SettingsValidationError:
        """Build error for empty non-optional env var values."""
        message = f"Invalid {env_var}: value cannot be empty."
        return cls(message)

    @classmethod
    def for_invalid_choice(
        cls,
        env_var: str,
        value: str,
        allowed_values: str,
    ) -> SettingsValidationError:
        """Build error for enum-like env vars with fixed allowlists."""
        message = f"Invalid {env_var}: {value!r}. Allowed values: {allowed_values}."
        return cls(message)


@dataclass(frozen=True, slots=True)
class AppSettings:
    """Resolved static configuration values for one CLI invocation."""

    repo_root: Path
    log_level: LogLevel
    state_dir: Path
    checkpoint_dir: Path
    config_file: Path
    git_bin: str

    @property
    def loop_state_path(self) -> Path:
        """Location of the persisted loop controller state."""
        return self.state_dir / LOOP_STATE_FILE_NAME

    @property
    def rate_limit_path(self) -> Path:
        """Location of the persisted external-review quota state."""
        return self.state_dir / RATE_LIMIT_FILE_NAME


def load_settings(environ: Mapping[str, str] | None = None) -> AppSettings:
    """Load and validate static settings from process environment."""
    env = os.environ if environ is None else environ

    repo_root = _read_repo_root(env)
    log_level = _read_log_level(env)
    state_dir = _read_repo_path(env, ENV_STATE_DIR, DEFAULT_STATE_DIR, repo_root)
    checkpoint_dir = _read_repo_path(
        env,
        ENV_CHECKPOINT_DIR,
        DEFAULT_CHECKPOINT_DIR,
        repo_root,
    )
    config_file = _read_repo_path(env, ENV_CONFIG_FILE, DEFAULT_CONFIG_FILE, repo_root)
    git_bin = _read_git_bin(env)

    return AppSettings(
        repo_root=repo_root,
        log_level=log_level,
        state_dir=state_dir,
        checkpoint_dir=checkpoint_dir,
        config_file=config_file,
        git_bin=git_bin,
    )


def _read_repo_root(environ: Mapping[str, str]) -> Path:
    raw = environ.get(ENV_REPO_ROOT)
    if raw is None:
        return Path.cwd()
    value = raw.strip()
    if not value:
        raise SettingsValidationError.for_empty_value(ENV_REPO_ROOT)
    return Path(value).expanduser()


def _read_log_level(environ: Mapping[str, str]) -> LogLevel:
    raw = environ.get(ENV_LOG_LEVEL)
    if raw is None:
        return DEFAULT_LOG_LEVEL
    value = raw.strip().upper()
    if value in VALID_LOG_LEVELS:
        return value
    allowed = ", ".join(sorted(VALID_LOG_LEVELS))
    raise SettingsValidationError.for_invalid_choice(ENV_LOG_LEVEL, raw, allowed)


def _read_repo_path(
    environ: Mapping[str, str],
    env_var: str,
    default: Path,
    repo_root: Path,
) -> Path:
    raw = environ.get(env_var)
    if raw is None:
        return repo_root / default
    value = raw.strip()
    if not value:
        raise SettingsValidationError.for_empty_value(env_var)
    path = Path(value).expanduser()
    if path.is_absolute():
        return path
    return repo_root / path


def _read_git_bin(environ: Mapping[str, str]) -> str:
    raw = environ.get(ENV_GIT_BIN)
    if raw is None:
        return DEFAULT_GIT_BIN
    value = raw.strip()
    if not value:
        raise SettingsValidationError.for_empty_value(ENV_GIT_BIN)
    return value
