"""Review pipeline configuration file loading and command resolution."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError

if TYPE_CHECKING:
    from pathlib import Path

    from shipgate.config.package_manager import PackageManagerDetector

logger = logging.getLogger(__name__)

DEFAULT_TIER1_TIMEOUT_SECONDS = 30.0
DEFAULT_TIER2_BUDGET_SECONDS = 120.0
DEFAULT_TIER2_STAGE_TIMEOUT_SECONDS = 90.0
DEFAULT_EXTERNAL_LIMIT_PER_HOUR = 8
DEFAULT_EXTERNAL_TIMEOUT_SECONDS = 300.0
DEFAULT_EXTERNAL_COMMAND: tuple[str, ...] = ("coderabbit", "review", "--plain")


class _ConfigSection(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class BlockingPolicy(_ConfigSection):
    """Which reviewer finding severities block shipping."""

    critical_blocks_ship: bool = True
    major_blocks_ship: bool = False


class Tier1Config(_ConfigSection):
    """Fast free checks: per-check timeout and optional command overrides."""

    timeout_seconds: float = Field(default=DEFAULT_TIER1_TIMEOUT_SECONDS, gt=0)
    commands: dict[str, list[str]] = Field(default_factory=dict)


class Tier2Config(_ConfigSection):
    """Slow free checks: overall budget, per-stage cap, command overrides."""

    budget_seconds: float = Field(default=DEFAULT_TIER2_BUDGET_SECONDS, gt=0)
    stage_timeout_seconds: float = Field(
        default=DEFAULT_TIER2_STAGE_TIMEOUT_SECONDS,
        gt=0,
    )
    commands: dict[str, list[str]] = Field(default_factory=dict)


class ExternalConfig(_ConfigSection):
    """Rate-limited external review settings."""

    enabled: bool = True
    limit_per_hour: int = Field(default=DEFAULT_EXTERNAL_LIMIT_PER_HOUR, ge=0)
    command: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTERNAL_COMMAND))
    timeout_seconds: float = Field(default=DEFAULT_EXTERNAL_TIMEOUT_SECONDS, gt=0)


class ReviewConfig(_ConfigSection):
    """Complete review pipeline configuration."""

    blocking: BlockingPolicy = Field(default_factory=BlockingPolicy)
    tier1: Tier1Config = Field(default_factory=Tier1Config)
    tier2: Tier2Config = Field(default_factory=Tier2Config)
    external: ExternalConfig = Field(default_factory=ExternalConfig)


class ReviewConfigError(ValueError):
    """Raised when the review config file cannot be used."""

    @classmethod
    def for_invalid_json(cls, path: Path, detail: str) -> ReviewConfigError:
        """Build error for config files that are not valid JSON."""
        message = f"Invalid review config {path.as_posix()}: {detail}."
        return cls(message)

    @classmethod
    def for_invalid_schema(
        cls,
        path: Path,
        error: ValidationError,
    ) -> ReviewConfigError:
        """Build error for config files that fail schema validation."""
        problems = "; ".join(
            f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
            for item in error.errors()
        )
        message = f"Invalid review config {path.as_posix()}: {problems}."
        return cls(message)


class ReviewConfigLoader:
    """Load the review config file once and serve the cached model."""

    _path: Path
    _cached: ReviewConfig | None

    def __init__(self, *, path: Path) -> None:
        """Create loader bound to one config file path."""
        self._path = path
        self._cached = None

    def load(self) -> ReviewConfig:
        """Return the cached config, reading the file on first use."""
        if self._cached is None:
            self._cached = read_review_config(self._path)
        return self._cached

    def reload(self) -> ReviewConfig:
        """Drop the cached config and read the file again."""
        self._cached = None
        return self.load()


def read_review_config(path: Path) -> ReviewConfig:
    """Read and validate a review config file; absent file yields defaults."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("Review config %s absent; using defaults", path)
        return ReviewConfig()
    except OSError as exc:
        raise ReviewConfigError.for_invalid_json(path, str(exc)) from exc
    try:
        payload: object = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ReviewConfigError.for_invalid_json(path, exc.msg) from exc
    try:
        return ReviewConfig.model_validate(payload)
    except ValidationError as exc:
        raise ReviewConfigError.for_invalid_schema(path, exc) from exc


def resolve_check_command(
    *,
    check_name: str,
    configured: dict[str, list[str]],
    detector: PackageManagerDetector | None,
) -> tuple[str, ...] | None:
    """Resolve one check's command: explicit config wins over detection."""
    override = configured.get(check_name)
    if override:
        return tuple(override)
    if detector is None:
        return None
    info = detector.detect()
    if info is None:
        return None
    return info.command_for(check_name)
