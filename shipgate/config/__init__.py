"""Configuration module for shipgate."""

from .package_manager import PackageManagerDetector, PackageManagerInfo
from .review_config import (
    BlockingPolicy,
    ExternalConfig,
    ReviewConfig,
    ReviewConfigError,
    ReviewConfigLoader,
    Tier1Config,
    Tier2Config,
    read_review_config,
    resolve_check_command,
)
from .settings import AppSettings, SettingsValidationError, load_settings

__all__ = [
    "AppSettings",
    "BlockingPolicy",
    "ExternalConfig",
    "PackageManagerDetector",
    "PackageManagerInfo",
    "ReviewConfig",
    "ReviewConfigError",
    "ReviewConfigLoader",
    "SettingsValidationError",
    "Tier1Config",
    "Tier2Config",
    "load_settings",
    "read_review_config",
    "resolve_check_command",
]
