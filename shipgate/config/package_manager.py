"""Package-manager detection and default quality-command resolution."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# Lockfile precedence: the first lockfile found decides the manager.
LOCKFILE_MANAGERS: tuple[tuple[str, str], ...] = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("package-lock.json", "npm"),
)

# Check name -> candidate package.json script names, first match wins.
SCRIPT_CANDIDATES: dict[str, tuple[str, ...]] = {
    "lint": ("lint",),
    "typecheck": ("typecheck", "type-check"),
    "format": ("format:check", "format-check"),
    "build": ("build",),
    "test": ("test",),
}


@dataclass(frozen=True, slots=True)
class PackageManagerInfo:
    """Detected package manager and the scripts its manifest declares."""

    name: str
    scripts: frozenset[str]

    def command_for(self, check_name: str) -> tuple[str, ...] | None:
        """Return the run command for a quality check or None when undeclared."""
        for script in SCRIPT_CANDIDATES.get(check_name, ()):
            if script in self.scripts:
                return (self.name, "run", script)
        return None


class PackageManagerDetector:
    """Detect the repository package manager once and cache the answer."""

    _repo_root: Path
    _cached: PackageManagerInfo | None
    _loaded: bool

    def __init__(self, *, repo_root: Path) -> None:
        """Create a detector bound to one repository root."""
        self._repo_root = repo_root
        self._cached = None
        self._loaded = False

    def detect(self) -> PackageManagerInfo | None:
        """Return cached detection result, probing the filesystem on first use."""
        if not self._loaded:
            self._cached = _detect(self._repo_root)
            self._loaded = True
        return self._cached

    def reload(self) -> PackageManagerInfo | None:
        """Invalidate the cached result and detect again."""
        self._loaded = False
        self._cached = None
        return self.detect()


def _detect(repo_root: Path) -> PackageManagerInfo | None:
    manifest_path = repo_root / "package.json"
    if not manifest_path.is_file():
        return None
    name = "npm"
    for lockfile, manager in LOCKFILE_MANAGERS:
        if (repo_root / lockfile).exists():
            name = manager
            break
    return PackageManagerInfo(name=name, scripts=_read_scripts(manifest_path))


def _read_scripts(manifest_path: Path) -> frozenset[str]:
    try:
        payload = cast("object", json.loads(manifest_path.read_text(encoding="utf-8")))
    except (OSError, ValueError):
        logger.warning("Unable to read package manifest %s", manifest_path)
        return frozenset()
    if not isinstance(payload, dict):
        return frozenset()
    scripts = cast("dict[str, object]", payload).get("scripts")
    if not isinstance(scripts, dict):
        return frozenset()
    return frozenset(str(key) for key in cast("dict[object, object]", scripts))
