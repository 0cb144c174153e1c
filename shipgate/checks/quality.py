"""Supplementary code-quality checks for React/Next.js repositories."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from shipgate.checks.adapters import circular_dependency_outcome, to_tool_outcome
from shipgate.checks.process import run_command

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from shipgate.checks.adapters import ToolOutcome
    from shipgate.checks.process import CommandRunner

logger = logging.getLogger(__name__)

QUALITY_TOOL_TIMEOUT_SECONDS = 300.0
DEAD_UI_SNIPPET_CHARS = 60
DEAD_UI_EXTENSIONS: Final[frozenset[str]] = frozenset({".tsx", ".jsx"})
DEAD_UI_IGNORED_DIRS: Final[frozenset[str]] = frozenset(
    {"node_modules", ".next", "coverage", ".git"},
)

DEAD_CODE_COMMAND: tuple[str, ...] = ("npx", "knip")
DUPLICATES_COMMAND: tuple[str, ...] = (
    "npx",
    "jscpd",
    "src",
    "--reporters",
    "console",
    "--ignore",
    "**/node_modules/**,**/*.test.*,**/*.spec.*",
)
CIRCULAR_COMMAND: tuple[str, ...] = (
    "npx",
    "madge",
    "--circular",
    "--extensions",
    "ts,tsx",
    "src",
)
PACKAGE_LOOKUP_COMMAND: tuple[str, ...] = ("npm", "view")
PACKAGE_LOOKUP_TIMEOUT_SECONDS = 60.0
PACKAGE_MANIFEST = "package.json"
LOCAL_PACKAGE_SCOPES: tuple[str, ...] = ("@benjaminrose/",)

DEAD_UI_PATTERNS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = (
    ("Empty onClick", re.compile(r"onClick\s*=\s*\{\s*\(\)\s*=>\s*\{\s*\}\s*\}")),
    ("Undefined onClick", re.compile(r"onClick\s*=\s*\{undefined\}")),
    ("Null onClick", re.compile(r"onClick\s*=\s*\{null\}")),
    ('Placeholder href="#"', re.compile(r"""href\s*=\s*["']#["']""")),
    ("Empty onSubmit", re.compile(r"onSubmit\s*=\s*\{\s*\(\)\s*=>\s*\{\s*\}\s*\}")),
    ("TODO in handler", re.compile(r"on\w+\s*=\s*\{[^}]*TODO[^}]*\}", re.IGNORECASE)),
    ("Empty onChange", re.compile(r"onChange\s*=\s*\{\s*\(\)\s*=>\s*\{\s*\}\s*\}")),
)


@dataclass(frozen=True, slots=True)
class DeadUIIssue:
    """One dead UI pattern occurrence."""

    file: str
    line: int
    kind: str
    snippet: str


@dataclass(frozen=True, slots=True)
class QualityCheckResult:
    """Outcome of one named quality check."""

    name: str
    passed: bool
    message: str
    issues: tuple[DeadUIIssue, ...] = ()
    missing_packages: tuple[str, ...] = ()


def find_dead_ui(repo_root: Path) -> list[DeadUIIssue] | None:
    """Scan `src/` for dead UI patterns; None when there is no `src/`."""
    source_root = repo_root / "src"
    if not source_root.is_dir():
        return None
    issues: list[DeadUIIssue] = []
    for path in sorted(_iter_ui_files(source_root)):
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        lines = content.split("\n")
        relative = path.relative_to(repo_root).as_posix()
        for kind, pattern in DEAD_UI_PATTERNS:
            for match in pattern.finditer(content):
                line_number = content.count("\n", 0, match.start()) + 1
                issues.append(
                    DeadUIIssue(
                        file=relative,
                        line=line_number,
                        kind=kind,
                        snippet=lines[line_number - 1].strip()[:DEAD_UI_SNIPPET_CHARS],
                    ),
                )
    return issues


def read_declared_packages(repo_root: Path) -> list[str] | None:
    """Return dependency and devDependency names; None without a manifest."""
    manifest = repo_root / PACKAGE_MANIFEST
    try:
        raw = manifest.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    payload: object = json.loads(raw)
    if not isinstance(payload, dict):
        msg = f"{PACKAGE_MANIFEST} must contain a JSON object"
        raise TypeError(msg)
    names: dict[str, None] = {}
    for section in ("dependencies", "devDependencies"):
        declared = payload.get(section)
        if isinstance(declared, dict):
            names.update(dict.fromkeys(str(name) for name in declared))
    return list(names)


def _iter_ui_files(directory: Path) -> list[Path]:
    found: list[Path] = []
    for entry in directory.iterdir():
        if entry.is_dir():
            if entry.name not in DEAD_UI_IGNORED_DIRS:
                found.extend(_iter_ui_files(entry))
        elif entry.suffix in DEAD_UI_EXTENSIONS:
            found.append(entry)
    return found


class QualityCheckSuite:
    """Run the quality checks individually or all together."""

    _repo_root: Path
    _runner: CommandRunner
    _timeout_seconds: float

    def __init__(
        self,
        *,
        repo_root: Path,
        runner: CommandRunner | None = None,
        timeout_seconds: float = QUALITY_TOOL_TIMEOUT_SECONDS,
    ) -> None:
        """Create suite bound to one repository root."""
        self._repo_root = repo_root
        self._runner = runner or run_command
        self._timeout_seconds = timeout_seconds

    @property
    def checks(self) -> dict[str, Callable[[], Awaitable[QualityCheckResult]]]:
        """Check name -> coroutine factory, in `all` execution order."""
        return {
            "dead-code": self.check_dead_code,
            "duplicates": self.check_duplicates,
            "circular": self.check_circular,
            "dead-ui": self.check_dead_ui,
            "packages": self.check_packages,
        }

    async def run(self, name: str) -> list[QualityCheckResult]:
        """Run one named check, or every check for `all`."""
        if name == "all":
            return [await check() for check in self.checks.values()]
        check = self.checks.get(name)
        if check is None:
            msg = f"Unknown quality check: {name!r}"
            raise ValueError(msg)
        return [await check()]

    async def check_dead_code(self) -> QualityCheckResult:
        """Find unused files, exports and dependencies with knip."""
        outcome = await self._run_tool("dead-code", DEAD_CODE_COMMAND)
        return _tool_result(
            "dead-code",
            outcome,
            pass_message="No dead code found",
            fail_message="Dead code issues found",
        )

    async def check_duplicates(self) -> QualityCheckResult:
        """Find duplicated code blocks with jscpd."""
        outcome = await self._run_tool("duplicates", DUPLICATES_COMMAND)
        return _tool_result(
            "duplicates",
            outcome,
            pass_message="No significant duplicates found",
            fail_message="Duplicate code found",
        )

    async def check_circular(self) -> QualityCheckResult:
        """Find circular imports with madge."""
        outcome = await self._runner(
            CIRCULAR_COMMAND,
            cwd=self._repo_root,
            timeout_seconds=self._timeout_seconds,
        )
        return _tool_result(
            "circular",
            circular_dependency_outcome(outcome),
            pass_message="No circular dependencies found",
            fail_message="Circular dependencies found",
        )

    async def check_dead_ui(self) -> QualityCheckResult:
        """Find empty handlers and placeholder links in UI components."""
        issues = await asyncio.to_thread(find_dead_ui, self._repo_root)
        if issues is None:
            return QualityCheckResult(
                name="dead-ui",
                passed=True,
                message="No src directory found, skipping dead UI check",
            )
        if not issues:
            return QualityCheckResult(
                name="dead-ui",
                passed=True,
                message="No dead UI patterns found",
            )
        return QualityCheckResult(
            name="dead-ui",
            passed=False,
            message=f"Found {len(issues)} dead UI issue(s)",
            issues=tuple(issues),
        )

    async def check_packages(self) -> QualityCheckResult:
        """Verify every declared dependency exists in the npm registry."""
        try:
            packages = await asyncio.to_thread(read_declared_packages, self._repo_root)
        except (OSError, UnicodeDecodeError, TypeError, ValueError) as exc:
            return QualityCheckResult(
                name="packages",
                passed=False,
                message=f"Unable to read {PACKAGE_MANIFEST}: {exc}",
            )
        if packages is None:
            return QualityCheckResult(
                name="packages",
                passed=True,
                message=f"No {PACKAGE_MANIFEST} found, skipping package check",
            )
        missing: list[str] = []
        for package in packages:
            if package.startswith(LOCAL_PACKAGE_SCOPES):
                continue
            outcome = await self._runner(
                (*PACKAGE_LOOKUP_COMMAND, package, "name"),
                cwd=self._repo_root,
                timeout_seconds=PACKAGE_LOOKUP_TIMEOUT_SECONDS,
            )
            if not outcome.passed:
                missing.append(package)
        if not missing:
            return QualityCheckResult(
                name="packages",
                passed=True,
                message="All packages exist in the npm registry",
            )
        logger.info("Packages missing from registry", extra={"packages": missing})
        return QualityCheckResult(
            name="packages",
            passed=False,
            message=(
                f"{len(missing)} package(s) not found in npm registry; "
                "these may be hallucinated packages, verify and remove them"
            ),
            missing_packages=tuple(missing),
        )

    async def _run_tool(self, name: str, command: tuple[str, ...]) -> ToolOutcome:
        outcome = await self._runner(
            command,
            cwd=self._repo_root,
            timeout_seconds=self._timeout_seconds,
        )
        return to_tool_outcome(name, outcome)


def _tool_result(
    name: str,
    outcome: ToolOutcome,
    *,
    pass_message: str,
    fail_message: str,
) -> QualityCheckResult:
    if outcome.passed:
        return QualityCheckResult(name=name, passed=True, message=pass_message)
    logger.info("Quality check %s failed", name, extra={"error": outcome.error})
    return QualityCheckResult(name=name, passed=False, message=fail_message)
