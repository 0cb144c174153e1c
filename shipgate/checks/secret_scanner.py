"""Pattern-based secret detection over a list of files."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final, Literal

from shipgate.loops.models import Finding

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

REDACTION_MASK = "****"
REDACTION_VISIBLE_CHARS = 4
COMMENT_PREFIXES: Final[tuple[str, ...]] = ("//", "/*", "*", "#")

SAFE_FILE_NAME_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^\.env\.(example|sample|template)$", re.IGNORECASE),
    re.compile(r"\.(example|sample|template)$", re.IGNORECASE),
)
SAFE_DIRECTORY_NAMES: Final[frozenset[str]] = frozenset(
    {"test", "tests", "__tests__", "fixtures", "__fixtures__", "__mocks__"},
)


@dataclass(frozen=True, slots=True)
class SecretDetector:
    """One regex detector; `group` selects the secret value inside a match."""

    name: str
    pattern: re.Pattern[str]
    group: int = 0
    description: str = ""


SECRET_DETECTORS: Final[tuple[SecretDetector, ...]] = (
    SecretDetector(
        name="generic_api_key",
        pattern=re.compile(
            r"""(?i)\b[\w-]*api[_-]?key\b\s*[:=]\s*['"]?([A-Za-z0-9_\-]{16,})""",
        ),
        group=1,
        description="API key assigned to a literal value",
    ),
    SecretDetector(
        name="private_key",
        pattern=re.compile(
            r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |PGP |ENCRYPTED )?PRIVATE KEY-----",
        ),
        description="Private key block",
    ),
    SecretDetector(
        name="aws_access_key",
        pattern=re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b"),
        description="AWS access key id",
    ),
    SecretDetector(
        name="github_token",
        pattern=re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{36,}|github_pat_\w{22,})\b"),
        description="GitHub personal access token",
    ),
    SecretDetector(
        name="database_url",
        pattern=re.compile(
            r"(?i)\b(?:postgres(?:ql)?|mysql|mariadb|mongodb(?:\+srv)?|redis|amqp)"
            r"://[^\s:/@'\"]+:[^\s@'\"]+@[^\s'\"]+",
        ),
        description="Database connection URL with embedded credentials",
    ),
    SecretDetector(
        name="auth_secret",
        pattern=re.compile(
            r"""(?i)\b[\w-]*(?:jwt|oauth|client|auth|session)[_-]?secret\b"""
            r"""\s*[:=]\s*['"]?([^\s'",;]{8,})""",
        ),
        group=1,
        description="JWT/OAuth secret assigned to a literal value",
    ),
)


@dataclass(frozen=True, slots=True)
class SecretScanResult:
    """Aggregate scan result across all scanned files."""

    status: Literal["pass", "fail"]
    matches: tuple[Finding, ...]
    scanned_files: int
    skipped_files: int


def redact(value: str) -> str:
    """Keep the first characters of a secret and mask the rest."""
    return f"{value[:REDACTION_VISIBLE_CHARS]}{REDACTION_MASK}"


def is_safe_path(path: str | Path) -> bool:
    """Return True for example env files and test/fixture locations."""
    pure = PurePosixPath(Path(path).as_posix())
    if any(pattern.search(pure.name) for pattern in SAFE_FILE_NAME_PATTERNS):
        return True
    return any(part.lower() in SAFE_DIRECTORY_NAMES for part in pure.parts[:-1])


def is_comment_line(line: str) -> bool:
    """Return True when a line is comment-only."""
    return line.lstrip().startswith(COMMENT_PREFIXES)


def scan_text(
    text: str,
    *,
    file_label: str,
    detectors: Iterable[SecretDetector] = SECRET_DETECTORS,
) -> list[Finding]:
    """Scan one file's text and return redacted findings."""
    detector_list = tuple(detectors)
    findings: list[Finding] = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip() or is_comment_line(line):
            continue
        for detector in detector_list:
            for match in detector.pattern.finditer(line):
                secret = match.group(detector.group)
                findings.append(
                    Finding(
                        severity="critical",
                        category="security",
                        file=file_label,
                        line=line_number,
                        message=(
                            f"Possible {detector.name} detected: {redact(secret)}"
                        ),
                        fix=(
                            "Move the value to an environment variable or secret "
                            "store and rotate the exposed credential."
                        ),
                    ),
                )
    return findings


class SecretScanner:
    """Scan files concurrently for hardcoded credentials."""

    _repo_root: Path
    _detectors: tuple[SecretDetector, ...]

    def __init__(
        self,
        *,
        repo_root: Path,
        detectors: Sequence[SecretDetector] = SECRET_DETECTORS,
    ) -> None:
        """Create scanner resolving relative paths against `repo_root`."""
        self._repo_root = repo_root
        self._detectors = tuple(detectors)

    async def scan_files(self, paths: Sequence[str]) -> SecretScanResult:
        """Scan every non-excluded path; fail iff at least one match."""
        candidates = [path for path in paths if not is_safe_path(path)]
        per_file = await asyncio.gather(
            *(asyncio.to_thread(self._scan_one, path) for path in candidates),
        )
        matches: list[Finding] = []
        unreadable = 0
        for findings in per_file:
            if findings is None:
                unreadable += 1
                continue
            matches.extend(findings)
        if matches:
            logger.warning(
                "Secret scan found %d potential secret(s)",
                len(matches),
                extra={"files": sorted({m.file for m in matches if m.file})},
            )
        return SecretScanResult(
            status="fail" if matches else "pass",
            matches=tuple(matches),
            scanned_files=len(candidates) - unreadable,
            skipped_files=len(paths) - len(candidates) + unreadable,
        )

    def _scan_one(self, path: str) -> list[Finding] | None:
        full_path = Path(path)
        if not full_path.is_absolute():
            full_path = self._repo_root / full_path
        try:
            text = full_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None
        return scan_text(text, file_label=path, detectors=self._detectors)
