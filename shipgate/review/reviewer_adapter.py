"""Loop 2 boundary: prepare the reviewer request and parse its answer.

Nothing here calls a model. The caller hands the prompt to a reviewer of
its choosing and feeds the raw text answer back to `parse_reviewer_output`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from pydantic import ValidationError
from rapidfuzz.fuzz import token_set_ratio

from shipgate.loops.models import Finding

if TYPE_CHECKING:
    from pathlib import Path

    from shipgate.vcs.git import VcsLookup

logger = logging.getLogger(__name__)

MAX_DIFF_LINES = 10_000
RECENT_COMMIT_LIMIT = 5
DIFF_TRUNCATION_MARKER = "... [diff truncated after {limit} lines] ..."
SPEC_DIRECTORIES: tuple[str, ...] = ("specs", "docs/specs", ".claude/specs")
SPEC_FILE_SUFFIXES: Final[frozenset[str]] = frozenset({".md", ".txt", ".json", ".yaml"})
SPEC_FILE_MAX_CHARS = 20_000

REVIEWER_SEVERITIES: Final[frozenset[str]] = frozenset({"critical", "major", "minor"})
REVIEWER_CATEGORIES: Final[frozenset[str]] = frozenset(
    {"quality", "architecture", "security", "testing", "docs"},
)
DEFAULT_CATEGORY = "quality"
BRANCH_MATCH_THRESHOLD = 0.85

PACKAGE_JSON_STACK_TAGS: tuple[tuple[str, str], ...] = (
    ("next", "nextjs"),
    ("react", "react"),
    ("typescript", "typescript"),
    ("prisma", "prisma"),
    ("@prisma/client", "prisma"),
    ("@trpc/server", "trpc"),
    ("tailwindcss", "tailwind"),
    ("vitest", "vitest"),
    ("@playwright/test", "playwright"),
)
MANIFEST_STACK_TAGS: tuple[tuple[str, str], ...] = (
    ("pyproject.toml", "python"),
    ("requirements.txt", "python"),
    ("go.mod", "go"),
    ("Cargo.toml", "rust"),
)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL | re.IGNORECASE)
_BRANCH_TOKEN = re.compile(r"[a-z0-9]+")

RESPONSE_CONTRACT = """\
Respond with a single JSON object and nothing else:
{
  "findings": [
    {
      "severity": "critical" | "major" | "minor",
      "category": "quality" | "architecture" | "security" | "testing" | "docs",
      "file": "path/relative/to/repo",
      "line": 42,
      "message": "What is wrong",
      "suggestion": "How to fix it"
    }
  ]
}
Use an empty findings list when the change is ready to ship."""


@dataclass(frozen=True, slots=True)
class SpecDocument:
    """A specification file matched to the current branch."""

    path: str
    content: str


@dataclass(frozen=True, slots=True)
class ReviewContext:
    """Everything the reviewer prompt is built from."""

    branch: str | None
    diff: str
    diff_truncated: bool
    changed_files: tuple[str, ...]
    recent_commits: tuple[str, ...]
    specs: tuple[SpecDocument, ...] = ()
    tech_stack: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ReviewerOutput:
    """Parsed reviewer answer."""

    findings: tuple[Finding, ...] = field(default=())

    def count(self, severity: str) -> int:
        """Count findings of one severity."""
        return sum(1 for finding in self.findings if finding.severity == severity)


def truncate_diff(diff: str, *, max_lines: int = MAX_DIFF_LINES) -> tuple[str, bool]:
    """Bound a diff to `max_lines` lines, appending a marker when cut."""
    lines = diff.splitlines()
    if len(lines) <= max_lines:
        return diff, False
    kept = [*lines[:max_lines], DIFF_TRUNCATION_MARKER.format(limit=max_lines)]
    return "\n".join(kept), True


async def load_review_context(vcs: VcsLookup, repo_root: Path) -> ReviewContext:
    """Collect diff, changed files, history, matching specs and stack tags."""
    diff, changed_files, commits, branch = await asyncio.gather(
        vcs.staged_diff(),
        vcs.staged_files(),
        vcs.recent_commits(RECENT_COMMIT_LIMIT),
        vcs.current_branch(),
    )
    bounded_diff, truncated = truncate_diff(diff)
    specs, tech_stack = await asyncio.gather(
        asyncio.to_thread(find_spec_documents, repo_root, branch),
        asyncio.to_thread(detect_tech_stack, repo_root),
    )
    if truncated:
        logger.info("Staged diff truncated", extra={"max_lines": MAX_DIFF_LINES})
    return ReviewContext(
        branch=branch,
        diff=bounded_diff,
        diff_truncated=truncated,
        changed_files=tuple(changed_files),
        recent_commits=tuple(commits[:RECENT_COMMIT_LIMIT]),
        specs=tuple(specs),
        tech_stack=tuple(tech_stack),
    )


def branch_matches(directory_name: str, branch: str) -> bool:
    """Fuzzy-match a spec directory name against a branch name.

    Both sides are reduced to lowercase alphanumeric tokens; the branch
    prefix before the last `/` (e.g. `feature/`) is ignored. A match is
    either slug containing the other, or a RapidFuzz token_set_ratio at or
    above `BRANCH_MATCH_THRESHOLD`.
    """
    branch_tail = branch.rsplit("/", 1)[-1]
    directory_tokens = _BRANCH_TOKEN.findall(directory_name.lower())
    branch_tokens = _BRANCH_TOKEN.findall(branch_tail.lower())
    if not directory_tokens or not branch_tokens:
        return False
    directory_slug = "-".join(directory_tokens)
    branch_slug = "-".join(branch_tokens)
    if directory_slug in branch_slug or branch_slug in directory_slug:
        return True
    score = token_set_ratio(" ".join(directory_tokens), " ".join(branch_tokens))
    return score / 100.0 >= BRANCH_MATCH_THRESHOLD


def find_spec_documents(repo_root: Path, branch: str | None) -> list[SpecDocument]:
    """Read spec files whose directory name fuzzy-matches the branch."""
    if not branch:
        return []
    documents: list[SpecDocument] = []
    for relative_dir in SPEC_DIRECTORIES:
        base = repo_root / relative_dir
        if not base.is_dir():
            continue
        for candidate in sorted(base.iterdir()):
            if not candidate.is_dir() or not branch_matches(candidate.name, branch):
                continue
            documents.extend(_read_spec_directory(repo_root, candidate))
    return documents


def _read_spec_directory(repo_root: Path, directory: Path) -> list[SpecDocument]:
    documents: list[SpecDocument] = []
    for path in sorted(directory.rglob("*")):
        if not path.is_file() or path.suffix not in SPEC_FILE_SUFFIXES:
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        documents.append(
            SpecDocument(
                path=path.relative_to(repo_root).as_posix(),
                content=content[:SPEC_FILE_MAX_CHARS],
            ),
        )
    return documents


def detect_tech_stack(repo_root: Path) -> list[str]:
    """Best-effort stack tags from dependency manifests."""
    tags: list[str] = []
    dependencies = _package_json_dependencies(repo_root / "package.json")
    for package, tag in PACKAGE_JSON_STACK_TAGS:
        if package in dependencies and tag not in tags:
            tags.append(tag)
    for manifest, tag in MANIFEST_STACK_TAGS:
        if (repo_root / manifest).is_file() and tag not in tags:
            tags.append(tag)
    return tags


def _package_json_dependencies(path: Path) -> set[str]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return set()
    if not isinstance(payload, dict):
        return set()
    names: set[str] = set()
    for section in ("dependencies", "devDependencies"):
        block = payload.get(section)
        if isinstance(block, dict):
            names.update(str(name) for name in block)
    return names


def build_review_prompt(context: ReviewContext) -> str:
    """Render the reviewer request, ending with the JSON response contract."""
    sections: list[str] = [
        "You are reviewing a staged change before it ships.",
        "Report only real problems; do not restate the diff.",
    ]
    if context.branch:
        sections.append(f"Branch: {context.branch}")
    if context.tech_stack:
        sections.append(f"Tech stack: {', '.join(context.tech_stack)}")
    if context.recent_commits:
        history = "\n".join(f"- {commit}" for commit in context.recent_commits)
        sections.append(f"Recent commits:\n{history}")
    if context.changed_files:
        files = "\n".join(f"- {path}" for path in context.changed_files)
        sections.append(f"Changed files:\n{files}")
    for spec in context.specs:
        sections.append(f"Specification ({spec.path}):\n{spec.content}")
    diff_body = context.diff if context.diff.strip() else "(no staged changes)"
    sections.append(f"Staged diff:\n```diff\n{diff_body}\n```")
    sections.append(RESPONSE_CONTRACT)
    return "\n\n".join(sections)


def parse_reviewer_output(raw: str) -> ReviewerOutput:
    """Parse the reviewer's answer; unusable text yields no findings."""
    payload = _extract_payload(raw)
    if payload is None:
        logger.warning("Reviewer output could not be parsed; treating as empty")
        return ReviewerOutput()
    entries = payload.get("findings")
    if not isinstance(entries, list):
        return ReviewerOutput()
    findings: list[Finding] = []
    dropped = 0
    for entry in entries:
        finding = _to_finding(entry)
        if finding is None:
            dropped += 1
            continue
        findings.append(finding)
    if dropped:
        logger.info("Dropped malformed reviewer findings", extra={"dropped": dropped})
    return ReviewerOutput(findings=tuple(findings))


def _extract_payload(raw: str) -> dict[str, Any] | None:
    for candidate in _payload_candidates(raw):
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload
    return None


def _payload_candidates(raw: str) -> list[str]:
    candidates = [raw.strip()]
    candidates.extend(match.group(1).strip() for match in _FENCED_BLOCK.finditer(raw))
    embedded = _embedded_findings_object(raw)
    if embedded is not None:
        candidates.append(embedded)
    return candidates


def _embedded_findings_object(raw: str) -> str | None:
    """Return the balanced `{...}` enclosing the first `"findings"` key."""
    key_index = raw.find('"findings"')
    if key_index < 0:
        return None
    decoder = json.JSONDecoder()
    start = raw.rfind("{", 0, key_index)
    while start >= 0:
        try:
            _, end = decoder.raw_decode(raw, start)
        except json.JSONDecodeError:
            start = raw.rfind("{", 0, start)
            continue
        if end > key_index:
            return raw[start:end]
        start = raw.rfind("{", 0, start)
    return None


def _to_finding(entry: object) -> Finding | None:
    if not isinstance(entry, dict):
        return None
    severity = str(entry.get("severity", "")).strip().lower()
    if severity not in REVIEWER_SEVERITIES:
        return None
    category = str(entry.get("category", DEFAULT_CATEGORY)).strip().lower()
    if category not in REVIEWER_CATEGORIES:
        category = DEFAULT_CATEGORY
    try:
        return Finding.model_validate(
            {**entry, "severity": severity, "category": category},
        )
    except ValidationError:
        return None
