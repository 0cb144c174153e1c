"""Resolution of CLI scope flags into the loops a run executes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ScopeName(StrEnum):
    """Effective loop scope of one controller run."""

    FREE = "free"
    CLAUDE = "claude"
    SKIP_EXTERNAL = "skip-external"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class ReviewScope:
    """Which loops one controller run executes."""

    name: ScopeName
    run_reviewer: bool
    run_external: bool

    @property
    def free_only(self) -> bool:
        """True when only the free Tier 1/Tier 2 checks run."""
        return self.name is ScopeName.FREE


SCOPES: dict[ScopeName, ReviewScope] = {
    ScopeName.FREE: ReviewScope(ScopeName.FREE, run_reviewer=False, run_external=False),
    ScopeName.CLAUDE: ReviewScope(
        ScopeName.CLAUDE,
        run_reviewer=True,
        run_external=False,
    ),
    ScopeName.SKIP_EXTERNAL: ReviewScope(
        ScopeName.SKIP_EXTERNAL,
        run_reviewer=True,
        run_external=False,
    ),
    ScopeName.ALL: ReviewScope(ScopeName.ALL, run_reviewer=True, run_external=True),
}


def resolve_scope(
    *,
    free: bool = False,
    claude: bool = False,
    skip_external: bool = False,
    all_loops: bool = False,
) -> ReviewScope:
    """Pick exactly one scope: free > skip-external > claude > all."""
    if free:
        return SCOPES[ScopeName.FREE]
    if skip_external:
        return SCOPES[ScopeName.SKIP_EXTERNAL]
    if claude:
        return SCOPES[ScopeName.CLAUDE]
    _ = all_loops
    return SCOPES[ScopeName.ALL]
