"""Version-control queries for shipgate."""

from .git import DEFAULT_RECENT_COMMITS, GitClient, VcsLookup

__all__ = [
    "DEFAULT_RECENT_COMMITS",
    "GitClient",
    "VcsLookup",
]
