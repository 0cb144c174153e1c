"""External review rate limiting for shipgate."""

from .tracker import (
    BUCKET_RETENTION,
    RATE_LIMIT_STATE_VERSION,
    RateLimitState,
    RateLimitTracker,
    bucket_key,
    prune_buckets,
)

__all__ = [
    "BUCKET_RETENTION",
    "RATE_LIMIT_STATE_VERSION",
    "RateLimitState",
    "RateLimitTracker",
    "bucket_key",
    "prune_buckets",
]
