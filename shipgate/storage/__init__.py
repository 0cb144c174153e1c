"""State file persistence for shipgate."""

from .atomic import atomic_write_json, read_json
from .checkpoint_store import (
    CONTEXT_SUMMARY_TOKEN_BUDGET,
    Checkpoint,
    CheckpointPhase,
    CheckpointProgress,
    CheckpointStore,
    ResumePoint,
    checkpoint_filename,
    count_tokens,
)
from .loop_state_store import LoopStateRead, LoopStateStore

__all__ = [
    "CONTEXT_SUMMARY_TOKEN_BUDGET",
    "Checkpoint",
    "CheckpointPhase",
    "CheckpointProgress",
    "CheckpointStore",
    "LoopStateRead",
    "LoopStateStore",
    "ResumePoint",
    "atomic_write_json",
    "checkpoint_filename",
    "count_tokens",
    "read_json",
]
