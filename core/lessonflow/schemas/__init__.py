"""Persisted record types."""

from lessonflow.schemas.checkpoint import (
    Checkpoint,
    CheckpointIndex,
    CheckpointStatus,
    CheckpointSummary,
    Interrupt,
)

__all__ = [
    "Checkpoint",
    "CheckpointIndex",
    "CheckpointStatus",
    "CheckpointSummary",
    "Interrupt",
]
