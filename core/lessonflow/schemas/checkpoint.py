"""
Checkpoint Schema - Durable snapshots of a thread's execution.

A thread owns an append-only chain of checkpoints. Each one records the
state snapshot, where execution continues (next_node) and, when a node
suspended, the interrupt it raised plus the resume values collected so far
for that step. Checkpoints are never edited; resuming appends a new one
whose parent is the suspended checkpoint.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class CheckpointStatus(StrEnum):
    """Execution status recorded by a checkpoint."""

    RUNNING = "running"  # Between nodes, next_node will run next
    SUSPENDED = "suspended"  # next_node is waiting for a resume value
    COMPLETED = "completed"  # The run reached END
    FAILED = "failed"  # next_node raised; retry re-runs it


class Interrupt(BaseModel):
    """
    What a suspended node is asking for.

    ``value`` is the opaque payload passed to ``ctx.suspend``; ``kind`` is
    the discriminant a driver uses to decide how to answer it.
    """

    value: Any = None
    kind: str = "value"
    node: str
    step: int = 0
    call_index: int = 0

    model_config = {"frozen": True}


class Checkpoint(BaseModel):
    """
    Single checkpoint in a thread's chain.

    Captures the state snapshot and execution position so a run can
    continue from exactly this point after a pause, failure or restart.
    """

    # Identity
    thread_id: str
    checkpoint_id: str  # Format: cp_{seq:06d}_{uuid8}
    parent_checkpoint_id: str | None = None
    seq: int = 0  # Position in the thread's chain, 0-based

    # Timestamps
    created_at: str  # ISO 8601 format

    # Execution position
    step: int = 0  # Node execution counter of the step next_node belongs to
    source_node: str | None = None
    next_node: str | None = None
    status: CheckpointStatus = CheckpointStatus.RUNNING

    # State snapshot
    state: dict[str, Any] = Field(default_factory=dict)

    # Suspension
    pending_interrupt: Interrupt | None = None
    resume_values: list[Any] = Field(default_factory=list)

    # Failure
    error: str | None = None
    error_type: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def is_suspended(self) -> bool:
        return self.pending_interrupt is not None

    @classmethod
    def create(
        cls,
        thread_id: str,
        parent: Checkpoint | None,
        state: dict[str, Any],
        step: int,
        status: CheckpointStatus,
        source_node: str | None = None,
        next_node: str | None = None,
        pending_interrupt: Interrupt | None = None,
        resume_values: list[Any] | None = None,
        error: str | None = None,
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Checkpoint:
        """
        Create the checkpoint that follows ``parent`` in the chain.

        Args:
            thread_id: Thread this checkpoint belongs to
            parent: Current latest checkpoint of the thread, or None
            state: JSON snapshot of the state
            step: Node execution counter
            status: Execution status after this checkpoint
            source_node: Node that produced this checkpoint
            next_node: Node to run next (None when completed)
            pending_interrupt: Interrupt raised by next_node, if suspended
            resume_values: Resume values registered for next_node's step
            error: Error message for failed checkpoints
            error_type: Exception class name for failed checkpoints
            metadata: Free-form extra data

        Returns:
            New Checkpoint instance
        """
        seq = parent.seq + 1 if parent else 0
        return cls(
            thread_id=thread_id,
            checkpoint_id=f"cp_{seq:06d}_{uuid.uuid4().hex[:8]}",
            parent_checkpoint_id=parent.checkpoint_id if parent else None,
            seq=seq,
            created_at=datetime.now().isoformat(),
            step=step,
            source_node=source_node,
            next_node=next_node,
            status=status,
            state=state,
            pending_interrupt=pending_interrupt,
            resume_values=list(resume_values or []),
            error=error,
            error_type=error_type,
            metadata=metadata or {},
        )


class CheckpointSummary(BaseModel):
    """
    Lightweight checkpoint metadata for index listings.

    Used in checkpoint indexes to scan a thread's chain without loading
    full state snapshots.
    """

    checkpoint_id: str
    parent_checkpoint_id: str | None = None
    seq: int
    created_at: str
    source_node: str | None = None
    next_node: str | None = None
    status: CheckpointStatus
    interrupt_kind: str | None = None
    error: str | None = None

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> CheckpointSummary:
        """Create summary from full checkpoint."""
        return cls(
            checkpoint_id=checkpoint.checkpoint_id,
            parent_checkpoint_id=checkpoint.parent_checkpoint_id,
            seq=checkpoint.seq,
            created_at=checkpoint.created_at,
            source_node=checkpoint.source_node,
            next_node=checkpoint.next_node,
            status=checkpoint.status,
            interrupt_kind=(
                checkpoint.pending_interrupt.kind if checkpoint.pending_interrupt else None
            ),
            error=checkpoint.error,
        )


class CheckpointIndex(BaseModel):
    """
    Manifest of all checkpoints for a thread.

    Provides fast lookup of the latest checkpoint without listing
    the checkpoint directory.
    """

    thread_id: str
    checkpoints: list[CheckpointSummary] = Field(default_factory=list)
    latest_checkpoint_id: str | None = None
    total_checkpoints: int = 0

    def add_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Add a checkpoint to the index."""
        self.checkpoints.append(CheckpointSummary.from_checkpoint(checkpoint))
        self.latest_checkpoint_id = checkpoint.checkpoint_id
        self.total_checkpoints = len(self.checkpoints)

