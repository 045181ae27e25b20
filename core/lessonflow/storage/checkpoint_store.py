"""
Checkpoint Store - Append-only checkpoint chains, one per thread.

Every backend enforces the same write rule: a checkpoint may only be
appended when it extends the thread's current latest checkpoint (its
parent id is the latest id and its seq is latest seq + 1). A second writer
racing on the same thread gets CheckpointConflictError instead of forking
the chain.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from lessonflow.graph.errors import CheckpointConflictError
from lessonflow.schemas.checkpoint import Checkpoint, CheckpointIndex, CheckpointSummary
from lessonflow.utils.io import atomic_write

logger = logging.getLogger(__name__)


class CheckpointStore(ABC):
    """Durable storage for thread checkpoint chains."""

    @abstractmethod
    async def put(self, checkpoint: Checkpoint) -> str:
        """
        Append a checkpoint to its thread's chain.

        Returns:
            The stored checkpoint id

        Raises:
            CheckpointConflictError: If the checkpoint does not extend the
                thread's current latest checkpoint
        """

    @abstractmethod
    async def latest(self, thread_id: str) -> Checkpoint | None:
        """Most recent checkpoint of a thread, or None for a new thread."""

    @abstractmethod
    async def get(self, thread_id: str, checkpoint_id: str) -> Checkpoint | None:
        """Load one checkpoint by id."""

    @abstractmethod
    async def history(self, thread_id: str) -> list[Checkpoint]:
        """Every checkpoint of a thread, oldest first."""

    @abstractmethod
    async def list_threads(self) -> list[str]:
        """Ids of all threads with at least one checkpoint."""

    async def list_checkpoints(self, thread_id: str) -> list[CheckpointSummary]:
        """Lightweight summaries of a thread's chain, oldest first."""
        return [CheckpointSummary.from_checkpoint(cp) for cp in await self.history(thread_id)]

    async def close(self) -> None:
        """Release backend resources."""

    @staticmethod
    def _check_extends(
        latest_id: str | None,
        latest_seq: int | None,
        checkpoint: Checkpoint,
    ) -> None:
        expected_seq = 0 if latest_seq is None else latest_seq + 1
        if checkpoint.parent_checkpoint_id != latest_id or checkpoint.seq != expected_seq:
            raise CheckpointConflictError(
                f"Checkpoint {checkpoint.checkpoint_id} (seq {checkpoint.seq}, parent "
                f"{checkpoint.parent_checkpoint_id}) does not extend thread "
                f"'{checkpoint.thread_id}' at {latest_id} (seq {latest_seq})"
            )


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store for tests and ephemeral runs."""

    def __init__(self):
        self._threads: dict[str, list[Checkpoint]] = {}

    async def put(self, checkpoint: Checkpoint) -> str:
        chain = self._threads.setdefault(checkpoint.thread_id, [])
        last = chain[-1] if chain else None
        self._check_extends(
            last.checkpoint_id if last else None, last.seq if last else None, checkpoint
        )
        chain.append(checkpoint)
        return checkpoint.checkpoint_id

    async def latest(self, thread_id: str) -> Checkpoint | None:
        chain = self._threads.get(thread_id)
        return chain[-1] if chain else None

    async def get(self, thread_id: str, checkpoint_id: str) -> Checkpoint | None:
        for cp in self._threads.get(thread_id, []):
            if cp.checkpoint_id == checkpoint_id:
                return cp
        return None

    async def history(self, thread_id: str) -> list[Checkpoint]:
        return list(self._threads.get(thread_id, []))

    async def list_threads(self) -> list[str]:
        return [tid for tid, chain in self._threads.items() if chain]


class FileCheckpointStore(CheckpointStore):
    """
    Stores checkpoints as JSON files with atomic writes.

    Directory structure:
        {base_path}/
            threads/
                {thread_id}/
                    index.json              # Chain manifest, latest pointer
                    cp_{seq}_{uuid8}.json   # Individual checkpoints

    The checkpoint file is written before the index, so the index never
    points at a checkpoint that is not on disk. Appends are serialized
    within the process; cross-process writers should use the SQLite store.
    """

    def __init__(self, base_path: str | Path):
        """
        Initialize checkpoint store.

        Args:
            base_path: Root directory (e.g., ~/.lessonflow/storage/pdf_tutor/)
        """
        self.base_path = Path(base_path)
        self.threads_dir = self.base_path / "threads"
        self._index_lock = asyncio.Lock()

    def _thread_dir(self, thread_id: str) -> Path:
        _validate_thread_id(thread_id)
        return self.threads_dir / thread_id

    async def put(self, checkpoint: Checkpoint) -> str:
        """
        Atomically save checkpoint and update index.

        Raises:
            CheckpointConflictError: If the chain moved on since the parent was read
            OSError: If file write fails
        """
        thread_dir = self._thread_dir(checkpoint.thread_id)

        def _write_checkpoint():
            with atomic_write(thread_dir / f"{checkpoint.checkpoint_id}.json") as f:
                f.write(checkpoint.model_dump_json(indent=2))

        def _write_index(index: CheckpointIndex):
            with atomic_write(thread_dir / "index.json") as f:
                f.write(index.model_dump_json(indent=2))

        async with self._index_lock:
            index = await self.load_index(checkpoint.thread_id)
            if index is None:
                index = CheckpointIndex(thread_id=checkpoint.thread_id)

            last = index.checkpoints[-1] if index.checkpoints else None
            self._check_extends(
                index.latest_checkpoint_id, last.seq if last else None, checkpoint
            )

            await asyncio.to_thread(_write_checkpoint)
            index.add_checkpoint(checkpoint)
            await asyncio.to_thread(_write_index, index)

        logger.debug(f"Saved checkpoint {checkpoint.checkpoint_id}")
        return checkpoint.checkpoint_id

    async def load_index(self, thread_id: str) -> CheckpointIndex | None:
        """Load a thread's index, or None if the thread has no checkpoints."""
        index_path = self._thread_dir(thread_id) / "index.json"

        def _read() -> CheckpointIndex | None:
            if not index_path.exists():
                return None
            return CheckpointIndex.model_validate_json(index_path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

    async def latest(self, thread_id: str) -> Checkpoint | None:
        index = await self.load_index(thread_id)
        if not index or not index.latest_checkpoint_id:
            return None
        return await self.get(thread_id, index.latest_checkpoint_id)

    async def get(self, thread_id: str, checkpoint_id: str) -> Checkpoint | None:
        checkpoint_path = self._thread_dir(thread_id) / f"{checkpoint_id}.json"

        def _read() -> Checkpoint | None:
            if not checkpoint_path.exists():
                logger.warning(f"Checkpoint file not found: {checkpoint_path}")
                return None
            return Checkpoint.model_validate_json(checkpoint_path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

    async def history(self, thread_id: str) -> list[Checkpoint]:
        index = await self.load_index(thread_id)
        if not index:
            return []
        result = []
        for summary in index.checkpoints:
            checkpoint = await self.get(thread_id, summary.checkpoint_id)
            if checkpoint is not None:
                result.append(checkpoint)
        return result

    async def list_checkpoints(self, thread_id: str) -> list[CheckpointSummary]:
        index = await self.load_index(thread_id)
        return list(index.checkpoints) if index else []

    async def list_threads(self) -> list[str]:
        def _scan() -> list[str]:
            if not self.threads_dir.exists():
                return []
            return sorted(
                p.name for p in self.threads_dir.iterdir() if (p / "index.json").exists()
            )

        return await asyncio.to_thread(_scan)


def _validate_thread_id(thread_id: str) -> None:
    """
    Validate a thread id before using it as a directory name.

    Raises:
        ValueError: If the id is empty or could escape the storage directory
    """
    if not thread_id or thread_id.strip() == "":
        raise ValueError("Thread id cannot be empty")

    # Block path separators
    if "/" in thread_id or "\\" in thread_id:
        raise ValueError(f"Invalid thread id: path separators not allowed in '{thread_id}'")

    # Block parent directory references
    if ".." in thread_id or thread_id.startswith("."):
        raise ValueError(f"Invalid thread id: path traversal detected in '{thread_id}'")

    # Block absolute paths
    if len(thread_id) > 1 and thread_id[1] == ":":
        raise ValueError(f"Invalid thread id: absolute paths not allowed in '{thread_id}'")

    # Block null bytes (Unix path injection)
    if "\x00" in thread_id:
        raise ValueError("Invalid thread id: null bytes not allowed")

    dangerous_chars = {"<", ">", "|", "&", "$", "`", "'", '"'}
    if any(char in thread_id for char in dangerous_chars):
        raise ValueError(f"Invalid thread id: contains dangerous characters in '{thread_id}'")
