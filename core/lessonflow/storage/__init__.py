"""Checkpoint storage backends."""

from pathlib import Path

from lessonflow.graph.errors import ConfigurationError
from lessonflow.storage.checkpoint_store import (
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
)
from lessonflow.storage.sqlite_store import SQLiteCheckpointStore

BACKENDS = ("file", "sqlite", "memory")


def create_checkpoint_store(backend: str, path: str | Path | None = None) -> CheckpointStore:
    """
    Build a checkpoint store from configuration.

    Args:
        backend: "file", "sqlite" or "memory"
        path: Storage directory (file) or database directory/file (sqlite)

    Raises:
        ConfigurationError: For an unknown backend or a missing path
    """
    if backend == "memory":
        return InMemoryCheckpointStore()
    if backend not in BACKENDS:
        raise ConfigurationError(
            f"Unknown checkpoint backend '{backend}'. Choose one of {list(BACKENDS)}"
        )
    if path is None:
        raise ConfigurationError(f"Checkpoint backend '{backend}' needs a storage path")

    path = Path(path).expanduser()
    if backend == "file":
        return FileCheckpointStore(path)
    if path.suffix not in (".db", ".sqlite", ".sqlite3"):
        path = path / "checkpoints.db"
    return SQLiteCheckpointStore(path)


__all__ = [
    "BACKENDS",
    "CheckpointStore",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "SQLiteCheckpointStore",
    "create_checkpoint_store",
]
