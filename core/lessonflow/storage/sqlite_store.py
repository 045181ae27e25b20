"""
SQLite Checkpoint Store - Checkpoint chains in an embedded database.

Safe for several processes sharing one database file: the append check and
the insert run in one IMMEDIATE transaction, and (thread_id, seq) is unique,
so two writers can never both append the same position of a chain.
"""

import asyncio
import logging
import sqlite3
import threading
from pathlib import Path

from lessonflow.graph.errors import CheckpointConflictError
from lessonflow.schemas.checkpoint import Checkpoint
from lessonflow.storage.checkpoint_store import CheckpointStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS checkpoints (
    thread_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    checkpoint_id TEXT NOT NULL UNIQUE,
    parent_checkpoint_id TEXT,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (thread_id, seq)
)
"""


class SQLiteCheckpointStore(CheckpointStore):
    """
    Stores each checkpoint as one JSON row.

    Blocking sqlite3 calls run in a worker thread; a lock serializes use
    of the shared connection.
    """

    def __init__(self, path: str | Path, timeout: float = 30.0):
        """
        Initialize the store, creating the database file and table if needed.

        Args:
            path: Database file, or ":memory:"
            timeout: Seconds to wait for another process's write lock
        """
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            self.path, timeout=timeout, check_same_thread=False, isolation_level=None
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute(_SCHEMA)

    async def put(self, checkpoint: Checkpoint) -> str:
        """
        Append a checkpoint.

        Raises:
            CheckpointConflictError: If another writer already extended the chain
        """

        def _insert():
            with self._lock:
                self._conn.execute("BEGIN IMMEDIATE")
                try:
                    row = self._conn.execute(
                        "SELECT checkpoint_id, seq FROM checkpoints "
                        "WHERE thread_id = ? ORDER BY seq DESC LIMIT 1",
                        (checkpoint.thread_id,),
                    ).fetchone()
                    self._check_extends(
                        row[0] if row else None, row[1] if row else None, checkpoint
                    )
                    self._conn.execute(
                        "INSERT INTO checkpoints (thread_id, seq, checkpoint_id, "
                        "parent_checkpoint_id, status, created_at, data) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (
                            checkpoint.thread_id,
                            checkpoint.seq,
                            checkpoint.checkpoint_id,
                            checkpoint.parent_checkpoint_id,
                            str(checkpoint.status),
                            checkpoint.created_at,
                            checkpoint.model_dump_json(),
                        ),
                    )
                except sqlite3.IntegrityError as e:
                    self._conn.execute("ROLLBACK")
                    raise CheckpointConflictError(
                        f"Checkpoint {checkpoint.checkpoint_id} conflicts with an existing "
                        f"checkpoint of thread '{checkpoint.thread_id}': {e}"
                    ) from e
                except BaseException:
                    self._conn.execute("ROLLBACK")
                    raise
                self._conn.execute("COMMIT")

        await asyncio.to_thread(_insert)
        logger.debug(f"Saved checkpoint {checkpoint.checkpoint_id}")
        return checkpoint.checkpoint_id

    def _fetch(self, query: str, params: tuple) -> list[Checkpoint]:
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [Checkpoint.model_validate_json(row[0]) for row in rows]

    async def latest(self, thread_id: str) -> Checkpoint | None:
        rows = await asyncio.to_thread(
            self._fetch,
            "SELECT data FROM checkpoints WHERE thread_id = ? ORDER BY seq DESC LIMIT 1",
            (thread_id,),
        )
        return rows[0] if rows else None

    async def get(self, thread_id: str, checkpoint_id: str) -> Checkpoint | None:
        rows = await asyncio.to_thread(
            self._fetch,
            "SELECT data FROM checkpoints WHERE thread_id = ? AND checkpoint_id = ?",
            (thread_id, checkpoint_id),
        )
        return rows[0] if rows else None

    async def history(self, thread_id: str) -> list[Checkpoint]:
        return await asyncio.to_thread(
            self._fetch,
            "SELECT data FROM checkpoints WHERE thread_id = ? ORDER BY seq",
            (thread_id,),
        )

    async def list_threads(self) -> list[str]:
        def _query() -> list[str]:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT DISTINCT thread_id FROM checkpoints ORDER BY thread_id"
                ).fetchall()
            return [row[0] for row in rows]

        return await asyncio.to_thread(_query)

    async def close(self) -> None:
        with self._lock:
            self._conn.close()
