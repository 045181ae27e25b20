"""
Graph Executor - Runs compiled graphs against durable threads.

The executor:
1. Loads the latest checkpoint of a thread (or starts from empty state)
2. Picks the node to run: the suspended node (only when a resume value is
   given), the node left pending by a failed or interrupted run, or the
   entry node
3. Runs one node at a time, folding its delta through the channel reducers
4. Persists a checkpoint after every node, suspension, failure and at END
5. Returns a RunOutcome: suspended (with the interrupt), completed, or failed

Thread states: IDLE -> RUNNING -> SUSPENDED | COMPLETED | FAILED, and
SUSPENDED -> RUNNING again on resume. A resumed node is re-run from the top
against its pre-node state; see ``lessonflow.graph.node`` for what that
means for node authors.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from lessonflow.graph.builder import CompiledGraph
from lessonflow.graph.edge import END
from lessonflow.graph.errors import (
    GraphRecursionError,
    SuspendWithoutResumeError,
    ThreadBusyError,
)
from lessonflow.graph.node import Command, NodeContext, NodeResult, NodeSuspended
from lessonflow.graph.state import State
from lessonflow.ingest.pdf import DocumentLoader
from lessonflow.llm.provider import LLMProvider
from lessonflow.observability import set_trace_context
from lessonflow.runner.tool_registry import ToolRegistry
from lessonflow.schemas.checkpoint import Checkpoint, CheckpointStatus, Interrupt
from lessonflow.storage.checkpoint_store import CheckpointStore

logger = logging.getLogger(__name__)


class ExecutionStatus(StrEnum):
    """Execution status of a thread."""

    IDLE = "idle"
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


class BusyPolicy(StrEnum):
    """What to do when a run is requested for a thread that is already running."""

    REJECT = "reject"
    QUEUE = "queue"


class _NoResume:
    def __repr__(self) -> str:
        return "NO_RESUME"


NO_RESUME: Any = _NoResume()


@dataclass
class RunOutcome:
    """Result of one start_or_resume/resume call."""

    status: ExecutionStatus
    thread_id: str
    state: State | None = None
    interrupt: Interrupt | None = None
    error: str | None = None
    error_type: str | None = None
    checkpoint_id: str | None = None
    steps_executed: int = 0
    path: list[str] = field(default_factory=list)  # Node names run in this call

    @property
    def is_suspended(self) -> bool:
        return self.status == ExecutionStatus.SUSPENDED

    @property
    def is_completed(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == ExecutionStatus.FAILED


class GraphExecutor:
    """
    Executes a compiled graph, one thread at a time per thread id.

    Example:
        executor = GraphExecutor(
            graph=compiled,
            checkpoint_store=FileCheckpointStore(path),
            llm=LiteLLMProvider(model="gpt-4o-mini"),
        )

        outcome = await executor.start_or_resume("thread-1", {"messages": [...]})
        if outcome.is_suspended:
            outcome = await executor.resume("thread-1", "docs/lesson.pdf")
    """

    def __init__(
        self,
        graph: CompiledGraph,
        checkpoint_store: CheckpointStore,
        llm: LLMProvider | None = None,
        documents: DocumentLoader | None = None,
        tools: ToolRegistry | None = None,
        max_steps: int | None = None,
        busy_policy: BusyPolicy | str = BusyPolicy.REJECT,
    ):
        """
        Initialize the executor.

        Args:
            graph: Compiled graph to run
            checkpoint_store: Durable store owning every thread's checkpoint chain
            llm: Model provider handed to nodes as ``ctx.llm``
            documents: Document loader handed to nodes as ``ctx.documents``
            tools: Backend tool registry handed to nodes as ``ctx.tools``
            max_steps: Node executions allowed per call (defaults to the graph's)
            busy_policy: "reject" raises ThreadBusyError for a concurrent run on
                the same thread, "queue" waits for the running one to finish
        """
        self.graph = graph
        self.store = checkpoint_store
        self.llm = llm
        self.documents = documents
        self.tools = tools
        self.max_steps = max_steps or graph.spec.max_steps
        self.busy_policy = BusyPolicy(busy_policy)
        self._thread_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}  # Holder plus waiters, per thread
        self._running: set[str] = set()

    # ------------------------------------------------------------------
    # Driver API
    # ------------------------------------------------------------------

    async def start_or_resume(
        self,
        thread_id: str,
        input: Mapping[str, Any] | None = None,
        *,
        resume: Any = NO_RESUME,
    ) -> RunOutcome:
        """
        Start a new turn on a thread, or continue it.

        Args:
            thread_id: Conversation/session id; created on first use
            input: Optional state delta applied before the first node runs
                (e.g. a new user message)
            resume: Value for the pending interrupt, if the thread is suspended

        Returns:
            RunOutcome

        Raises:
            SuspendWithoutResumeError: If ``resume`` is given but the thread
                is not suspended
            ThreadBusyError: If a run is in flight and busy_policy is "reject"
        """
        async with self._thread_guard(thread_id):
            latest = await self.store.latest(thread_id)
            return await self._run(thread_id, latest, input, resume)

    async def resume(self, thread_id: str, value: Any) -> RunOutcome:
        """
        Re-enter the suspended node of a thread with ``value``.

        Raises:
            SuspendWithoutResumeError: If the thread has no pending interrupt;
                the checkpoint chain is left unchanged
        """
        async with self._thread_guard(thread_id):
            latest = await self.store.latest(thread_id)
            if latest is None or not latest.is_suspended:
                raise SuspendWithoutResumeError(thread_id)
            return await self._run(thread_id, latest, None, value)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    async def get_state(self, thread_id: str) -> State:
        """Latest state snapshot of a thread (initial state if it has none)."""
        latest = await self.store.latest(thread_id)
        if latest is None:
            return self.graph.schema.initial()
        return self.graph.schema.load(latest.state)

    async def get_status(self, thread_id: str) -> ExecutionStatus:
        if thread_id in self._running:
            return ExecutionStatus.RUNNING
        latest = await self.store.latest(thread_id)
        if latest is None:
            return ExecutionStatus.IDLE
        return {
            CheckpointStatus.SUSPENDED: ExecutionStatus.SUSPENDED,
            CheckpointStatus.COMPLETED: ExecutionStatus.COMPLETED,
            CheckpointStatus.FAILED: ExecutionStatus.FAILED,
        }.get(latest.status, ExecutionStatus.IDLE)

    async def get_pending_interrupt(self, thread_id: str) -> Interrupt | None:
        latest = await self.store.latest(thread_id)
        return latest.pending_interrupt if latest else None

    async def history(self, thread_id: str) -> list[Checkpoint]:
        """Every checkpoint of a thread, oldest first."""
        return await self.store.history(thread_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _thread_guard(self, thread_id: str) -> AsyncIterator[None]:
        """Single in-flight run per thread id."""
        lock = self._thread_locks.setdefault(thread_id, asyncio.Lock())
        if lock.locked() and self.busy_policy == BusyPolicy.REJECT:
            raise ThreadBusyError(thread_id)

        self._lock_users[thread_id] = self._lock_users.get(thread_id, 0) + 1
        try:
            async with lock:
                self._running.add(thread_id)
                try:
                    yield
                finally:
                    self._running.discard(thread_id)
        finally:
            self._lock_users[thread_id] -= 1
            if not self._lock_users[thread_id]:
                # Last user gone; idle threads keep no lock around
                del self._lock_users[thread_id]
                del self._thread_locks[thread_id]

    def _starting_point(
        self,
        thread_id: str,
        latest: Checkpoint | None,
        resume: Any,
    ) -> tuple[State, str, int, list[Any]]:
        """Return (state, node, step, resume_values) for a new run."""
        schema = self.graph.schema
        has_resume = resume is not NO_RESUME

        if latest is None:
            if has_resume:
                raise SuspendWithoutResumeError(thread_id)
            return schema.initial(), self.graph.entry_node, 0, []

        state = schema.load(latest.state)

        if latest.is_suspended:
            if has_resume:
                values = [*latest.resume_values, resume]
                return state, latest.next_node, latest.step, values
            # New input without an answer starts a fresh pass from the entry node
            return state, self.graph.entry_node, latest.step, []

        if has_resume:
            raise SuspendWithoutResumeError(thread_id)

        if latest.status == CheckpointStatus.FAILED and latest.next_node:
            logger.info(f"🔄 Retrying failed node '{latest.next_node}'")
            return state, latest.next_node, latest.step, list(latest.resume_values)

        if latest.status == CheckpointStatus.RUNNING and latest.next_node:
            logger.info(f"🔄 Continuing interrupted run at '{latest.next_node}'")
            return state, latest.next_node, latest.step, []

        return state, self.graph.entry_node, latest.step, []

    async def _run(
        self,
        thread_id: str,
        latest: Checkpoint | None,
        input: Mapping[str, Any] | None,
        resume: Any,
    ) -> RunOutcome:
        run_id = uuid.uuid4().hex
        set_trace_context(graph_id=self.graph.id, thread_id=thread_id, run_id=run_id)

        state, node, step, resume_values = self._starting_point(thread_id, latest, resume)
        if input:
            state = state.apply(input)

        if resume is not NO_RESUME:
            logger.info(f"⏯ Resuming thread {thread_id} at '{node}' (step {step})")
        else:
            logger.info(f"🚀 Starting thread {thread_id} at '{node}' (step {step})")

        parent = latest
        path: list[str] = []

        while True:
            if len(path) >= self.max_steps:
                error = GraphRecursionError(
                    f"Run exceeded max_steps={self.max_steps} without reaching END"
                )
                return await self._fail(thread_id, parent, state, node, step, [], error, path)

            path.append(node)
            set_trace_context(node_id=node)
            logger.info(f"▶ Step {step}: {node}")

            try:
                result = await self._invoke_node(thread_id, node, step, state, resume_values)
                if isinstance(result, NodeSuspended):
                    break
                next_node, new_state = await self._advance(node, state, result)
            except asyncio.CancelledError:
                logger.warning(f"⊘ Run cancelled during '{node}'; no checkpoint written")
                raise
            except Exception as e:
                logger.error(f"   ✗ Node '{node}' failed: {e}", exc_info=True)
                return await self._fail(
                    thread_id, parent, state, node, step, resume_values, e, path
                )

            if next_node == END:
                checkpoint = Checkpoint.create(
                    thread_id=thread_id,
                    parent=parent,
                    state=self.graph.schema.dump(new_state),
                    step=step + 1,
                    status=CheckpointStatus.COMPLETED,
                    source_node=node,
                )
                await self.store.put(checkpoint)
                logger.info(f"✓ Thread {thread_id} completed after {len(path)} step(s)")
                return RunOutcome(
                    status=ExecutionStatus.COMPLETED,
                    thread_id=thread_id,
                    state=new_state,
                    checkpoint_id=checkpoint.checkpoint_id,
                    steps_executed=len(path),
                    path=path,
                )

            checkpoint = Checkpoint.create(
                thread_id=thread_id,
                parent=parent,
                state=self.graph.schema.dump(new_state),
                step=step + 1,
                status=CheckpointStatus.RUNNING,
                source_node=node,
                next_node=next_node,
            )
            await self.store.put(checkpoint)
            logger.info(f"   → {next_node}")

            parent = checkpoint
            state = new_state
            node = next_node
            step += 1
            resume_values = []

        # Suspended: keep the pre-node state, the node re-runs on resume
        interrupt = result.interrupt
        checkpoint = Checkpoint.create(
            thread_id=thread_id,
            parent=parent,
            state=self.graph.schema.dump(state),
            step=step,
            status=CheckpointStatus.SUSPENDED,
            source_node=node,
            next_node=node,
            pending_interrupt=interrupt,
            resume_values=resume_values,
        )
        await self.store.put(checkpoint)
        logger.info(f"⏸ Thread {thread_id} suspended in '{node}' ({interrupt.kind})")
        return RunOutcome(
            status=ExecutionStatus.SUSPENDED,
            thread_id=thread_id,
            state=state,
            interrupt=interrupt,
            checkpoint_id=checkpoint.checkpoint_id,
            steps_executed=len(path),
            path=path,
        )

    async def _invoke_node(
        self,
        thread_id: str,
        node: str,
        step: int,
        state: State,
        resume_values: list[Any],
    ) -> NodeResult | NodeSuspended:
        """
        Run one node until it returns or suspends.

        The node runs as its own task. A suspend() without a registered
        resume value completes ``signal``; the parked task is then cancelled
        and the suspension comes back as a NodeSuspended value.
        """
        fn = self.graph.get_node_fn(node)
        ctx = NodeContext(
            thread_id=thread_id,
            node_id=node,
            step=step,
            resume_values=list(resume_values),
            llm=self.llm,
            documents=self.documents,
            tools=self.tools,
        )
        signal: asyncio.Future[Interrupt] = asyncio.get_running_loop().create_future()
        ctx.bind_signal(signal)

        # Nodes get a private copy; the pre-node state is persisted on suspend
        task = asyncio.create_task(fn(state.copy(), ctx), name=f"{thread_id}:{node}:{step}")
        try:
            await asyncio.wait({task, signal}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            signal.cancel()
            raise

        if signal.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            return NodeSuspended(interrupt=signal.result())

        signal.cancel()
        return task.result()

    async def _advance(self, node: str, state: State, result: Any) -> tuple[str, State]:
        """Apply a node's result and decide where to go next."""
        if isinstance(result, Command):
            target = self.graph.check_goto(node, result.goto)
            return target, state.apply(result.update)

        if result is None or isinstance(result, Mapping):
            new_state = state.apply(result)
            return await self.graph.resolve_next(node, new_state), new_state

        raise TypeError(
            f"Node '{node}' returned {type(result).__name__}; expected dict, Command or None"
        )

    async def _fail(
        self,
        thread_id: str,
        parent: Checkpoint | None,
        state: State,
        node: str,
        step: int,
        resume_values: list[Any],
        error: Exception,
        path: list[str],
    ) -> RunOutcome:
        checkpoint = Checkpoint.create(
            thread_id=thread_id,
            parent=parent,
            state=self.graph.schema.dump(state),
            step=step,
            status=CheckpointStatus.FAILED,
            source_node=node,
            next_node=node,
            resume_values=resume_values,
            error=str(error),
            error_type=type(error).__name__,
        )
        await self.store.put(checkpoint)
        logger.error(f"✗ Thread {thread_id} failed in '{node}': {error}")
        return RunOutcome(
            status=ExecutionStatus.FAILED,
            thread_id=thread_id,
            state=state,
            error=str(error),
            error_type=type(error).__name__,
            checkpoint_id=checkpoint.checkpoint_id,
            steps_executed=len(path),
            path=path,
        )
