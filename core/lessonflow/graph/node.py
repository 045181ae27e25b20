"""
Node Protocol - What a node receives and what it may return.

A node is an async function ``fn(state, ctx)``. It returns one of:

- a dict: partial state delta, continue via the declared edges
- None: no changes, continue via the declared edges
- Command(goto=..., update=...): jump straight to ``goto``, skipping edges

Suspending for outside input:

    async def approval(state, ctx):
        answer = await ctx.suspend("__interrupt_required_approval", kind="approval")
        return {"plan_approved": "yes" in str(answer).lower()}

IMPORTANT: nodes are re-run FROM THE TOP when a thread is resumed. Only the
whole-state checkpoint is durable, not the node's stack, so any code before
a ``suspend`` call runs again on every resume. Keep that prefix free of side
effects (or tolerant of repeats). The i-th ``suspend`` call of a step gets
the i-th resume value registered for that step.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from lessonflow.graph.state import State
from lessonflow.schemas.checkpoint import Interrupt

if TYPE_CHECKING:
    from lessonflow.ingest.pdf import DocumentLoader
    from lessonflow.llm.provider import LLMProvider
    from lessonflow.runner.tool_registry import ToolRegistry


@dataclass(frozen=True)
class Command:
    """
    Explicit next-node override returned by a node.

    Example:
        return Command(goto="agent", update={"resource_content": text})
    """

    goto: str
    update: Mapping[str, Any] | None = None


NodeResult = Union[Mapping[str, Any], Command, None]


@dataclass(frozen=True)
class NodeSuspended:
    """Returned to the executor instead of a NodeResult when a node suspends."""

    interrupt: Interrupt


@dataclass
class NodeContext:
    """
    Everything a node can reach besides the state.

    Collaborators (llm, documents, tools) are injected by the executor;
    nodes never construct their own clients.
    """

    thread_id: str
    node_id: str
    step: int
    resume_values: list[Any] = field(default_factory=list)
    llm: LLMProvider | None = None
    documents: DocumentLoader | None = None
    tools: ToolRegistry | None = None

    _call_index: int = field(default=0, init=False, repr=False)
    _signal: asyncio.Future[Interrupt] | None = field(default=None, init=False, repr=False)

    @property
    def is_resuming(self) -> bool:
        """True when this step was re-entered with at least one resume value."""
        return bool(self.resume_values)

    def bind_signal(self, signal: asyncio.Future[Interrupt]) -> None:
        self._signal = signal

    async def suspend(self, payload: Any = None, kind: str = "value") -> Any:
        """
        Ask the outside world for a value.

        If a resume value is registered for this call site, it is returned
        immediately. Otherwise the executor persists the pre-node state with
        an Interrupt built from ``payload`` and ``kind`` and stops the run;
        this coroutine never returns in that case.

        Args:
            payload: Opaque request shown to the driver
            kind: Discriminant tag the driver interprets

        Returns:
            The resume value supplied by the driver
        """
        index = self._call_index
        self._call_index += 1
        if index < len(self.resume_values):
            return self.resume_values[index]

        if self._signal is None:
            raise RuntimeError("suspend() called outside of an executor-managed node run")

        self._signal.set_result(
            Interrupt(
                value=payload,
                kind=kind,
                node=self.node_id,
                step=self.step,
                call_index=index,
            )
        )
        # Parked until the executor cancels this task
        await asyncio.get_running_loop().create_future()
        raise AssertionError("unreachable: suspended node was resumed in place")


NodeFn = Callable[[State, NodeContext], Awaitable[NodeResult]]
