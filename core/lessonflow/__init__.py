"""
lessonflow - Durable, interruptible workflow graphs.

Build a graph of async nodes over typed state channels, run it against a
thread id, suspend inside a node to wait for outside input, and resume later
from the persisted checkpoint chain, even after a restart.
"""

from lessonflow.graph import (
    END,
    START,
    Channel,
    Command,
    CompiledGraph,
    ExecutionStatus,
    GraphExecutor,
    NodeContext,
    RunOutcome,
    State,
    StateGraph,
    StateSchema,
)

__version__ = "0.1.0"

__all__ = [
    "END",
    "START",
    "Channel",
    "Command",
    "CompiledGraph",
    "ExecutionStatus",
    "GraphExecutor",
    "NodeContext",
    "RunOutcome",
    "State",
    "StateGraph",
    "StateSchema",
]
