"""Graph structures and execution."""

from lessonflow.graph.builder import CompiledGraph, StateGraph
from lessonflow.graph.channels import MISSING, Channel, append, merge_by_key, replace
from lessonflow.graph.edge import END, START, EdgeSpec, GraphSpec, NodeSpec
from lessonflow.graph.errors import (
    CheckpointConflictError,
    CollaboratorError,
    ConfigurationError,
    ExtractionError,
    GraphError,
    GraphRecursionError,
    ResolutionError,
    SuspendWithoutResumeError,
    ThreadBusyError,
)
from lessonflow.graph.executor import (
    BusyPolicy,
    ExecutionStatus,
    GraphExecutor,
    RunOutcome,
)
from lessonflow.graph.node import Command, NodeContext, NodeSuspended
from lessonflow.graph.routing import make_tool_node, make_tool_router, tool_router
from lessonflow.graph.state import State, StateSchema

__all__ = [
    # Building
    "StateGraph",
    "CompiledGraph",
    "GraphSpec",
    "NodeSpec",
    "EdgeSpec",
    "START",
    "END",
    # State
    "Channel",
    "State",
    "StateSchema",
    "MISSING",
    "replace",
    "append",
    "merge_by_key",
    # Nodes
    "Command",
    "NodeContext",
    "NodeSuspended",
    # Execution
    "GraphExecutor",
    "RunOutcome",
    "ExecutionStatus",
    "BusyPolicy",
    # Routing
    "tool_router",
    "make_tool_router",
    "make_tool_node",
    # Errors
    "GraphError",
    "ConfigurationError",
    "ResolutionError",
    "SuspendWithoutResumeError",
    "ThreadBusyError",
    "CheckpointConflictError",
    "GraphRecursionError",
    "CollaboratorError",
    "ExtractionError",
]
