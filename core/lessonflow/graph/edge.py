"""
Edge Protocol - How nodes connect in a graph.

Edges define:
1. Source and target nodes
2. Conditional routing through a router function

Edge Types:
- static: always go to ``target`` after ``source`` completes
- conditional: call ``router(state)`` and go to the node name it returns

A source node has at most one outgoing edge: either one static edge or one
conditional router, never both. A node with no outgoing edge ends the run.
"""

import inspect
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from lessonflow.graph.errors import ResolutionError

logger = logging.getLogger(__name__)

START = "__start__"
END = "__end__"
RESERVED_NODE_NAMES = frozenset({START, END})

Router = Callable[[Any], Any]


class NodeSpec(BaseModel):
    """A named unit of work."""

    name: str
    fn: Callable[..., Any]
    description: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)


class EdgeSpec(BaseModel):
    """
    Specification for an edge leaving a node.

    Examples:
        # Static edge
        EdgeSpec(source="tool_node", target="agent")

        # Conditional routing
        EdgeSpec(
            source="agent",
            router=tool_router,
            targets=["tool_node", END],
        )
    """

    source: str = Field(description="Source node name")
    target: str | None = Field(default=None, description="Target for static edges")
    router: Router | None = Field(default=None, description="Router for conditional edges")
    targets: list[str] | None = Field(
        default=None,
        description="Node names the router may return; None means any declared node",
    )
    description: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @property
    def is_conditional(self) -> bool:
        return self.router is not None

    @property
    def id(self) -> str:
        if self.is_conditional:
            name = getattr(self.router, "__name__", "router")
            return f"{self.source}->{name}"
        return f"{self.source}->{self.target}"

    def possible_targets(self, node_names: list[str]) -> list[str]:
        """Every node this edge can lead to."""
        if not self.is_conditional:
            return [self.target] if self.target else []
        if self.targets is not None:
            return list(self.targets)
        return list(node_names) + [END]

    async def resolve(self, state: Any, node_names: set[str]) -> str:
        """
        Determine the next node for this edge.

        Args:
            state: State after the source node's delta was applied
            node_names: Declared node names

        Returns:
            Next node name or END

        Raises:
            ResolutionError: If the router returns an undeclared node name
        """
        if not self.is_conditional:
            return self.target

        result = self.router(state)
        if inspect.isawaitable(result):
            result = await result

        if not isinstance(result, str):
            raise ResolutionError(
                f"Router on '{self.source}' returned {result!r}; expected a node name"
            )
        if result != END and result not in node_names:
            raise ResolutionError(
                f"Router on '{self.source}' returned unknown node '{result}'. "
                f"Declared nodes: {sorted(node_names)}"
            )
        if self.targets is not None and result not in self.targets:
            raise ResolutionError(
                f"Router on '{self.source}' returned '{result}', "
                f"which is not one of its declared targets {self.targets}"
            )
        return result


class GraphSpec(BaseModel):
    """
    Complete specification of a workflow graph.

    Contains all nodes, edges, and metadata needed to execute.

        GraphSpec(
            id="pdf-tutor-chat",
            entry_node="ingest_pdf",
            nodes={"ingest_pdf": NodeSpec(...), "agent": NodeSpec(...)},
            edges=[EdgeSpec(source="tool_node", target="agent"), ...],
        )
    """

    id: str
    version: str = "1.0.0"

    # Graph structure
    entry_node: str | None = Field(default=None, description="Name of the first node")
    entry_candidates: list[str] = Field(
        default_factory=list,
        description="Every entry point that was declared (must end up as exactly one)",
    )
    nodes: dict[str, NodeSpec] = Field(default_factory=dict)
    edges: list[EdgeSpec] = Field(default_factory=list)

    # Execution limits
    max_steps: int = Field(default=100, description="Maximum node executions per run")

    description: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def get_node(self, name: str) -> NodeSpec | None:
        """Get a node by name."""
        return self.nodes.get(name)

    def get_outgoing_edges(self, name: str) -> list[EdgeSpec]:
        """Get all edges leaving a node."""
        return [e for e in self.edges if e.source == name]

    def _is_known(self, name: str | None) -> bool:
        return name == END or name in self.nodes

    def validate(self) -> list[str]:
        """Validate the graph structure. Returns fatal errors; empty when valid."""
        errors = []

        # Exactly one entry node
        entries = set(self.entry_candidates)
        if self.entry_node:
            entries.add(self.entry_node)
        if not entries:
            errors.append("No entry node declared")
        elif len(entries) > 1:
            errors.append(f"Multiple entry nodes declared: {sorted(entries)}")
        for entry in sorted(entries):
            if entry not in self.nodes:
                errors.append(f"Entry node '{entry}' not found")

        # Edge references
        for edge in self.edges:
            if edge.source not in self.nodes:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if not edge.is_conditional and not self._is_known(edge.target):
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")
            for target in edge.targets or []:
                if not self._is_known(target):
                    errors.append(
                        f"Edge '{edge.id}' declares router target '{target}' "
                        "which is not a node"
                    )

        # At most one outgoing edge per source
        for name in self.nodes:
            outgoing = self.get_outgoing_edges(name)
            static = [e for e in outgoing if not e.is_conditional]
            conditional = [e for e in outgoing if e.is_conditional]
            if static and conditional:
                errors.append(f"Node '{name}' has both a static edge and a conditional edge")
            elif len(static) > 1:
                targets = [e.target for e in static]
                errors.append(f"Node '{name}' has multiple static edges: {targets}")
            elif len(conditional) > 1:
                errors.append(f"Node '{name}' has multiple conditional routers")

        return errors

    def find_unreachable(self) -> list[str]:
        """Nodes that cannot be reached from the entry node (not fatal)."""
        if not self.entry_node:
            return []

        reachable = set()
        to_visit = [self.entry_node]
        node_names = list(self.nodes)
        while to_visit:
            current = to_visit.pop()
            if current in reachable or current == END:
                continue
            reachable.add(current)
            for edge in self.get_outgoing_edges(current):
                to_visit.extend(edge.possible_targets(node_names))

        # Goto commands can reach any node, so this is only a hint
        return [name for name in self.nodes if name not in reachable]
