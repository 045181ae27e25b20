"""
Graph Builder - Declare nodes and edges, then compile.

Example:
    graph = StateGraph(schema, graph_id="pdf-tutor-chat")
    graph.add_node("ingest_pdf", ingest_pdf)
    graph.add_node("agent", agent)
    graph.add_node("tool_node", tool_node)
    graph.add_edge(START, "ingest_pdf")
    graph.add_edge("tool_node", "agent")
    graph.add_conditional_edges("agent", tool_router, targets=["tool_node", END])
    compiled = graph.compile()

compile() collects every wiring problem and raises them together as one
ConfigurationError. Unreachable nodes are only logged: some graphs keep
alternate paths around that are entered through goto commands.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any

from lessonflow.graph.edge import (
    END,
    RESERVED_NODE_NAMES,
    START,
    EdgeSpec,
    GraphSpec,
    NodeSpec,
    Router,
)
from lessonflow.graph.errors import ConfigurationError, ResolutionError
from lessonflow.graph.node import NodeFn
from lessonflow.graph.state import State, StateSchema

logger = logging.getLogger(__name__)


class StateGraph:
    """Mutable builder for a workflow graph over a StateSchema."""

    def __init__(self, schema: StateSchema, graph_id: str = "graph", max_steps: int = 100):
        self.schema = schema
        self.graph_id = graph_id
        self.max_steps = max_steps
        self._nodes: dict[str, NodeSpec] = {}
        self._edges: list[EdgeSpec] = []
        self._entries: list[str] = []

    def add_node(self, name: str, fn: NodeFn, description: str = "") -> StateGraph:
        """
        Declare a node.

        Raises:
            ConfigurationError: If the name is reserved, already declared,
                or ``fn`` is not an async function
        """
        if name in RESERVED_NODE_NAMES:
            raise ConfigurationError(f"Node name '{name}' is reserved")
        if name in self._nodes:
            raise ConfigurationError(f"Node '{name}' is already declared")
        if not inspect.iscoroutinefunction(fn) and not inspect.iscoroutinefunction(
            getattr(fn, "__call__", None)
        ):
            raise ConfigurationError(f"Node '{name}' must be an async function")

        self._nodes[name] = NodeSpec(
            name=name,
            fn=fn,
            description=description or (inspect.getdoc(fn) or "").split("\n")[0],
        )
        return self

    def add_edge(self, source: str, target: str) -> StateGraph:
        """Declare a static edge. ``add_edge(START, name)`` sets the entry node."""
        if source == START:
            return self.set_entry_point(target)
        if source == END:
            raise ConfigurationError("END cannot have outgoing edges")
        self._edges.append(EdgeSpec(source=source, target=target))
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Router,
        targets: list[str] | None = None,
    ) -> StateGraph:
        """
        Declare a conditional edge.

        Args:
            source: Node the router runs after
            router: ``(state) -> node name`` (sync or async)
            targets: Optional list of names the router may return; checked at
                compile time and enforced at run time
        """
        self._edges.append(EdgeSpec(source=source, router=router, targets=targets))
        return self

    def set_entry_point(self, name: str) -> StateGraph:
        self._entries.append(name)
        return self

    def to_spec(self) -> GraphSpec:
        entries = list(dict.fromkeys(self._entries))
        return GraphSpec(
            id=self.graph_id,
            entry_node=entries[0] if len(entries) == 1 else None,
            entry_candidates=entries,
            nodes=dict(self._nodes),
            edges=list(self._edges),
            max_steps=self.max_steps,
        )

    def compile(self) -> CompiledGraph:
        """
        Validate the wiring and freeze it into an executable graph.

        Raises:
            ConfigurationError: On any dangling reference or edge conflict
        """
        spec = self.to_spec()
        errors = spec.validate()
        if errors:
            for err in errors:
                logger.error(f"Graph '{self.graph_id}': {err}")
            raise ConfigurationError(
                f"Invalid graph '{self.graph_id}': {'; '.join(errors)}", errors=errors
            )

        for name in spec.find_unreachable():
            logger.warning(f"Graph '{self.graph_id}': node '{name}' is unreachable from entry")

        return CompiledGraph(spec=spec, schema=self.schema)


class CompiledGraph:
    """Validated, read-only graph the executor runs."""

    def __init__(self, spec: GraphSpec, schema: StateSchema):
        self.spec = spec
        self.schema = schema
        self._node_names = set(spec.nodes)
        self._outgoing: dict[str, EdgeSpec] = {}
        for edge in spec.edges:
            self._outgoing[edge.source] = edge

    @property
    def id(self) -> str:
        return self.spec.id

    @property
    def entry_node(self) -> str:
        return self.spec.entry_node

    @property
    def node_names(self) -> list[str]:
        return list(self.spec.nodes)

    def get_node_fn(self, name: str) -> Callable[..., Any]:
        node = self.spec.get_node(name)
        if node is None:
            raise ResolutionError(f"Node not found: '{name}'")
        return node.fn

    def check_goto(self, source: str, target: str) -> str:
        """Validate a goto target returned by ``source``."""
        if target != END and target not in self._node_names:
            raise ResolutionError(
                f"Node '{source}' returned goto to unknown node '{target}'. "
                f"Declared nodes: {sorted(self._node_names)}"
            )
        return target

    async def resolve_next(self, source: str, state: State) -> str:
        """
        Follow the outgoing edge of ``source``.

        Returns:
            Next node name, or END when ``source`` has no outgoing edge
        """
        edge = self._outgoing.get(source)
        if edge is None:
            return END
        return await edge.resolve(state, self._node_names)

    def describe(self) -> dict[str, Any]:
        """Plain description of the wiring, for CLIs and logs."""
        return {
            "id": self.spec.id,
            "entry_node": self.spec.entry_node,
            "nodes": self.node_names,
            "edges": [edge.id for edge in self.spec.edges],
            "channels": list(self.schema),
            "unreachable": self.spec.find_unreachable(),
        }
