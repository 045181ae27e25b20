"""
Tool-call routing for chat graphs.

After an agent node calls the model, the last message may request tools.
Frontend actions (render a quiz, show a plan) are handled by the
presentation layer, so the run ends and the driver renders them. Backend
tools run in-process in the tool node, which feeds results back to the agent.

Only the FIRST requested tool call decides the route. A reply that mixes a
frontend action with backend tools ends the run when the frontend action
comes first, and the backend calls after it are not executed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from lessonflow.graph.edge import END
from lessonflow.graph.node import NodeContext
from lessonflow.llm.provider import Message, ToolUse
from lessonflow.runner.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def _tool_calls(message: Any) -> list[Any]:
    return list(_field(message, "tool_calls") or [])


def _action_names(actions: Any) -> set[str]:
    return {a if isinstance(a, str) else _field(a, "name") for a in actions or []}


def make_tool_router(
    tool_node: str = "tool_node",
    messages_key: str = "messages",
    actions_key: str = "frontend_actions",
) -> Callable[[Any], str]:
    """
    Build a router that sends backend tool calls to ``tool_node``.

    Args:
        tool_node: Node that executes backend tools
        messages_key: Channel holding the conversation
        actions_key: Channel holding frontend action names (or tool dicts
            with a ``name`` field)
    """

    def tool_router(state: Any) -> str:
        messages = state.get(messages_key) or []
        if not messages:
            return END

        calls = _tool_calls(messages[-1])
        if not calls:
            return END

        frontend = _action_names(state.get(actions_key))
        first = _field(calls[0], "name")
        if first in frontend:
            logger.debug(f"Frontend action '{first}' requested, ending run")
            return END
        return tool_node

    return tool_router


tool_router = make_tool_router()


def make_tool_node(
    registry: ToolRegistry,
    messages_key: str = "messages",
    actions_key: str = "frontend_actions",
    context_keys: Mapping[str, str] | None = None,
):
    """
    Build a node that runs every backend tool call of the last message.

    Frontend actions in the same message are skipped. Unknown tools get an
    error result so the model can correct itself. Results are appended to
    ``messages_key`` as ``tool`` messages.

    Args:
        registry: Tools available in-process
        messages_key: Channel holding the conversation
        actions_key: Channel holding frontend action names
        context_keys: Map of tool context parameter -> state channel, e.g.
            ``{"document": "resource_content"}``
    """
    context_keys = dict(context_keys or {})

    async def tool_node(state: Any, ctx: NodeContext) -> dict[str, Any] | None:
        """Execute backend tool calls."""
        messages = state.get(messages_key) or []
        if not messages:
            return None

        context = {"thread_id": ctx.thread_id}
        for param, channel in context_keys.items():
            context[param] = state.get(channel)

        frontend = _action_names(state.get(actions_key))
        results = []
        for call in _tool_calls(messages[-1]):
            tool_use = call if isinstance(call, ToolUse) else ToolUse.model_validate(call)
            if tool_use.name in frontend:
                logger.debug(f"Skipping frontend action '{tool_use.name}'")
                continue
            result = await registry.execute(tool_use, context)
            logger.info(f"🔧 {tool_use.name} -> {'error' if result.is_error else 'ok'}")
            results.append(Message.tool(result, name=tool_use.name))

        return {messages_key: results} if results else None

    return tool_node
