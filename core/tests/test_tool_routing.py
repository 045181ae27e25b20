"""Tests for tool routing, the tool node and the tool registry."""

import json

import pytest

from lessonflow.graph.edge import END
from lessonflow.graph.node import NodeContext
from lessonflow.graph.routing import make_tool_node, make_tool_router, tool_router
from lessonflow.llm.provider import Message, ToolUse
from lessonflow.runner.tool_registry import ToolRegistry

FRONTEND = ["render_mcq", "show_hint"]


def assistant(*names: str) -> Message:
    return Message.assistant(
        "", tool_calls=[ToolUse(id=f"call_{i}", name=n, input={}) for i, n in enumerate(names)]
    )


def state_with(*messages, actions=FRONTEND):
    return {"messages": list(messages), "frontend_actions": actions}


class TestToolRouter:
    def test_no_messages_ends(self):
        assert tool_router(state_with()) == END

    def test_plain_reply_ends(self):
        assert tool_router(state_with(Message.assistant("Hello"))) == END

    def test_frontend_action_ends(self):
        assert tool_router(state_with(assistant("render_mcq"))) == END

    def test_backend_tool_goes_to_tool_node(self):
        assert tool_router(state_with(assistant("search_document"))) == "tool_node"

    def test_only_first_call_decides(self):
        assert tool_router(state_with(assistant("render_mcq", "search_document"))) == END
        assert tool_router(state_with(assistant("search_document", "render_mcq"))) == "tool_node"

    def test_accepts_tool_dicts_as_actions(self):
        state = state_with(assistant("show_hint"), actions=[{"name": "show_hint"}])
        assert tool_router(state) == END

    def test_reads_dict_messages(self):
        message = {"role": "assistant", "tool_calls": [{"id": "1", "name": "lookup"}]}
        assert tool_router(state_with(message)) == "tool_node"

    def test_custom_names(self):
        router = make_tool_router(tool_node="tools", messages_key="history", actions_key="ui")
        state = {"history": [assistant("lookup")], "ui": []}
        assert router(state) == "tools"


@pytest.fixture
def registry():
    registry = ToolRegistry()

    def lookup(term: str, document: str | None = None) -> dict:
        """Find a term in the document."""
        return {"term": term, "found": term in (document or "")}

    async def who_am_i(thread_id: str | None = None) -> str:
        return f"thread={thread_id}"

    def explode(reason: str) -> str:
        raise RuntimeError(reason)

    registry.register_function(lookup)
    registry.register_function(who_am_i)
    registry.register_function(explode)
    return registry


class TestToolRegistry:
    def test_context_params_are_hidden_from_schema(self, registry):
        tool = registry.get_tools()["lookup"]
        assert tool.description == "Find a term in the document."
        assert tool.parameters["properties"] == {"term": {"type": "string"}}
        assert tool.parameters["required"] == ["term"]

    def test_registered_names(self, registry):
        assert registry.get_registered_names() == ["lookup", "who_am_i", "explode"]
        assert registry.has_tool("lookup")
        assert not registry.has_tool("render_mcq")

    @pytest.mark.asyncio
    async def test_execute_injects_context(self, registry):
        result = await registry.execute(
            ToolUse(id="c1", name="lookup", input={"term": "graph"}),
            {"document": "a graph of nodes", "thread_id": "t1"},
        )
        assert not result.is_error
        assert result.tool_use_id == "c1"
        assert json.loads(result.content) == {"term": "graph", "found": True}

    @pytest.mark.asyncio
    async def test_execute_awaits_async_tools(self, registry):
        result = await registry.execute(ToolUse(id="c2", name="who_am_i"), {"thread_id": "t7"})
        assert result.content == "thread=t7"

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_error_result(self, registry):
        result = await registry.execute(
            ToolUse(id="c3", name="explode", input={"reason": "boom"})
        )
        assert result.is_error
        assert json.loads(result.content) == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_error_result(self, registry):
        result = await registry.execute(ToolUse(id="c4", name="missing"))
        assert result.is_error
        assert "Unknown tool" in result.content


class TestToolNode:
    @pytest.mark.asyncio
    async def test_runs_backend_calls_and_skips_frontend(self, registry):
        node = make_tool_node(registry, context_keys={"document": "resource_content"})
        message = Message.assistant(
            "",
            tool_calls=[
                ToolUse(id="a", name="lookup", input={"term": "node"}),
                ToolUse(id="b", name="render_mcq", input={}),
                ToolUse(id="c", name="who_am_i", input={}),
            ],
        )
        state = state_with(message) | {"resource_content": "every node has edges"}
        ctx = NodeContext(thread_id="t1", node_id="tool_node", step=3)

        delta = await node(state, ctx)

        results = delta["messages"]
        assert [m.tool_call_id for m in results] == ["a", "c"]
        assert all(m.role == "tool" for m in results)
        assert json.loads(results[0].content)["found"] is True
        assert results[0].name == "lookup"
        assert results[1].content == "thread=t1"

    @pytest.mark.asyncio
    async def test_unknown_backend_tool_gets_error_message(self, registry):
        node = make_tool_node(registry)
        ctx = NodeContext(thread_id="t1", node_id="tool_node", step=0)

        delta = await node(state_with(assistant("no_such_tool")), ctx)

        assert len(delta["messages"]) == 1
        assert "Unknown tool" in delta["messages"][0].content

    @pytest.mark.asyncio
    async def test_nothing_to_do_returns_none(self, registry):
        node = make_tool_node(registry)
        ctx = NodeContext(thread_id="t1", node_id="tool_node", step=0)

        assert await node(state_with(), ctx) is None
        assert await node(state_with(assistant("render_mcq")), ctx) is None
