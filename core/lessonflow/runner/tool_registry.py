"""Backend tool registration and in-process execution."""

import inspect
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from lessonflow.llm.provider import Tool, ToolResult, ToolUse

logger = logging.getLogger(__name__)


@dataclass
class RegisteredTool:
    """A tool with its executor function."""

    tool: Tool
    executor: Callable[..., Any]
    context_params: frozenset[str] = field(default_factory=frozenset)


class ToolRegistry:
    """
    Manages backend tools the model may call.

    Context parameters are values the graph knows but the model does not
    (the loaded document text, the thread id). They are stripped from the
    model-facing schema and injected at call time into tools that accept them.
    """

    CONTEXT_PARAMS = frozenset({"document", "thread_id"})

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        tool: Tool,
        executor: Callable[..., Any],
        context_params: frozenset[str] = frozenset(),
    ) -> None:
        """
        Register a single tool with its executor.

        Args:
            name: Tool name (must match tool.name)
            tool: Tool definition
            executor: Callable taking the tool's inputs as keyword arguments;
                may be sync or async
            context_params: Context keys the executor accepts
        """
        self._tools[name] = RegisteredTool(
            tool=tool, executor=executor, context_params=context_params
        )

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """
        Register a function as a tool, auto-generating the Tool definition.

        Args:
            func: Function to register (sync or async)
            name: Tool name (defaults to function name)
            description: Tool description (defaults to docstring)
        """
        tool_name = name or func.__name__
        tool_desc = description or inspect.getdoc(func) or f"Execute {tool_name}"

        # Generate parameters from function signature
        sig = inspect.signature(func)
        properties = {}
        required = []
        context_params = set()

        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue
            if param_name in self.CONTEXT_PARAMS:
                context_params.add(param_name)
                continue

            param_type = "string"  # Default
            if param.annotation != inspect.Parameter.empty:
                if param.annotation is int:
                    param_type = "integer"
                elif param.annotation is float:
                    param_type = "number"
                elif param.annotation is bool:
                    param_type = "boolean"
                elif param.annotation is dict:
                    param_type = "object"
                elif param.annotation is list:
                    param_type = "array"

            properties[param_name] = {"type": param_type}

            if param.default == inspect.Parameter.empty:
                required.append(param_name)

        tool = Tool(
            name=tool_name,
            description=tool_desc,
            parameters={
                "type": "object",
                "properties": properties,
                "required": required,
            },
        )
        self.register(tool_name, tool, func, context_params=frozenset(context_params))

    def get_tools(self) -> dict[str, Tool]:
        """Get all registered Tool objects."""
        return {name: rt.tool for name, rt in self._tools.items()}

    def get_registered_names(self) -> list[str]:
        """Get list of registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def execute(
        self,
        tool_use: ToolUse,
        context: Mapping[str, Any] | None = None,
    ) -> ToolResult:
        """
        Run one tool call.

        Tool failures come back as error ToolResults so the model can see
        them and recover; they never abort the graph run.

        Args:
            tool_use: Call requested by the model
            context: Context values offered to tools that accept them
        """
        registered = self._tools.get(tool_use.name)
        if registered is None:
            return ToolResult(
                tool_use_id=tool_use.id,
                content=json.dumps({"error": f"Unknown tool: {tool_use.name}"}),
                is_error=True,
            )

        injected = {
            k: v for k, v in (context or {}).items() if k in registered.context_params
        }
        try:
            result = registered.executor(**{**tool_use.input, **injected})
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning(f"Tool '{tool_use.name}' failed: {e}")
            return ToolResult(
                tool_use_id=tool_use.id,
                content=json.dumps({"error": str(e)}),
                is_error=True,
            )

        if isinstance(result, ToolResult):
            return result
        return ToolResult(
            tool_use_id=tool_use.id,
            content=result if isinstance(result, str) else json.dumps(result),
        )
