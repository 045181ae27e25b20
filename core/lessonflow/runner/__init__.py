"""Agent runner helpers."""

from lessonflow.runner.tool_registry import RegisteredTool, ToolRegistry

__all__ = ["RegisteredTool", "ToolRegistry"]
