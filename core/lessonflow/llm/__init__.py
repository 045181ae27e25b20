"""LLM provider abstraction."""

from lessonflow.llm.litellm import LiteLLMProvider
from lessonflow.llm.mock import MockLLMProvider
from lessonflow.llm.provider import (
    LLMProvider,
    LLMResponse,
    Message,
    Tool,
    ToolResult,
    ToolUse,
)

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "Message",
    "MockLLMProvider",
    "Tool",
    "ToolResult",
    "ToolUse",
]
