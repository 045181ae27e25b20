"""LLM Provider abstraction for pluggable LLM backends."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, Field, ValidationError

from lessonflow.graph.errors import CollaboratorError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ToolUse(BaseModel):
    """A tool call requested by the LLM."""

    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """
    One conversation message.

    Messages live in graph state, so they are pydantic models and survive a
    round trip through a checkpoint snapshot.
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolUse] = Field(default_factory=list)
    tool_call_id: str | None = None  # Set on role="tool" results
    name: str | None = None

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolUse] | None = None) -> Message:
        return cls(role="assistant", content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, result: ToolResult, name: str | None = None) -> Message:
        return cls(role="tool", content=result.content, tool_call_id=result.tool_use_id, name=name)


@dataclass
class Tool:
    """A tool the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """Result of executing a tool."""

    tool_use_id: str
    content: str
    is_error: bool = False


@dataclass
class LLMResponse:
    """Response from an LLM call."""

    content: str
    model: str
    tool_calls: list[ToolUse] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    raw_response: Any = None

    def to_message(self) -> Message:
        """Assistant message carrying this response's text and tool calls."""
        return Message.assistant(self.content, tool_calls=list(self.tool_calls))


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any LLM backend.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Timeouts
    - Wrapping backend failures in CollaboratorError
    """

    model: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history
            system: System prompt
            tools: Available tools for the LLM to use
            max_tokens: Maximum tokens to generate (None uses the provider default)
            json_mode: If True, request a JSON object as the reply

        Returns:
            LLMResponse with content, tool calls and metadata

        Raises:
            CollaboratorError: If the backend call fails or times out
        """

    async def complete_structured(
        self,
        messages: list[Message],
        response_model: type[ModelT],
        system: str = "",
        max_tokens: int | None = None,
    ) -> ModelT:
        """
        Ask for a JSON reply and validate it into ``response_model``.

        Raises:
            CollaboratorError: If the reply is not valid JSON for the model
        """
        schema = json.dumps(response_model.model_json_schema())
        prompt = f"{system}\n\nRespond with a single JSON object matching this schema:\n{schema}"
        response = await self.complete(
            messages, system=prompt.strip(), max_tokens=max_tokens, json_mode=True
        )
        try:
            return response_model.model_validate_json(_strip_code_fence(response.content))
        except ValidationError as e:
            raise CollaboratorError(
                f"Model reply did not match {response_model.__name__}: {e}"
            ) from e


def _strip_code_fence(text: str) -> str:
    """Models sometimes wrap JSON in ``` fences even in JSON mode."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()
