"""Mock LLM provider for tests and --mock runs."""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from lessonflow.llm.provider import LLMProvider, LLMResponse, Message, ModelT, Tool, ToolUse

logger = logging.getLogger(__name__)


class MockLLMProvider(LLMProvider):
    """
    Plays back scripted responses and records every call.

    A script entry is an LLMResponse, a plain string (text reply), or a
    dict ``{"content": ..., "tool_calls": [{"name": ..., "input": {...}}]}``.
    When the script runs out, ``default`` is returned, and structured calls
    for a model listed in ``structured`` get that model's canned value.
    """

    def __init__(
        self,
        responses: list[LLMResponse | str | dict[str, Any]] | None = None,
        default: str = "OK",
        model: str = "mock",
        structured: Mapping[type[BaseModel], BaseModel | dict[str, Any]] | None = None,
    ):
        self.model = model
        self.default = default
        self.structured = dict(structured or {})
        self._responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def add_response(self, response: LLMResponse | str | dict[str, Any]) -> None:
        self._responses.append(response)

    async def complete(
        self,
        messages: list[Message],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        self._record(messages, system, tools, json_mode)
        if not self._responses:
            return LLMResponse(content=self.default, model=self.model, stop_reason="stop")
        return self._build(self._responses.pop(0))

    async def complete_structured(
        self,
        messages: list[Message],
        response_model: type[ModelT],
        system: str = "",
        max_tokens: int | None = None,
    ) -> ModelT:
        canned = self.structured.get(response_model)
        if self._responses or canned is None:
            return await super().complete_structured(messages, response_model, system, max_tokens)

        self._record(messages, system, None, True)
        logger.debug(f"Canned {response_model.__name__} reply")
        if isinstance(canned, BaseModel):
            canned = canned.model_dump()
        return response_model.model_validate(canned)

    def _record(
        self, messages: list[Message], system: str, tools: list[Tool] | None, json_mode: bool
    ) -> None:
        self.calls.append(
            {
                "messages": list(messages),
                "system": system,
                "tools": [t.name for t in tools or []],
                "json_mode": json_mode,
            }
        )

    def _build(self, entry: LLMResponse | str | dict[str, Any]) -> LLMResponse:
        if isinstance(entry, LLMResponse):
            return entry
        if isinstance(entry, str):
            return LLMResponse(content=entry, model=self.model, stop_reason="stop")

        n = len(self.calls)
        tool_calls = [
            ToolUse(id=tc.get("id", f"call_{n}_{i}"), name=tc["name"], input=tc.get("input", {}))
            for i, tc in enumerate(entry.get("tool_calls", []))
        ]
        return LLMResponse(
            content=entry.get("content", ""),
            model=self.model,
            tool_calls=tool_calls,
            stop_reason="tool_calls" if tool_calls else "stop",
        )
