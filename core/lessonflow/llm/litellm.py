"""LiteLLM provider - one adapter for OpenAI, Anthropic, Gemini, Ollama and friends."""

import asyncio
import json
import logging
from typing import Any

import litellm

from lessonflow.graph.errors import CollaboratorError
from lessonflow.llm.provider import LLMProvider, LLMResponse, Message, Tool, ToolUse

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider backed by ``litellm.acompletion``.

    Example:
        llm = LiteLLMProvider(model="gpt-4o-mini")
        llm = LiteLLMProvider(model="anthropic/claude-haiku-4-5-20251001")
        llm = LiteLLMProvider(model="ollama/llama3", api_base="http://localhost:11434")
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        request_timeout: float = 120.0,
        **extra_kwargs: Any,
    ):
        """
        Initialize the provider.

        Args:
            model: LiteLLM model string (provider prefix where needed)
            api_key: API key; None lets LiteLLM read the provider's env var
            api_base: Custom endpoint (proxies, local models)
            temperature: Sampling temperature
            max_tokens: Default completion budget
            request_timeout: Seconds before a call fails with CollaboratorError
            **extra_kwargs: Passed through to every acompletion call
        """
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self.extra_kwargs = extra_kwargs

    async def complete(
        self,
        messages: list[Message],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a completion via LiteLLM."""
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": _to_litellm_messages(messages, system),
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature,
            **self.extra_kwargs,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if tools:
            kwargs["tools"] = [_to_litellm_tool(t) for t in tools]
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        logger.debug(f"LLM call: model={self.model} messages={len(messages)}")
        try:
            response = await asyncio.wait_for(
                litellm.acompletion(**kwargs), timeout=self.request_timeout
            )
        except TimeoutError as e:
            raise CollaboratorError(
                f"LLM call to {self.model} timed out after {self.request_timeout}s"
            ) from e
        except Exception as e:
            raise CollaboratorError(f"LLM call to {self.model} failed: {e}") from e

        return _parse_response(response, self.model)


def _to_litellm_messages(messages: list[Message], system: str) -> list[dict[str, Any]]:
    """Convert conversation messages to OpenAI-style dicts."""
    result: list[dict[str, Any]] = []
    if system:
        result.append({"role": "system", "content": system})

    for msg in messages:
        if msg.role == "tool":
            result.append(
                {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}
            )
        elif msg.role == "assistant" and msg.tool_calls:
            result.append(
                {
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": json.dumps(tc.input)},
                        }
                        for tc in msg.tool_calls
                    ],
                }
            )
        else:
            result.append({"role": msg.role, "content": msg.content})
    return result


def _to_litellm_tool(tool: Tool) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters or {"type": "object", "properties": {}},
        },
    }


def _parse_response(response: Any, model: str) -> LLMResponse:
    choice = response.choices[0]
    message = choice.message

    tool_calls = []
    for tc in getattr(message, "tool_calls", None) or []:
        arguments = tc.function.arguments or "{}"
        try:
            parsed = json.loads(arguments) if isinstance(arguments, str) else dict(arguments)
        except json.JSONDecodeError:
            logger.warning(f"Tool call '{tc.function.name}' had malformed arguments")
            parsed = {"_raw": arguments}
        tool_calls.append(ToolUse(id=tc.id, name=tc.function.name, input=parsed))

    usage = getattr(response, "usage", None)
    return LLMResponse(
        content=message.content or "",
        model=getattr(response, "model", None) or model,
        tool_calls=tool_calls,
        input_tokens=getattr(usage, "prompt_tokens", 0) if usage else 0,
        output_tokens=getattr(usage, "completion_tokens", 0) if usage else 0,
        stop_reason=choice.finish_reason or "",
        raw_response=response,
    )
