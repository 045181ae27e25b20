"""
Structured logging with automatic trace context propagation.

The executor tags every run with its graph, thread and run ids and every
step with the node id. Plain ``logger.info()`` calls anywhere below it
(nodes, tools, the LLM adapter) pick those fields up through a ContextVar,
including inside the per-node tasks, which copy the context when created.

    GraphExecutor._run()  -> graph_id, thread_id, run_id
        ↓ (ContextVar propagation)
    node step             -> node_id
        ↓
    logger.info("...")    -> "[thread:abc | node:agent] ..." or a JSON line
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

import litellm

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")

# Extra record attributes copied into JSON entries when present
_EXTRA_FIELDS = ("event", "latency_ms", "tokens_used", "model", "checkpoint_id")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line with timestamp, level, logger and message,
    the current trace context (graph_id, thread_id, run_id, node_id) and
    any known extra fields passed through ``extra=``.
    """

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colorized single-line logs with a [thread | node] prefix."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        prefix_parts = []
        if context.get("thread_id"):
            prefix_parts.append(f"thread:{context['thread_id']}")
        if context.get("run_id"):
            prefix_parts.append(f"run:{context['run_id'][:8]}")
        if context.get("node_id"):
            prefix_parts.append(f"node:{context['node_id']}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"
        event = getattr(record, "event", None)
        suffix = f" [{event}]" if event is not None else ""

        line = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{suffix}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure logging for the application. Call once at startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json", "human", or "auto" (JSON if LOG_FORMAT=json or
            ENV=production, else human)
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        _disable_third_party_colors()
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    if format == "json":
        # Route LiteLLM and its HTTP stack through the JSON formatter on root
        for logger_name in ("LiteLLM", "httpcore", "httpx", "openai"):
            third_party = logging.getLogger(logger_name)
            third_party.handlers.clear()
            third_party.propagate = True


def _disable_third_party_colors() -> None:
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"
    litellm.suppress_debug_info = True


def set_trace_context(**kwargs: Any) -> None:
    """
    Merge fields into the trace context of the current execution.

    Called by the executor (graph_id, thread_id, run_id per run; node_id
    per step). Node code does not need to call it.
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    """Copy of the current trace context (empty dict if unset)."""
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    trace_context.set(None)
