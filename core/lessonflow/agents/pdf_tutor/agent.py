"""Agent graph construction for the PDF Tutor agent."""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from lessonflow.config import RuntimeConfig
from lessonflow.graph.builder import CompiledGraph, StateGraph
from lessonflow.graph.edge import END, START
from lessonflow.graph.errors import ConfigurationError
from lessonflow.graph.executor import NO_RESUME, GraphExecutor, RunOutcome
from lessonflow.graph.routing import make_tool_node, tool_router
from lessonflow.graph.state import State
from lessonflow.ingest.pdf import DocumentLoader, TextExtractor
from lessonflow.llm.litellm import LiteLLMProvider
from lessonflow.llm.mock import MockLLMProvider
from lessonflow.llm.provider import LLMProvider, Message, ToolResult
from lessonflow.runner.tool_registry import ToolRegistry
from lessonflow.schemas.checkpoint import Checkpoint
from lessonflow.storage import create_checkpoint_store
from lessonflow.storage.checkpoint_store import CheckpointStore

from .config import default_config, metadata
from .nodes import (
    LearningPlanDraft,
    agent,
    approval,
    ask_question,
    create_learning_plan,
    generate_question,
    make_ingest_node,
    requires_all_topics_completed,
    requires_plan_approval,
    review,
)
from .state import MCQ, TUTOR_STATE
from .tools import build_tool_registry

logger = logging.getLogger(__name__)

GRAPHS = ("chat", "lesson")


def build_chat_graph(registry: ToolRegistry | None = None, max_steps: int = 100) -> CompiledGraph:
    """
    Free-form tutoring chat.

        ingest_pdf -> agent <-> tool_node
                        |
                       END (no tool calls, or a frontend action)
    """
    registry = registry or build_tool_registry()
    graph = StateGraph(TUTOR_STATE, graph_id="pdf-tutor-chat", max_steps=max_steps)
    graph.add_node("ingest_pdf", make_ingest_node("agent"))
    graph.add_node("agent", agent)
    graph.add_node(
        "tool_node",
        make_tool_node(registry, context_keys={"document": "resource_content"}),
    )
    graph.add_edge(START, "ingest_pdf")
    graph.add_edge("ingest_pdf", "agent")
    graph.add_edge("tool_node", "agent")
    graph.add_conditional_edges("agent", tool_router, targets=["tool_node", END])
    return graph.compile()


def build_lesson_graph(max_steps: int = 100) -> CompiledGraph:
    """
    Guided lesson.

        ingest_pdf -> create_learning_plan -> approval (until approved)
            -> generate_question -> ask_question (until every topic is done)
            -> review -> END
    """
    graph = StateGraph(TUTOR_STATE, graph_id="pdf-tutor-lesson", max_steps=max_steps)
    graph.add_node("ingest_pdf", make_ingest_node("create_learning_plan"))
    graph.add_node("create_learning_plan", create_learning_plan)
    graph.add_node("approval", approval)
    graph.add_node("generate_question", generate_question)
    graph.add_node("ask_question", ask_question)
    graph.add_node("review", review)

    graph.add_edge(START, "ingest_pdf")
    graph.add_edge("ingest_pdf", "create_learning_plan")
    graph.add_edge("create_learning_plan", "approval")
    graph.add_conditional_edges(
        "approval", requires_plan_approval, targets=["generate_question", "approval"]
    )
    graph.add_edge("generate_question", "ask_question")
    graph.add_conditional_edges(
        "ask_question", requires_all_topics_completed, targets=["generate_question", "review"]
    )
    graph.add_edge("review", END)
    return graph.compile()


def build_mock_llm() -> MockLLMProvider:
    """Canned model for --mock runs; enough to walk a lesson from plan to review."""
    return MockLLMProvider(
        default="(mock) Good work. Ask me anything else about the document.",
        structured={
            LearningPlanDraft: {
                "objectives": [
                    {"topic": "Main ideas", "difficulty": "beginner"},
                    {"topic": "Key terms", "difficulty": "intermediate"},
                ]
            },
            MCQ: {
                "question": "Which choice is the mock answer?",
                "choices": ["This one", "Not this one", "Nor this one"],
                "correct_answer": "This one",
                "explanation": "The mock model always marks the first choice correct.",
            },
        },
    )


def unanswered_tool_calls(state: State) -> list[Any]:
    """Tool calls of the last assistant message that have no tool result yet."""
    messages = list(state.get("messages") or [])
    for i in range(len(messages) - 1, -1, -1):
        msg = messages[i]
        if msg.role == "assistant":
            answered = {m.tool_call_id for m in messages[i + 1 :] if m.role == "tool"}
            return [tc for tc in msg.tool_calls if tc.id not in answered]
    return []


class TutorAgent:
    """
    PDF Tutor agent: owns the store, model, extractor and tool registry and
    hands them to a GraphExecutor.

    Example:
        tutor = TutorAgent(graph="lesson")
        outcome = await tutor.start("thread-1")      # suspends for a PDF path
        outcome = await tutor.resume("thread-1", "docs/biology.pdf")
    """

    def __init__(
        self,
        graph: str = "chat",
        config: RuntimeConfig | None = None,
        store: CheckpointStore | None = None,
        llm: LLMProvider | None = None,
        extractor: TextExtractor | None = None,
        base_dir: str | Path | None = None,
        mock_mode: bool = False,
    ):
        if graph not in GRAPHS:
            raise ValueError(f"Unknown graph '{graph}'. Choose one of {list(GRAPHS)}")
        self.graph_name = graph
        self.config = config or default_config
        self.mock_mode = mock_mode
        self._store = store
        self._llm = llm
        self._extractor = extractor
        self._base_dir = base_dir
        self._tool_registry: ToolRegistry | None = None
        self._graph: CompiledGraph | None = None
        self._executor: GraphExecutor | None = None

    @property
    def storage_path(self) -> Path:
        return Path(self.config.storage_path) / "pdf_tutor" / self.graph_name

    def _build_graph(self) -> CompiledGraph:
        if self.graph_name == "lesson":
            return build_lesson_graph(max_steps=self.config.max_steps)
        return build_chat_graph(self._tool_registry, max_steps=self.config.max_steps)

    def _setup(self) -> None:
        """Wire store, model, extractor and tools into an executor."""
        self._tool_registry = build_tool_registry()

        llm = self._llm
        if llm is None:
            if self.mock_mode:
                llm = build_mock_llm()
            else:
                llm = LiteLLMProvider(
                    model=self.config.model,
                    api_key=self.config.api_key,
                    api_base=self.config.api_base,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                    request_timeout=self.config.request_timeout,
                )

        store = self._store or create_checkpoint_store(
            self.config.checkpoint_backend, self.storage_path
        )
        self._store = store
        self._graph = self._build_graph()
        self._executor = GraphExecutor(
            graph=self._graph,
            checkpoint_store=store,
            llm=llm,
            documents=DocumentLoader(self._extractor, base_dir=self._base_dir),
            tools=self._tool_registry,
            max_steps=self.config.max_steps,
        )
        logger.info(f"PDF Tutor ready: graph={self._graph.id} store={type(store).__name__}")

    @property
    def executor(self) -> GraphExecutor:
        if self._executor is None:
            self._setup()
        return self._executor

    async def start(
        self, thread_id: str, input: Mapping[str, Any] | None = None
    ) -> RunOutcome:
        """Start or continue a thread without answering an interrupt."""
        return await self.executor.start_or_resume(thread_id, input)

    async def resume(self, thread_id: str, value: Any) -> RunOutcome:
        """Answer the pending interrupt of a thread."""
        return await self.executor.resume(thread_id, value)

    async def send_message(
        self,
        thread_id: str,
        text: str,
        action_results: Mapping[str, str] | None = None,
        resume: Any = NO_RESUME,
    ) -> RunOutcome:
        """
        Add a user message and run.

        Frontend actions from the previous reply get a tool result first
        (``action_results`` by tool call id, else a "rendered" ack), so the
        conversation sent to the model stays well formed.
        """
        state = await self.executor.get_state(thread_id)
        results = dict(action_results or {})
        messages = []
        for tc in unanswered_tool_calls(state):
            content = results.get(tc.id, json.dumps({"status": "rendered"}))
            messages.append(Message.tool(ToolResult(tool_use_id=tc.id, content=content), tc.name))
        messages.append(Message.user(text))
        return await self.executor.start_or_resume(
            thread_id, {"messages": messages}, resume=resume
        )

    async def history(self, thread_id: str) -> list[Checkpoint]:
        return await self.executor.history(thread_id)

    async def threads(self) -> list[str]:
        return await self.executor.store.list_threads()

    async def close(self) -> None:
        if self._store is not None:
            await self._store.close()

    def info(self) -> dict[str, Any]:
        """Get agent information."""
        graph = self._graph or self._build_graph()
        return {
            "name": metadata.name,
            "version": metadata.version,
            "description": metadata.description,
            "graph": graph.describe(),
            "model": self.config.model,
            "checkpoint_backend": self.config.checkpoint_backend,
            "storage_path": str(self.storage_path),
        }

    def validate(self) -> dict[str, Any]:
        """Validate both tutor graphs."""
        errors = []
        warnings = []
        for name, build in (("chat", build_chat_graph), ("lesson", build_lesson_graph)):
            try:
                compiled = build()
            except ConfigurationError as e:
                errors.append(f"{name}: {e}")
                continue
            for node in compiled.spec.find_unreachable():
                warnings.append(f"{name}: node '{node}' is only reachable through goto")

        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
        }
