"""
Node and router implementations for the PDF Tutor agent.

Nodes that suspend are re-run from the top on resume, so everything before
a ``ctx.suspend`` call only reads state. Model calls that must not repeat
(question generation) live in their own node before the suspending one.
"""

import logging
from typing import Any

from pydantic import BaseModel

from lessonflow.agents.pdf_tutor.prompt import (
    PLAN_PROMPT,
    QUESTION_PROMPT,
    REVIEW_PROMPT,
    build_system_prompt,
    to_json,
)
from lessonflow.agents.pdf_tutor.state import (
    MCQ,
    AgentPhase,
    LearningSession,
    LearningTopic,
    pending_topics,
)
from lessonflow.agents.pdf_tutor.tools import FRONTEND_TOOLS, PlannedObjective
from lessonflow.graph.errors import CollaboratorError, ExtractionError
from lessonflow.graph.node import Command, NodeContext
from lessonflow.graph.state import State
from lessonflow.llm.provider import LLMProvider, Message

logger = logging.getLogger(__name__)

RESOURCE_REQUEST = "__interrupt_required_resource_uri"
APPROVAL_REQUEST = "__interrupt_required_approval"

# Source text handed to single-shot prompts
PROMPT_CONTENT_CHARS = 20000

_PHASE_BY_ACTION = {
    "present_learning_plan": AgentPhase.APPROVAL,
    "render_mcq": AgentPhase.QUIZ,
    "provide_feedback": AgentPhase.FEEDBACK,
    "summarize_results": AgentPhase.SUMMARY,
}


class LearningPlanDraft(BaseModel):
    objectives: list[PlannedObjective]


def _require_llm(ctx: NodeContext) -> LLMProvider:
    if ctx.llm is None:
        raise CollaboratorError(f"Node '{ctx.node_id}' needs an LLM provider")
    return ctx.llm


def _content(state: State) -> str:
    return (state.resource_content or "")[:PROMPT_CONTENT_CHARS]


# ============================================================================
# SHARED
# ============================================================================


def make_ingest_node(next_node: str):
    """
    Build the ingest node, which continues at ``next_node`` once the
    document text is in state.
    """

    async def ingest_pdf(state: State, ctx: NodeContext) -> Command:
        """Ask for a PDF, extract its text and store it."""
        if state.resource_content:
            return Command(goto=next_node)

        uri = await ctx.suspend(RESOURCE_REQUEST, kind="resource")
        if not uri or not str(uri).strip():
            # Nothing usable supplied: ask again
            return Command(goto=ctx.node_id)

        uri = str(uri).strip()
        if ctx.documents is None:
            raise CollaboratorError("No document loader configured")
        try:
            content = await ctx.documents.load_text(uri)
        except ExtractionError as e:
            logger.warning(f"PDF extraction failed for {uri}: {e}")
            content = f"Error parsing PDF: {e}"

        return Command(
            goto=next_node,
            update={
                "resource_url": uri,
                "resource_content": content,
                "current_phase": AgentPhase.PLANNING,
            },
        )

    return ingest_pdf


# ============================================================================
# CHAT GRAPH
# ============================================================================


async def agent(state: State, ctx: NodeContext) -> dict[str, Any]:
    """Call the model with frontend actions and backend tools bound."""
    llm = _require_llm(ctx)
    enabled = set(state.frontend_actions or [])
    frontend = [t for t in FRONTEND_TOOLS if t.name in enabled]
    backend = list(ctx.tools.get_tools().values()) if ctx.tools else []

    response = await llm.complete(
        list(state.messages),
        system=build_system_prompt(state, frontend, backend),
        tools=frontend + backend,
    )

    update: dict[str, Any] = {"messages": [response.to_message()]}
    if response.tool_calls:
        phase = _PHASE_BY_ACTION.get(response.tool_calls[0].name)
        if phase:
            update["current_phase"] = phase
    return update


# ============================================================================
# LESSON GRAPH
# ============================================================================


async def create_learning_plan(state: State, ctx: NodeContext) -> dict[str, Any] | Command:
    """Draft the learning plan, or skip ahead when one already exists."""
    if state.learning_plan:
        if state.plan_approved:
            return Command(goto="generate_question", update={"current_phase": AgentPhase.LEARNING})
        return Command(goto="approval", update={"current_phase": AgentPhase.APPROVAL})

    draft = await _require_llm(ctx).complete_structured(
        [*state.messages, Message.user(PLAN_PROMPT.format(content=_content(state)))],
        LearningPlanDraft,
    )
    if not draft.objectives:
        raise CollaboratorError("Model returned an empty learning plan")

    topics = [LearningTopic(topic=o.topic, difficulty=o.difficulty) for o in draft.objectives]
    listing = "\n".join(f"{i}. {t.topic} ({t.difficulty})" for i, t in enumerate(topics, 1))
    return {
        "learning_plan": topics,
        "messages": [Message.assistant(f"I have created a learning plan:\n{listing}")],
        "current_phase": AgentPhase.APPROVAL,
    }


async def approval(state: State, ctx: NodeContext) -> dict[str, Any]:
    """Wait for a yes/no on the learning plan."""
    answer = await ctx.suspend(APPROVAL_REQUEST, kind="approval")
    approved = "yes" in str(answer or "").lower()
    logger.info(f"Learning plan {'approved' if approved else 'rejected'}")
    return {
        "plan_approved": approved,
        "current_phase": AgentPhase.LEARNING if approved else AgentPhase.APPROVAL,
    }


async def generate_question(state: State, ctx: NodeContext) -> dict[str, Any] | Command:
    """Write the next question for the first unfinished topic."""
    pending = pending_topics(state)
    if not pending:
        return Command(goto="review")

    topic = pending[0]
    mcq = await _require_llm(ctx).complete_structured(
        [
            Message.user(
                QUESTION_PROMPT.format(
                    topic=topic.topic, difficulty=topic.difficulty, content=_content(state)
                )
            )
        ],
        MCQ,
    )
    if mcq.correct_answer not in mcq.choices:
        raise CollaboratorError(
            f"Model returned a question whose answer {mcq.correct_answer!r} "
            f"is not one of its choices"
        )
    return {
        "current_mcq": mcq.model_copy(update={"topic": topic.topic}),
        "current_phase": AgentPhase.QUIZ,
    }


def is_correct_answer(answer: Any, mcq: MCQ) -> bool:
    """
    Accept the choice text, its 1-based number, or its letter (a, b, c, ...).

    Choice text wins over position, so "4" picks the choice "4" when there
    is one and only falls back to the fourth choice otherwise.
    """
    if isinstance(answer, dict):
        answer = answer.get("answer")
    text = str(answer or "").strip()
    if not text:
        return False

    correct = mcq.correct_answer.strip().casefold()
    if any(choice.strip().casefold() == text.casefold() for choice in mcq.choices):
        return text.casefold() == correct

    chosen = text
    if text.isdigit() and 1 <= int(text) <= len(mcq.choices):
        chosen = mcq.choices[int(text) - 1]
    elif len(text) == 1 and text.isalpha():
        index = ord(text.lower()) - ord("a")
        if 0 <= index < len(mcq.choices):
            chosen = mcq.choices[index]
    return chosen.strip().casefold() == correct


async def ask_question(state: State, ctx: NodeContext) -> dict[str, Any] | Command:
    """Put the current question to the user and grade the answer."""
    mcq = state.current_mcq
    if mcq is None:
        return Command(goto="generate_question")

    answer = await ctx.suspend(
        {"question": mcq.question, "choices": mcq.choices, "topic": mcq.topic},
        kind="question",
    )
    correct = is_correct_answer(answer, mcq)

    attempts = next((t.attempts for t in state.learning_plan if t.topic == mcq.topic), 0)
    session = (state.learning_session or LearningSession()).record(mcq, correct)
    if correct:
        feedback = f"Correct! {mcq.explanation}".strip()
    else:
        feedback = f"Not quite. Let's try another question on {mcq.topic}."

    return {
        "learning_plan": [{"topic": mcq.topic, "completed": correct, "attempts": attempts + 1}],
        "learning_session": session,
        "current_mcq": None,
        "current_phase": AgentPhase.FEEDBACK,
        "messages": [Message.assistant(feedback)],
    }


async def review(state: State, ctx: NodeContext) -> dict[str, Any]:
    """Summarize the lesson."""
    session = state.learning_session or LearningSession()
    response = await _require_llm(ctx).complete(
        [
            Message.user(
                REVIEW_PROMPT.format(accuracy=session.accuracy, plan=to_json(state.learning_plan))
            )
        ]
    )
    return {
        "messages": [Message.assistant(response.content)],
        "current_phase": AgentPhase.SUMMARY,
    }


# ============================================================================
# ROUTERS
# ============================================================================


def requires_plan_approval(state: State) -> str:
    """An unapproved plan always goes back to approval."""
    return "generate_question" if state.plan_approved else "approval"


def requires_all_topics_completed(state: State) -> str:
    if state.learning_plan and not pending_topics(state):
        return "review"
    return "generate_question"
