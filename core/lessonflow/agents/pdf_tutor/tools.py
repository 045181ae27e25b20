"""
Tools for the PDF Tutor agent.

Frontend actions are rendered by the presentation layer (a learning plan
card, a quiz widget, a hint). When the model calls one, the run ends and
the driver renders it. Backend tools run in-process through the tool node.
"""

import re
from typing import Literal

from pydantic import BaseModel, Field

from lessonflow.llm.provider import Tool
from lessonflow.runner.tool_registry import ToolRegistry

# ============================================================================
# FRONTEND ACTIONS
# ============================================================================


class PlannedObjective(BaseModel):
    topic: str
    difficulty: Literal["beginner", "intermediate", "advanced"]


class PresentLearningPlanArgs(BaseModel):
    objectives: list[PlannedObjective] = Field(
        description="Learning objectives with topics and difficulty levels"
    )
    message: str = Field(description="Message explaining the learning plan")


class RenderMCQArgs(BaseModel):
    question: str = Field(description="The MCQ question text")
    choices: list[str] = Field(description="Answer choices (typically 4 options)")
    objective_topic: str = Field(description="The learning objective this MCQ relates to")
    mcq_index: int = Field(description="Index of this MCQ within the current objective")


class ProvideFeedbackArgs(BaseModel):
    is_correct: bool = Field(description="Whether the user's answer was correct")
    correct_answer: str = Field(description="The correct answer text")
    user_answer: str = Field(description="The answer the user selected")
    explanation: str = Field(description="Why the answer is correct or incorrect")
    visual_feedback: Literal["green", "red"] = Field(
        description="green for correct, red for incorrect"
    )


class ShowHintArgs(BaseModel):
    hint: str = Field(description="A helpful hint without giving away the answer")
    question: str = Field(description="The question the hint relates to")


class ShowExplanationArgs(BaseModel):
    explanation: str = Field(description="Detailed explanation of the correct answer")
    question: str = Field(description="The question being explained")


class Performance(BaseModel):
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    accuracy: float


class SummarizeResultsArgs(BaseModel):
    performance: Performance = Field(description="Overall performance statistics")
    study_tips: list[str] = Field(description="Personalized study tips")
    summary: str = Field(description="What was learned and areas for improvement")


def _frontend_tool(name: str, description: str, args: type[BaseModel]) -> Tool:
    return Tool(name=name, description=description, parameters=args.model_json_schema())


FRONTEND_TOOLS: list[Tool] = [
    _frontend_tool(
        "present_learning_plan",
        "Show the learning plan to the user for approval.",
        PresentLearningPlanArgs,
    ),
    _frontend_tool("render_mcq", "Display a multiple-choice question.", RenderMCQArgs),
    _frontend_tool(
        "provide_feedback",
        "Show green/red feedback after the user answers.",
        ProvideFeedbackArgs,
    ),
    _frontend_tool("show_hint", "Show a hint without revealing the answer.", ShowHintArgs),
    _frontend_tool(
        "show_explanation",
        "Show a detailed explanation of the correct answer.",
        ShowExplanationArgs,
    ),
    _frontend_tool(
        "summarize_results",
        "Show performance statistics and study tips at the end of the lesson.",
        SummarizeResultsArgs,
    ),
]

FRONTEND_ACTION_NAMES = tuple(tool.name for tool in FRONTEND_TOOLS)

# ============================================================================
# BACKEND TOOLS
# ============================================================================

_WORD = re.compile(r"\w+")


def search_document(query: str, document: str | None = None, limit: int = 3) -> dict:
    """Search the loaded document for the passages most relevant to a query."""
    if not document:
        return {"query": query, "matches": [], "note": "No document loaded"}

    terms = {w.lower() for w in _WORD.findall(query) if len(w) > 2}
    passages = [p.strip() for p in re.split(r"\n\s*\n", document) if p.strip()]
    if len(passages) <= 1:
        # No blank-line paragraphs (typical for extracted PDF text): use line windows
        lines = [line for line in document.splitlines() if line.strip()]
        passages = ["\n".join(lines[i : i + 8]) for i in range(0, len(lines), 8)]

    scored = []
    for index, passage in enumerate(passages):
        words = [w.lower() for w in _WORD.findall(passage)]
        score = sum(words.count(term) for term in terms)
        if score:
            scored.append((score, index, passage))

    scored.sort(key=lambda item: (-item[0], item[1]))
    return {
        "query": query,
        "matches": [
            {"passage": passage[:1500], "position": index, "score": score}
            for score, index, passage in scored[:limit]
        ],
    }


def build_tool_registry() -> ToolRegistry:
    """Registry with the tutor's backend tools."""
    registry = ToolRegistry()
    registry.register_function(search_document)
    return registry
