"""State channels and models for the PDF Tutor agent."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

from lessonflow.agents.pdf_tutor.tools import FRONTEND_ACTION_NAMES
from lessonflow.graph.channels import Channel, append, merge_by_key
from lessonflow.graph.state import StateSchema
from lessonflow.llm.provider import Message

Difficulty = Literal["beginner", "intermediate", "advanced"]


class AgentPhase(StrEnum):
    SETUP = "setup"
    PLANNING = "planning"
    APPROVAL = "approval"
    LEARNING = "learning"
    QUIZ = "quiz"
    FEEDBACK = "feedback"
    SUMMARY = "summary"


class LearningTopic(BaseModel):
    """One learning objective; ``topic`` is its stable key."""

    topic: str
    difficulty: Difficulty = "beginner"
    completed: bool = False
    attempts: int = 0


class MCQ(BaseModel):
    question: str
    choices: list[str]
    correct_answer: str
    explanation: str = ""
    topic: str = ""


class LearningSession(BaseModel):
    """Quiz performance across the lesson."""

    completed_mcqs: list[MCQ] = Field(default_factory=list)
    total_questions: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0

    @property
    def accuracy(self) -> float:
        if not self.total_questions:
            return 0.0
        return round(100.0 * self.correct_answers / self.total_questions, 1)

    def record(self, mcq: MCQ, correct: bool) -> LearningSession:
        return LearningSession(
            completed_mcqs=[*self.completed_mcqs, mcq],
            total_questions=self.total_questions + 1,
            correct_answers=self.correct_answers + int(correct),
            incorrect_answers=self.incorrect_answers + int(not correct),
        )


TUTOR_STATE = StateSchema(
    Channel("messages", list[Message], reducer=append, default=list),
    Channel(
        "frontend_actions",
        list[str],
        default=lambda: list(FRONTEND_ACTION_NAMES),
        description="Tool names the presentation layer renders itself",
    ),
    Channel("resource_url", str | None),
    Channel("resource_content", str | None),
    Channel("learning_plan", list[LearningTopic], reducer=merge_by_key("topic"), default=list),
    Channel("plan_approved", bool | None),
    Channel("current_phase", AgentPhase, default=AgentPhase.SETUP),
    Channel("current_mcq", MCQ | None),
    Channel("learning_session", LearningSession | None),
)


def pending_topics(state: Any) -> list[LearningTopic]:
    return [t for t in state.get("learning_plan") or [] if not t.completed]
