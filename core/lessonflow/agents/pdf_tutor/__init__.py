"""
PDF Tutor - Turn a PDF into an interactive lesson.

Two graphs share one state schema: a free-form chat where the model drives
the lesson through frontend actions, and a guided lesson that suspends for
the PDF path, plan approval and every quiz answer.
"""

from .agent import TutorAgent, build_chat_graph, build_lesson_graph
from .config import AgentMetadata, default_config, metadata
from .state import MCQ, TUTOR_STATE, AgentPhase, LearningSession, LearningTopic

__version__ = "1.0.0"

__all__ = [
    "TutorAgent",
    "build_chat_graph",
    "build_lesson_graph",
    "AgentMetadata",
    "default_config",
    "metadata",
    "TUTOR_STATE",
    "AgentPhase",
    "LearningTopic",
    "MCQ",
    "LearningSession",
]
