"""Runtime configuration for the PDF Tutor agent."""

from dataclasses import dataclass

from lessonflow.config import RuntimeConfig

default_config = RuntimeConfig()


@dataclass
class AgentMetadata:
    name: str = "PDF Tutor"
    version: str = "1.0.0"
    description: str = (
        "Turn a PDF into an interactive lesson: ingest the document, agree on a "
        "learning plan, practice each topic with multiple-choice questions and "
        "finish with a review of what was learned."
    )
    intro_message: str = (
        "Hi! Give me the path to a PDF and I'll build a short lesson from it. "
        "We'll agree on a plan first, then practice each topic with quick quizzes."
    )


metadata = AgentMetadata()
