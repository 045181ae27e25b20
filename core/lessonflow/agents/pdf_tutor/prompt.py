"""Prompts for the PDF Tutor agent."""

import json
from typing import Any

from lessonflow.llm.provider import Tool

CONTENT_PREVIEW_CHARS = 5000

SYSTEM_PROMPT = """\
You are a tutor that turns a PDF into an interactive lesson. The document \
has already been parsed; its text is included below. Use the frontend tools \
for everything the user should see as a widget and keep your own messages short.

Workflow:
1. PLANNING: read the document and propose 3-5 learning objectives, each with \
a topic and a difficulty (beginner, intermediate, advanced). Call \
`present_learning_plan` and do not list the objectives again in text.
2. APPROVAL: wait for the user to approve. If they ask for changes, build a new \
plan and present it again. Never start quizzing before the plan is approved.
3. LEARNING: for each objective ask 2-3 multiple-choice questions with four \
choices (one correct, three plausible) through `render_mcq`. Introduce each \
question with a short natural transition and do not repeat it in text.
4. QUIZ: when the user answers, call `provide_feedback`. If correct, follow \
with `show_explanation`; if not, call `show_hint` and let them retry. Never \
reveal the answer while the user is still trying.
5. SUMMARY: when every objective is done, call `summarize_results` with the \
statistics and personalised study tips, then close with one friendly sentence.

Rules:
- Base every question, hint and explanation on the document.
- Give progressively stronger hints, never the answer itself.
- Be encouraging, especially after wrong answers.
- Steer off-topic requests back to the lesson.
- Use `search_document` to look up passages beyond the preview below.
"""


def to_json(value: Any) -> str:
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [v.model_dump(mode="json") if hasattr(v, "model_dump") else v for v in value]
    return json.dumps(value, indent=2)


def build_system_prompt(state: Any, frontend_tools: list[Tool], backend_tools: list[Tool]) -> str:
    """System prompt with a snapshot of the lesson state appended."""
    content = state.get("resource_content")
    lines = [
        SYSTEM_PROMPT,
        "## Current State:",
        f"- Phase: {state.get('current_phase') or 'setup'}",
        f"- PDF Content Available: {'Yes (see below)' if content else 'No'}",
    ]
    if content:
        preview = content[:CONTENT_PREVIEW_CHARS]
        if len(content) > CONTENT_PREVIEW_CHARS:
            preview += "\n... (content truncated, use search_document for the rest)"
        lines += ["", "## Parsed PDF Content:", preview, ""]

    plan = state.get("learning_plan")
    mcq = state.get("current_mcq")
    session = state.get("learning_session")
    approved = state.get("plan_approved")
    lines += [
        f"- Learning Plan: {to_json(plan) if plan else 'Not created'}",
        f"- Plan Approved: {'Pending' if approved is None else approved}",
        f"- Current MCQ: {to_json(mcq) if mcq else 'None'}",
        f"- Learning Session Progress: {to_json(session) if session else 'Not started'}",
        "",
        "## Available Frontend Tools:",
        *[f"- {t.name}: {t.description}" for t in frontend_tools],
        "",
        "## Available Backend Tools:",
        *[f"- {t.name}: {t.description}" for t in backend_tools],
        "",
        "Decide the next action from the current phase and state.",
    ]
    return "\n".join(lines)


PLAN_PROMPT = """\
Create a learning plan for the user from the document below. Target 3 to 5 \
topics; each topic should take 2-3 multiple-choice questions to complete.

Document:
{content}
"""

QUESTION_PROMPT = """\
Write one multiple-choice question about the topic "{topic}" ({difficulty}) \
based on the source material below. Give exactly four choices, set \
correct_answer to the exact text of the correct choice and add a one \
paragraph explanation.

Source material:
{content}
"""

REVIEW_PROMPT = """\
Review the learning plan below and explain to the user what they learned \
today. Mention their quiz accuracy ({accuracy}%) and suggest what to study next.

Learning plan:
{plan}
"""
