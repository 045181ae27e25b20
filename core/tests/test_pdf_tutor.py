"""End-to-end tests for the PDF Tutor graphs with a scripted model."""

import json

import fitz
import pytest

from lessonflow.agents.pdf_tutor.agent import (
    TutorAgent,
    build_chat_graph,
    build_lesson_graph,
    unanswered_tool_calls,
)
from lessonflow.agents.pdf_tutor.nodes import APPROVAL_REQUEST, RESOURCE_REQUEST, is_correct_answer
from lessonflow.agents.pdf_tutor.state import MCQ, TUTOR_STATE, AgentPhase
from lessonflow.agents.pdf_tutor.tools import FRONTEND_ACTION_NAMES, search_document
from lessonflow.config import RuntimeConfig
from lessonflow.graph.errors import ExtractionError
from lessonflow.ingest.pdf import PyMuPDFExtractor, TextExtractor
from lessonflow.llm.mock import MockLLMProvider
from lessonflow.storage.checkpoint_store import InMemoryCheckpointStore

DOCUMENT = """Cells are the basic unit of life.

The mitochondria is the powerhouse of the cell and produces ATP.

Ribosomes build proteins from amino acids."""

PLAN = json.dumps({"objectives": [{"topic": "Cell energy", "difficulty": "beginner"}]})


def mcq_json(question="Which organelle produces ATP?") -> str:
    return json.dumps(
        {
            "question": question,
            "choices": ["Nucleus", "Mitochondria", "Ribosome"],
            "correct_answer": "Mitochondria",
            "explanation": "Mitochondria make ATP.",
        }
    )


class FakeExtractor(TextExtractor):
    def extract_text(self, data: bytes) -> str:
        if data.startswith(b"%BROKEN"):
            raise ExtractionError("corrupt stream")
        return data.decode("utf-8")


@pytest.fixture
def pdf_dir(tmp_path):
    (tmp_path / "cells.pdf").write_text(DOCUMENT, encoding="utf-8")
    (tmp_path / "broken.pdf").write_bytes(b"%BROKEN")
    return tmp_path


def make_tutor(graph, llm, pdf_dir, store=None):
    return TutorAgent(
        graph=graph,
        config=RuntimeConfig(storage_path=pdf_dir / "storage", max_steps=50),
        store=store or InMemoryCheckpointStore(),
        llm=llm,
        extractor=FakeExtractor(),
        base_dir=pdf_dir,
    )


class TestLessonGraph:
    @pytest.mark.asyncio
    async def test_full_lesson(self, pdf_dir):
        llm = MockLLMProvider(
            responses=[PLAN, mcq_json(), mcq_json("What does the mitochondria make?"), "Well done"]
        )
        tutor = make_tutor("lesson", llm, pdf_dir)

        outcome = await tutor.start("t1")
        assert outcome.interrupt.kind == "resource"
        assert outcome.interrupt.value == RESOURCE_REQUEST

        outcome = await tutor.resume("t1", "cells.pdf")
        assert outcome.interrupt.kind == "approval"
        assert outcome.interrupt.value == APPROVAL_REQUEST
        assert outcome.state.resource_content == DOCUMENT
        assert [t.topic for t in outcome.state.learning_plan] == ["Cell energy"]
        assert outcome.state.current_phase == AgentPhase.APPROVAL

        outcome = await tutor.resume("t1", "yes, looks good")
        assert outcome.interrupt.kind == "question"
        assert outcome.interrupt.value["choices"] == ["Nucleus", "Mitochondria", "Ribosome"]
        assert outcome.interrupt.value["topic"] == "Cell energy"

        # Wrong answer: the topic stays open and a new question is generated
        outcome = await tutor.resume("t1", "a")
        assert outcome.is_suspended
        assert outcome.interrupt.value["question"] == "What does the mitochondria make?"
        assert outcome.state.learning_plan[0].attempts == 1
        assert outcome.state.learning_plan[0].completed is False

        outcome = await tutor.resume("t1", "2")
        assert outcome.is_completed
        state = outcome.state
        assert state.current_phase == AgentPhase.SUMMARY
        assert state.learning_plan[0].completed is True
        assert state.learning_plan[0].attempts == 2
        assert state.learning_session.total_questions == 2
        assert state.learning_session.correct_answers == 1
        assert state.learning_session.accuracy == 50.0
        assert state.messages[-1].content == "Well done"
        assert len(llm.calls) == 4

    @pytest.mark.asyncio
    async def test_rejected_plan_asks_again(self, pdf_dir):
        tutor = make_tutor("lesson", MockLLMProvider(responses=[PLAN]), pdf_dir)
        await tutor.start("t1")
        await tutor.resume("t1", "cells.pdf")

        outcome = await tutor.resume("t1", "no")

        assert outcome.interrupt.kind == "approval"
        assert outcome.state.plan_approved is False
        assert outcome.path == ["approval", "approval"]

    @pytest.mark.asyncio
    async def test_empty_resource_reply_asks_again(self, pdf_dir):
        tutor = make_tutor("lesson", MockLLMProvider(), pdf_dir)
        await tutor.start("t1")

        outcome = await tutor.resume("t1", "   ")

        assert outcome.interrupt.kind == "resource"
        assert outcome.state.resource_content is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("uri", ["broken.pdf", "missing.pdf"])
    async def test_extraction_failure_is_stored_as_content(self, pdf_dir, uri):
        tutor = make_tutor("lesson", MockLLMProvider(responses=[PLAN]), pdf_dir)
        await tutor.start("t1")

        outcome = await tutor.resume("t1", uri)

        assert outcome.state.resource_content.startswith("Error parsing PDF:")
        assert outcome.state.resource_url == uri

    @pytest.mark.asyncio
    async def test_bad_question_fails_and_retries(self, pdf_dir):
        bad = json.dumps(
            {"question": "Q?", "choices": ["a", "b"], "correct_answer": "c", "explanation": ""}
        )
        llm = MockLLMProvider(responses=[PLAN, bad, mcq_json()])
        tutor = make_tutor("lesson", llm, pdf_dir)
        await tutor.start("t1")
        await tutor.resume("t1", "cells.pdf")

        failed = await tutor.resume("t1", "yes")
        assert failed.is_failed
        assert failed.error_type == "CollaboratorError"

        retried = await tutor.start("t1")
        assert retried.interrupt.kind == "question"
        assert retried.path == ["generate_question", "ask_question"]


    @pytest.mark.asyncio
    async def test_mock_mode_walks_the_whole_lesson(self, pdf_dir):
        tutor = TutorAgent(
            graph="lesson",
            config=RuntimeConfig(storage_path=pdf_dir / "storage", max_steps=50),
            store=InMemoryCheckpointStore(),
            extractor=FakeExtractor(),
            base_dir=pdf_dir,
            mock_mode=True,
        )
        await tutor.start("t1")

        outcome = await tutor.resume("t1", "cells.pdf")
        assert outcome.interrupt.kind == "approval"
        assert [t.topic for t in outcome.state.learning_plan] == ["Main ideas", "Key terms"]

        outcome = await tutor.resume("t1", "yes")
        assert outcome.interrupt.kind == "question"
        choices = outcome.interrupt.value["choices"]

        outcome = await tutor.resume("t1", choices[0])
        assert outcome.interrupt.value["topic"] == "Key terms"

        outcome = await tutor.resume("t1", "1")
        assert outcome.is_completed
        assert outcome.state.current_phase == AgentPhase.SUMMARY
        assert outcome.state.learning_session.accuracy == 100.0

class TestChatGraph:
    @pytest.mark.asyncio
    async def test_backend_tool_round_trip_then_frontend_action(self, pdf_dir):
        llm = MockLLMProvider(
            responses=[
                {"tool_calls": [{"name": "search_document", "input": {"query": "mitochondria"}}]},
                {
                    "content": "Quiz time",
                    "tool_calls": [{"name": "render_mcq", "input": {"question": "ATP?"}}],
                },
                "Right, mitochondria produce ATP.",
            ]
        )
        tutor = make_tutor("chat", llm, pdf_dir)
        await tutor.start("t1")

        outcome = await tutor.resume("t1", "cells.pdf")

        assert outcome.is_completed
        assert outcome.path == ["ingest_pdf", "agent", "tool_node", "agent"]
        roles = [m.role for m in outcome.state.messages]
        assert roles == ["assistant", "tool", "assistant"]
        result = json.loads(outcome.state.messages[1].content)
        assert "powerhouse" in result["matches"][0]["passage"]
        assert outcome.state.current_phase == AgentPhase.QUIZ
        assert "render_mcq" in llm.calls[0]["tools"]
        assert "search_document" in llm.calls[0]["tools"]

        pending = unanswered_tool_calls(outcome.state)
        assert [tc.name for tc in pending] == ["render_mcq"]

        reply = await tutor.send_message("t1", "Mitochondria")

        assert reply.is_completed
        assert reply.path == ["ingest_pdf", "agent"]
        messages = reply.state.messages
        assert messages[3].role == "tool"
        assert messages[3].tool_call_id == pending[0].id
        assert json.loads(messages[3].content) == {"status": "rendered"}
        assert messages[4].content == "Mitochondria"
        assert messages[-1].content == "Right, mitochondria produce ATP."
        assert unanswered_tool_calls(reply.state) == []

    @pytest.mark.asyncio
    async def test_send_message_uses_action_results(self, pdf_dir):
        llm = MockLLMProvider(
            responses=[{"tool_calls": [{"id": "quiz-1", "name": "render_mcq", "input": {}}]}]
        )
        tutor = make_tutor("chat", llm, pdf_dir)
        await tutor.start("t1")
        await tutor.resume("t1", "cells.pdf")

        reply = await tutor.send_message(
            "t1", "done", action_results={"quiz-1": '{"selected": "Mitochondria"}'}
        )

        tool_message = reply.state.messages[1]
        assert tool_message.tool_call_id == "quiz-1"
        assert tool_message.content == '{"selected": "Mitochondria"}'

    @pytest.mark.asyncio
    async def test_threads_and_history(self, pdf_dir):
        tutor = make_tutor("chat", MockLLMProvider(), pdf_dir)
        await tutor.start("alpha")
        await tutor.start("beta")

        assert sorted(await tutor.threads()) == ["alpha", "beta"]
        assert len(await tutor.history("alpha")) == 1


def test_graphs_compile_and_validate(pdf_dir):
    assert build_chat_graph().entry_node == "ingest_pdf"
    assert build_lesson_graph().entry_node == "ingest_pdf"

    tutor = make_tutor("lesson", MockLLMProvider(), pdf_dir)
    report = tutor.validate()
    assert report["valid"] is True
    info = tutor.info()
    assert info["name"] == "PDF Tutor"
    assert info["graph"]["id"] == "pdf-tutor-lesson"


def test_unknown_graph_name_rejected():
    with pytest.raises(ValueError):
        TutorAgent(graph="essay")


def test_default_frontend_actions():
    state = TUTOR_STATE.initial()
    assert state.frontend_actions == list(FRONTEND_ACTION_NAMES)
    assert state.current_phase == AgentPhase.SETUP


class TestAnswerMatching:
    mcq = MCQ(
        question="Which organelle produces ATP?",
        choices=["Nucleus", "Mitochondria", "Ribosome"],
        correct_answer="Mitochondria",
    )

    @pytest.mark.parametrize(
        "answer", ["Mitochondria", " mitochondria ", "2", "b", "B", {"answer": "Mitochondria"}]
    )
    def test_correct_forms(self, answer):
        assert is_correct_answer(answer, self.mcq)

    @pytest.mark.parametrize("answer", ["Nucleus", "1", "c", "9", "z", "", None])
    def test_incorrect_forms(self, answer):
        assert not is_correct_answer(answer, self.mcq)

    def test_numeric_choices_match_by_text_first(self):
        mcq = MCQ(question="2 + 2?", choices=["3", "4", "5", "6"], correct_answer="4")
        assert is_correct_answer("4", mcq)
        assert not is_correct_answer("3", mcq)
        assert not is_correct_answer("6", mcq)

    def test_letter_choices_match_by_text_first(self):
        mcq = MCQ(question="Second letter?", choices=["A", "B", "C", "D"], correct_answer="B")
        assert is_correct_answer("b", mcq)
        assert is_correct_answer("B", mcq)
        assert not is_correct_answer("A", mcq)

    def test_number_falls_back_to_position_when_no_choice_matches(self):
        mcq = MCQ(question="Pick one", choices=["10", "20", "30"], correct_answer="30")
        assert is_correct_answer("3", mcq)
        assert not is_correct_answer("1", mcq)


class TestSearchDocument:
    def test_ranks_matching_paragraphs(self):
        result = search_document("ATP mitochondria", document=DOCUMENT)
        assert result["matches"][0]["position"] == 1
        assert result["matches"][0]["score"] == 2
        assert len(result["matches"]) == 1

    def test_line_windows_when_no_paragraphs(self):
        lines = [f"line {i}" for i in range(20)]
        lines[12] = "line 12 about proteins"
        document = "\n".join(lines)
        result = search_document("proteins", document=document)
        assert result["matches"][0]["position"] == 1

    def test_no_document(self):
        result = search_document("anything")
        assert result["matches"] == []
        assert result["note"] == "No document loaded"


class TestPyMuPDFExtractor:
    def test_extracts_text_from_real_pdf(self):
        doc = fitz.open()
        page = doc.new_page()
        page.insert_text((72, 72), "Photosynthesis converts light to energy")
        data = doc.tobytes()
        doc.close()

        text = PyMuPDFExtractor().extract_text(data)
        assert "Photosynthesis" in text

    def test_invalid_bytes_raise_extraction_error(self):
        with pytest.raises(ExtractionError):
            PyMuPDFExtractor().extract_text(b"this is not a pdf")
