"""Tests for the pdf-tutor command line."""

import json

from click.testing import CliRunner

from lessonflow.agents.pdf_tutor.__main__ import cli


def test_validate_command():
    result = CliRunner().invoke(cli, ["validate"])
    assert result.exit_code == 0
    assert "Agent is valid" in result.output


def test_info_json():
    result = CliRunner().invoke(cli, ["info", "--graph", "lesson", "--json"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["graph"]["id"] == "pdf-tutor-lesson"
    assert data["graph"]["entry_node"] == "ingest_pdf"
    assert "ask_question" in data["graph"]["nodes"]


def test_info_text():
    result = CliRunner().invoke(cli, ["info"])
    assert result.exit_code == 0
    assert "Graph: pdf-tutor-chat" in result.output
    assert "Entry: ingest_pdf" in result.output
