"""Tests for logging and LLM output helpers."""

import json
import logging

import pytest
from langchain_core.messages import AIMessage

from app.core.llm import parse_llm_json, response_text
from app.core.logging import StructuredFormatter
from app.core.schemas_assistant import GateJudgeOutput


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_promotes_conversation_ids(self):
        line = StructuredFormatter().format(_record(turn_id="t-1", session_id="s-1"))
        assert "turn_id=t-1" in line
        assert "session_id=s-1" in line
        assert "message=hello" in line

    def test_includes_extra_data(self):
        line = StructuredFormatter().format(_record(extra_data={"retired": 2}))
        assert "retired=2" in line


class TestParseLlmJson:
    def test_fenced_json(self):
        raw = '```json\n{"accepted": false, "confidence": 0.9}\n```'
        verdict = parse_llm_json(raw, GateJudgeOutput)
        assert verdict.accepted is False
        assert verdict.confidence == 0.9

    def test_invalid_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_llm_json("not json", GateJudgeOutput)


class TestResponseText:
    def test_plain_content(self):
        assert response_text(AIMessage(content="answer")) == "answer"

    def test_content_blocks(self):
        message = AIMessage(content=[{"type": "text", "text": "a"}, {"type": "text", "text": "b"}])
        assert response_text(message) == "ab"
