"""Tests for instruction synthesis, overrides and the suggestion workflow."""

from unittest.mock import patch

import pytest

from app.chains.synthesize_instruction import (
    BASE_IDENTITY,
    DEFAULT_FORMATTING_RULES,
    RESPONSE_GUIDELINES,
    build_instruction,
)
from app.core.instruction_workflow import SuggestionTransitionError, next_suggestion_state
from app.core.schemas_assistant import SuggestionState
from tests.fakes.fake_llm import llm_raising, llm_returning


def _insight(category: str, text: str, importance: int, **extra) -> dict:
    return {"id": text, "category": category, "text": text, "importance": importance, "is_active": True, **extra}


class TestBuildInstruction:
    def test_sections_sorted_by_importance(self):
        insights = [
            _insight("best_practice", "Low priority practice", 2),
            _insight("best_practice", "High priority practice", 9, examples=["Q: skills?"]),
            _insight("avoid_pattern", "Do not guess dates", 6),
        ]

        text = build_instruction(insights)

        assert text.startswith(BASE_IDENTITY)
        assert DEFAULT_FORMATTING_RULES in text
        assert text.endswith(RESPONSE_GUIDELINES)
        assert text.index("High priority practice") < text.index("Low priority practice")
        assert "• High priority practice (Examples: Q: skills?)" in text
        assert "PATTERNS TO AVOID:\n• Do not guess dates" in text
        assert "AREAS TO IMPROVE" not in text

    def test_inactive_insights_are_excluded(self):
        retired = _insight("improvement", "Retired lesson", 10, is_active=False)

        assert "Retired lesson" not in build_instruction([retired])

    def test_fact_insights_listed_as_facts_and_in_their_category(self):
        fact = _insight("improvement", "FACT: Nick has academic transcripts available", 8)

        text = build_instruction([fact])

        assert "IMPORTANT FACTS:\n• Nick has academic transcripts available" in text
        assert "AREAS TO IMPROVE:\n• FACT: Nick has academic transcripts available" in text

    def test_custom_formatting_rules_replace_default(self):
        text = build_instruction([], formatting_rules="Always answer in one sentence.")

        assert "Always answer in one sentence." in text
        assert DEFAULT_FORMATTING_RULES not in text

    def test_is_deterministic(self):
        insights = [
            _insight("improvement", "B lesson", 5, created_at="2024-01-02"),
            _insight("improvement", "A lesson", 5, created_at="2024-01-01"),
        ]

        assert build_instruction(insights) == build_instruction(list(reversed(insights)))


class TestSuggestionStateMachine:
    @pytest.mark.parametrize("state", list(SuggestionState))
    def test_request_allowed_from_every_state(self, state):
        assert next_suggestion_state(state, "request") == SuggestionState.SUGGESTED

    def test_approve_and_reject_from_suggested(self):
        assert next_suggestion_state(SuggestionState.SUGGESTED, "approve") == SuggestionState.APPROVED
        assert next_suggestion_state(SuggestionState.SUGGESTED, "reject") == SuggestionState.REJECTED

    @pytest.mark.parametrize("state", [SuggestionState.IDLE, SuggestionState.APPROVED, SuggestionState.REJECTED])
    @pytest.mark.parametrize("event", ["approve", "reject"])
    def test_approve_or_reject_outside_suggested_is_refused(self, state, event):
        with pytest.raises(SuggestionTransitionError):
            next_suggestion_state(state, event)


class TestSynthesize:
    def test_successive_calls_are_identical(self, fake_db):
        from app.core.instruction_workflow import synthesize
        from app.db.insights import create_insight

        create_insight("best_practice", "Lead with the answer", importance=7)
        create_insight("improvement", "Mention certifications", importance=7)

        assert synthesize() == synthesize()
        assert "Lead with the answer" in synthesize()

    def test_override_is_returned_verbatim_until_cleared(self, fake_db):
        from app.core.instruction_workflow import clear_override, set_override, synthesize
        from app.db.insights import create_insight

        create_insight("best_practice", "Lead with the answer", importance=7)

        status = set_override("Hand-written instruction.")
        assert status.is_override is True
        assert synthesize() == "Hand-written instruction."

        status = clear_override()
        assert status.is_override is False
        assert "Lead with the answer" in synthesize()

    def test_formatting_rules_from_store(self, fake_db):
        from app.core.instruction_workflow import synthesize
        from app.db.instructions import clear_formatting_rules, set_formatting_rules

        set_formatting_rules("Reply in haiku.")
        assert "Reply in haiku." in synthesize()

        clear_formatting_rules()
        assert DEFAULT_FORMATTING_RULES in synthesize()

    def test_live_instruction_degrades_to_template(self, fake_db):
        from app.core.instruction_workflow import get_live_instruction

        fake_db.failing_tables.add("instruction_settings")

        assert get_live_instruction() == build_instruction([])


class TestSuggestionWorkflow:
    @pytest.mark.asyncio
    async def test_request_then_approve_makes_candidate_live(self, fake_db):
        from app.core.instruction_workflow import approve_suggestion, request_suggestion, synthesize

        before = synthesize()
        with patch("app.chains.synthesize_instruction.get_llm", return_value=llm_returning("Condensed instruction.")):
            suggestion = await request_suggestion()

        assert suggestion.state == SuggestionState.SUGGESTED
        assert suggestion.candidate == "Condensed instruction."
        assert suggestion.source == "ai"
        assert synthesize() == before

        status = approve_suggestion()
        assert status.instruction == "Condensed instruction."
        assert status.is_override is True
        assert status.suggestion.state == SuggestionState.APPROVED
        assert synthesize() == "Condensed instruction."

    @pytest.mark.asyncio
    async def test_operator_edit_is_what_gets_approved(self, fake_db):
        from app.core.instruction_workflow import approve_suggestion, request_suggestion

        with patch("app.chains.synthesize_instruction.get_llm", return_value=llm_returning("Draft.")):
            await request_suggestion()

        status = approve_suggestion("Edited draft.")

        assert status.instruction == "Edited draft."

    @pytest.mark.asyncio
    async def test_reject_leaves_live_instruction_untouched(self, fake_db):
        from app.core.instruction_workflow import reject_suggestion, request_suggestion, synthesize

        before = synthesize()
        with patch("app.chains.synthesize_instruction.get_llm", return_value=llm_returning("Draft.")):
            await request_suggestion()

        suggestion = reject_suggestion()

        assert suggestion.state == SuggestionState.REJECTED
        assert synthesize() == before

        from app.core.instruction_workflow import approve_suggestion

        with pytest.raises(SuggestionTransitionError):
            approve_suggestion()

    @pytest.mark.asyncio
    async def test_model_failure_proposes_template_text(self, fake_db):
        from app.core.instruction_workflow import request_suggestion, synthesize_from_insights

        with patch("app.chains.synthesize_instruction.get_llm", return_value=llm_raising(RuntimeError("down"))):
            suggestion = await request_suggestion()

        assert suggestion.source == "template"
        assert suggestion.candidate == synthesize_from_insights()

    def test_approve_without_pending_suggestion_is_refused(self, fake_db):
        from app.core.instruction_workflow import approve_suggestion

        with pytest.raises(SuggestionTransitionError):
            approve_suggestion("text")
