"""Tests for background evaluation scheduling, retry and terminal failure."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from app.core.schemas_assistant import EvaluationResult


def _result(overall: float = 0.8) -> EvaluationResult:
    return EvaluationResult(criterion_scores={"conciseness": overall}, overall_score=overall)


@pytest.fixture
def turn(fake_db):
    from app.db.conversations import create_turn
    from app.db.documents import create_document

    create_document("resume", "Nick is a product manager at EY.")
    return create_turn("session-1", "What does Nick do?", "He is a product manager at EY.")


class TestEvaluateTurn:
    @pytest.mark.asyncio
    async def test_persists_new_evaluation_with_retrieved_context(self, fake_db, turn):
        from app.core.evaluation_runner import evaluate_turn

        with patch("app.core.evaluation_runner.evaluate_answer", AsyncMock(return_value=_result())) as evaluate:
            row = await evaluate_turn(turn["id"])

        question, answer, context = evaluate.call_args[0]
        assert question == "What does Nick do?"
        assert answer == "He is a product manager at EY."
        assert "[resume]" in context
        assert row["conversation_turn_id"] == turn["id"]
        assert len(fake_db.rows("evaluations")) == 1

    @pytest.mark.asyncio
    async def test_generation_context_is_graded_without_retrieving_again(self, fake_db, turn):
        from app.core.evaluation_runner import evaluate_turn
        from app.db.documents import create_document

        create_document("added-later", "Nick moved to a new role.")
        with patch("app.core.evaluation_runner.evaluate_answer", AsyncMock(return_value=_result())) as evaluate, patch(
            "app.core.evaluation_runner.retrieve"
        ) as retrieve:
            await evaluate_turn(turn["id"], "[resume]\nNick is a product manager at EY.")

        retrieve.assert_not_called()
        assert evaluate.call_args[0][2] == "[resume]\nNick is a product manager at EY."

    @pytest.mark.asyncio
    async def test_re_evaluation_creates_a_second_row(self, fake_db, turn):
        from app.core.evaluation_runner import evaluate_turn

        with patch("app.core.evaluation_runner.evaluate_answer", AsyncMock(return_value=_result())):
            await evaluate_turn(turn["id"])
            await evaluate_turn(turn["id"])

        assert len(fake_db.rows("evaluations")) == 2


class TestEvaluateWithRetry:
    @pytest.mark.asyncio
    async def test_retries_with_exponential_backoff_then_succeeds(self, fake_db, turn, settings, monkeypatch):
        from app.core.evaluation_runner import evaluate_turn_with_retry

        monkeypatch.setattr(settings, "EVAL_RETRY_BASE_DELAY_SECONDS", 1.0)
        evaluate = AsyncMock(side_effect=[RuntimeError("judge down"), RuntimeError("still down"), _result()])

        with patch("app.core.evaluation_runner.evaluate_answer", evaluate), patch(
            "app.core.evaluation_runner.asyncio.sleep", AsyncMock()
        ) as sleep:
            row = await evaluate_turn_with_retry(turn["id"])

        assert row is not None
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]
        assert fake_db.rows("evaluation_failures") == []

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts_and_records_failure(self, fake_db, turn, settings, monkeypatch):
        from app.core.evaluation_runner import evaluate_turn_with_retry

        monkeypatch.setattr(settings, "EVAL_RETRY_BASE_DELAY_SECONDS", 0.5)
        evaluate = AsyncMock(side_effect=RuntimeError("judge down"))

        with patch("app.core.evaluation_runner.evaluate_answer", evaluate), patch(
            "app.core.evaluation_runner.asyncio.sleep", AsyncMock()
        ) as sleep:
            row = await evaluate_turn_with_retry(turn["id"])

        assert row is None
        assert evaluate.await_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]
        failures = fake_db.rows("evaluation_failures")
        assert len(failures) == 1
        assert failures[0]["conversation_turn_id"] == turn["id"]
        assert failures[0]["attempts"] == 3
        assert "judge down" in failures[0]["error"]
        assert fake_db.rows("evaluations") == []

    @pytest.mark.asyncio
    async def test_failure_record_error_is_swallowed(self, fake_db, turn):
        from app.core.evaluation_runner import evaluate_turn_with_retry

        fake_db.failing_tables.update({"evaluations", "evaluation_failures"})
        with patch("app.core.evaluation_runner.evaluate_answer", AsyncMock(return_value=_result())):
            assert await evaluate_turn_with_retry(turn["id"]) is None


class TestScheduleEvaluation:
    @pytest.mark.asyncio
    async def test_runs_detached_from_caller(self, fake_db, turn):
        from app.core.evaluation_runner import schedule_evaluation

        started = asyncio.Event()

        async def slow_eval(*_args):
            started.set()
            await asyncio.sleep(0)
            return _result()

        with patch("app.core.evaluation_runner.evaluate_answer", AsyncMock(side_effect=slow_eval)):
            task = schedule_evaluation(turn["id"])
            assert fake_db.rows("evaluations") == []
            await task

        assert started.is_set()
        assert len(fake_db.rows("evaluations")) == 1
